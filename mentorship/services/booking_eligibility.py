"""
Booking eligibility - decides whether a session may be booked against a pack.

Checks run in a fixed order and stop at the first failure:
pack exists, pack not expired, scheduled time within the pack's validity,
pack active, sessions remaining, seat active. The order decides which
error a user sees when several apply.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlmodel import Session

from mentorship.db_models import SessionPack, SeatReservation, as_utc, utcnow
from mentorship.models import BookingEligibilityResult, BookingErrorCode, PackStatus, SeatStatus
from mentorship.repositories import SessionPackRepository

logger = logging.getLogger(__name__)


def evaluate_pack(
    pack: Optional[SessionPack],
    seat: Optional[SeatReservation],
    scheduled_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> BookingEligibilityResult:
    """Apply the eligibility rules to an already loaded pack and seat"""
    if pack is None:
        return BookingEligibilityResult.reject(
            BookingErrorCode.PACK_NOT_FOUND,
            "Session pack not found or you don't have access to it",
        )

    now = as_utc(now) or utcnow()
    scheduled_at = as_utc(scheduled_at)
    expires_at = as_utc(pack.expires_at)

    # Expiry takes precedence over status
    if expires_at < now:
        return BookingEligibilityResult.reject(
            BookingErrorCode.PACK_EXPIRED,
            "Session pack has expired. Bookings are no longer allowed.",
        )

    if scheduled_at is not None and scheduled_at > expires_at:
        return BookingEligibilityResult.reject(
            BookingErrorCode.SCHEDULED_AFTER_EXPIRATION,
            "Session cannot be scheduled after the pack expires.",
        )

    if pack.status != PackStatus.ACTIVE.value:
        return BookingEligibilityResult.reject(
            BookingErrorCode.PACK_NOT_ACTIVE,
            f"Session pack is {pack.status}. Bookings are not allowed.",
        )

    if pack.remaining_sessions <= 0:
        return BookingEligibilityResult.reject(
            BookingErrorCode.NO_REMAINING_SESSIONS,
            "No remaining sessions available. Please renew your pack.",
        )

    if seat is None:
        return BookingEligibilityResult.reject(
            BookingErrorCode.SEAT_NOT_ACTIVE,
            "Seat reservation not found. Please contact support.",
        )

    if seat.status != SeatStatus.ACTIVE.value:
        return BookingEligibilityResult.reject(
            BookingErrorCode.SEAT_NOT_ACTIVE,
            f"Seat is {seat.status}. Bookings are not allowed.",
        )

    return BookingEligibilityResult.ok()


def check_eligibility(
    session: Session,
    pack_id: str,
    requesting_user_id: Optional[str] = None,
    scheduled_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> BookingEligibilityResult:
    """
    Check whether a new session can be booked against a pack.

    Read-only and safe to call repeatedly. Storage errors propagate;
    expected rejections come back as an invalid result.

    Args:
        session: Database session
        pack_id: Session pack to book against
        requesting_user_id: Owner scope for the lookup (None skips scoping)
        scheduled_at: Proposed session start, optional (naive values are read as UTC)
        now: Evaluation time, defaults to the current UTC time

    Returns:
        BookingEligibilityResult
    """
    pack_repo = SessionPackRepository(session)
    pack, seat = pack_repo.get_pack_with_seat(pack_id, requesting_user_id)

    result = evaluate_pack(pack, seat, scheduled_at=scheduled_at, now=now)
    if not result.valid:
        logger.info(
            f"Booking rejected for pack {pack_id}: {result.error_code.value}"
        )
    return result


def book_session(
    session: Session,
    pack_id: str,
    requesting_user_id: Optional[str] = None,
    scheduled_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> BookingEligibilityResult:
    """
    Re-check eligibility under a row lock and consume one session.

    The earlier read-only check may be stale by the time the booking is
    written, so the same rules are evaluated again on the locked row.
    """
    pack_repo = SessionPackRepository(session)
    pack, seat = pack_repo.get_pack_with_seat(
        pack_id, requesting_user_id, for_update=True
    )

    result = evaluate_pack(pack, seat, scheduled_at=scheduled_at, now=now)
    if not result.valid:
        logger.info(
            f"Booking rejected at write time for pack {pack_id}: {result.error_code.value}"
        )
        return result

    pack = pack_repo.decrement_remaining(pack)
    logger.info(
        f"Booked session on pack {pack_id} ({pack.remaining_sessions} remaining)"
    )
    return result
