"""
Waitlist sign-up, status lookup and admin cleanup.
"""

import csv
import io
import logging
import re
from typing import Iterable, List, Optional

from mentorship.database import SessionFactory, get_session
from mentorship.db_models import WaitlistEntry
from mentorship.exceptions import InvalidWaitlistRequestError
from mentorship.models import MentorshipType, WaitlistJoinResult
from mentorship.ratelimit import RateLimiter
from mentorship.repositories import WaitlistRepository
from mentorship.services.email_service import mask_email

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

CSV_COLUMNS = ["email", "instructor_slug", "mentorship_type", "notified", "created_at"]
FORMULA_PREFIXES = ("=", "+", "-", "@")


def normalize_email(email: str) -> str:
    """Lower-case and strip an address, rejecting anything that is not email-shaped"""
    normalized = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(normalized):
        raise InvalidWaitlistRequestError("A valid email address is required")
    return normalized


def sanitize_csv_cell(value: str) -> str:
    """Neutralize spreadsheet formulas in exported cells"""
    value = (value or "").strip()
    if value.startswith(FORMULA_PREFIXES):
        return f"'{value}"
    return value


class WaitlistService:
    """Waitlist operations used by the sign-up and admin endpoints"""

    def __init__(
        self,
        rate_limiter: Optional[RateLimiter] = None,
        session_factory: SessionFactory = get_session,
    ):
        self.rate_limiter = rate_limiter
        self.session_factory = session_factory

    def join_waitlist(
        self,
        email: str,
        instructor_slug: str,
        mentorship_type: MentorshipType,
        user_id: Optional[str] = None,
        client_key: Optional[str] = None,
    ) -> WaitlistJoinResult:
        """
        Add someone to an instructor's waitlist.

        Args:
            email: Address to notify
            instructor_slug: Instructor identifier
            mentorship_type: one-on-one or group
            user_id: Signed-in user, if any
            client_key: Rate limit key (e.g. client IP); defaults to the email

        Returns:
            WaitlistJoinResult. Joining twice reports already_on_waitlist.

        Raises:
            InvalidWaitlistRequestError: If email, slug or type is malformed
        """
        email = normalize_email(email)
        instructor_slug = (instructor_slug or "").strip()
        if not instructor_slug:
            raise InvalidWaitlistRequestError("Instructor slug is required")
        try:
            mentorship_type = MentorshipType(mentorship_type)
        except ValueError:
            raise InvalidWaitlistRequestError(f"Unknown mentorship type: {mentorship_type!r}")

        if self.rate_limiter is not None:
            limit = self.rate_limiter.hit(f"waitlist:{client_key or email}")
            if not limit.success:
                return WaitlistJoinResult(
                    rate_limited=True, retry_after_seconds=limit.retry_after_seconds
                )

        with self.session_factory() as session:
            entry, created = WaitlistRepository(session).add_entry(
                email, instructor_slug, mentorship_type, user_id=user_id
            )
            entry_id = entry.id

        if created:
            logger.info(
                f"Added {mask_email(email)} to waitlist for {instructor_slug}/{mentorship_type.value}"
            )
        else:
            logger.info(
                f"{mask_email(email)} already on waitlist for {instructor_slug}/{mentorship_type.value}"
            )
        return WaitlistJoinResult(entry_id=entry_id, already_on_waitlist=not created)

    def get_waitlist_status(
        self, user_id: str, instructor_slug: Optional[str] = None
    ) -> List[dict]:
        """Get a signed-in user's waitlist entries"""
        with self.session_factory() as session:
            entries = WaitlistRepository(session).get_entries_for_user(user_id, instructor_slug)
            return [self._entry_to_dict(entry) for entry in entries]

    def get_instructor_waitlist(
        self, instructor_slug: str, mentorship_type: MentorshipType
    ) -> List[dict]:
        """Admin view of one instructor's waitlist, newest first"""
        with self.session_factory() as session:
            entries = WaitlistRepository(session).get_waitlist_for_instructor(
                instructor_slug, mentorship_type
            )
            return [self._entry_to_dict(entry) for entry in entries]

    def export_csv(self, instructor_slug: str, mentorship_type: MentorshipType) -> str:
        """
        Export an instructor's waitlist as CSV, newest first.

        Columns: email, instructor_slug, mentorship_type, notified, created_at
        """
        mentorship_type = MentorshipType(mentorship_type)
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_COLUMNS)

        for entry in self.get_instructor_waitlist(instructor_slug, mentorship_type):
            writer.writerow(
                [
                    sanitize_csv_cell(entry["email"]),
                    sanitize_csv_cell(entry["instructor_slug"]),
                    sanitize_csv_cell(entry["mentorship_type"]),
                    "true" if entry["notified"] else "false",
                    entry["created_at"].isoformat(),
                ]
            )

        return buffer.getvalue()

    @staticmethod
    def csv_filename(instructor_slug: str, mentorship_type: MentorshipType) -> str:
        return f"waitlist-{instructor_slug}-{MentorshipType(mentorship_type).value}.csv"

    def delete_entries(self, entry_ids: Iterable[int]) -> int:
        """Delete selected waitlist entries (admin)"""
        entry_ids = list(entry_ids or [])
        if not entry_ids:
            raise InvalidWaitlistRequestError("No IDs provided")
        with self.session_factory() as session:
            deleted = WaitlistRepository(session).delete_entries(entry_ids)
        logger.info(f"Deleted {deleted} waitlist entries")
        return deleted

    def cleanup_instructor(self, instructor_slug: str) -> int:
        """Delete all waitlist entries for an instructor"""
        with self.session_factory() as session:
            deleted = WaitlistRepository(session).delete_for_instructor(instructor_slug)
        logger.info(f"Cleaned up {deleted} waitlist entries for {instructor_slug}")
        return deleted

    @staticmethod
    def _entry_to_dict(entry: WaitlistEntry) -> dict:
        return {
            "id": entry.id,
            "email": entry.email,
            "instructor_slug": entry.instructor_slug,
            "mentorship_type": entry.mentorship_type,
            "notified": entry.notified,
            "last_notification_at": entry.last_notification_at,
            "created_at": entry.created_at,
        }
