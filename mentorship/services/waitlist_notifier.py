"""
Waitlist notifier - reacts to inventory changes for an instructor/mentorship type.

When inventory goes from 0 to >0 the eligible waitlist is mailed, one email per
distinct address, and every row for each successfully mailed address is marked
notified. Rows whose send failed stay eligible for the next event. Nobody is
mailed twice within the cooldown window.

Every step re-derives its state from `notified` / `last_notification_at`, so a
retry of the whole operation after a store error is safe.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from mentorship.config import MentorshipConfig, get_config
from mentorship.database import SessionFactory, get_session
from mentorship.db_models import utcnow
from mentorship.exceptions import InvalidInventoryError, WaitlistStoreError
from mentorship.models import (
    ActiveOffer,
    EmailContent,
    InventoryChangeResult,
    MentorshipType,
    SendResult,
)
from mentorship.repositories import OfferRepository, WaitlistRepository
from mentorship.services.best_effort import run_best_effort
from mentorship.services.email_service import build_waitlist_notification_email, mask_email
from mentorship.services.notification_lock import InMemoryNotificationLock, NotificationLock

logger = logging.getLogger(__name__)

SKIP_STILL_AVAILABLE = "inventory still available"
SKIP_NO_INVENTORY = "no inventory available"
SKIP_EXHAUSTED = "inventory exhausted"
SKIP_MAIL_DISABLED = "email provider not configured"
SKIP_NO_OFFER = "no active offer"
SKIP_NO_RECIPIENTS = "no eligible recipients"


class Mailer(Protocol):
    async def send(self, to: str, content: EmailContent) -> SendResult:
        ...


OfferLookup = Callable[[str, MentorshipType], Optional[ActiveOffer]]


def unique_emails(emails: Iterable[str]) -> List[str]:
    """Distinct normalized addresses in first-seen order"""
    return list(dict.fromkeys(email.strip().lower() for email in emails))


class WaitlistNotifier:
    """Turns inventory transitions into waitlist emails"""

    def __init__(
        self,
        mailer: Optional[Mailer],
        session_factory: SessionFactory = get_session,
        offer_lookup: Optional[OfferLookup] = None,
        lock: Optional[NotificationLock] = None,
        discord=None,
        config: Optional[MentorshipConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.mailer = mailer
        self.session_factory = session_factory
        self.offer_lookup = offer_lookup or self._lookup_offer
        self.lock = lock or InMemoryNotificationLock()
        self.discord = discord
        self.config = config or get_config()
        self.clock = clock

    async def handle_inventory_changed(
        self,
        instructor_slug: str,
        mentorship_type: MentorshipType,
        previous_count: int,
        new_count: int,
    ) -> InventoryChangeResult:
        """
        React to an inventory change for one instructor/type.

        Args:
            instructor_slug: Instructor identifier
            mentorship_type: one-on-one or group
            previous_count: Inventory before the change
            new_count: Inventory after the change

        Returns:
            InventoryChangeResult. Skips are reported via skipped_reason.

        Raises:
            InvalidInventoryError: For negative counts or an unknown type
            WaitlistStoreError: If reading or marking waitlist rows fails
        """
        mentorship_type = self._validate(instructor_slug, mentorship_type, previous_count, new_count)

        logger.info(
            f"Inventory changed for {instructor_slug}/{mentorship_type.value}: "
            f"{previous_count} -> {new_count}"
        )

        if new_count == 0:
            if previous_count > 0:
                return self._handle_exhausted(instructor_slug, mentorship_type)
            return InventoryChangeResult(skipped_reason=SKIP_NO_INVENTORY)

        if previous_count > 0:
            return InventoryChangeResult(skipped_reason=SKIP_STILL_AVAILABLE)

        return await self._handle_available(instructor_slug, mentorship_type)

    async def notify_now(
        self, instructor_slug: str, mentorship_type: MentorshipType
    ) -> InventoryChangeResult:
        """
        Admin-triggered send to the eligible waitlist of one instructor/type.

        Runs the same send flow as a 0 -> >0 transition, so the cooldown,
        de-duplication and offer checks all apply.
        """
        mentorship_type = self._validate(instructor_slug, mentorship_type, 0, 0)
        logger.info(f"Manual waitlist notification for {instructor_slug}/{mentorship_type.value}")
        return await self._handle_available(instructor_slug, mentorship_type)

    def _validate(
        self,
        instructor_slug: str,
        mentorship_type: MentorshipType,
        previous_count: int,
        new_count: int,
    ) -> MentorshipType:
        if not instructor_slug:
            raise InvalidInventoryError("Instructor slug is required")
        try:
            mentorship_type = MentorshipType(mentorship_type)
        except ValueError:
            raise InvalidInventoryError(f"Unknown mentorship type: {mentorship_type!r}")
        if previous_count < 0 or new_count < 0:
            raise InvalidInventoryError(
                f"Inventory counts cannot be negative ({previous_count} -> {new_count})"
            )
        return mentorship_type

    def _cutoff(self, now: datetime) -> datetime:
        return now - timedelta(days=self.config.notification_cooldown_days)

    def _handle_exhausted(
        self, instructor_slug: str, mentorship_type: MentorshipType
    ) -> InventoryChangeResult:
        """Exhaustion only reports the waiting list; mail goes out when seats return"""
        cutoff = self._cutoff(self.clock())
        try:
            with self.session_factory() as session:
                pending = WaitlistRepository(session).count_pending(
                    instructor_slug, mentorship_type, cutoff
                )
        except SQLAlchemyError as e:
            logger.error(f"Error counting waitlist for {instructor_slug}/{mentorship_type.value}: {e}")
            raise WaitlistStoreError("count-pending", e) from e

        logger.info(
            f"Inventory exhausted for {instructor_slug}/{mentorship_type.value}, "
            f"{pending} waitlist entries pending"
        )
        return InventoryChangeResult(pending_count=pending, skipped_reason=SKIP_EXHAUSTED)

    async def _handle_available(
        self, instructor_slug: str, mentorship_type: MentorshipType
    ) -> InventoryChangeResult:
        if self.mailer is None:
            logger.warning("Email provider not configured, skipping waitlist send")
            return InventoryChangeResult(skipped_reason=SKIP_MAIL_DISABLED)

        offer = self.offer_lookup(instructor_slug, mentorship_type)
        if offer is None:
            logger.info(f"No active offer found for {instructor_slug}/{mentorship_type.value}")
            return InventoryChangeResult(skipped_reason=SKIP_NO_OFFER)

        async with self.lock.hold(f"{instructor_slug}:{mentorship_type.value}"):
            now = self.clock()
            emails = self._fetch_recipients(instructor_slug, mentorship_type, self._cutoff(now))

            if not emails:
                logger.info(
                    f"No waitlist entries to notify for {instructor_slug}/{mentorship_type.value} "
                    f"(all notified within last {self.config.notification_cooldown_days} days)"
                )
                return InventoryChangeResult(skipped_reason=SKIP_NO_RECIPIENTS)

            content = build_waitlist_notification_email(
                instructor_name=offer.instructor_name,
                mentorship_type=mentorship_type,
                purchase_url=self.config.build_booking_url(offer.url),
            )

            results = await self._send_all(emails, content)
            sent = [email for email, r in zip(emails, results) if r.ok]
            failed_count = len(results) - len(sent)

            marked_rows = self._mark_notified(sent, instructor_slug, mentorship_type, self.clock())

        logger.info(
            f"Waitlist notification for {instructor_slug}/{mentorship_type.value}: "
            f"sent {len(sent)}/{len(emails)}, marked {marked_rows} rows"
        )

        result = InventoryChangeResult(
            notified_count=len(sent),
            attempted_count=len(emails),
            failed_count=failed_count,
            marked_rows=marked_rows,
        )
        await self._post_summary(offer, result)
        return result

    def _fetch_recipients(
        self, instructor_slug: str, mentorship_type: MentorshipType, cutoff: datetime
    ) -> List[str]:
        try:
            with self.session_factory() as session:
                entries = WaitlistRepository(session).get_eligible_entries(
                    instructor_slug, mentorship_type, cutoff
                )
                return unique_emails(entry.email for entry in entries)
        except SQLAlchemyError as e:
            logger.error(f"Error fetching waitlist for {instructor_slug}/{mentorship_type.value}: {e}")
            raise WaitlistStoreError("fetch-waitlist-entries", e) from e

    async def _send_all(self, emails: List[str], content: EmailContent) -> List[SendResult]:
        """Send to every address; each outcome is independent of the others"""
        semaphore = asyncio.Semaphore(self.config.send_concurrency)
        timeout = self.config.send_timeout_seconds

        async def send_one(email: str) -> SendResult:
            async with semaphore:
                try:
                    return await asyncio.wait_for(self.mailer.send(email, content), timeout=timeout)
                except asyncio.TimeoutError:
                    logger.error(f"Timed out sending waitlist email to {mask_email(email)}")
                    return SendResult(email=email, ok=False, error="timeout")
                except Exception as e:
                    logger.error(f"Failed to send waitlist email to {mask_email(email)}: {e}")
                    return SendResult(email=email, ok=False, error=str(e) or type(e).__name__)

        return list(await asyncio.gather(*(send_one(email) for email in emails)))

    def _mark_notified(
        self,
        emails: List[str],
        instructor_slug: str,
        mentorship_type: MentorshipType,
        now: datetime,
    ) -> int:
        """Mark every row of each mailed address, not only the rows read earlier"""
        if not emails:
            return 0
        try:
            with self.session_factory() as session:
                repo = WaitlistRepository(session)
                rows = repo.get_rows_for_emails(emails, instructor_slug, mentorship_type)
                return repo.mark_notified([row.id for row in rows], now)
        except SQLAlchemyError as e:
            logger.error(f"Error updating waitlist entries for {instructor_slug}/{mentorship_type.value}: {e}")
            raise WaitlistStoreError("mark-notified", e) from e

    def _lookup_offer(
        self, instructor_slug: str, mentorship_type: MentorshipType
    ) -> Optional[ActiveOffer]:
        with self.session_factory() as session:
            return OfferRepository(session).get_active_offer(instructor_slug, mentorship_type)

    async def _post_summary(self, offer: ActiveOffer, result: InventoryChangeResult) -> None:
        if self.discord is None or result.attempted_count == 0:
            return
        message = (
            f"📬 Waitlist notified for **{offer.instructor_name}** "
            f"({offer.mentorship_type.label}): {result.notified_count} sent, "
            f"{result.failed_count} failed"
        )
        await run_best_effort(
            "discord-waitlist-summary",
            lambda: self.discord.post_message(message),
            timeout=self.config.send_timeout_seconds,
        )
