"""
Inventory service - persists seat counts per instructor/type and hands
each transition to the waitlist notifier.
"""

import logging
from typing import Dict, Optional, Tuple

from mentorship.database import SessionFactory, get_session
from mentorship.exceptions import InvalidInventoryError
from mentorship.models import InventoryChangeResult, MentorshipType
from mentorship.repositories import InventoryRepository
from mentorship.services.waitlist_notifier import WaitlistNotifier

logger = logging.getLogger(__name__)


class InventoryService:
    """Inventory updates with change logging and waitlist hand-off"""

    def __init__(
        self,
        notifier: WaitlistNotifier,
        session_factory: SessionFactory = get_session,
    ):
        self.notifier = notifier
        self.session_factory = session_factory

    def get_inventory(self, instructor_slug: str) -> Dict[MentorshipType, int]:
        """Current counts for an instructor (zeros when none recorded)"""
        with self.session_factory() as session:
            inventory = InventoryRepository(session).get_inventory(instructor_slug)
            if inventory is None:
                return {t: 0 for t in MentorshipType}
            return {t: getattr(inventory, t.inventory_column) for t in MentorshipType}

    async def update_inventory(
        self,
        instructor_slug: str,
        updates: Dict[MentorshipType, int],
        updated_by: Optional[str] = None,
    ) -> Dict[MentorshipType, InventoryChangeResult]:
        """
        Set inventory counts and notify the waitlist where seats reopened.

        Args:
            instructor_slug: Instructor identifier
            updates: New count per mentorship type
            updated_by: Admin/instructor making the change

        Returns:
            Notifier result for each type whose count changed or whose
            previous change was never delivered to the notifier

        Raises:
            InvalidInventoryError: For negative counts or unknown types
        """
        normalized = {}
        for mentorship_type, value in updates.items():
            try:
                mentorship_type = MentorshipType(mentorship_type)
            except ValueError:
                raise InvalidInventoryError(f"Unknown mentorship type: {mentorship_type!r}")
            if value is None or value < 0:
                raise InvalidInventoryError(f"Inventory cannot be negative: {value}")
            normalized[mentorship_type] = value

        changes = {}
        with self.session_factory() as session:
            repo = InventoryRepository(session)
            for mentorship_type, value in normalized.items():
                change = self._apply_change(
                    repo, instructor_slug, mentorship_type, value, "manual_update", updated_by
                )
                if change is not None:
                    changes[mentorship_type] = change

        results = {}
        for mentorship_type, (old_value, new_value) in changes.items():
            logger.info(
                f"Inventory for {instructor_slug}/{mentorship_type.value} set {old_value} -> {new_value}"
                f" by {updated_by or 'unknown'}"
            )
            results[mentorship_type] = await self._dispatch(
                instructor_slug, mentorship_type, old_value, new_value
            )
        return results

    async def decrement_inventory(
        self,
        instructor_slug: str,
        mentorship_type: MentorshipType,
        quantity: int = 1,
    ) -> InventoryChangeResult:
        """Consume seats after a purchase; the count never goes below zero"""
        if quantity < 1:
            raise InvalidInventoryError(f"Decrement quantity must be positive: {quantity}")
        mentorship_type = MentorshipType(mentorship_type)

        with self.session_factory() as session:
            repo = InventoryRepository(session)
            inventory = repo.get_or_create_inventory(instructor_slug, for_update=True)
            current = getattr(inventory, mentorship_type.inventory_column)
            new_value = max(0, current - quantity)
            change = self._apply_change(
                repo, instructor_slug, mentorship_type, new_value, "purchase"
            )

        old_value = change[0] if change is not None else current
        logger.info(
            f"Inventory for {instructor_slug}/{mentorship_type.value} decremented "
            f"{old_value} -> {new_value} (by {quantity})"
        )
        if change is None:
            return await self.notifier.handle_inventory_changed(
                instructor_slug, mentorship_type, old_value, new_value
            )
        return await self._dispatch(instructor_slug, mentorship_type, old_value, new_value)

    @staticmethod
    def _apply_change(
        repo: InventoryRepository,
        instructor_slug: str,
        mentorship_type: MentorshipType,
        value: int,
        change_type: str,
        changed_by: Optional[str] = None,
    ) -> Optional[Tuple[int, int]]:
        """
        Store a count and return the transition the notifier still has to see.

        A change is logged with notification_pending set, and the flag is only
        cleared once the notifier returns. If an earlier change is still pending
        its old value is used as the starting point, so a retry after a failed
        notification replays the original transition even when the count itself
        no longer changes.
        """
        origin = repo.get_pending_origin(instructor_slug, mentorship_type)
        old_value, new_value = repo.set_inventory(instructor_slug, mentorship_type, value, changed_by)

        if old_value != new_value:
            repo.log_change(
                instructor_slug,
                mentorship_type,
                change_type,
                old_value,
                new_value,
                changed_by=changed_by,
                notification_pending=True,
            )
        elif origin is None:
            return None
        else:
            logger.info(
                f"Replaying pending inventory change for {instructor_slug}/{mentorship_type.value}: "
                f"{origin} -> {new_value}"
            )

        return (old_value if origin is None else origin), new_value

    async def _dispatch(
        self,
        instructor_slug: str,
        mentorship_type: MentorshipType,
        old_value: int,
        new_value: int,
    ) -> InventoryChangeResult:
        result = await self.notifier.handle_inventory_changed(
            instructor_slug, mentorship_type, old_value, new_value
        )
        with self.session_factory() as session:
            InventoryRepository(session).clear_pending(instructor_slug, mentorship_type)
        return result
