"""
Repository pattern for database access
Provides clean separation between business logic and data access
"""

from sqlmodel import Session, select, delete
from sqlalchemy import update, func, or_
from sqlalchemy.exc import IntegrityError
from typing import List, Optional, Tuple, Iterable
from datetime import datetime

from mentorship.db_models import (
    SessionPack,
    SeatReservation,
    WaitlistEntry,
    InstructorInventory,
    InventoryChangeLog,
    InstructorOffer,
    utcnow,
)
from mentorship.models import ActiveOffer, MentorshipType, PackStatus, SeatStatus


class SessionPackRepository:
    """Repository for SessionPack and SeatReservation operations"""

    def __init__(self, session: Session):
        self.session = session

    def get_pack_with_seat(
        self, pack_id: str, user_id: Optional[str] = None, for_update: bool = False
    ) -> Tuple[Optional[SessionPack], Optional[SeatReservation]]:
        """
        Get a pack and its seat reservation in one query.

        The seat side is a LEFT JOIN, so a pack without a seat comes back
        as (pack, None). Passing user_id scopes the lookup to the owner.
        """
        statement = (
            select(SessionPack, SeatReservation)
            .join(
                SeatReservation,
                SeatReservation.session_pack_id == SessionPack.id,
                isouter=True,
            )
            .where(SessionPack.id == pack_id)
        )

        if user_id is not None:
            statement = statement.where(SessionPack.user_id == user_id)

        if for_update:
            statement = statement.with_for_update(of=SessionPack)

        row = self.session.exec(statement.limit(1)).first()
        if row is None:
            return None, None

        pack, seat = row
        return pack, seat

    def create_pack(
        self,
        user_id: str,
        mentor_id: str,
        expires_at: datetime,
        total_sessions: int = 4,
        remaining_sessions: Optional[int] = None,
        status: PackStatus = PackStatus.ACTIVE,
    ) -> SessionPack:
        """Create a new session pack"""
        pack = SessionPack(
            user_id=user_id,
            mentor_id=mentor_id,
            total_sessions=total_sessions,
            remaining_sessions=(
                total_sessions if remaining_sessions is None else remaining_sessions
            ),
            expires_at=expires_at,
            status=PackStatus(status).value,
        )
        self.session.add(pack)
        self.session.commit()
        self.session.refresh(pack)
        return pack

    def create_seat(
        self,
        pack: SessionPack,
        seat_expires_at: Optional[datetime] = None,
        status: SeatStatus = SeatStatus.ACTIVE,
    ) -> SeatReservation:
        """Create the seat reservation that belongs to a pack"""
        seat = SeatReservation(
            mentor_id=pack.mentor_id,
            user_id=pack.user_id,
            session_pack_id=pack.id,
            seat_expires_at=seat_expires_at or pack.expires_at,
            status=SeatStatus(status).value,
        )
        self.session.add(seat)
        self.session.commit()
        self.session.refresh(seat)
        return seat

    def decrement_remaining(self, pack: SessionPack) -> SessionPack:
        """Consume one session; a pack reaching zero becomes depleted"""
        pack.remaining_sessions = max(0, pack.remaining_sessions - 1)
        if pack.remaining_sessions == 0:
            pack.status = PackStatus.DEPLETED.value
        pack.updated_at = utcnow()
        self.session.add(pack)
        self.session.commit()
        self.session.refresh(pack)
        return pack


class WaitlistRepository:
    """Repository for WaitlistEntry operations"""

    def __init__(self, session: Session):
        self.session = session

    def add_entry(
        self,
        email: str,
        instructor_slug: str,
        mentorship_type: MentorshipType,
        user_id: Optional[str] = None,
    ) -> Tuple[WaitlistEntry, bool]:
        """
        Add an entry to the waitlist.

        Returns:
            (entry, created). A duplicate (email, slug, type) hits the unique
            constraint and returns the existing entry with created=False.
        """
        entry = WaitlistEntry(
            user_id=user_id,
            email=email,
            instructor_slug=instructor_slug,
            mentorship_type=MentorshipType(mentorship_type).value,
        )
        self.session.add(entry)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            existing = self.get_entry(email, instructor_slug, mentorship_type)
            if existing is None:
                raise
            return existing, False

        self.session.refresh(entry)
        return entry, True

    def get_entry(
        self, email: str, instructor_slug: str, mentorship_type: MentorshipType
    ) -> Optional[WaitlistEntry]:
        statement = select(WaitlistEntry).where(
            WaitlistEntry.email == email,
            WaitlistEntry.instructor_slug == instructor_slug,
            WaitlistEntry.mentorship_type == MentorshipType(mentorship_type).value,
        )
        return self.session.exec(statement).first()

    def _eligible_filter(self, instructor_slug: str, mentorship_type: MentorshipType, cutoff: datetime):
        return (
            WaitlistEntry.instructor_slug == instructor_slug,
            WaitlistEntry.mentorship_type == MentorshipType(mentorship_type).value,
            or_(
                WaitlistEntry.notified == False,  # noqa: E712
                WaitlistEntry.last_notification_at.is_(None),
                WaitlistEntry.last_notification_at < cutoff,
            ),
        )

    def get_eligible_entries(
        self, instructor_slug: str, mentorship_type: MentorshipType, cutoff: datetime
    ) -> List[WaitlistEntry]:
        """Entries never notified, or last notified before the cutoff"""
        statement = (
            select(WaitlistEntry)
            .where(*self._eligible_filter(instructor_slug, mentorship_type, cutoff))
            .order_by(WaitlistEntry.id)
        )
        return list(self.session.exec(statement))

    def count_pending(
        self, instructor_slug: str, mentorship_type: MentorshipType, cutoff: datetime
    ) -> int:
        statement = select(func.count(WaitlistEntry.id)).where(
            *self._eligible_filter(instructor_slug, mentorship_type, cutoff)
        )
        return self.session.exec(statement).one()

    def get_rows_for_emails(
        self, emails: Iterable[str], instructor_slug: str, mentorship_type: MentorshipType
    ) -> List[WaitlistEntry]:
        """All rows for the given addresses, whatever their notified state.

        Addresses match case- and whitespace-insensitively.
        """
        emails = [email.strip().lower() for email in emails]
        if not emails:
            return []
        statement = (
            select(WaitlistEntry)
            .where(
                func.lower(func.trim(WaitlistEntry.email)).in_(emails),
                WaitlistEntry.instructor_slug == instructor_slug,
                WaitlistEntry.mentorship_type == MentorshipType(mentorship_type).value,
            )
            .order_by(WaitlistEntry.id)
        )
        return list(self.session.exec(statement))

    def mark_notified(self, entry_ids: Iterable[int], now: Optional[datetime] = None) -> int:
        """Set notified and the notification timestamp on the given rows"""
        entry_ids = list(entry_ids)
        if not entry_ids:
            return 0
        now = now or utcnow()
        statement = (
            update(WaitlistEntry)
            .where(WaitlistEntry.id.in_(entry_ids))
            .values(notified=True, last_notification_at=now, updated_at=now)
        )
        result = self.session.exec(statement)
        self.session.commit()
        return result.rowcount

    def get_waitlist_for_instructor(
        self, instructor_slug: str, mentorship_type: MentorshipType
    ) -> List[WaitlistEntry]:
        """Get an instructor's waitlist, newest first"""
        statement = (
            select(WaitlistEntry)
            .where(
                WaitlistEntry.instructor_slug == instructor_slug,
                WaitlistEntry.mentorship_type == MentorshipType(mentorship_type).value,
            )
            .order_by(WaitlistEntry.created_at.desc(), WaitlistEntry.id.desc())
        )
        return list(self.session.exec(statement))

    def get_entries_for_user(
        self, user_id: str, instructor_slug: Optional[str] = None
    ) -> List[WaitlistEntry]:
        """Get a user's waitlist entries, optionally for one instructor"""
        statement = select(WaitlistEntry).where(WaitlistEntry.user_id == user_id)

        if instructor_slug:
            statement = statement.where(WaitlistEntry.instructor_slug == instructor_slug)

        return list(self.session.exec(statement.order_by(WaitlistEntry.id)))

    def delete_entries(self, entry_ids: Iterable[int]) -> int:
        """Delete selected entries by ID. Returns number of rows removed."""
        entry_ids = list(entry_ids)
        if not entry_ids:
            return 0
        statement = delete(WaitlistEntry).where(WaitlistEntry.id.in_(entry_ids))
        result = self.session.exec(statement)
        self.session.commit()
        return result.rowcount

    def delete_for_instructor(self, instructor_slug: str) -> int:
        """Delete every entry for an instructor (admin cleanup)"""
        statement = delete(WaitlistEntry).where(
            WaitlistEntry.instructor_slug == instructor_slug
        )
        result = self.session.exec(statement)
        self.session.commit()
        return result.rowcount


class InventoryRepository:
    """Repository for InstructorInventory and its change log"""

    def __init__(self, session: Session):
        self.session = session

    def get_inventory(
        self, instructor_slug: str, for_update: bool = False
    ) -> Optional[InstructorInventory]:
        """Get inventory for an instructor"""
        statement = select(InstructorInventory).where(
            InstructorInventory.instructor_slug == instructor_slug
        )
        if for_update:
            statement = statement.with_for_update()
        return self.session.exec(statement).first()

    def get_or_create_inventory(
        self, instructor_slug: str, for_update: bool = False
    ) -> InstructorInventory:
        inventory = self.get_inventory(instructor_slug, for_update=for_update)
        if inventory is None:
            inventory = InstructorInventory(instructor_slug=instructor_slug)
            self.session.add(inventory)
            self.session.flush()
        return inventory

    def set_inventory(
        self,
        instructor_slug: str,
        mentorship_type: MentorshipType,
        value: int,
        updated_by: Optional[str] = None,
    ) -> Tuple[int, int]:
        """
        Set the count for one mentorship type.

        Returns:
            (old_value, new_value)
        """
        column = MentorshipType(mentorship_type).inventory_column
        inventory = self.get_or_create_inventory(instructor_slug, for_update=True)
        old_value = getattr(inventory, column)

        setattr(inventory, column, value)
        inventory.updated_at = utcnow()
        inventory.updated_by = updated_by
        self.session.add(inventory)
        self.session.commit()
        return old_value, value

    def log_change(
        self,
        instructor_slug: str,
        mentorship_type: MentorshipType,
        change_type: str,
        old_value: int,
        new_value: int,
        changed_by: Optional[str] = None,
        notification_pending: bool = False,
    ) -> InventoryChangeLog:
        """Append an inventory change to the audit log"""
        log = InventoryChangeLog(
            instructor_slug=instructor_slug,
            mentorship_type=MentorshipType(mentorship_type).value,
            change_type=change_type,
            old_value=old_value,
            new_value=new_value,
            changed_by=changed_by,
            notification_pending=notification_pending,
        )
        self.session.add(log)
        self.session.commit()
        self.session.refresh(log)
        return log

    def get_pending_origin(
        self, instructor_slug: str, mentorship_type: MentorshipType
    ) -> Optional[int]:
        """Count before the oldest change whose notification has not completed"""
        statement = (
            select(InventoryChangeLog)
            .where(
                InventoryChangeLog.instructor_slug == instructor_slug,
                InventoryChangeLog.mentorship_type == MentorshipType(mentorship_type).value,
                InventoryChangeLog.notification_pending == True,  # noqa: E712
            )
            .order_by(InventoryChangeLog.id)
            .limit(1)
        )
        oldest = self.session.exec(statement).first()
        return oldest.old_value if oldest else None

    def clear_pending(self, instructor_slug: str, mentorship_type: MentorshipType) -> int:
        """Mark every pending change for an instructor/type as notified"""
        statement = (
            update(InventoryChangeLog)
            .where(
                InventoryChangeLog.instructor_slug == instructor_slug,
                InventoryChangeLog.mentorship_type == MentorshipType(mentorship_type).value,
                InventoryChangeLog.notification_pending == True,  # noqa: E712
            )
            .values(notification_pending=False)
        )
        result = self.session.exec(statement)
        self.session.commit()
        return result.rowcount

    def get_change_log(
        self, instructor_slug: Optional[str] = None, limit: int = 100
    ) -> List[InventoryChangeLog]:
        """Get recent inventory changes"""
        statement = select(InventoryChangeLog).order_by(
            InventoryChangeLog.created_at.desc(), InventoryChangeLog.id.desc()
        )

        if instructor_slug:
            statement = statement.where(InventoryChangeLog.instructor_slug == instructor_slug)

        statement = statement.limit(limit)
        return list(self.session.exec(statement))


class OfferRepository:
    """Repository for InstructorOffer operations"""

    def __init__(self, session: Session):
        self.session = session

    def get_active_offer(
        self, instructor_slug: str, mentorship_type: MentorshipType
    ) -> Optional[ActiveOffer]:
        """Get the open purchase path for an instructor/type, if any"""
        mentorship_type = MentorshipType(mentorship_type)
        statement = select(InstructorOffer).where(
            InstructorOffer.instructor_slug == instructor_slug,
            InstructorOffer.mentorship_type == mentorship_type.value,
            InstructorOffer.active == True,  # noqa: E712
        )
        offer = self.session.exec(statement).first()
        if offer is None:
            return None
        return ActiveOffer(
            instructor_slug=offer.instructor_slug,
            instructor_name=offer.instructor_name,
            mentorship_type=mentorship_type,
            url=offer.url,
        )

    def upsert_offer(
        self,
        instructor_slug: str,
        instructor_name: str,
        mentorship_type: MentorshipType,
        url: str,
        active: bool = True,
    ) -> InstructorOffer:
        """Create or update the offer for an instructor/type"""
        mentorship_type = MentorshipType(mentorship_type)
        statement = select(InstructorOffer).where(
            InstructorOffer.instructor_slug == instructor_slug,
            InstructorOffer.mentorship_type == mentorship_type.value,
        )
        offer = self.session.exec(statement).first()
        if offer is None:
            offer = InstructorOffer(
                instructor_slug=instructor_slug,
                mentorship_type=mentorship_type.value,
                instructor_name=instructor_name,
                url=url,
                active=active,
            )
        else:
            offer.instructor_name = instructor_name
            offer.url = url
            offer.active = active

        self.session.add(offer)
        self.session.commit()
        self.session.refresh(offer)
        return offer
