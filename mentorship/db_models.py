"""
Database models using SQLModel
Provides type-safe ORM with Pydantic validation
"""

import uuid
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import DateTime, TypeDecorator, UniqueConstraint
from typing import Optional
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp"""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize to aware UTC; naive values are taken to be UTC already"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timestamp column that always hands back aware UTC datetimes.

    SQLite drops the offset on storage, so values are converted to UTC on
    the way in and tagged as UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return as_utc(value)

    def process_result_value(self, value, dialect):
        return as_utc(value)


def new_id() -> str:
    return str(uuid.uuid4())

class SessionPack(SQLModel, table=True):
    """Purchased bundle of mentorship sessions"""

    __tablename__ = "session_packs"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    user_id: str = Field(index=True, max_length=255)
    mentor_id: str = Field(index=True, max_length=255)
    total_sessions: int = Field(default=4, ge=0)
    remaining_sessions: int = Field(default=4, ge=0)
    purchased_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    expires_at: datetime = Field(sa_type=UTCDateTime)
    status: str = Field(default="active", max_length=20)  # PackStatus
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    # Relationships
    seat: Optional["SeatReservation"] = Relationship(
        back_populates="session_pack", sa_relationship_kwargs={"uselist": False}
    )


class SeatReservation(SQLModel, table=True):
    """Mentor/mentee seat gating new bookings against a pack"""

    __tablename__ = "seat_reservations"

    id: str = Field(default_factory=new_id, primary_key=True, max_length=36)
    mentor_id: str = Field(index=True, max_length=255)
    user_id: str = Field(index=True, max_length=255)
    session_pack_id: str = Field(foreign_key="session_packs.id", unique=True)
    seat_expires_at: datetime = Field(sa_type=UTCDateTime)
    grace_period_ends_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    status: str = Field(default="active", max_length=20)  # SeatStatus
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)

    # Relationships
    session_pack: Optional[SessionPack] = Relationship(back_populates="seat")


class WaitlistEntry(SQLModel, table=True):
    """Interest in an instructor/mentorship type becoming bookable"""

    __tablename__ = "waitlist_entries"
    __table_args__ = (
        UniqueConstraint(
            "email", "instructor_slug", "mentorship_type", name="uq_waitlist_email_slug_type"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[str] = Field(default=None, index=True, max_length=255)
    email: str = Field(max_length=320, index=True)
    instructor_slug: str = Field(max_length=255, index=True)
    mentorship_type: str = Field(max_length=20)  # MentorshipType
    notified: bool = Field(default=False)
    last_notification_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class InstructorInventory(SQLModel, table=True):
    """Open seats per instructor and mentorship type"""

    __tablename__ = "instructor_inventory"

    instructor_slug: str = Field(primary_key=True, max_length=255)
    one_on_one_inventory: int = Field(default=0, ge=0)
    group_inventory: int = Field(default=0, ge=0)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_by: Optional[str] = Field(default=None, max_length=255)


class InventoryChangeLog(SQLModel, table=True):
    """Audit trail of inventory changes"""

    __tablename__ = "inventory_change_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    instructor_slug: str = Field(max_length=255, index=True)
    mentorship_type: str = Field(max_length=20)
    change_type: str = Field(max_length=30)  # manual_update, purchase
    old_value: int
    new_value: int
    changed_by: Optional[str] = Field(default=None, max_length=255)
    notification_pending: bool = Field(default=False)  # set until the waitlist notifier has run
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, index=True)


class InstructorOffer(SQLModel, table=True):
    """Purchase offer configured for an instructor/type"""

    __tablename__ = "instructor_offers"
    __table_args__ = (
        UniqueConstraint("instructor_slug", "mentorship_type", name="uq_offer_slug_type"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    instructor_slug: str = Field(max_length=255, index=True)
    instructor_name: str = Field(max_length=255)
    mentorship_type: str = Field(max_length=20)
    url: str = Field(max_length=1000)
    active: bool = Field(default=True)
