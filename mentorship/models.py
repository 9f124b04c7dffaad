"""
Type-safe data models for the booking core
Uses dataclasses and enums for better type safety and IDE support
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict


class MentorshipType(str, Enum):
    """Kind of mentorship an instructor offers"""
    ONE_ON_ONE = "one-on-one"
    GROUP = "group"

    @property
    def label(self) -> str:
        if self is MentorshipType.ONE_ON_ONE:
            return "1-on-1 Mentorship"
        return "Group Mentorship"

    @property
    def inventory_column(self) -> str:
        if self is MentorshipType.ONE_ON_ONE:
            return "one_on_one_inventory"
        return "group_inventory"


class PackStatus(str, Enum):
    ACTIVE = "active"
    DEPLETED = "depleted"
    EXPIRED = "expired"
    REFUNDED = "refunded"
    CANCELED = "canceled"


class SeatStatus(str, Enum):
    ACTIVE = "active"
    GRACE = "grace"
    RELEASED = "released"


class BookingErrorCode(str, Enum):
    """Reasons a session cannot be booked against a pack"""
    PACK_NOT_FOUND = "PACK_NOT_FOUND"
    PACK_EXPIRED = "PACK_EXPIRED"
    SCHEDULED_AFTER_EXPIRATION = "SCHEDULED_AFTER_EXPIRATION"
    PACK_NOT_ACTIVE = "PACK_NOT_ACTIVE"
    NO_REMAINING_SESSIONS = "NO_REMAINING_SESSIONS"
    SEAT_NOT_ACTIVE = "SEAT_NOT_ACTIVE"


@dataclass(frozen=True)
class BookingEligibilityResult:
    """Outcome of a booking eligibility check: valid, or invalid with a code"""
    valid: bool
    error_code: Optional[BookingErrorCode] = None
    message: Optional[str] = None

    @classmethod
    def ok(cls) -> "BookingEligibilityResult":
        return cls(valid=True)

    @classmethod
    def reject(cls, code: BookingErrorCode, message: str) -> "BookingEligibilityResult":
        return cls(valid=False, error_code=code, message=message)


@dataclass(frozen=True)
class ActiveOffer:
    """Purchase path currently open for an instructor/type"""
    instructor_slug: str
    instructor_name: str
    mentorship_type: MentorshipType
    url: str


@dataclass(frozen=True)
class EmailContent:
    subject: str
    html: str
    text: str
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class SendResult:
    """Per-recipient delivery outcome"""
    email: str
    ok: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class InventoryChangeResult:
    """Summary of one inventory-changed invocation"""
    notified_count: int = 0
    attempted_count: int = 0
    failed_count: int = 0
    marked_rows: int = 0
    pending_count: Optional[int] = None
    skipped_reason: Optional[str] = None


@dataclass(frozen=True)
class WaitlistJoinResult:
    entry_id: Optional[int] = None
    already_on_waitlist: bool = False
    rate_limited: bool = False
    retry_after_seconds: Optional[int] = None


@dataclass(frozen=True)
class RateLimitResult:
    success: bool
    retry_after_seconds: Optional[int] = None
