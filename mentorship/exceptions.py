"""
Exception types for the booking core.

Business rejections are returned as data; these cover configuration problems,
invalid input and infrastructure failures that callers must retry.
"""


class MentorshipError(Exception):
    """Base class for booking core errors"""


class ConfigurationError(MentorshipError):
    """Raised when required settings are missing"""


class InvalidInventoryError(MentorshipError, ValueError):
    """Raised for negative inventory counts or unknown mentorship types"""


class InvalidWaitlistRequestError(MentorshipError, ValueError):
    """Raised when a waitlist sign-up carries a malformed email or slug"""


class WaitlistStoreError(MentorshipError):
    """
    Raised when reading or writing waitlist rows fails.

    The notifier's steps are idempotent, so the caller's retry layer
    can re-run the whole operation after this error.
    """

    def __init__(self, step: str, cause: Exception) -> None:
        super().__init__(f"Waitlist store failed during {step}: {cause}")
        self.step = step
        self.cause = cause
