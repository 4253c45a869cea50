"""
Booking and membership exceptions.

Business-rule failures are expected outcomes the caller renders as a message;
``BookingSystemError`` means the transaction could not complete and the caller
should try again later.
"""
from typing import Any, Dict, Optional


class BookingDomainError(Exception):
    """Base class for expected, user-facing business-rule failures."""

    default_message = "Request could not be completed"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message or self.default_message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class UserNotFound(BookingDomainError):
    default_message = "User not found"


class LessonNotFound(BookingDomainError):
    default_message = "Lesson not found or no longer available"


class LessonFull(BookingDomainError):
    default_message = "Lesson is fully booked"


class NoValidMembership(BookingDomainError):
    default_message = "No valid membership card, please purchase one first"


class BookingNotFound(BookingDomainError):
    default_message = "Booking not found"


class PlanNotFound(BookingDomainError):
    default_message = "Membership plan does not exist or is no longer on sale"


class CardExhausted(BookingDomainError):
    """A count-based card had no classes left at debit time."""

    default_message = "Membership card has no remaining classes"


class BookingSystemError(Exception):
    """The database could not complete the transaction; nothing was committed."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed, try again later")
