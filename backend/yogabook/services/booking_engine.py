"""
Booking Engine

Books and cancels lesson seats against membership cards. Each operation is a
single transaction spanning the lesson capacity check, the card ledger and the
booking row, so a seat is never held without a charge and a card is never
charged without a seat.

This is the only layer that interprets database errors: business-rule
failures pass through as ``BookingDomainError`` subclasses, everything the
database raises becomes ``BookingSystemError``.
"""
from datetime import datetime
from typing import Optional, Tuple
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from yogabook.core.clock import utcnow
from yogabook.core.config import settings
from yogabook.core.db_transaction import db_transaction
from yogabook.core.exceptions import (
    BookingNotFound,
    BookingSystemError,
    CardExhausted,
    LessonFull,
    LessonNotFound,
    NoValidMembership,
    UserNotFound,
)
from yogabook.core.logging_config import get_logger
from yogabook.models.booking import Booking, BookingStatusEnum
from yogabook.models.membership import UserMembershipCard
from yogabook.services.capacity_tracker import LessonCapacityTracker
from yogabook.services.membership_ledger import MembershipLedger
from yogabook.services.user_directory import UserDirectory

logger = get_logger("booking_engine")


class BookingOutcome:
    """Result of a successful book call."""
    __slots__ = ("booking_id", "card_id", "remaining_classes", "already_booked")

    def __init__(
        self,
        booking_id: int,
        card_id: Optional[int] = None,
        remaining_classes: Optional[int] = None,
        already_booked: bool = False,
    ):
        self.booking_id = booking_id
        self.card_id = card_id
        self.remaining_classes = remaining_classes
        self.already_booked = already_booked


class CancelOutcome:
    """Result of a successful cancel call."""
    __slots__ = ("cancelled_id", "refunded", "classes_refunded")

    def __init__(self, cancelled_id: int, refunded: bool, classes_refunded: int = 0):
        self.cancelled_id = cancelled_id
        self.refunded = refunded
        self.classes_refunded = classes_refunded


class BookingEngine:
    def __init__(self, db: Session):
        self.db = db
        self.users = UserDirectory(db)
        self.capacity = LessonCapacityTracker(db)
        self.ledger = MembershipLedger(db)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def book(self, lesson_id: int, open_id: str) -> BookingOutcome:
        """
        Reserve one seat in a lesson for the caller and charge a membership card.

        Raises:
            UserNotFound, LessonNotFound, LessonFull, NoValidMembership:
                business-rule failures; nothing was written.
            BookingSystemError: the database failed; nothing was written.
        """
        try:
            with db_transaction(self.db):
                return self._book(lesson_id, open_id)
        except SQLAlchemyError as e:
            logger.error(
                f"Booking lesson {lesson_id} failed: {type(e).__name__}",
                extra={"lesson_id": lesson_id}
            )
            raise BookingSystemError("book", e) from e

    def cancel(self, booking_id: int, open_id: str) -> CancelOutcome:
        """
        Cancel the caller's confirmed booking and give back what it consumed.

        Raises:
            BookingNotFound: no confirmed booking with this id belongs to the caller.
            BookingSystemError: the database failed; nothing was written.
        """
        try:
            with db_transaction(self.db):
                return self._cancel(booking_id, open_id)
        except SQLAlchemyError as e:
            logger.error(
                f"Cancelling booking {booking_id} failed: {type(e).__name__}",
                extra={"booking_id": booking_id}
            )
            raise BookingSystemError("cancel", e) from e

    # ------------------------------------------------------------------
    # Book
    # ------------------------------------------------------------------

    def _book(self, lesson_id: int, open_id: str) -> BookingOutcome:
        user_id = self.users.resolve(open_id)
        if user_id is None:
            logger.info("Booking refused, unknown user", extra={"lesson_id": lesson_id})
            raise UserNotFound()

        # Serialization point: held until commit
        lesson = self.capacity.lock_lesson(lesson_id)
        if lesson is None:
            raise LessonNotFound(details={"lesson_id": lesson_id})

        existing = self._find_booking(user_id, lesson.id)
        if existing is not None and existing.status == BookingStatusEnum.CONFIRMED:
            return self._already_booked(existing)

        current = self.capacity.current_confirmed_count(lesson.id)
        if current >= lesson.max_students:
            logger.info(
                f"Lesson {lesson.id} is full",
                extra={"lesson_id": lesson.id, "current": current, "max_students": lesson.max_students}
            )
            raise LessonFull(details={"lesson_id": lesson.id, "max_students": lesson.max_students})

        card = self.ledger.find_eligible_card(user_id, lesson.lesson_type, lesson_start=lesson.start_time)
        if card is None:
            logger.info(
                f"User {user_id} has no valid membership card for lesson {lesson.id}",
                extra={"user_id": user_id, "lesson_id": lesson.id}
            )
            raise NoValidMembership(details={"lesson_id": lesson.id})

        now = utcnow()
        booking, already_confirmed = self._upsert_booking(user_id, lesson.id, existing, now)
        if already_confirmed:
            return self._already_booked(booking)

        try:
            usage = self.ledger.debit(card.id, booking.id, lesson.id)
        except CardExhausted as e:
            raise NoValidMembership(details={"lesson_id": lesson.id, "card_id": card.id}) from e

        logger.info(
            f"Booked lesson {lesson.id} for user {user_id}",
            extra={
                "booking_id": booking.id,
                "lesson_id": lesson.id,
                "user_id": user_id,
                "card_id": card.id,
                "classes_consumed": usage.classes_consumed,
            }
        )
        return BookingOutcome(
            booking_id=booking.id,
            card_id=card.id,
            remaining_classes=usage.remaining_classes_after,
        )

    def _find_booking(self, user_id: int, lesson_id: int) -> Optional[Booking]:
        return self.db.query(Booking).filter(
            Booking.user_id == user_id,
            Booking.lesson_id == lesson_id
        ).with_for_update().populate_existing().first()

    def _upsert_booking(
        self,
        user_id: int,
        lesson_id: int,
        existing: Optional[Booking],
        now: datetime,
    ) -> Tuple[Booking, bool]:
        """
        Put a confirmed booking row in place for (user, lesson).

        A cancelled row is brought back rather than duplicated. A fresh insert
        that loses the unique (user_id, lesson_id) race re-reads the winner's
        row and goes round again.

        Returns:
            (booking, already_confirmed) where already_confirmed means another
            request confirmed the same seat first and nothing should be charged.
        """
        attempts = max(settings.BOOKING_RETRY_ATTEMPTS, 1)
        for attempt in range(1, attempts + 1):
            if existing is not None:
                if existing.status == BookingStatusEnum.CONFIRMED:
                    return existing, True
                existing.status = BookingStatusEnum.CONFIRMED
                existing.booking_time = now
                existing.cancelled_at = None
                existing.updated_at = now
                self.db.flush()
                return existing, False

            booking = Booking(
                user_id=user_id,
                lesson_id=lesson_id,
                status=BookingStatusEnum.CONFIRMED,
                booking_time=now,
            )
            try:
                with self.db.begin_nested():
                    self.db.add(booking)
                return booking, False
            except IntegrityError:
                if attempt == attempts:
                    raise
                logger.warning(
                    f"Concurrent booking for user {user_id} lesson {lesson_id}, retrying ({attempt}/{attempts})",
                    extra={"user_id": user_id, "lesson_id": lesson_id}
                )
                existing = self._find_booking(user_id, lesson_id)

    def _already_booked(self, booking: Booking) -> BookingOutcome:
        """The seat is already held; report it without charging again."""
        remaining = None
        card_id = None
        usage = self.ledger.find_consumption(booking.id)
        if usage is not None:
            card_id = usage.user_card_id
            card = self.db.get(UserMembershipCard, usage.user_card_id)
            remaining = card.remaining_classes if card is not None else None
        logger.info(
            f"Booking {booking.id} already confirmed",
            extra={"booking_id": booking.id, "lesson_id": booking.lesson_id}
        )
        return BookingOutcome(
            booking_id=booking.id,
            card_id=card_id,
            remaining_classes=remaining,
            already_booked=True,
        )

    # ------------------------------------------------------------------
    # Cancel
    # ------------------------------------------------------------------

    def _cancel(self, booking_id: int, open_id: str) -> CancelOutcome:
        user_id = self.users.resolve(open_id)
        if user_id is None:
            # Same answer as a foreign booking
            raise BookingNotFound(details={"booking_id": booking_id})

        booking = self.db.query(Booking).filter(
            Booking.id == booking_id,
            Booking.user_id == user_id,
            Booking.status == BookingStatusEnum.CONFIRMED
        ).with_for_update().populate_existing().first()
        if booking is None:
            raise BookingNotFound(details={"booking_id": booking_id})

        now = utcnow()
        result = self.db.execute(
            update(Booking)
            .where(
                Booking.id == booking.id,
                Booking.status == BookingStatusEnum.CONFIRMED,
            )
            .values(status=BookingStatusEnum.CANCELLED, cancelled_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            # Another cancel got there first
            raise BookingNotFound(details={"booking_id": booking_id})
        self.db.refresh(booking)

        usage = self.ledger.find_consumption(booking.id)
        if usage is None:
            logger.warning(
                f"Booking {booking.id} cancelled with no consumption record to refund",
                extra={"booking_id": booking.id, "user_id": user_id}
            )
            return CancelOutcome(cancelled_id=booking.id, refunded=False)

        restored = self.ledger.credit(usage)
        logger.info(
            f"Cancelled booking {booking.id}",
            extra={"booking_id": booking.id, "user_id": user_id, "classes_refunded": restored}
        )
        return CancelOutcome(cancelled_id=booking.id, refunded=True, classes_refunded=restored)
