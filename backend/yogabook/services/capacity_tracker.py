"""
Lesson capacity: max seats versus live confirmed bookings.

The confirmed count is never stored or cached; every caller counts bookings at
the moment it needs the number, inside its own transaction.
"""
from typing import Optional
from sqlalchemy import func, select
from sqlalchemy.orm import Session
from yogabook.models.booking import Booking, BookingStatusEnum
from yogabook.models.lesson import Lesson


def confirmed_booking_clause():
    """Predicate for a booking that holds a seat."""
    return Booking.status == BookingStatusEnum.CONFIRMED


def confirmed_counts_subquery():
    """lesson_id -> current_students, shared by the listing so it counts exactly like the booking check."""
    return (
        select(Booking.lesson_id, func.count(Booking.id).label("current_students"))
        .where(confirmed_booking_clause())
        .group_by(Booking.lesson_id)
        .subquery()
    )


class LessonCapacityTracker:
    def __init__(self, db: Session):
        self.db = db

    def current_confirmed_count(self, lesson_id: int) -> int:
        return self.db.query(func.count(Booking.id)).filter(
            Booking.lesson_id == lesson_id,
            confirmed_booking_clause()
        ).scalar() or 0

    def capacity(self, lesson_id: int) -> Optional[int]:
        """max_students, or None if the lesson is missing or inactive."""
        row = self.db.query(Lesson.max_students).filter(
            Lesson.id == lesson_id,
            Lesson.is_active == True
        ).first()
        return row[0] if row else None

    def lock_lesson(self, lesson_id: int) -> Optional[Lesson]:
        """Lock the active lesson row for the rest of the transaction.

        Concurrent bookers of the same lesson queue here, so the count read
        afterwards stays valid until commit. SQLite ignores FOR UPDATE; there the
        BEGIN IMMEDIATE issued by the engine already holds the write lock.
        """
        return self.db.query(Lesson).filter(
            Lesson.id == lesson_id,
            Lesson.is_active == True
        ).with_for_update().populate_existing().first()
