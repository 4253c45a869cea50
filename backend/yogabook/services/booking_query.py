"""
Read side of bookings: the lesson timetable with seat counts and the caller's
own booking state. Seat counts come from the same confirmed-booking predicate
the booking engine checks, so the timetable never offers a seat the engine
would refuse for being full.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from sqlalchemy import func, literal, select
from sqlalchemy.orm import Session
from yogabook.core.clock import to_naive_utc, to_unix
from yogabook.core.config import settings
from yogabook.models.booking import Booking, BookingStatusEnum
from yogabook.models.lesson import Lesson, Location, Teacher
from yogabook.services.capacity_tracker import confirmed_booking_clause, confirmed_counts_subquery
from yogabook.services.user_directory import UserDirectory


class BookingQueryService:
    def __init__(self, db: Session):
        self.db = db
        self.users = UserDirectory(db)

    def list_lessons_with_booking_status(
        self,
        window_start: datetime,
        open_id: str,
        lesson_type: Optional[str] = None,
        window_days: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Active lessons starting within the window, each with seat count and the caller's booking."""
        window_start = to_naive_utc(window_start)
        window_end = window_start + timedelta(days=window_days or settings.LESSON_WINDOW_DAYS)
        user_id = self.users.resolve(open_id) if open_id else None

        counts = confirmed_counts_subquery()
        query = self.db.query(
            Lesson,
            Teacher.name,
            Location.name,
            func.coalesce(counts.c.current_students, 0),
        )
        if user_id is not None:
            mine = (
                select(Booking.lesson_id, Booking.id.label("booking_id"))
                .where(Booking.user_id == user_id, confirmed_booking_clause())
                .subquery()
            )
            query = query.add_columns(mine.c.booking_id).outerjoin(mine, mine.c.lesson_id == Lesson.id)
        else:
            query = query.add_columns(literal(None).label("booking_id"))

        query = query.outerjoin(
            Teacher, Teacher.id == Lesson.teacher_id
        ).outerjoin(
            Location, Location.id == Lesson.location_id
        ).outerjoin(
            counts, counts.c.lesson_id == Lesson.id
        ).filter(
            Lesson.is_active == True,
            Lesson.start_time >= window_start,
            Lesson.start_time <= window_end,
        )
        if lesson_type:
            query = query.filter(Lesson.lesson_type == lesson_type)

        rows = query.order_by(Lesson.start_time.asc(), Lesson.id.asc()).all()
        return [
            {
                "id": lesson.id,
                "title": lesson.title,
                "description": lesson.description,
                "lesson_type": lesson.lesson_type,
                "teacher_id": lesson.teacher_id,
                "teacher_name": teacher_name,
                "location_name": location_name,
                "start_time": to_unix(lesson.start_time),
                "end_time": to_unix(lesson.end_time),
                "max_students": lesson.max_students,
                "current_students": int(current_students),
                "is_booked": booking_id is not None,
                "booking_id": booking_id,
            }
            for lesson, teacher_name, location_name, current_students, booking_id in rows
        ]

    def list_user_bookings(self, open_id: str, include_cancelled: bool = False) -> List[Dict[str, Any]]:
        """The caller's bookings, soonest lesson first."""
        user_id = self.users.resolve(open_id)
        if user_id is None:
            return []

        query = self.db.query(
            Booking, Lesson, Teacher.name, Location.name
        ).join(
            Lesson, Lesson.id == Booking.lesson_id
        ).outerjoin(
            Teacher, Teacher.id == Lesson.teacher_id
        ).outerjoin(
            Location, Location.id == Lesson.location_id
        ).filter(Booking.user_id == user_id)
        if not include_cancelled:
            query = query.filter(Booking.status != BookingStatusEnum.CANCELLED)

        rows = query.order_by(Lesson.start_time.asc(), Booking.id.asc()).all()
        return [
            {
                "id": booking.id,
                "lesson_id": lesson.id,
                "lesson_title": lesson.title,
                "teacher_name": teacher_name,
                "location_name": location_name,
                "start_time": lesson.start_time,
                "end_time": lesson.end_time,
                "status": booking.status,
                "booking_time": booking.booking_time,
                "notes": booking.notes,
            }
            for booking, lesson, teacher_name, location_name in rows
        ]
