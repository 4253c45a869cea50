from typing import List, Optional, Union
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from yogabook.core.clock import from_unix
from yogabook.core.database import get_db
from yogabook.core.exceptions import BookingDomainError, NoValidMembership
from yogabook.schemas.booking import (
    BookRequest, CancelRequest, BookResponse, CancelResponse, BookingFailure,
    LessonView, UserBookingResponse
)
from yogabook.services.booking_engine import BookingEngine
from yogabook.services.booking_query import BookingQueryService

router = APIRouter()


@router.post("/book", response_model=Union[BookResponse, BookingFailure])
def book_lesson(
    request: BookRequest,
    db: Session = Depends(get_db),
):
    """Book one seat in a lesson, charging the caller's membership card.

    Business failures come back as ``success: false`` with HTTP 200; a
    membership problem carries a message meant for the user, the rest carry
    ``booking_id: 0``.
    """
    engine = BookingEngine(db)
    try:
        outcome = engine.book(request.lesson_id, request.open_id)
    except BookingDomainError as e:
        # Membership problems are a soft failure with a user-facing message only
        booking_id = None if isinstance(e, NoValidMembership) else 0
        return BookingFailure(code=e.code, message=e.message, booking_id=booking_id)

    return BookResponse(
        booking_id=outcome.booking_id,
        already_booked=outcome.already_booked,
        remaining_classes=outcome.remaining_classes,
    )


@router.post("/cancel", response_model=Union[CancelResponse, BookingFailure])
def cancel_booking(
    request: CancelRequest,
    db: Session = Depends(get_db),
):
    """Cancel the caller's booking and refund the class it consumed"""
    engine = BookingEngine(db)
    try:
        outcome = engine.cancel(request.booking_id, request.open_id)
    except BookingDomainError as e:
        return BookingFailure(code=e.code, message=e.message, cancelled_id=0)

    return CancelResponse(
        cancelled_id=outcome.cancelled_id,
        refunded=outcome.refunded,
        classes_refunded=outcome.classes_refunded,
    )


@router.get("/lessons", response_model=List[LessonView])
def list_lessons(
    start: int = Query(..., ge=0, description="Window start as a unix timestamp"),
    open_id: str = Query(..., min_length=1),
    lesson_type: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """Timetable for the booking window, with seat counts and the caller's bookings"""
    try:
        window_start = from_unix(start)
    except (OverflowError, OSError, ValueError):
        raise HTTPException(status_code=400, detail="Invalid start timestamp")
    return BookingQueryService(db).list_lessons_with_booking_status(
        window_start, open_id, lesson_type=lesson_type
    )


@router.get("/mine", response_model=List[UserBookingResponse])
def list_my_bookings(
    open_id: str = Query(..., min_length=1),
    include_cancelled: bool = Query(False),
    db: Session = Depends(get_db),
):
    """List the caller's bookings"""
    return BookingQueryService(db).list_user_bookings(open_id, include_cancelled=include_cancelled)
