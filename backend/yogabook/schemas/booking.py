from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Literal, Optional
from datetime import datetime
from yogabook.models.booking import BookingStatusEnum


class BookRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    lesson_id: int = Field(..., gt=0)
    open_id: str = Field(..., min_length=1, max_length=128)

    @field_validator("open_id")
    @classmethod
    def open_id_trim(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("open_id must not be blank")
        return v


class CancelRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    booking_id: int = Field(..., gt=0)
    open_id: str = Field(..., min_length=1, max_length=128)

    @field_validator("open_id")
    @classmethod
    def open_id_trim(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("open_id must not be blank")
        return v


class BookResponse(BaseModel):
    success: Literal[True] = True
    booking_id: int
    already_booked: bool = False
    remaining_classes: Optional[int] = None  # None for unlimited cards


class CancelResponse(BaseModel):
    success: Literal[True] = True
    cancelled_id: int
    refunded: bool
    classes_refunded: int = 0


class BookingFailure(BaseModel):
    """Soft failure: returned with HTTP 200 so clients can show the message."""
    success: Literal[False] = False
    code: str
    message: str
    booking_id: Optional[int] = None
    cancelled_id: Optional[int] = None


class LessonView(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    lesson_type: str
    teacher_id: Optional[int] = None
    teacher_name: Optional[str] = None
    location_name: Optional[str] = None
    start_time: int  # Unix timestamp
    end_time: int    # Unix timestamp
    max_students: int
    current_students: int
    is_booked: bool
    booking_id: Optional[int] = None


class UserBookingResponse(BaseModel):
    id: int
    lesson_id: int
    lesson_title: str
    teacher_name: Optional[str] = None
    location_name: Optional[str] = None
    start_time: datetime
    end_time: datetime
    status: BookingStatusEnum
    booking_time: datetime
    notes: Optional[str] = None
