from sqlalchemy import Column, Integer, DateTime, ForeignKey, Enum as SQLEnum, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from yogabook.core.database import Base


class BookingStatusEnum(str, enum.Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    # Set by attendance tooling, never by the booking engine
    COMPLETED = "completed"
    NO_SHOW = "no_show"


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        UniqueConstraint("user_id", "lesson_id", name="uq_bookings_user_lesson"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    lesson_id = Column(Integer, ForeignKey("lessons.id"), nullable=False, index=True)
    status = Column(SQLEnum(BookingStatusEnum, values_callable=lambda x: [e.value for e in x], native_enum=False), nullable=False, default=BookingStatusEnum.CONFIRMED, index=True)
    booking_time = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="bookings")
    lesson = relationship("Lesson", back_populates="bookings")
    card_usages = relationship("MembershipCardUsage", back_populates="booking")
