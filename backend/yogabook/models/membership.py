from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Numeric, Boolean, Text, JSON, Enum as SQLEnum, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from yogabook.core.database import Base


class CardTypeEnum(str, enum.Enum):
    UNLIMITED = "unlimited"      # validity window only
    COUNT_BASED = "count_based"  # finite number of classes


class CardStatusEnum(str, enum.Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    SUSPENDED = "suspended"
    REFUNDED = "refunded"


class UsageTypeEnum(str, enum.Enum):
    CONSUME = "consume"
    REFUND = "refund"


class MembershipPlan(Base):
    __tablename__ = "membership_plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    card_type = Column(SQLEnum(CardTypeEnum, values_callable=lambda x: [e.value for e in x], native_enum=False), nullable=False)
    validity_days = Column(Integer, nullable=False)
    total_classes = Column(Integer, nullable=True)  # None for unlimited plans
    price = Column(Numeric(10, 2), nullable=False)
    original_price = Column(Numeric(10, 2), nullable=True)
    applicable_lesson_types = Column(JSON, nullable=True)  # None = every lesson type
    max_bookings_per_day = Column(Integer, nullable=True)  # None = no cap
    sort_order = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    cards = relationship("UserMembershipCard", back_populates="plan")


class UserMembershipCard(Base):
    """A purchased card. Plan terms are copied at purchase so later plan edits don't touch issued cards."""
    __tablename__ = "user_membership_cards"
    __table_args__ = (
        CheckConstraint(
            "remaining_classes IS NULL OR remaining_classes >= 0",
            name="ck_user_membership_cards_remaining_non_negative",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("membership_plans.id"), nullable=True, index=True)
    card_number = Column(String(64), unique=True, nullable=False, index=True)
    status = Column(SQLEnum(CardStatusEnum, values_callable=lambda x: [e.value for e in x], native_enum=False), nullable=False, default=CardStatusEnum.ACTIVE, index=True)
    card_type = Column(SQLEnum(CardTypeEnum, values_callable=lambda x: [e.value for e in x], native_enum=False), nullable=False)
    plan_name = Column(String(255), nullable=False)
    validity_days = Column(Integer, nullable=False)
    total_classes = Column(Integer, nullable=True)
    remaining_classes = Column(Integer, nullable=True)
    applicable_lesson_types = Column(JSON, nullable=True)
    max_bookings_per_day = Column(Integer, nullable=True)
    purchase_price = Column(Numeric(10, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    actual_paid = Column(Numeric(10, 2), nullable=False, default=0)
    activated_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="membership_cards")
    plan = relationship("MembershipPlan", back_populates="cards")
    usages = relationship("MembershipCardUsage", back_populates="card")


class MembershipCardUsage(Base):
    """Ledger row pairing one booking with one debit (consume) or credit (refund)."""
    __tablename__ = "membership_card_usage"

    id = Column(Integer, primary_key=True, index=True)
    user_card_id = Column(Integer, ForeignKey("user_membership_cards.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True, index=True)
    lesson_id = Column(Integer, ForeignKey("lessons.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    usage_type = Column(SQLEnum(UsageTypeEnum, values_callable=lambda x: [e.value for e in x], native_enum=False), nullable=False, default=UsageTypeEnum.CONSUME)
    classes_consumed = Column(Integer, nullable=False, default=0)
    remaining_classes_before = Column(Integer, nullable=True)
    remaining_classes_after = Column(Integer, nullable=True)
    used_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    refunded_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text)

    card = relationship("UserMembershipCard", back_populates="usages")
    booking = relationship("Booking", back_populates="card_usages")
