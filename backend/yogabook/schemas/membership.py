from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from yogabook.models.membership import CardTypeEnum, CardStatusEnum, UsageTypeEnum


class MembershipPlanResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    card_type: CardTypeEnum
    validity_days: int
    total_classes: Optional[int]
    price: Decimal
    original_price: Optional[Decimal]
    applicable_lesson_types: Optional[List[str]]
    max_bookings_per_day: Optional[int]

    model_config = ConfigDict(from_attributes=True)


class MembershipCardResponse(BaseModel):
    id: int
    card_number: str
    status: CardStatusEnum
    card_type: CardTypeEnum
    plan_name: str
    total_classes: Optional[int]
    remaining_classes: Optional[int]
    applicable_lesson_types: Optional[List[str]]
    max_bookings_per_day: Optional[int]
    purchase_price: Decimal
    actual_paid: Decimal
    activated_at: datetime
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CardPurchaseRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    open_id: str = Field(..., min_length=1, max_length=128)
    plan_id: int = Field(..., gt=0)
    paid_amount: Optional[Decimal] = Field(None, ge=0)

    @field_validator("open_id")
    @classmethod
    def open_id_trim(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("open_id must not be blank")
        return v


class CardPurchaseResponse(BaseModel):
    success: bool
    message: str
    card_id: Optional[int] = None
    card_number: Optional[str] = None


class CardUsageResponse(BaseModel):
    id: int
    card_number: str
    lesson_title: str
    lesson_start_time: datetime
    teacher_name: Optional[str] = None
    usage_type: UsageTypeEnum
    classes_consumed: int
    used_at: datetime
    remaining_classes_after: Optional[int] = None


class ExpireCardsResponse(BaseModel):
    expired: int
