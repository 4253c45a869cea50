from yogabook.models.user import User
from yogabook.models.lesson import Teacher, Location, Lesson
from yogabook.models.booking import Booking, BookingStatusEnum
from yogabook.models.membership import (
    MembershipPlan,
    UserMembershipCard,
    MembershipCardUsage,
    CardTypeEnum,
    CardStatusEnum,
    UsageTypeEnum,
)

__all__ = [
    "User",
    "Teacher",
    "Location",
    "Lesson",
    "Booking",
    "BookingStatusEnum",
    "MembershipPlan",
    "UserMembershipCard",
    "MembershipCardUsage",
    "CardTypeEnum",
    "CardStatusEnum",
    "UsageTypeEnum",
]
