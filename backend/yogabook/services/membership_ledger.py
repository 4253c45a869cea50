"""
Membership Ledger

Owns users' membership cards and their class balances:
- eligibility lookup and card selection for a lesson
- debit/credit of a card against a booking, recorded in membership_card_usage
- card purchase, expiry sweep and read-only listings

Database errors are not caught here; the caller's transaction decides what
they mean.
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional
from sqlalchemy import and_, case, func, or_, update
from sqlalchemy.orm import Session
from yogabook.core.clock import utcnow
from yogabook.core.config import settings
from yogabook.core.exceptions import CardExhausted, PlanNotFound
from yogabook.core.logging_config import get_logger
from yogabook.models.lesson import Lesson, Teacher
from yogabook.models.membership import (
    CardStatusEnum,
    CardTypeEnum,
    MembershipCardUsage,
    MembershipPlan,
    UsageTypeEnum,
    UserMembershipCard,
)

logger = get_logger("membership_ledger")


def card_applies_to(card: UserMembershipCard, lesson_type: str) -> bool:
    """None means the card is valid for every lesson type; an empty list matches none."""
    types = card.applicable_lesson_types
    if types is None:
        return True
    return lesson_type in types


class MembershipLedger:
    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Eligibility
    # ------------------------------------------------------------------

    def find_eligible_card(
        self,
        user_id: int,
        lesson_type: str,
        lesson_start: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> Optional[UserMembershipCard]:
        """
        Pick the card to charge for a lesson of ``lesson_type``.

        A card is eligible when it is active, not yet expired, applies to the
        lesson type, and is either unlimited or count-based with classes left.
        If ``lesson_start`` is given, cards with a daily cap that is already
        reached on that day are skipped.

        Among eligible cards the one expiring soonest wins (lowest id on ties),
        so credit that is about to lapse gets used first.

        Candidate cards stay locked until commit, so two bookings charged to the
        same card (even for different lessons) check its daily cap one at a time.
        """
        now = now or utcnow()
        candidates = self.db.query(UserMembershipCard).filter(
            UserMembershipCard.user_id == user_id,
            UserMembershipCard.status == CardStatusEnum.ACTIVE,
            UserMembershipCard.expires_at > now,
            or_(
                UserMembershipCard.card_type == CardTypeEnum.UNLIMITED,
                and_(
                    UserMembershipCard.card_type == CardTypeEnum.COUNT_BASED,
                    UserMembershipCard.remaining_classes > 0,
                ),
            ),
        ).order_by(UserMembershipCard.expires_at.asc(), UserMembershipCard.id.asc()).with_for_update().populate_existing().all()

        for card in candidates:
            if not card_applies_to(card, lesson_type):
                continue
            if lesson_start is not None and card.max_bookings_per_day:
                used_today = self.bookings_on_day(card.id, lesson_start)
                if used_today >= card.max_bookings_per_day:
                    logger.info(
                        f"Card {card.id} reached its daily cap",
                        extra={"card_id": card.id, "used_today": used_today}
                    )
                    continue
            return card
        return None

    def bookings_on_day(self, card_id: int, lesson_start: datetime) -> int:
        """Live bookings charged to the card for lessons starting on the same calendar day."""
        day_start = datetime.combine(lesson_start.date(), datetime.min.time())
        day_end = day_start + timedelta(days=1)
        return self.db.query(func.count(MembershipCardUsage.id)).join(
            Lesson, Lesson.id == MembershipCardUsage.lesson_id
        ).filter(
            MembershipCardUsage.user_card_id == card_id,
            MembershipCardUsage.usage_type == UsageTypeEnum.CONSUME,
            Lesson.start_time >= day_start,
            Lesson.start_time < day_end,
        ).scalar() or 0

    # ------------------------------------------------------------------
    # Debit / credit
    # ------------------------------------------------------------------

    def debit(self, card_id: int, booking_id: int, lesson_id: int) -> MembershipCardUsage:
        """Charge one class for a booking and append a ``consume`` row.

        The balance is re-checked by the UPDATE itself, so a card drained by
        another transaction since eligibility was decided raises
        ``CardExhausted`` instead of going negative.
        """
        now = utcnow()
        card = self.db.get(UserMembershipCard, card_id)
        if card is None:
            raise CardExhausted(details={"card_id": card_id})

        if card.card_type == CardTypeEnum.COUNT_BASED:
            result = self.db.execute(
                update(UserMembershipCard)
                .where(
                    UserMembershipCard.id == card_id,
                    UserMembershipCard.remaining_classes > 0,
                )
                .values(
                    remaining_classes=UserMembershipCard.remaining_classes - 1,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                logger.warning(
                    f"Debit refused, card {card_id} has no classes left",
                    extra={"card_id": card_id, "booking_id": booking_id}
                )
                raise CardExhausted(details={"card_id": card_id})
            self.db.refresh(card)
            remaining_after = card.remaining_classes
            remaining_before = remaining_after + 1
            consumed = 1
        else:
            remaining_before = remaining_after = None
            consumed = 0

        usage = MembershipCardUsage(
            user_card_id=card.id,
            booking_id=booking_id,
            lesson_id=lesson_id,
            user_id=card.user_id,
            usage_type=UsageTypeEnum.CONSUME,
            classes_consumed=consumed,
            remaining_classes_before=remaining_before,
            remaining_classes_after=remaining_after,
            used_at=now,
        )
        self.db.add(usage)
        self.db.flush()
        logger.info(
            f"Debited card {card.id} for booking {booking_id}",
            extra={
                "card_id": card.id,
                "booking_id": booking_id,
                "classes_consumed": consumed,
                "remaining_classes": remaining_after,
            }
        )
        return usage

    def find_consumption(self, booking_id: int) -> Optional[MembershipCardUsage]:
        return self.db.query(MembershipCardUsage).filter(
            MembershipCardUsage.booking_id == booking_id,
            MembershipCardUsage.usage_type == UsageTypeEnum.CONSUME,
        ).order_by(MembershipCardUsage.id.desc()).first()

    def credit(self, usage: MembershipCardUsage) -> int:
        """Reverse a ``consume`` row. Returns the number of classes put back on the card.

        Restores exactly what the row consumed, never past the card's
        total_classes, and flips the row to ``refund`` so it cannot be credited
        again. Unlimited cards only get the row flipped.
        """
        if usage.usage_type != UsageTypeEnum.CONSUME:
            logger.warning(
                f"Usage row {usage.id} already refunded, skipping credit",
                extra={"usage_id": usage.id, "booking_id": usage.booking_id}
            )
            return 0

        now = utcnow()
        restored = 0
        card = self.db.query(UserMembershipCard).filter(
            UserMembershipCard.id == usage.user_card_id
        ).with_for_update().populate_existing().first()

        if card is None:
            logger.warning(
                f"Usage row {usage.id} points at missing card {usage.user_card_id}",
                extra={"usage_id": usage.id, "card_id": usage.user_card_id}
            )
        elif card.card_type == CardTypeEnum.COUNT_BASED and usage.classes_consumed > 0:
            current = card.remaining_classes or 0
            target = current + usage.classes_consumed
            if card.total_classes is not None and target > card.total_classes:
                logger.warning(
                    f"Refund on card {card.id} clamped to total_classes",
                    extra={
                        "card_id": card.id,
                        "remaining_classes": current,
                        "classes_consumed": usage.classes_consumed,
                        "total_classes": card.total_classes,
                    }
                )
                target = card.total_classes
            restored = max(target - current, 0)
            card.remaining_classes = target
            card.updated_at = now

        usage.usage_type = UsageTypeEnum.REFUND
        usage.refunded_at = now
        self.db.flush()
        logger.info(
            f"Credited {restored} class(es) for booking {usage.booking_id}",
            extra={"usage_id": usage.id, "booking_id": usage.booking_id, "restored": restored}
        )
        return restored

    # ------------------------------------------------------------------
    # Card lifecycle
    # ------------------------------------------------------------------

    def generate_card_number(self, today: Optional[datetime] = None) -> str:
        """
        Card numbers look like YC-YYYYMMDD-NNNN, with a per-day sequence.
        """
        today = (today or utcnow()).date()
        prefix_pattern = f"{settings.CARD_NUMBER_PREFIX}-{today.strftime('%Y%m%d')}-"
        existing = self.db.query(UserMembershipCard.card_number).filter(
            UserMembershipCard.card_number.like(f"{prefix_pattern}%")
        ).all()

        max_seq = 0
        for (number,) in existing:
            try:
                max_seq = max(max_seq, int(number.rsplit("-", 1)[-1]))
            except ValueError:
                logger.warning(f"Could not parse card number: {number}")
        return f"{prefix_pattern}{max_seq + 1:04d}"

    def purchase_card(
        self,
        user_id: int,
        plan_id: int,
        paid_amount: Optional[Decimal] = None,
        now: Optional[datetime] = None,
    ) -> UserMembershipCard:
        plan = self.db.query(MembershipPlan).filter(
            MembershipPlan.id == plan_id,
            MembershipPlan.is_active == True
        ).first()
        if plan is None:
            raise PlanNotFound(details={"plan_id": plan_id})

        now = now or utcnow()
        price = Decimal(plan.price)
        actual_paid = Decimal(paid_amount) if paid_amount is not None else price
        count_based = plan.card_type == CardTypeEnum.COUNT_BASED

        card = UserMembershipCard(
            user_id=user_id,
            plan_id=plan.id,
            card_number=self.generate_card_number(now),
            status=CardStatusEnum.ACTIVE,
            card_type=plan.card_type,
            plan_name=plan.name,
            validity_days=plan.validity_days,
            total_classes=plan.total_classes if count_based else None,
            remaining_classes=plan.total_classes if count_based else None,
            applicable_lesson_types=list(plan.applicable_lesson_types) if plan.applicable_lesson_types is not None else None,
            max_bookings_per_day=plan.max_bookings_per_day,
            purchase_price=price,
            actual_paid=actual_paid,
            discount_amount=price - actual_paid,
            activated_at=now,
            expires_at=now + timedelta(days=plan.validity_days),
        )
        self.db.add(card)
        self.db.flush()
        logger.info(
            f"Issued card {card.card_number}",
            extra={"user_id": user_id, "plan_id": plan.id, "card_id": card.id}
        )
        return card

    def expire_cards(self, now: Optional[datetime] = None) -> int:
        """Mark active cards past their expiry as expired."""
        now = now or utcnow()
        result = self.db.execute(
            update(UserMembershipCard)
            .where(
                UserMembershipCard.status == CardStatusEnum.ACTIVE,
                UserMembershipCard.expires_at <= now,
            )
            .values(status=CardStatusEnum.EXPIRED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info(f"Expired {result.rowcount} membership card(s)")
        return result.rowcount

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def list_plans(self) -> List[MembershipPlan]:
        return self.db.query(MembershipPlan).filter(
            MembershipPlan.is_active == True
        ).order_by(MembershipPlan.sort_order.asc(), MembershipPlan.id.asc()).all()

    def list_cards(self, user_id: int) -> List[UserMembershipCard]:
        status_rank = case(
            (UserMembershipCard.status == CardStatusEnum.ACTIVE, 1),
            (UserMembershipCard.status == CardStatusEnum.EXPIRED, 2),
            else_=3,
        )
        return self.db.query(UserMembershipCard).filter(
            UserMembershipCard.user_id == user_id
        ).order_by(status_rank, UserMembershipCard.expires_at.desc()).all()

    def list_usage(self, user_id: int, card_id: Optional[int] = None) -> List[Dict[str, Any]]:
        query = self.db.query(
            MembershipCardUsage,
            UserMembershipCard.card_number,
            Lesson.title,
            Lesson.start_time,
            Teacher.name,
        ).join(
            UserMembershipCard, UserMembershipCard.id == MembershipCardUsage.user_card_id
        ).join(
            Lesson, Lesson.id == MembershipCardUsage.lesson_id
        ).outerjoin(
            Teacher, Teacher.id == Lesson.teacher_id
        ).filter(MembershipCardUsage.user_id == user_id)
        if card_id is not None:
            query = query.filter(UserMembershipCard.id == card_id)

        rows = query.order_by(MembershipCardUsage.used_at.desc(), MembershipCardUsage.id.desc()).all()
        return [
            {
                "id": usage.id,
                "card_number": card_number,
                "lesson_title": title,
                "lesson_start_time": start_time,
                "teacher_name": teacher_name,
                "usage_type": usage.usage_type,
                "classes_consumed": usage.classes_consumed,
                "used_at": usage.used_at,
                "remaining_classes_after": usage.remaining_classes_after,
            }
            for usage, card_number, title, start_time, teacher_name in rows
        ]
