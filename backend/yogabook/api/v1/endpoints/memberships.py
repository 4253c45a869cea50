from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from yogabook.core.database import get_db
from yogabook.core.db_transaction import db_transaction
from yogabook.core.exceptions import BookingDomainError, BookingSystemError
from yogabook.core.logging_config import get_logger
from yogabook.schemas.membership import (
    MembershipPlanResponse, MembershipCardResponse, CardPurchaseRequest, CardPurchaseResponse,
    CardUsageResponse, ExpireCardsResponse
)
from yogabook.services.membership_ledger import MembershipLedger
from yogabook.services.user_directory import UserDirectory

logger = get_logger("memberships")

router = APIRouter()


@router.get("/plans", response_model=List[MembershipPlanResponse])
def list_plans(db: Session = Depends(get_db)):
    """List membership plans on sale"""
    return MembershipLedger(db).list_plans()


@router.get("/cards", response_model=List[MembershipCardResponse])
def list_user_cards(
    open_id: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    """List the caller's cards, active ones first"""
    user_id = UserDirectory(db).resolve(open_id)
    if user_id is None:
        return []
    return MembershipLedger(db).list_cards(user_id)


@router.post("/purchase", response_model=CardPurchaseResponse)
def purchase_card(
    request: CardPurchaseRequest,
    db: Session = Depends(get_db),
):
    """Issue a card from a plan for the caller"""
    user_id = UserDirectory(db).resolve(request.open_id)
    if user_id is None:
        return CardPurchaseResponse(success=False, message="User not found")

    try:
        with db_transaction(db):
            card = MembershipLedger(db).purchase_card(user_id, request.plan_id, request.paid_amount)
            card_id, card_number = card.id, card.card_number
    except BookingDomainError as e:
        return CardPurchaseResponse(success=False, message=e.message)
    except SQLAlchemyError as e:
        logger.error(
            f"Card purchase failed for plan {request.plan_id}",
            extra={"user_id": user_id, "plan_id": request.plan_id}
        )
        raise BookingSystemError("purchase", e) from e

    return CardPurchaseResponse(
        success=True,
        message="Membership card purchased",
        card_id=card_id,
        card_number=card_number,
    )


@router.get("/usage", response_model=List[CardUsageResponse])
def list_card_usage(
    open_id: str = Query(..., min_length=1),
    card_id: Optional[int] = Query(None, gt=0),
    db: Session = Depends(get_db),
):
    """Usage history for the caller's cards, newest first"""
    user_id = UserDirectory(db).resolve(open_id)
    if user_id is None:
        return []
    return MembershipLedger(db).list_usage(user_id, card_id=card_id)


@router.post("/expire", response_model=ExpireCardsResponse)
def expire_cards(db: Session = Depends(get_db)):
    """Housekeeping: mark cards past their expiry as expired"""
    try:
        with db_transaction(db):
            expired = MembershipLedger(db).expire_cards()
    except SQLAlchemyError as e:
        logger.error("Card expiry sweep failed")
        raise BookingSystemError("expire", e) from e
    return {"expired": expired}
