from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.auth import get_current_actor
from app.core.config import settings
from app.core.deps import get_db
from app.core.permissions import Actor
from app.models.partner import OnboardingStatus
from app.models.partner_transaction import TransactionStatus
from app.schemas.fee_schedule import FeeChange, FeeQuote, FeeScheduleEntryResponse
from app.schemas.partner import PartnerAccountCreate, PartnerAccountResponse, PartnerActiveUpdate
from app.schemas.transaction import PartnerAnalytics, PartnerBalance, TransactionResponse
from app.services import fee_schedule, ledger, partner_registry
from app.services.fee_calculator import calculate_split

router = APIRouter()


@router.post("", response_model=PartnerAccountResponse, status_code=201)
def create_partner(
    body: PartnerAccountCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Register a partner after its processor account was created. Starts pending and inactive."""
    fee = body.default_fee_percentage if body.default_fee_percentage is not None else settings.DEFAULT_FEE_PERCENTAGE
    partner_id = partner_registry.create_account(
        db,
        user_id=body.user_id,
        processor_account_ref=body.processor_account_ref,
        country=body.country.upper(),
        default_fee_percentage=fee,
        business_type=body.business_type,
        business_name=body.business_name,
    )
    return partner_registry.get_account(db, partner_id)


@router.get("", response_model=list[PartnerAccountResponse])
def list_partners(
    status: Optional[OnboardingStatus] = None,
    active: Optional[bool] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return partner_registry.list_accounts(db, status=status, only_active=active)


@router.get("/{partner_id}", response_model=PartnerAccountResponse)
def get_partner(
    partner_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return partner_registry.get_account(db, partner_id)


@router.patch("/{partner_id}/fee", response_model=PartnerAccountResponse)
def change_partner_fee(
    partner_id: str,
    body: FeeChange,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Change commission rate; appends to the fee history."""
    partner_registry.change_fee(db, partner_id, body.fee_percentage, actor, body.reason)
    return partner_registry.get_account(db, partner_id)


@router.patch("/{partner_id}/active", response_model=PartnerAccountResponse)
def set_partner_active(
    partner_id: str,
    body: PartnerActiveUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Suspend or reinstate a partner regardless of onboarding status."""
    return partner_registry.set_active(db, partner_id, body.is_active, actor)


@router.get("/{partner_id}/fees", response_model=list[FeeScheduleEntryResponse])
def get_fee_history(
    partner_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    partner_registry.get_account(db, partner_id)
    return fee_schedule.list_entries(db, partner_id)


@router.get("/{partner_id}/fee-quote", response_model=FeeQuote)
def quote_fee(
    partner_id: str,
    amount: int = Query(..., gt=0, description="Gross amount in minor units"),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Platform/partner split of `amount` at the partner's current fee."""
    partner = partner_registry.get_account(db, partner_id)
    split = calculate_split(amount, partner.fee_percentage)
    return FeeQuote(
        amount=split.amount,
        fee_percentage=split.fee_percentage,
        platform_fee=split.platform_fee,
        partner_amount=split.partner_amount,
    )


@router.get("/{partner_id}/transactions", response_model=list[TransactionResponse])
def list_partner_transactions(
    partner_id: str,
    status: Optional[TransactionStatus] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    partner_registry.get_account(db, partner_id)
    return ledger.list_transactions(db, partner_id, status=status, limit=limit, offset=offset)


@router.get("/{partner_id}/balance", response_model=PartnerBalance)
def get_partner_balance(
    partner_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    partner_registry.get_account(db, partner_id)
    return ledger.partner_balance(db, partner_id)


@router.get("/{partner_id}/analytics", response_model=PartnerAnalytics)
def get_partner_analytics(
    partner_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return ledger.partner_analytics(db, partner_id, start=start, end=end)
