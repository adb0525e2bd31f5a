from typing import Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.auth import get_current_actor
from app.core.deps import get_booking_lookups, get_db, get_dispatcher
from app.core.permissions import Actor
from app.models.partner_transaction import BookingKind
from app.schemas.transaction import TransactionCreate, TransactionFailure, TransactionResponse
from app.services import ledger
from app.services.booking_lookup import BookingLookup
from app.services.notifications import NotificationDispatcher

router = APIRouter()


@router.post("", response_model=TransactionResponse, status_code=201)
def record_transaction(
    body: TransactionCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Record a transaction whose split was computed by the caller. 409 on a known payment reference."""
    txn_id = ledger.record_transaction(
        db,
        partner_account_id=body.partner_account_id,
        booking_reference=body.booking_reference,
        booking_kind=body.booking_kind,
        processor_payment_reference=body.processor_payment_reference,
        amount=body.amount,
        platform_fee=body.platform_fee,
        partner_amount=body.partner_amount,
        currency=body.currency,
        status=body.status,
        metadata=body.metadata,
        processor_transfer_reference=body.processor_transfer_reference,
    )
    return ledger.get_transaction(db, txn_id)


@router.get("/{transaction_id}", response_model=TransactionResponse)
def get_transaction(
    transaction_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return ledger.get_transaction(db, transaction_id)


@router.post("/{transaction_id}/failure", response_model=TransactionResponse)
def record_failure(
    transaction_id: str,
    body: TransactionFailure,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Manual reversal: mark failed and notify the partner."""
    return ledger.record_failure(db, transaction_id, body.error_message, dispatcher)


@router.post("/{transaction_id}/notify")
def notify_transaction(
    transaction_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    booking_lookups: Dict[BookingKind, BookingLookup] = Depends(get_booking_lookups),
):
    """Re-send the new transaction notification to the partner."""
    sent = ledger.notify_new_transaction(db, transaction_id, dispatcher, booking_lookups)
    return {"ok": True, "dispatched": sent}
