"""Payment processor webhook handling: signature check and event routing to the ledger."""
import hashlib
import hmac
import logging
from typing import Dict, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import ValidationError
from app.models.partner import OnboardingStatus
from app.models.partner_transaction import BookingKind, TransactionStatus
from app.schemas.webhook import ProcessorEvent
from app.services import ledger, partner_registry
from app.services.booking_lookup import BookingLookup
from app.services.notifications import NotificationDispatcher

logger = logging.getLogger(__name__)


def compute_signature(secret: str, timestamp: str, body: bytes) -> str:
    """HMAC SHA256 over "{timestamp}." + body, hex encoded."""
    message = f"{timestamp}.".encode() + body
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_signature(secret: str, timestamp: Optional[str], signature: Optional[str], body: bytes) -> bool:
    if not timestamp or not signature:
        return False
    expected = compute_signature(secret, timestamp, body)
    return hmac.compare_digest(expected, signature)


def _require(obj: Dict, key: str):
    value = obj.get(key)
    if value is None or value == "":
        raise ValidationError(f"Event payload missing '{key}'")
    return value


def _require_int(obj: Dict, key: str) -> int:
    value = _require(obj, key)
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError(f"Event payload '{key}' must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Event payload '{key}' must be an integer")

def handle_event(
    db: Session,
    event: ProcessorEvent,
    dispatcher: Optional[NotificationDispatcher] = None,
    booking_lookups: Optional[Dict[BookingKind, BookingLookup]] = None,
) -> str:
    """Apply one processor event. Returns a short description of what was done."""
    obj = event.data.object
    logger.info("Processing processor event %s (%s)", event.id, event.type)

    if event.type == "account.updated":
        status, capabilities = partner_registry.status_from_processor_account(obj)
        partner_registry.update_onboarding_status(db, _require(obj, "id"), status, capabilities)
        return f"onboarding_{status.value}"

    if event.type == "account.application.deauthorized":
        account_ref = event.account or _require(obj, "id")
        partner_registry.update_onboarding_status(db, account_ref, OnboardingStatus.rejected)
        return "onboarding_rejected"

    if event.type == "payment.captured":
        account_ref = event.account or _require(obj, "account")
        partner = partner_registry.get_account_by_processor_ref(db, account_ref)
        if partner is None:
            logger.warning("Capture %s for unknown processor account %s ignored", obj.get("id"), account_ref)
            return "ignored_unknown_account"
        booking = obj.get("metadata") or {}
        ledger.capture_payment(
            db,
            partner,
            booking_reference=_require(booking, "bookingReference"),
            booking_kind=_require(booking, "bookingKind"),
            processor_payment_reference=_require(obj, "id"),
            amount=_require_int(obj, "amount"),
            currency=_require(obj, "currency"),
            processor_transfer_reference=obj.get("transfer"),
            metadata={"processorEventId": event.id},
            dispatcher=dispatcher,
            booking_lookups=booking_lookups,
        )
        return "transaction_recorded"

    if event.type == "payment.failed":
        txn = ledger.get_by_payment_reference(db, _require(obj, "id"))
        if txn is None:
            logger.info("Failure for untracked payment %s ignored", obj.get("id"))
            return "ignored_untracked_payment"
        error = (obj.get("last_payment_error") or {}).get("message") or "payment failed"
        ledger.record_failure(db, txn.id, error, dispatcher)
        return "transaction_failed"

    if event.type == "transfer.completed":
        ledger.update_status_by_payment_reference(
            db,
            _require(obj, "payment_reference"),
            TransactionStatus.completed,
            processor_transfer_reference=obj.get("id"),
        )
        return "transaction_completed"

    if event.type == "charge.refunded":
        refund = obj.get("refund") or {}
        txn = ledger.apply_refund(
            db,
            _require(obj, "payment_reference"),
            refund_amount=_require_int(refund, "amount"),
            refund_id=_require(refund, "id"),
            reason=refund.get("reason"),
            dispatcher=dispatcher,
        )
        return "transaction_refunded" if txn is not None else "ignored_untracked_payment"

    logger.info("Unhandled processor event type %s", event.type)
    return "ignored"
