"""
Partner transaction ledger.

One row per processor payment reference; status changes patch the row in place
and merge annotations into its metadata. Notifications are dispatched only
after the state change is committed, and their failures never propagate.
"""
import logging
import uuid
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.audit_log import AuditLog
from app.models.partner import PartnerAccount
from app.models.partner_transaction import BookingKind, PartnerTransaction, TransactionStatus
from app.schemas.transaction import (
    AnalyticsSummary,
    BookingKindRevenue,
    FailureAnnotation,
    MonthlyTrend,
    PartnerAnalytics,
    PartnerBalance,
    RefundAnnotation,
    merge_annotation,
)
from app.services import notifications
from app.services.booking_lookup import BookingLookup, resolve_booking_summary
from app.services.fee_calculator import calculate_split
from app.services.notifications import Notification, NotificationDispatcher, dispatch_safely, format_minor_units
from app.services.refund_allocator import allocate_refund

logger = logging.getLogger(__name__)

# Status updates that would move a payment backwards are ignored (late or reordered processor events)
_IGNORED_TRANSITIONS = {
    TransactionStatus.refunded: {TransactionStatus.pending, TransactionStatus.completed},
    TransactionStatus.failed: {TransactionStatus.pending, TransactionStatus.completed},
}

MONTHLY_TREND_DAYS = 180


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _coerce(enum_cls, value, label: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Unknown {label}: {value}")


def _validate_split(amount: int, platform_fee: int, partner_amount: int) -> None:
    for name, value in (("amount", amount), ("platform_fee", platform_fee), ("partner_amount", partner_amount)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{name} must be an integer number of minor currency units")
    if amount != platform_fee + partner_amount:
        raise ValidationError(
            f"amount ({amount}) must equal platform_fee ({platform_fee}) + partner_amount ({partner_amount})"
        )


def _insert_transaction(
    db: Session,
    partner_account_id: str,
    booking_reference: str,
    booking_kind: Union[BookingKind, str],
    processor_payment_reference: str,
    amount: int,
    platform_fee: int,
    partner_amount: int,
    currency: str,
    status: Union[TransactionStatus, str],
    metadata: Optional[Dict[str, Any]],
    processor_transfer_reference: Optional[str],
) -> Tuple[str, bool]:
    """Insert a row; returns (id, created). On a duplicate payment reference returns the existing id."""
    _validate_split(amount, platform_fee, partner_amount)
    kind = _coerce(BookingKind, booking_kind, "booking kind")
    txn_status = _coerce(TransactionStatus, status, "transaction status")
    partner = db.query(PartnerAccount.id).filter(PartnerAccount.id == partner_account_id).first()
    if not partner:
        raise NotFoundError("Partner not found")

    txn = PartnerTransaction(
        id=str(uuid.uuid4()),
        partner_account_id=partner_account_id,
        booking_reference=booking_reference,
        booking_kind=kind,
        processor_payment_reference=processor_payment_reference,
        processor_transfer_reference=processor_transfer_reference,
        amount=amount,
        platform_fee=platform_fee,
        partner_amount=partner_amount,
        currency=currency.upper(),
        status=txn_status,
        metadata_=dict(metadata or {}),
        created_at=_utcnow(),
    )
    # The unique constraint on processor_payment_reference is the idempotency guard
    try:
        db.add(txn)
        db.commit()
    except IntegrityError:
        db.rollback()
        existing = get_by_payment_reference(db, processor_payment_reference)
        if existing is None:
            raise
        return existing.id, False
    return txn.id, True


def record_transaction(
    db: Session,
    partner_account_id: str,
    booking_reference: str,
    booking_kind: Union[BookingKind, str],
    processor_payment_reference: str,
    amount: int,
    platform_fee: int,
    partner_amount: int,
    currency: str,
    status: Union[TransactionStatus, str],
    metadata: Dict[str, Any],
    processor_transfer_reference: Optional[str] = None,
) -> str:
    """Direct insert of a pre-computed split. Duplicate payment references raise ConflictError."""
    txn_id, created = _insert_transaction(
        db,
        partner_account_id,
        booking_reference,
        booking_kind,
        processor_payment_reference,
        amount,
        platform_fee,
        partner_amount,
        currency,
        status,
        metadata,
        processor_transfer_reference,
    )
    if not created:
        raise ConflictError(f"Transaction already recorded for payment {processor_payment_reference}")
    return txn_id


def create_transaction(
    db: Session,
    partner_account_id: str,
    booking_reference: str,
    booking_kind: Union[BookingKind, str],
    processor_payment_reference: str,
    amount: int,
    platform_fee: int,
    partner_amount: int,
    currency: str,
    status: Union[TransactionStatus, str] = TransactionStatus.pending,
    metadata: Optional[Dict[str, Any]] = None,
    processor_transfer_reference: Optional[str] = None,
) -> str:
    """
    Capture-callback creation path. The split must already be computed at the
    partner's fee at capture time; it is never recomputed afterwards.
    A redelivered capture is a no-op returning the existing transaction id.
    """
    txn_id, created = _insert_transaction(
        db,
        partner_account_id,
        booking_reference,
        booking_kind,
        processor_payment_reference,
        amount,
        platform_fee,
        partner_amount,
        currency,
        status,
        metadata,
        processor_transfer_reference,
    )
    if not created:
        logger.info("Duplicate capture for payment %s ignored (transaction %s)", processor_payment_reference, txn_id)
    return txn_id


def capture_payment(
    db: Session,
    partner: PartnerAccount,
    booking_reference: str,
    booking_kind: Union[BookingKind, str],
    processor_payment_reference: str,
    amount: int,
    currency: str,
    processor_transfer_reference: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    booking_lookups: Optional[Dict[BookingKind, BookingLookup]] = None,
) -> str:
    """Split a captured payment at the partner's current fee, record it and notify the partner once."""
    split = calculate_split(amount, partner.fee_percentage)
    txn_metadata = dict(metadata or {})
    txn_metadata.setdefault("feePercentage", str(split.fee_percentage))
    txn_id, created = _insert_transaction(
        db,
        partner.id,
        booking_reference,
        booking_kind,
        processor_payment_reference,
        split.amount,
        split.platform_fee,
        split.partner_amount,
        currency,
        TransactionStatus.pending,
        txn_metadata,
        processor_transfer_reference,
    )
    if not created:
        logger.info("Duplicate capture for payment %s ignored (transaction %s)", processor_payment_reference, txn_id)
        return txn_id
    notify_new_transaction(db, txn_id, dispatcher, booking_lookups)
    return txn_id


def get_transaction(db: Session, transaction_id: str) -> PartnerTransaction:
    txn = db.query(PartnerTransaction).filter(PartnerTransaction.id == transaction_id).first()
    if not txn:
        raise NotFoundError("Transaction not found")
    return txn


def get_by_payment_reference(db: Session, processor_payment_reference: str) -> Optional[PartnerTransaction]:
    return (
        db.query(PartnerTransaction)
        .filter(PartnerTransaction.processor_payment_reference == processor_payment_reference)
        .first()
    )


def _lock_by_payment_reference(db: Session, processor_payment_reference: str) -> Optional[PartnerTransaction]:
    return (
        db.query(PartnerTransaction)
        .filter(PartnerTransaction.processor_payment_reference == processor_payment_reference)
        .with_for_update()
        .first()
    )


def update_status_by_payment_reference(
    db: Session,
    processor_payment_reference: str,
    status: Union[TransactionStatus, str],
    processor_transfer_reference: Optional[str] = None,
) -> PartnerTransaction:
    """Patch status and, when given, the transfer reference. An existing transfer reference is never nulled."""
    new_status = _coerce(TransactionStatus, status, "transaction status")
    txn = _lock_by_payment_reference(db, processor_payment_reference)
    if not txn:
        raise NotFoundError("Partner transaction not found")

    if new_status in _IGNORED_TRANSITIONS.get(txn.status, set()):
        logger.warning(
            "Ignoring status %s for payment %s already %s",
            new_status.value,
            processor_payment_reference,
            txn.status.value,
        )
    else:
        txn.status = new_status
    txn.processor_transfer_reference = processor_transfer_reference or txn.processor_transfer_reference
    db.commit()
    db.refresh(txn)
    return txn


def _partner_for(db: Session, txn: PartnerTransaction) -> Optional[PartnerAccount]:
    return db.query(PartnerAccount).filter(PartnerAccount.id == txn.partner_account_id).first()


def record_failure(
    db: Session,
    transaction_id: str,
    error_message: str,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> PartnerTransaction:
    """Mark a transaction failed, keeping existing metadata, and tell the partner."""
    txn = (
        db.query(PartnerTransaction)
        .filter(PartnerTransaction.id == transaction_id)
        .with_for_update()
        .first()
    )
    if not txn:
        raise NotFoundError("Transaction not found")

    annotation = FailureAnnotation(error=error_message, failed_at=_utcnow())
    txn.status = TransactionStatus.failed
    txn.metadata_ = merge_annotation(txn.metadata_, annotation)
    db.commit()
    db.refresh(txn)

    partner = _partner_for(db, txn)
    if partner:
        dispatch_safely(
            dispatcher,
            Notification(
                recipient_user_id=partner.user_id,
                kind=notifications.TRANSACTION_FAILED,
                title="Falha na transação",
                message=f"O pagamento da reserva {txn.booking_reference} falhou: {error_message}",
                related_entity=txn.id,
                data={"bookingReference": txn.booking_reference, "error": error_message},
            ),
        )
    return txn


def _applied_refund_ids(metadata: Optional[Dict[str, Any]]) -> List[str]:
    metadata = metadata or {}
    if "refundIds" in metadata:
        return list(metadata["refundIds"])
    # Rows refunded before refundIds was recorded
    return [metadata["refundId"]] if metadata.get("refundId") else []


def apply_refund(
    db: Session,
    processor_payment_reference: str,
    refund_amount: int,
    refund_id: str,
    reason: Optional[str],
    dispatcher: Optional[NotificationDispatcher] = None,
) -> Optional[PartnerTransaction]:
    """
    Allocate a refund proportionally and mark the transaction refunded.

    Refunds for payments this ledger does not track are logged and ignored
    (returns None, no writes). Every applied refund id is kept in
    `refundIds`; redelivery of any of them, in any order, is a no-op.
    Repeated partial refunds overwrite the other refund keys with the
    latest refund.
    """
    txn = _lock_by_payment_reference(db, processor_payment_reference)
    if not txn:
        db.rollback()
        logger.info("Refund %s for untracked payment %s ignored", refund_id, processor_payment_reference)
        return None

    applied_refund_ids = _applied_refund_ids(txn.metadata_)
    if refund_id in applied_refund_ids:
        db.rollback()
        logger.info("Refund %s already applied to transaction %s", refund_id, txn.id)
        return txn

    allocation = allocate_refund(txn.amount, txn.platform_fee, txn.partner_amount, refund_amount)
    if allocation.exceeds_amount:
        # Left unclamped until product decides; surfaced for monitoring
        logger.warning(
            "Refund %s of %s exceeds transaction %s amount %s",
            refund_id,
            refund_amount,
            txn.id,
            txn.amount,
        )
        db.add(
            AuditLog(
                id=str(uuid.uuid4()),
                action="refund.exceeds_amount",
                actor_type="processor",
                resource_type="partner_transaction",
                resource_id=txn.id,
                details={"refundId": refund_id, "refundAmount": refund_amount, "amount": txn.amount},
            )
        )

    annotation = RefundAnnotation(
        refund_id=refund_id,
        refund_amount=refund_amount,
        refund_reason=reason,
        refunded_at=_utcnow(),
        platform_fee_refund=allocation.platform_fee_refund,
        partner_refund=allocation.partner_refund,
        refund_ids=applied_refund_ids + [refund_id],
    )
    txn.status = TransactionStatus.refunded
    txn.metadata_ = merge_annotation(txn.metadata_, annotation)
    db.commit()
    db.refresh(txn)

    partner = _partner_for(db, txn)
    if partner:
        display_amount = format_minor_units(refund_amount, txn.currency)
        dispatch_safely(
            dispatcher,
            Notification(
                recipient_user_id=partner.user_id,
                kind=notifications.TRANSACTION_REFUNDED,
                title="Transação reembolsada",
                message=f"Reembolso de {display_amount} na reserva {txn.booking_reference}",
                related_entity=txn.id,
                data={
                    "bookingReference": txn.booking_reference,
                    "refundAmount": refund_amount,
                    "partnerRefund": allocation.partner_refund,
                    "refundReason": reason,
                },
            ),
        )
    return txn


def notify_new_transaction(
    db: Session,
    transaction_id: str,
    dispatcher: Optional[NotificationDispatcher] = None,
    booking_lookups: Optional[Dict[BookingKind, BookingLookup]] = None,
) -> bool:
    """Tell the partner about a new transaction with its net amount. Returns whether the dispatch was accepted."""
    txn = get_transaction(db, transaction_id)
    partner = _partner_for(db, txn)
    if not partner:
        raise NotFoundError("Partner not found")

    summary = resolve_booking_summary(booking_lookups, txn.booking_kind, txn.booking_reference)
    net_amount = format_minor_units(txn.partner_amount, txn.currency)
    return dispatch_safely(
        dispatcher,
        Notification(
            recipient_user_id=partner.user_id,
            kind=notifications.NEW_TRANSACTION,
            title="Nova transação",
            message=f"{summary.customer_name} pagou {summary.label}. Você receberá {net_amount}",
            related_entity=txn.id,
            data={
                "bookingReference": txn.booking_reference,
                "bookingKind": txn.booking_kind.value,
                "bookingLabel": summary.label,
                "customerName": summary.customer_name,
                "partnerAmount": txn.partner_amount,
                "currency": txn.currency,
            },
        ),
    )


def list_transactions(
    db: Session,
    partner_account_id: str,
    status: Optional[Union[TransactionStatus, str]] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[PartnerTransaction]:
    """Newest first."""
    query = db.query(PartnerTransaction).filter(PartnerTransaction.partner_account_id == partner_account_id)
    if status is not None:
        query = query.filter(PartnerTransaction.status == _coerce(TransactionStatus, status, "transaction status"))
    return (
        query.order_by(PartnerTransaction.created_at.desc(), PartnerTransaction.id)
        .offset(offset)
        .limit(limit)
        .all()
    )


def _sum_partner_amount(db: Session, partner_account_id: str, status: TransactionStatus, since: Optional[datetime] = None):
    query = db.query(func.coalesce(func.sum(PartnerTransaction.partner_amount), 0), func.count(PartnerTransaction.id)).filter(
        PartnerTransaction.partner_account_id == partner_account_id,
        PartnerTransaction.status == status,
    )
    if since is not None:
        query = query.filter(PartnerTransaction.created_at >= since)
    total, count = query.one()
    return int(total), int(count)


def partner_balance(db: Session, partner_account_id: str, now: Optional[datetime] = None) -> PartnerBalance:
    """Available (completed) and pending partner amounts, plus today's completed revenue."""
    now = now or _utcnow()
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    available, _ = _sum_partner_amount(db, partner_account_id, TransactionStatus.completed)
    pending, _ = _sum_partner_amount(db, partner_account_id, TransactionStatus.pending)
    today_revenue, today_count = _sum_partner_amount(db, partner_account_id, TransactionStatus.completed, since=today_start)
    return PartnerBalance(
        available_balance=available,
        pending_balance=pending,
        total_balance=available + pending,
        today_revenue=today_revenue,
        today_transactions=today_count,
        currency=settings.DEFAULT_CURRENCY,
    )


def partner_analytics(
    db: Session,
    partner_account_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> PartnerAnalytics:
    """Financial summary over an optional date range, plus a six month trend."""
    partner = db.query(PartnerAccount).filter(PartnerAccount.id == partner_account_id).first()
    if not partner:
        raise NotFoundError("Partner not found")
    now = now or _utcnow()

    query = db.query(PartnerTransaction).filter(PartnerTransaction.partner_account_id == partner_account_id)
    if start is not None:
        query = query.filter(PartnerTransaction.created_at >= start)
    if end is not None:
        query = query.filter(PartnerTransaction.created_at <= end)
    transactions = query.all()

    by_status: Dict[TransactionStatus, List[PartnerTransaction]] = defaultdict(list)
    for t in transactions:
        by_status[t.status].append(t)
    completed = by_status[TransactionStatus.completed]
    refunded = by_status[TransactionStatus.refunded]
    pending = by_status[TransactionStatus.pending]

    gross_revenue = sum(t.amount for t in completed)
    revenue_by_kind: Dict[str, BookingKindRevenue] = {}
    for t in completed:
        bucket = revenue_by_kind.setdefault(t.booking_kind.value, BookingKindRevenue())
        bucket.count += 1
        bucket.gross_revenue += t.amount
        bucket.net_revenue += t.partner_amount

    summary = AnalyticsSummary(
        total_transactions=len(transactions),
        completed_transactions=len(completed),
        failed_transactions=len(by_status[TransactionStatus.failed]),
        refunded_transactions=len(refunded),
        pending_transactions=len(pending),
        gross_revenue=gross_revenue,
        platform_fees=sum(t.platform_fee for t in completed),
        net_revenue=sum(t.partner_amount for t in completed),
        total_refunded=sum((t.metadata_ or {}).get("refundAmount", t.amount) for t in refunded),
        refunded_fees=sum((t.metadata_ or {}).get("platformFeeRefund", 0) for t in refunded),
        avg_transaction_value=gross_revenue / len(completed) if completed else 0.0,
        pending_amount=sum(t.partner_amount for t in pending),
        conversion_rate=len(completed) / len(transactions) * 100 if transactions else 0.0,
    )

    trend_rows = (
        db.query(PartnerTransaction)
        .filter(
            PartnerTransaction.partner_account_id == partner_account_id,
            PartnerTransaction.created_at >= now - timedelta(days=MONTHLY_TREND_DAYS),
        )
        .all()
    )
    trends: Dict[str, MonthlyTrend] = {}
    for t in trend_rows:
        month = f"{t.created_at.year}-{t.created_at.month:02d}"
        trend = trends.setdefault(month, MonthlyTrend(month=month))
        trend.transactions += 1
        if t.status == TransactionStatus.completed:
            trend.gross_revenue += t.amount
            trend.net_revenue += t.partner_amount
        elif t.status == TransactionStatus.refunded:
            trend.refunds += (t.metadata_ or {}).get("refundAmount", t.amount)

    return PartnerAnalytics(
        summary=summary,
        revenue_by_kind=revenue_by_kind,
        monthly_trends=[trends[m] for m in sorted(trends)],
        fee_percentage=float(partner.fee_percentage),
    )
