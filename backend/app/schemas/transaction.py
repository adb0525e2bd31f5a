from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from app.models.partner_transaction import BookingKind, TransactionStatus


# Metadata annotations merged into PartnerTransaction.metadata_ on status transitions.
# Keys are camelCase to match the processor-facing metadata bag.


class FailureAnnotation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    error: str
    failed_at: datetime = Field(alias="failedAt")


class RefundAnnotation(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refund_id: str = Field(alias="refundId")
    refund_amount: int = Field(alias="refundAmount")
    refund_reason: Optional[str] = Field(default=None, alias="refundReason")
    refunded_at: datetime = Field(alias="refundedAt")
    platform_fee_refund: int = Field(alias="platformFeeRefund")
    partner_refund: int = Field(alias="partnerRefund")
    # Every refund id applied so far, oldest first
    refund_ids: List[str] = Field(default_factory=list, alias="refundIds")


TransactionAnnotation = Union[FailureAnnotation, RefundAnnotation]


def merge_annotation(metadata: Optional[Dict[str, Any]], annotation: TransactionAnnotation) -> Dict[str, Any]:
    """Return a new metadata dict: existing keys kept, annotation keys overwritten."""
    merged = dict(metadata or {})
    merged.update(annotation.model_dump(mode="json", by_alias=True))
    return merged


class TransactionCreate(BaseModel):
    partner_account_id: str
    booking_reference: str
    booking_kind: BookingKind
    processor_payment_reference: str
    processor_transfer_reference: Optional[str] = None
    amount: int
    platform_fee: int
    partner_amount: int
    currency: str = Field(min_length=3, max_length=3)
    status: TransactionStatus = TransactionStatus.pending
    metadata: Dict[str, Any] = Field(default_factory=dict)


class TransactionFailure(BaseModel):
    error_message: str


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    partner_account_id: str
    booking_reference: str
    booking_kind: BookingKind
    processor_payment_reference: str
    processor_transfer_reference: Optional[str] = None
    amount: int
    platform_fee: int
    partner_amount: int
    currency: str
    status: TransactionStatus
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias=AliasChoices("metadata_", "metadata"))
    created_at: Optional[datetime] = None


class PartnerBalance(BaseModel):
    available_balance: int
    pending_balance: int
    total_balance: int
    today_revenue: int
    today_transactions: int
    currency: str


class BookingKindRevenue(BaseModel):
    count: int = 0
    gross_revenue: int = 0
    net_revenue: int = 0


class MonthlyTrend(BaseModel):
    month: str
    transactions: int = 0
    gross_revenue: int = 0
    net_revenue: int = 0
    refunds: int = 0


class AnalyticsSummary(BaseModel):
    total_transactions: int
    completed_transactions: int
    failed_transactions: int
    refunded_transactions: int
    pending_transactions: int
    gross_revenue: int
    platform_fees: int
    net_revenue: int
    total_refunded: int
    refunded_fees: int
    avg_transaction_value: float
    pending_amount: int
    conversion_rate: float


class PartnerAnalytics(BaseModel):
    summary: AnalyticsSummary
    revenue_by_kind: Dict[str, BookingKindRevenue]
    monthly_trends: List[MonthlyTrend]
    fee_percentage: float
