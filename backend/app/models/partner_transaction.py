import enum

from sqlalchemy import BigInteger, Column, DateTime, Enum, ForeignKey, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.database import Base, JSONType


class BookingKind(str, enum.Enum):
    activity = "activity"
    event = "event"
    vehicle = "vehicle"
    accommodation = "accommodation"
    package = "package"


class TransactionStatus(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"
    refunded = "refunded"


class PartnerTransaction(Base):
    __tablename__ = "partner_transactions"

    id = Column(String(36), primary_key=True, index=True)
    partner_account_id = Column(String(36), ForeignKey("partner_accounts.id"), nullable=False, index=True)
    booking_reference = Column(String(255), nullable=False)
    booking_kind = Column(Enum(BookingKind), nullable=False)
    # Idempotency key: one row per real-world payment
    processor_payment_reference = Column(String(255), unique=True, index=True, nullable=False)
    processor_transfer_reference = Column(String(255), nullable=True)
    # Minor currency units (cents)
    amount = Column(BigInteger, nullable=False)
    platform_fee = Column(BigInteger, nullable=False)
    partner_amount = Column(BigInteger, nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(
        Enum(TransactionStatus),
        default=TransactionStatus.pending,
        nullable=False,
        index=True,
    )
    # "metadata" is reserved on declarative classes
    metadata_ = Column("metadata", JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    partner_account = relationship("PartnerAccount", back_populates="transactions")
