import enum

from sqlalchemy import Boolean, Column, DateTime, Enum, Numeric, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.core.database import Base


class OnboardingStatus(str, enum.Enum):
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    rejected = "rejected"


class PartnerAccount(Base):
    __tablename__ = "partner_accounts"

    id = Column(String(36), primary_key=True, index=True)
    user_id = Column(String(64), unique=True, index=True, nullable=False)
    processor_account_ref = Column(String(255), unique=True, index=True, nullable=False)
    onboarding_status = Column(
        Enum(OnboardingStatus),
        default=OnboardingStatus.pending,
        nullable=False,
        index=True,
    )
    # Denormalised copy of the latest fee_schedule_entries row; only change_fee writes it
    fee_percentage = Column(Numeric(5, 2), nullable=False)
    is_active = Column(Boolean, default=False, nullable=False)
    can_accept_cards = Column(Boolean, default=False, nullable=False)
    can_receive_transfers = Column(Boolean, default=False, nullable=False)
    country = Column(String(2), nullable=False)
    business_type = Column(String(50), nullable=True)
    business_name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # relationships
    fee_entries = relationship(
        "FeeScheduleEntry",
        back_populates="partner_account",
        order_by="FeeScheduleEntry.sequence",
    )
    transactions = relationship("PartnerTransaction", back_populates="partner_account")
