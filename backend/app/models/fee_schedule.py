from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.database import Base


class FeeScheduleEntry(Base):
    """One immutable commission rate record. Rows are only ever inserted."""

    __tablename__ = "fee_schedule_entries"
    __table_args__ = (
        UniqueConstraint("partner_account_id", "sequence", name="uq_fee_schedule_entries_partner_sequence"),
    )

    id = Column(String(36), primary_key=True, index=True)
    partner_account_id = Column(
        String(36),
        ForeignKey("partner_accounts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    # Commit order within a partner; 1 is the seed rate
    sequence = Column(Integer, nullable=False)
    fee_percentage = Column(Numeric(5, 2), nullable=False)
    previous_fee = Column(Numeric(5, 2), nullable=True)
    effective_date = Column(DateTime(timezone=True), nullable=False)
    created_by = Column(String(64), nullable=False)
    reason = Column(Text, nullable=True)

    partner_account = relationship("PartnerAccount", back_populates="fee_entries")
