"""Append-only fee schedule store.

append_entry only flushes. Callers own the transaction and must patch
PartnerAccount.fee_percentage before committing, so the account always
mirrors the entry with the highest sequence.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.fee_schedule import FeeScheduleEntry
from app.services.fee_calculator import validate_fee_percentage


def append_entry(
    db: Session,
    partner_account_id: str,
    fee_percentage: Union[Decimal, int, float, str],
    created_by: str,
    reason: Optional[str],
    previous_fee: Optional[Decimal] = None,
) -> str:
    fee = validate_fee_percentage(fee_percentage)
    last_sequence = (
        db.query(func.max(FeeScheduleEntry.sequence))
        .filter(FeeScheduleEntry.partner_account_id == partner_account_id)
        .scalar()
    )
    entry = FeeScheduleEntry(
        id=str(uuid.uuid4()),
        partner_account_id=partner_account_id,
        sequence=(last_sequence or 0) + 1,
        fee_percentage=fee,
        previous_fee=previous_fee,
        effective_date=datetime.now(timezone.utc),
        created_by=created_by,
        reason=reason,
    )
    db.add(entry)
    db.flush()
    return entry.id


def list_entries(db: Session, partner_account_id: str) -> List[FeeScheduleEntry]:
    """Fee history for a partner, newest first."""
    return (
        db.query(FeeScheduleEntry)
        .filter(FeeScheduleEntry.partner_account_id == partner_account_id)
        .order_by(FeeScheduleEntry.sequence.desc())
        .all()
    )


def latest_entry(db: Session, partner_account_id: str) -> Optional[FeeScheduleEntry]:
    return (
        db.query(FeeScheduleEntry)
        .filter(FeeScheduleEntry.partner_account_id == partner_account_id)
        .order_by(FeeScheduleEntry.sequence.desc())
        .first()
    )
