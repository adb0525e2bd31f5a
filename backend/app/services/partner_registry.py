"""Partner account registry: onboarding, activation and fee changes."""
import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.permissions import Actor, require_platform_admin
from app.models.audit_log import AuditLog
from app.models.partner import OnboardingStatus, PartnerAccount
from app.services import fee_schedule
from app.services.fee_calculator import validate_fee_percentage

logger = logging.getLogger(__name__)

SEED_FEE_REASON = "default rate"
MANUAL_FEE_REASON = "manual change"


@dataclass(frozen=True)
class Capabilities:
    """Processor-reported capability flags. None means "not reported", leave as is."""

    can_accept_cards: Optional[bool] = None
    can_receive_transfers: Optional[bool] = None


def _coerce_status(status: Union[OnboardingStatus, str]) -> OnboardingStatus:
    try:
        return OnboardingStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown onboarding status: {status}")


def create_account(
    db: Session,
    user_id: str,
    processor_account_ref: str,
    country: str,
    default_fee_percentage: Union[Decimal, int, float, str],
    business_type: Optional[str] = None,
    business_name: Optional[str] = None,
) -> str:
    """
    Create a pending, inactive partner account and its seed fee entry in one commit.
    Raises ConflictError if the user already owns an account.
    """
    fee = validate_fee_percentage(default_fee_percentage)
    existing = db.query(PartnerAccount).filter(PartnerAccount.user_id == user_id).first()
    if existing:
        raise ConflictError("Partner account already exists for this user")

    account = PartnerAccount(
        id=str(uuid.uuid4()),
        user_id=user_id,
        processor_account_ref=processor_account_ref,
        onboarding_status=OnboardingStatus.pending,
        fee_percentage=fee,
        is_active=False,
        can_accept_cards=False,
        can_receive_transfers=False,
        country=country,
        business_type=business_type,
        business_name=business_name,
    )
    try:
        db.add(account)
        db.flush()
        fee_schedule.append_entry(db, account.id, fee, created_by=user_id, reason=SEED_FEE_REASON)
        db.commit()
    except IntegrityError:
        # Concurrent create for the same user or processor account
        db.rollback()
        raise ConflictError("Partner account already exists for this user or processor account")
    logger.info("Created partner account %s for user %s at %s%%", account.id, user_id, fee)
    return account.id


def get_account(db: Session, partner_account_id: str) -> PartnerAccount:
    account = db.query(PartnerAccount).filter(PartnerAccount.id == partner_account_id).first()
    if not account:
        raise NotFoundError("Partner not found")
    return account


def get_account_by_user(db: Session, user_id: str) -> Optional[PartnerAccount]:
    return db.query(PartnerAccount).filter(PartnerAccount.user_id == user_id).first()


def get_account_by_processor_ref(db: Session, processor_account_ref: str) -> Optional[PartnerAccount]:
    return (
        db.query(PartnerAccount)
        .filter(PartnerAccount.processor_account_ref == processor_account_ref)
        .first()
    )


def list_accounts(
    db: Session,
    status: Optional[Union[OnboardingStatus, str]] = None,
    only_active: Optional[bool] = None,
) -> List[PartnerAccount]:
    """List partners, newest first, optionally filtered by onboarding status and activation."""
    query = db.query(PartnerAccount)
    if status is not None:
        query = query.filter(PartnerAccount.onboarding_status == _coerce_status(status))
    if only_active is not None:
        query = query.filter(PartnerAccount.is_active == only_active)
    return query.order_by(PartnerAccount.created_at.desc(), PartnerAccount.id).all()


def update_onboarding_status(
    db: Session,
    processor_account_ref: str,
    status: Union[OnboardingStatus, str],
    capabilities: Optional[Capabilities] = None,
) -> PartnerAccount:
    """
    Apply a processor status callback. Only `completed` may activate a partner;
    every other status leaves is_active untouched.
    """
    new_status = _coerce_status(status)
    account = (
        db.query(PartnerAccount)
        .filter(PartnerAccount.processor_account_ref == processor_account_ref)
        .with_for_update()
        .first()
    )
    if not account:
        raise NotFoundError("Partner not found")

    account.onboarding_status = new_status
    if new_status == OnboardingStatus.completed:
        account.is_active = True
    if capabilities is not None:
        if capabilities.can_accept_cards is not None:
            account.can_accept_cards = capabilities.can_accept_cards
        if capabilities.can_receive_transfers is not None:
            account.can_receive_transfers = capabilities.can_receive_transfers
    db.commit()
    db.refresh(account)
    logger.info("Partner %s onboarding status -> %s", account.id, new_status.value)
    return account


def change_fee(
    db: Session,
    partner_account_id: str,
    new_fee_percentage: Union[Decimal, int, float, str],
    actor: Actor,
    reason: Optional[str] = None,
) -> str:
    """
    Append a fee schedule entry and patch the account's current fee as one unit.
    The account row is locked so concurrent changes for one partner serialise in commit order.
    Returns the new entry id.
    """
    require_platform_admin(actor)
    fee = validate_fee_percentage(new_fee_percentage)
    try:
        account = (
            db.query(PartnerAccount)
            .filter(PartnerAccount.id == partner_account_id)
            .with_for_update()
            .first()
        )
        if not account:
            raise NotFoundError("Partner not found")
        previous_fee = account.fee_percentage
        entry_id = fee_schedule.append_entry(
            db,
            account.id,
            fee,
            created_by=actor.id,
            reason=reason or MANUAL_FEE_REASON,
            previous_fee=previous_fee,
        )
        account.fee_percentage = fee
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Partner %s fee %s%% -> %s%% by %s", partner_account_id, previous_fee, fee, actor.id)
    return entry_id


def set_active(db: Session, partner_account_id: str, is_active: bool, actor: Actor) -> PartnerAccount:
    """Admin override (e.g. suspension), independent of onboarding status."""
    require_platform_admin(actor)
    account = get_account(db, partner_account_id)
    account.is_active = is_active
    db.add(
        AuditLog(
            id=str(uuid.uuid4()),
            action="partner.activated" if is_active else "partner.deactivated",
            actor_type="admin",
            actor_id=actor.id,
            resource_type="partner_account",
            resource_id=account.id,
            details={"onboarding_status": account.onboarding_status.value},
        )
    )
    db.commit()
    db.refresh(account)
    logger.info("Partner %s is_active=%s by %s", account.id, is_active, actor.id)
    return account


def _capability_active(reported: Dict[str, Any], name: str) -> Optional[bool]:
    if name not in reported:
        return None
    return reported[name] == "active"


def status_from_processor_account(account: Dict[str, Any]) -> Tuple[OnboardingStatus, Capabilities]:
    """
    Derive onboarding status and capabilities from a processor account payload.
    completed: details submitted and both charges and payouts enabled.
    in_progress: details submitted only. Otherwise pending.
    """
    if account.get("details_submitted") and account.get("charges_enabled") and account.get("payouts_enabled"):
        status = OnboardingStatus.completed
    elif account.get("details_submitted"):
        status = OnboardingStatus.in_progress
    else:
        status = OnboardingStatus.pending
    reported = account.get("capabilities") or {}
    capabilities = Capabilities(
        can_accept_cards=_capability_active(reported, "card_payments"),
        can_receive_transfers=_capability_active(reported, "transfers"),
    )
    return status, capabilities
