from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.partner import OnboardingStatus


class PartnerAccountCreate(BaseModel):
    user_id: str
    processor_account_ref: str
    country: str = Field(min_length=2, max_length=2)
    business_type: Optional[str] = None
    business_name: Optional[str] = None
    # Falls back to settings.DEFAULT_FEE_PERCENTAGE
    default_fee_percentage: Optional[Decimal] = None


class PartnerAccountResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    processor_account_ref: str
    onboarding_status: OnboardingStatus
    fee_percentage: Decimal
    is_active: bool
    can_accept_cards: bool
    can_receive_transfers: bool
    country: str
    business_type: Optional[str] = None
    business_name: Optional[str] = None
    created_at: Optional[datetime] = None


class PartnerActiveUpdate(BaseModel):
    is_active: bool
