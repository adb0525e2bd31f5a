from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class FeeChange(BaseModel):
    fee_percentage: Decimal = Field(ge=0, le=100)
    reason: Optional[str] = None


class FeeScheduleEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    partner_account_id: str
    sequence: int
    fee_percentage: Decimal
    previous_fee: Optional[Decimal] = None
    effective_date: datetime
    created_by: str
    reason: Optional[str] = None


class FeeQuote(BaseModel):
    amount: int
    fee_percentage: Decimal
    platform_fee: int
    partner_amount: int
