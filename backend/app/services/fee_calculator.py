"""Platform/partner split of a captured payment at a given commission rate."""
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal
from typing import Union

from app.core.exceptions import ValidationError

MIN_FEE_PERCENTAGE = Decimal("0")
MAX_FEE_PERCENTAGE = Decimal("100")
# Matches the Numeric(5, 2) fee columns
FEE_PRECISION = Decimal("0.01")


@dataclass(frozen=True)
class FeeSplit:
    amount: int
    fee_percentage: Decimal
    platform_fee: int
    partner_amount: int


def validate_fee_percentage(fee_percentage: Union[Decimal, int, float, str]) -> Decimal:
    """Return fee_percentage as Decimal; ValidationError if outside [0, 100] or finer than 0.01."""
    try:
        value = Decimal(str(fee_percentage))
    except ArithmeticError:
        raise ValidationError(f"Invalid fee percentage: {fee_percentage!r}")
    if not value.is_finite() or value < MIN_FEE_PERCENTAGE or value > MAX_FEE_PERCENTAGE:
        raise ValidationError("Fee percentage must be between 0 and 100")
    if value != value.quantize(FEE_PRECISION):
        raise ValidationError("Fee percentage allows at most two decimal places")
    return value


def calculate_split(amount: int, fee_percentage: Union[Decimal, int, float, str]) -> FeeSplit:
    """Platform fee is floored; the partner receives the remainder, so the split always sums to amount."""
    if amount <= 0:
        raise ValidationError("Amount must be positive")
    fee = validate_fee_percentage(fee_percentage)
    platform_fee = int((Decimal(amount) * fee / Decimal(100)).to_integral_value(rounding=ROUND_FLOOR))
    return FeeSplit(
        amount=amount,
        fee_percentage=fee,
        platform_fee=platform_fee,
        partner_amount=amount - platform_fee,
    )
