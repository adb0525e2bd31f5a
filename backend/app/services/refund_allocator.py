"""Proportional split of a refund across platform fee and partner amount.

Both components are floored, so their sum never exceeds the refunded amount.
The residual (at most one minor unit per component) is left unallocated.
Integer arithmetic only: floor(fee * refund / amount) is computed as
(fee * refund) // amount to avoid float drift on large amounts.
"""
from dataclasses import dataclass

from app.core.exceptions import ValidationError


@dataclass(frozen=True)
class RefundAllocation:
    refund_amount: int
    platform_fee_refund: int
    partner_refund: int
    # refund_amount > amount; computed unclamped, callers must surface it
    exceeds_amount: bool = False

    @property
    def unallocated(self) -> int:
        return self.refund_amount - self.platform_fee_refund - self.partner_refund


def allocate_refund(amount: int, platform_fee: int, partner_amount: int, refund_amount: int) -> RefundAllocation:
    """Split refund_amount in proportion to the original platform_fee / partner_amount."""
    if amount <= 0:
        raise ValidationError("Transaction amount must be positive to allocate a refund")
    if refund_amount < 0:
        raise ValidationError("Refund amount must not be negative")
    return RefundAllocation(
        refund_amount=refund_amount,
        platform_fee_refund=(platform_fee * refund_amount) // amount,
        partner_refund=(partner_amount * refund_amount) // amount,
        exceeds_amount=refund_amount > amount,
    )
