"""Money helpers.

Amounts are stored as Decimal major units (dollars). They cross the provider
boundary as integer minor units (cents), and only the provider client turns
those into the provider's decimal string format.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from settlement_engine.errors import InvariantViolation, ValidationError

CENT = Decimal("0.01")


def to_minor_units(amount: Decimal | int | str) -> int:
    """Convert a major-unit amount to integer minor units, rounding half up."""
    value = Decimal(str(amount))
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(minor: int) -> Decimal:
    """Convert integer minor units back to a 2-place Decimal."""
    return (Decimal(minor) / 100).quantize(CENT)


def format_minor_units(minor: int) -> str:
    """Provider decimal string for minor units, e.g. 950 -> '9.50'."""
    return str(from_minor_units(minor))


def quantize(amount: Decimal | int | str) -> Decimal:
    """Normalize an amount to 2 decimal places."""
    return Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)


def validate_positive_amount(amount: Decimal | int | str) -> Decimal:
    """Reject zero, negative, or sub-cent amounts at the boundary."""
    try:
        value = Decimal(str(amount))
    except ArithmeticError as e:
        raise ValidationError(f"Invalid amount: {amount!r}") from e
    if not value.is_finite() or value <= 0:
        raise ValidationError("Amount must be positive")
    if value != value.quantize(CENT):
        raise ValidationError("Amount cannot have more than 2 decimal places")
    return value.quantize(CENT)


@dataclass(frozen=True)
class FeeSplit:
    """Submission fee split into platform commission and curator payout (minor units)."""

    total: int
    platform_fee: int
    creator_payout: int

    def __post_init__(self) -> None:
        if self.total != self.platform_fee + self.creator_payout:
            raise InvariantViolation(
                f"Total amount {self.total} must equal platform fee {self.platform_fee} "
                f"plus creator payout {self.creator_payout}"
            )
        if min(self.total, self.platform_fee, self.creator_payout) < 0:
            raise InvariantViolation("Fee split amounts cannot be negative")

    @property
    def total_amount(self) -> Decimal:
        return from_minor_units(self.total)

    @property
    def platform_fee_amount(self) -> Decimal:
        return from_minor_units(self.platform_fee)

    @property
    def creator_payout_amount(self) -> Decimal:
        return from_minor_units(self.creator_payout)


def split_submission_fee(submission_fee: Decimal | int | str, fee_rate: Decimal) -> FeeSplit:
    """Split a playlist submission fee.

    fee = round(submission_fee * 100); platform = round(fee * rate);
    creator = fee - platform.
    """
    total = to_minor_units(submission_fee)
    if total < 0:
        raise ValidationError("Submission fee cannot be negative")
    platform_fee = int((Decimal(total) * fee_rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return FeeSplit(total=total, platform_fee=platform_fee, creator_payout=total - platform_fee)
