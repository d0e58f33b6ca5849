"""Commission schedule for salary advance disbursements"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from adelanto_gateway.domain.exceptions import ValidationError

Amount = Union[Decimal, int, float, str]

MIN_REQUESTED_AMOUNT = Decimal("100")
FLAT_TIER_MAX = Decimal("250")
MID_TIER_MAX = Decimal("700")

FLAT_COMMISSION = Decimal("15")
MID_TIER_RATE = Decimal("0.065")
HIGH_TIER_RATE = Decimal("0.075")
IVA_RATE = Decimal("0.12")  # Guatemalan VAT applied on top of every tier

CENT = Decimal("0.01")


def to_decimal(amount: Amount) -> Decimal:
    """Convert through str so 500.0 and Decimal('500') hash to the same value"""
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))


def commission_tier(amount: Amount) -> str:
    """
    Name the commission band for a requested amount.

    Bands:
    - flat: Q100 - Q250
    - mid:  over Q250 up to Q700
    - high: over Q700
    """
    value = to_decimal(amount)
    if value < MIN_REQUESTED_AMOUNT:
        raise ValidationError(f"Requested amount must be at least Q{MIN_REQUESTED_AMOUNT}")
    if value <= FLAT_TIER_MAX:
        return "flat"
    if value <= MID_TIER_MAX:
        return "mid"
    return "high"


def compute_commission(amount: Amount) -> Decimal:
    """
    Commission charged on a requested advance, IVA included, rounded to cents.

    Example:
        Q500 → 500 × 0.065 × 1.12 = Q36.40
    """
    value = to_decimal(amount)
    tier = commission_tier(value)
    iva_factor = 1 + IVA_RATE

    if tier == "flat":
        commission = FLAT_COMMISSION * iva_factor
    elif tier == "mid":
        commission = value * MID_TIER_RATE * iva_factor
    else:
        commission = value * HIGH_TIER_RATE * iva_factor

    return commission.quantize(CENT, rounding=ROUND_HALF_UP)


def disbursement_amount(amount: Amount) -> Decimal:
    """Amount actually deposited: requested minus commission"""
    value = to_decimal(amount)
    return value - compute_commission(value)
