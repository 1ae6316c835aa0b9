"""
Commission Calculator

Splits an order total into the platform commission and the seller payout.
Only the commission is rounded; the seller amount is the exact remainder so
the two always add back up to the total.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import List, Tuple

from payment_system.domain.exceptions import ValidationError


CENT = Decimal("0.01")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class CommissionSplit:
    total: Decimal
    rate_percent: Decimal
    commission: Decimal
    seller_amount: Decimal


def to_decimal(value, field_name: str) -> Decimal:
    """Convert an int/str/Decimal amount to Decimal. Floats go through str() first."""
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number")
    if isinstance(value, float):
        value = str(value)
    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number, got {value!r}")
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be finite")
    return result


def round2(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def validate_rate(rate_percent) -> Decimal:
    """
    Check a commission rate before it is applied.

    The applied rate is stored on the order with two decimal places, so finer
    rates are rejected instead of rounded.
    """
    rate = to_decimal(rate_percent, "rate_percent")
    if rate < 0 or rate > HUNDRED:
        raise ValidationError(f"rate_percent must be between 0 and 100, got {rate}")
    if rate != rate.quantize(CENT):
        raise ValidationError(f"rate_percent supports at most two decimal places, got {rate}")
    return rate


def compute_split(total, rate_percent) -> CommissionSplit:
    """
    Compute the commission/seller split for a total at a given rate.

    Args:
        total: Order total in currency units, at most two decimal places
        rate_percent: Commission rate between 0 and 100 inclusive

    Returns:
        CommissionSplit where commission + seller_amount == total exactly

    Raises:
        ValidationError: negative or sub-cent total, rate outside [0, 100]
            or finer than a hundredth of a percent

    Example:
        >>> split = compute_split(Decimal("100.00"), 10)
        >>> split.commission, split.seller_amount
        (Decimal('10.00'), Decimal('90.00'))
    """
    total = to_decimal(total, "total")
    rate = validate_rate(rate_percent)

    if total < 0:
        raise ValidationError(f"total must not be negative, got {total}")
    if total != total.quantize(CENT):
        raise ValidationError(f"total must be a whole number of cents, got {total}")

    total = total.quantize(CENT)
    commission = round2(total * rate / HUNDRED)
    seller_amount = total - commission

    return CommissionSplit(total=total, rate_percent=rate, commission=commission, seller_amount=seller_amount)


def allocate(amount: Decimal, weights) -> List[Tuple[object, Decimal]]:
    """
    Split ``amount`` across keys in proportion to their weights.

    Shares are cut at the cent-rounded running total, so none is negative
    and the last key takes the rounding remainder. The shares add back up to
    ``amount`` exactly. When every weight is zero the amount is split evenly.

    Args:
        amount: Amount to split, a whole number of cents
        weights: Ordered (key, weight) pairs with non-negative weights

    Returns:
        (key, share) pairs in the order given

    Example:
        >>> allocate(Decimal("90.00"), [(11, Decimal("80.00")), (12, Decimal("20.00"))])
        [(11, Decimal('72.00')), (12, Decimal('18.00'))]
    """
    weights = [(key, to_decimal(weight, "weight")) for key, weight in weights]
    if not weights:
        return []
    if any(weight < 0 for _, weight in weights):
        raise ValidationError("weights must not be negative")

    total_weight = sum(weight for _, weight in weights)
    if total_weight == 0:
        weights = [(key, Decimal(1)) for key, _ in weights]
        total_weight = Decimal(len(weights))

    shares = []
    running_weight = Decimal(0)
    allocated = Decimal("0.00")
    for key, weight in weights[:-1]:
        running_weight += weight
        boundary = round2(amount * running_weight / total_weight)
        shares.append((key, boundary - allocated))
        allocated = boundary
    shares.append((weights[-1][0], amount - allocated))
    return shares
