from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from app.core.errors import ValidationError
from app.models.reseller import CommissionType, RateType, Reseller


@dataclass(frozen=True)
class CommissionQuote:
    gross_amount: int   # package_price * months
    commission: int
    deduct_amount: int  # what the reseller owes for this recharge


def _to_decimal(value, field: str) -> Decimal:
    if value is None:
        return Decimal(0)
    try:
        d = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not d.is_finite():
        raise ValidationError(f"{field} must be a number")
    return d


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def calculate_commission(
    package_price: int,
    months: int,
    commission_type: CommissionType | str,
    commission_value,
    rate_type: RateType | str,
) -> CommissionQuote:
    """Commission and reseller deduction for one recharge.

    Percentage commission is taken on a single validity period
    (``package_price``); flat commission is charged per month. Under the
    ``discount`` rate type the reseller pays the gross amount minus the
    commission, otherwise the gross amount. Commission is capped at the
    gross amount so the deduction never goes negative.
    """
    if isinstance(months, bool) or not isinstance(months, int) or months < 1:
        raise ValidationError("months must be a positive integer")
    price = _to_decimal(package_price, "package_price")
    if price < 0:
        raise ValidationError("package_price must not be negative")
    value = _to_decimal(commission_value, "commission_value")
    if value < 0:
        raise ValidationError("commission_value must not be negative")

    try:
        ctype = CommissionType(commission_type)
    except ValueError:
        raise ValidationError(f"unknown commission_type: {commission_type}")

    gross = _round_half_up(price * months)

    commission = 0
    if value > 0:
        if ctype == CommissionType.percentage:
            commission = _round_half_up(price * value / 100)
        else:
            commission = _round_half_up(value * months)

    if str(getattr(rate_type, "value", rate_type)) == RateType.discount.value:
        commission = min(commission, gross)
        deduct = gross - commission
    else:
        deduct = gross

    return CommissionQuote(gross_amount=gross, commission=commission, deduct_amount=deduct)


def effective_commission_value(reseller: Reseller):
    # Flat policies fall back to the legacy customer_rate; percentage never does.
    if reseller.commission_type == CommissionType.flat and reseller.commission_value is None:
        return reseller.customer_rate or 0
    return reseller.commission_value or 0


def quote_for_reseller(reseller: Reseller, package_price: int, months: int) -> CommissionQuote:
    return calculate_commission(
        package_price,
        months,
        reseller.commission_type,
        effective_commission_value(reseller),
        reseller.rate_type,
    )
