# Overview: Pure revenue split between driver commission and office revenue.

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from ..errors import InvalidAmountError


DRIVER_SHARE_RATE = Decimal("0.70")
OFFICE_SHARE_RATE = Decimal("0.30")
ROUNDING_UNIT = Decimal("1000")


@dataclass(frozen=True)
class RevenueSplit:
    """
    Result of splitting a shipping amount.

    residual = base - driver_share - office_share. It is reported so callers
    can reconcile; it is never folded into either share.
    """
    base: Decimal
    driver_share: Decimal
    office_share: Decimal
    residual: Decimal

    def to_dict(self) -> dict:
        return {
            "base": str(self.base),
            "driver_share": str(self.driver_share),
            "office_share": str(self.office_share),
            "residual": str(self.residual),
        }


def round_to_unit(amount: Decimal, unit: Decimal = ROUNDING_UNIT) -> Decimal:
    """Round to the nearest multiple of unit, halves away from zero (2500 -> 3000)."""
    return (amount / unit).quantize(Decimal("1"), rounding=ROUND_HALF_UP) * unit


def _as_decimal(value, field: str) -> Decimal:
    if isinstance(value, bool):
        raise InvalidAmountError(f"{field} must be a number")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, float):
        amount = Decimal(repr(value))
    else:
        raise InvalidAmountError(f"{field} must be a number")
    if not amount.is_finite():
        raise InvalidAmountError(f"{field} must be a finite number")
    if amount < 0:
        raise InvalidAmountError(f"{field} must be >= 0", field=field, value=str(amount))
    return amount


def split(shipping_cost, shipping_tax=Decimal("0")) -> RevenueSplit:
    """
    Split (shipping_cost - shipping_tax) 70/30 between driver and office.

    Each share is rounded independently to the nearest 1000, half up.

    Raises:
        InvalidAmountError: negative cost, negative tax, or tax above cost
    """
    cost = _as_decimal(shipping_cost, "shipping_cost")
    tax = _as_decimal(shipping_tax, "shipping_tax")
    base = cost - tax
    if base < 0:
        raise InvalidAmountError(
            "shipping_tax cannot exceed shipping_cost",
            shipping_cost=str(cost),
            shipping_tax=str(tax),
        )

    driver_share = round_to_unit(base * DRIVER_SHARE_RATE)
    office_share = round_to_unit(base * OFFICE_SHARE_RATE)
    residual = base - driver_share - office_share
    return RevenueSplit(base=base, driver_share=driver_share, office_share=office_share, residual=residual)


def driver_commission(shipping_cost, shipping_tax=Decimal("0")) -> Decimal:
    return split(shipping_cost, shipping_tax).driver_share
