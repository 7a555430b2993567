"""Submetered unit bill computation.

Pure functions: no I/O, no exceptions. Every input is sanitised to a safe
default so an interactive preview keeps working on partially filled forms,
and the same inputs always produce the same breakdown.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, NamedTuple

from rentflow.models.lease import PdcStatus

MONEY_QUANTUM = Decimal("0.01")
ZERO = Decimal("0")


class BillBreakdown(NamedTuple):
    """Line-itemized result of a bill computation."""

    water_usage: Decimal
    elec_usage: Decimal
    water_cost: Decimal
    elec_cost: Decimal
    rent_amount: Decimal
    assoc_dues: Decimal
    total_extra_charges: Decimal
    total_discounts: Decimal
    pdc_credit: Decimal
    total_amount_due: Decimal


def round2(value: Decimal) -> Decimal:
    """Round a money amount to 2 decimal places (half up)."""
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def to_decimal(value: Any) -> Decimal | None:
    """Coerce a number-like value to a finite Decimal, or None when it is not one."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return None
    if not number.is_finite():
        return None
    return number


def non_negative(value: Any) -> Decimal:
    """Coerce to a finite non-negative Decimal; anything else counts as 0."""
    number = to_decimal(value)
    if number is None or number < 0:
        return ZERO
    return number


def meter_usage(previous: Any, current: Any) -> Decimal:
    """Consumption between two readings, never negative.

    A missing side yields 0, and so does a meter rollback or reset
    (current below previous).
    """
    prev = to_decimal(previous)
    curr = to_decimal(current)
    if prev is None or curr is None:
        return ZERO
    return max(ZERO, curr - prev)


def _item_amount(item: Any) -> Any:
    if isinstance(item, Mapping):
        return item.get("amount")
    return getattr(item, "amount", item)


def sum_amounts(items: Iterable[Any] | None) -> Decimal:
    """Sum charge amounts, counting invalid or negative amounts as 0.

    Items may be plain numbers, mappings with an "amount" key, or objects with
    an ``amount`` attribute.
    """
    if not items:
        return ZERO
    return round2(sum((non_negative(_item_amount(item)) for item in items), ZERO))


def pdc_credit_for(pdc: Any, rent_amount: Decimal) -> Decimal:
    """Credit of a post-dated check against rent.

    Only a cleared check counts, capped at the rent: min(pdc.amount, rent).
    """
    if pdc is None:
        return ZERO
    if isinstance(pdc, Mapping):
        pdc_status, amount = pdc.get("status"), pdc.get("amount")
    else:
        pdc_status, amount = getattr(pdc, "status", None), getattr(pdc, "amount", None)

    if pdc_status != PdcStatus.CLEARED:
        return ZERO
    return round2(min(non_negative(amount), rent_amount))


def compute_bill(
    *,
    water_prev: Any = None,
    water_curr: Any = None,
    elec_prev: Any = None,
    elec_curr: Any = None,
    water_rate: Any = None,
    elec_rate: Any = None,
    rent_amount: Any = None,
    assoc_dues: Any = None,
    extra_charges: Iterable[Any] | None = None,
    discounts: Iterable[Any] | None = None,
    pdc: Any = None,
) -> BillBreakdown:
    """Compute a unit's bill from meter readings, rates and line items.

    Formula:
        total_amount_due = rent - pdc_credit + assoc_dues + water_cost
                           + elec_cost + total_extra_charges - total_discounts

    Each cost is usage × rate rounded to 2 places. The total is not clamped:
    discounts larger than the gross charges give a negative amount due
    (a credit owed to the tenant).

    Returns:
        BillBreakdown with usages, costs, totals and the amount due
    """
    water_usage = meter_usage(water_prev, water_curr)
    elec_usage = meter_usage(elec_prev, elec_curr)

    water_cost = round2(water_usage * non_negative(water_rate))
    elec_cost = round2(elec_usage * non_negative(elec_rate))

    rent = round2(non_negative(rent_amount))
    dues = round2(non_negative(assoc_dues))

    total_extra_charges = sum_amounts(extra_charges)
    total_discounts = sum_amounts(discounts)
    pdc_credit = pdc_credit_for(pdc, rent)

    total_amount_due = round2(
        rent - pdc_credit + dues + water_cost + elec_cost + total_extra_charges - total_discounts
    )

    return BillBreakdown(
        water_usage=water_usage,
        elec_usage=elec_usage,
        water_cost=water_cost,
        elec_cost=elec_cost,
        rent_amount=rent,
        assoc_dues=dues,
        total_extra_charges=total_extra_charges,
        total_discounts=total_discounts,
        pdc_credit=pdc_credit,
        total_amount_due=total_amount_due,
    )


__all__ = [
    "BillBreakdown",
    "compute_bill",
    "meter_usage",
    "non_negative",
    "pdc_credit_for",
    "round2",
    "sum_amounts",
    "to_decimal",
]
