"""
Financial derivations for trip transactions.

Pure functions only: no I/O, no ORM access. Every code path that shows or
stores a derived figure (create, update, listing, summary, export) goes
through this module.

    total_km           = closing_km - opening_km            (None if either is missing)
    total_freight      = v_freight_fix + v_freight_variable * total_km
                         + toll + parking + loading + unloading + other
    balance_to_be_paid = total_freight - advance_paid_amount
    variance           = balance_paid_amount - balance_to_be_paid
    margin             = revenue - total_freight
    margin_percentage  = margin / revenue  (0 when revenue is 0)

The variable per-KM term only applies to Adhoc/Replacement trips. Handling
charges are recorded but are not part of the freight.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Mapping, Optional, Union

from app.models.transaction import TripType


ZERO = Decimal("0")
MONEY_QUANTUM = Decimal("0.01")
RATIO_QUANTUM = Decimal("0.0001")

FREIGHT_CHARGE_FIELDS = (
    "toll_expenses",
    "parking_charges",
    "loading_charges",
    "unloading_charges",
    "other_charges",
)

Number = Union[Decimal, int, float, str, None]


def to_decimal(value: Number) -> Optional[Decimal]:
    """Coerce a numeric input to Decimal; None and blank strings stay None."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    # str() keeps floats like 0.1 from dragging binary noise along
    return Decimal(str(value))


def _or_zero(value: Number) -> Decimal:
    result = to_decimal(value)
    return ZERO if result is None else result


def money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def total_km(opening_km: Number, closing_km: Number) -> Optional[Decimal]:
    opening = to_decimal(opening_km)
    closing = to_decimal(closing_km)
    if opening is None or closing is None:
        return None
    return closing - opening


def total_freight(
    v_freight_fix: Number = None,
    v_freight_variable: Number = None,
    km: Number = None,
    toll_expenses: Number = None,
    parking_charges: Number = None,
    loading_charges: Number = None,
    unloading_charges: Number = None,
    other_charges: Number = None,
) -> Decimal:
    variable = _or_zero(v_freight_variable) * _or_zero(km)
    charges = sum(
        (_or_zero(v) for v in (
            toll_expenses, parking_charges, loading_charges, unloading_charges, other_charges
        )),
        ZERO,
    )
    return money(_or_zero(v_freight_fix) + variable + charges)


def balance_to_be_paid(freight: Number, advance_paid_amount: Number) -> Decimal:
    return money(_or_zero(freight) - _or_zero(advance_paid_amount))


def variance(balance_paid_amount: Number, balance_due: Number) -> Decimal:
    return money(_or_zero(balance_paid_amount) - _or_zero(balance_due))


def margin(revenue: Number, freight: Number) -> Decimal:
    return money(_or_zero(revenue) - _or_zero(freight))


def margin_percentage(revenue: Number, margin_value: Number) -> Decimal:
    rev = _or_zero(revenue)
    if rev == ZERO:
        return ZERO
    return (_or_zero(margin_value) / rev).quantize(RATIO_QUANTUM, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class FinancialSummary:
    """Derived figures of one transaction."""
    total_km: Optional[Decimal]
    total_freight: Decimal
    balance_to_be_paid: Decimal
    variance: Decimal
    margin: Decimal
    margin_percentage: Decimal


def _read(source: Any, name: str) -> Any:
    if isinstance(source, Mapping):
        return source.get(name)
    return getattr(source, name, None)


def derive_financials(source: Any, trip_type: Union[TripType, str]) -> FinancialSummary:
    """
    Compute every derived figure from a record's charge fields.

    Args:
        source: ORM row, schema object or plain mapping carrying the charge fields
        trip_type: Variant of the record; Fixed trips ignore the per-KM rate

    Returns:
        FinancialSummary
    """
    variant = TripType(trip_type)
    km = total_km(_read(source, "opening_km"), _read(source, "closing_km"))

    rate_per_km = None if variant.is_fixed else _read(source, "v_freight_variable")
    freight = total_freight(
        v_freight_fix=_read(source, "v_freight_fix"),
        v_freight_variable=rate_per_km,
        km=km,
        **{name: _read(source, name) for name in FREIGHT_CHARGE_FIELDS},
    )

    balance_due = balance_to_be_paid(freight, _read(source, "advance_paid_amount"))
    margin_value = margin(_read(source, "revenue"), freight)

    return FinancialSummary(
        total_km=km,
        total_freight=freight,
        balance_to_be_paid=balance_due,
        variance=variance(_read(source, "balance_paid_amount"), balance_due),
        margin=margin_value,
        margin_percentage=margin_percentage(_read(source, "revenue"), margin_value),
    )


def apply_financials(record: Any) -> FinancialSummary:
    """Recompute and store the derived columns on an ORM transaction row."""
    summary = derive_financials(record, record.trip_type)
    record.total_freight = summary.total_freight
    if not TripType(record.trip_type).is_fixed:
        record.balance_to_be_paid = summary.balance_to_be_paid
        record.variance = summary.variance
        record.margin = summary.margin
        record.margin_percentage = summary.margin_percentage
    return summary
