# products/services/quantities.py

"""
Decimal normalizers shared by inventory, sales and returns services.

Quantities are decimal (kg, liters...) with 3 places; money is 2 places
ROUND_HALF_UP; per-unit costs carry 4 places.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.core.exceptions import ValidationError

ZERO = Decimal("0")
QTY_PLACES = Decimal("0.001")
TWOPLACES = Decimal("0.01")
UNIT_COST_PLACES = Decimal("0.0001")


def to_decimal(value, *, field_name="value") -> Decimal:
    if value is None or value == "":
        raise ValidationError(f"{field_name} is required")
    if isinstance(value, bool):
        # bool is an int subclass
        raise ValidationError(f"{field_name} must be a number")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError) as exc:
        raise ValidationError(f"{field_name} must be a valid decimal") from exc
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    return result


def to_quantity(value, *, field_name="quantity") -> Decimal:
    return to_decimal(value, field_name=field_name).quantize(QTY_PLACES, rounding=ROUND_HALF_UP)


def positive_quantity(value, *, field_name="quantity") -> Decimal:
    qty = to_quantity(value, field_name=field_name)
    if qty <= ZERO:
        raise ValidationError(f"{field_name} must be greater than zero")
    return qty


def money(value) -> Decimal:
    if value is None or value == "":
        return Decimal("0.00")
    return Decimal(str(value)).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def unit_cost(value) -> Decimal:
    return Decimal(str(value)).quantize(UNIT_COST_PLACES, rounding=ROUND_HALF_UP)
