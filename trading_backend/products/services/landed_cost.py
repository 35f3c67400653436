# products/services/landed_cost.py

"""
======================================================
PATH: products/services/landed_cost.py
======================================================
LANDED COST ALLOCATOR

Purpose:
- Convert a lot's USD invoice value to local currency.
- Apply duty (always percent of the local price) plus freight/other charges
  (fixed amount or percent of the local price).
- Derive landed cost per unit.

Formula:
    local      = usd_price * exchange_rate
    duty       = local * duty_percent / 100
    charge(a)  = local * a / 100   (percentage)
               = a                 (fixed)
    total      = local + duty + charge(freight) + charge(other)
    per_unit   = total / imported_quantity   (None while quantity is 0)

Container overhead is NOT folded into per_unit; it is reported separately
as container_cost_per_unit and added for display only.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.core.exceptions import ValidationError

from products.models import Batch
from products.services.exceptions import InvalidChargeConfigError
from products.services.quantities import ZERO, money, to_decimal, unit_cost

HUNDRED = Decimal("100")

CHARGE_TYPES = {choice.value for choice in Batch.ChargeType}


@dataclass(frozen=True)
class LandedCost:
    import_price_local: Decimal
    duty_amount: Decimal
    freight_amount: Decimal
    other_amount: Decimal
    landed_cost_total: Decimal
    landed_cost_per_unit: Optional[Decimal]


def _non_negative(value, field_name: str) -> Decimal:
    try:
        result = to_decimal(value if value not in (None, "") else "0", field_name=field_name)
    except ValidationError as exc:
        raise InvalidChargeConfigError(exc.messages[0]) from exc
    if result < ZERO:
        raise InvalidChargeConfigError(f"{field_name} cannot be negative")
    return result


def charge_amount(*, amount, charge_type: str, local_price: Decimal, field_name: str = "charge") -> Decimal:
    amt = _non_negative(amount, field_name)
    if charge_type not in CHARGE_TYPES:
        raise InvalidChargeConfigError(
            f"{field_name}_type must be one of {sorted(CHARGE_TYPES)}, got {charge_type!r}"
        )
    if charge_type == Batch.ChargeType.PERCENTAGE:
        return local_price * amt / HUNDRED
    return amt


def compute_landed_cost(
    *,
    import_price_usd,
    exchange_rate,
    duty_percent,
    freight_charge=ZERO,
    freight_charge_type: str = Batch.ChargeType.FIXED,
    other_charge=ZERO,
    other_charge_type: str = Batch.ChargeType.FIXED,
    imported_quantity,
) -> LandedCost:
    usd = _non_negative(import_price_usd, "import_price_usd")
    rate = _non_negative(exchange_rate, "exchange_rate")
    duty_pct = _non_negative(duty_percent, "duty_percent")
    qty = _non_negative(imported_quantity, "imported_quantity")

    if usd != ZERO and rate == ZERO:
        raise InvalidChargeConfigError(
            "exchange_rate must be greater than zero when import_price_usd is set"
        )

    local = usd * rate
    duty = local * duty_pct / HUNDRED
    freight = charge_amount(
        amount=freight_charge,
        charge_type=freight_charge_type,
        local_price=local,
        field_name="freight_charge",
    )
    other = charge_amount(
        amount=other_charge,
        charge_type=other_charge_type,
        local_price=local,
        field_name="other_charge",
    )

    total = local + duty + freight + other
    per_unit = unit_cost(total / qty) if qty > ZERO else None

    return LandedCost(
        import_price_local=money(local),
        duty_amount=money(duty),
        freight_amount=money(freight),
        other_amount=money(other),
        landed_cost_total=money(total),
        landed_cost_per_unit=per_unit,
    )


def apply_landed_cost(batch: Batch) -> LandedCost:
    """Recompute and stamp the derived cost fields onto an (unsaved) batch instance."""
    result = compute_landed_cost(
        import_price_usd=batch.import_price_usd,
        exchange_rate=batch.exchange_rate,
        duty_percent=batch.duty_percent,
        freight_charge=batch.freight_charge,
        freight_charge_type=batch.freight_charge_type,
        other_charge=batch.other_charge,
        other_charge_type=batch.other_charge_type,
        imported_quantity=batch.imported_quantity,
    )
    batch.import_price_local = result.import_price_local
    batch.duty_amount = result.duty_amount
    batch.freight_amount = result.freight_amount
    batch.other_amount = result.other_amount
    batch.landed_cost_total = result.landed_cost_total
    batch.landed_cost_per_unit = result.landed_cost_per_unit
    return result


def container_cost_per_unit(*, allocated_cost, imported_quantity) -> Decimal:
    qty = Decimal(str(imported_quantity or 0))
    if qty <= ZERO:
        return Decimal("0.0000")
    return unit_cost(Decimal(str(allocated_cost or 0)) / qty)


def full_unit_cost(batch: Batch) -> Decimal:
    """Landed cost per unit plus the container overhead per unit (display / margin basis)."""
    landed = batch.landed_cost_per_unit or ZERO
    return unit_cost(landed + batch.container_cost_per_unit)


def suggested_selling_price(landed_cost_per_unit, *, factor=None) -> Decimal:
    """
    UI suggestion only (landed cost x markup factor). Never written to the ledger
    or used as a cost basis.
    """
    if landed_cost_per_unit in (None, ""):
        return Decimal("0.00")
    markup = Decimal(str(factor)) if factor is not None else settings.SUGGESTED_MARKUP_FACTOR
    return money(Decimal(str(landed_cost_per_unit)) * markup)
