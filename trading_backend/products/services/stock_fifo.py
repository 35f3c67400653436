# products/services/stock_fifo.py

"""
FIFO ALLOCATOR

Purpose:
- Given a product and a required quantity, pick the batch(es) to draw from:
  oldest import_date first, ties broken by batch id.
- Exclude expired batches (expiry_date <= as_of) and batches with no free stock.
- Return a plan: ordered (batch, quantity) pairs + the unmet shortage.

Rules:
- free = current_stock - reserved_stock
        + add_back[batch]   (caller's own reservation being re-derived)
        - claimed[batch]    (already planned for an earlier line of the same order)
- A shortage is NOT an error; it is part of the returned plan.
- Planning never writes. Reservation (sales/services/reservations.py) re-validates
  every pair against locked rows before committing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping, Optional

from django.db.models import Q
from django.utils import timezone

from products.models import Batch
from products.services.quantities import ZERO, to_quantity


@dataclass(frozen=True)
class BatchAllocation:
    batch: Batch
    quantity: Decimal


@dataclass(frozen=True)
class AllocationPlan:
    product_id: object
    required: Decimal
    allocations: tuple = field(default_factory=tuple)
    shortage: Decimal = ZERO

    @property
    def allocated(self) -> Decimal:
        return sum((a.quantity for a in self.allocations), ZERO)

    @property
    def is_short(self) -> bool:
        return self.shortage > ZERO


def allocatable_batches(*, product, as_of=None):
    """Active, unexpired batches of a product in FIFO order."""
    today = as_of or timezone.localdate()
    return (
        Batch.objects.filter(product=product, is_active=True)
        .filter(Q(expiry_date__isnull=True) | Q(expiry_date__gt=today))
        .order_by("import_date", "id")
    )


def select_batches(
    *,
    product,
    required_qty,
    as_of=None,
    add_back: Optional[Mapping] = None,
    claimed: Optional[Mapping] = None,
) -> AllocationPlan:
    """
    Greedy oldest-first fill of required_qty.

    add_back: {batch_id: qty} reserved by the caller's own order and about to be
              released; counted as free so re-deriving an order never shows a
              spurious shortage.
    claimed:  {batch_id: qty} already taken by earlier lines of the same plan.
    """
    if product is None:
        raise ValueError("product is required")

    required = to_quantity(required_qty, field_name="required_qty")
    product_id = getattr(product, "pk", product)

    if required <= ZERO:
        return AllocationPlan(product_id=product_id, required=max(required, ZERO))

    add_back = add_back or {}
    claimed = claimed or {}

    remaining = required
    allocations = []

    for batch in allocatable_batches(product=product, as_of=as_of):
        if remaining <= ZERO:
            break

        free = (
            batch.current_stock
            - batch.reserved_stock
            + add_back.get(batch.pk, ZERO)
            - claimed.get(batch.pk, ZERO)
        )
        if free <= ZERO:
            continue

        take = free if free <= remaining else remaining
        allocations.append(BatchAllocation(batch=batch, quantity=take))
        remaining -= take

    return AllocationPlan(
        product_id=product_id,
        required=required,
        allocations=tuple(allocations),
        shortage=max(remaining, ZERO),
    )


def available_quantity(*, product, as_of=None) -> Decimal:
    """Total free stock across allocatable batches of a product."""
    total = ZERO
    for batch in allocatable_batches(product=product, as_of=as_of):
        total += max(batch.free_stock, ZERO)
    return total
