# sales/services/reservations.py

"""
======================================================
PATH: sales/services/reservations.py
======================================================
RESERVATION MANAGER

Purpose:
- Hold stock for sales-order lines without touching current_stock.
- Release holds (cancel / reject / re-allocate / challan deletion).
- Consume holds on dispatch together with the ledger deduction.

Rules:
- Batch.reserved_stock is written ONLY here and always re-synced as
  SUM(active reservations) on the locked batch row.
- reserve() re-validates every (batch, qty) pair against the LOCKED row
  (qty <= free stock) and is all-or-nothing.
- consume() reduces the hold first, then deducts through the batch ledger in
  the same atomic unit: stock never leaves without its hold and vice versa.
- A dispatch from a batch the order line does not hold trims the line's
  holds elsewhere, so a line never holds more than it still needs.
- Batches are always locked in primary-key order.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from products.models import Batch, InventoryTransaction
from products.services.exceptions import InsufficientStockError
from products.services.inventory import AdjustmentResult, adjust_stock, lock_batch, lock_batches
from products.services.quantities import ZERO, positive_quantity
from sales.models import SalesOrderItem, StockReservation

logger = logging.getLogger(__name__)

Reason = StockReservation.ReleaseReason


# ============================================================
# reserved_stock SYNC
# ============================================================

def active_reserved_total(batch) -> Decimal:
    batch_id = getattr(batch, "pk", batch)
    return (
        StockReservation.objects.filter(
            batch_id=batch_id, status=StockReservation.Status.ACTIVE
        ).aggregate(total=Sum("reserved_quantity"))["total"]
        or ZERO
    )


def _sync_reserved(locked: Batch) -> Batch:
    """Caller must hold the batch lock."""
    total = active_reserved_total(locked)
    if total > locked.current_stock:
        raise InsufficientStockError(
            batch_id=locked.pk,
            batch_number=locked.batch_number,
            product_id=locked.product_id,
            requested=total,
            available=locked.current_stock,
        )
    if total != locked.reserved_stock:
        locked.reserved_stock = total
        locked.save(update_fields=["reserved_stock", "updated_at"])
    return locked


@transaction.atomic
def recompute_reserved_stock(*, batch) -> Batch:
    """Re-derive reserved_stock from active reservations."""
    return _sync_reserved(lock_batch(batch))


# ============================================================
# RESERVE
# ============================================================

@transaction.atomic
def reserve(*, sales_order, lines: Iterable, user=None, as_of=None) -> list[StockReservation]:
    """
    Create active holds for (order_item, allocation) pairs.

    lines: iterable of (SalesOrderItem, BatchAllocation) as produced by
           the FIFO allocator.

    All-or-nothing: if any batch lacks free stock at commit time the whole
    call raises InsufficientStockError and nothing is held.
    """
    lines = list(lines)
    if not lines:
        return []

    today = as_of or timezone.localdate()

    requested = defaultdict(lambda: ZERO)
    for item, allocation in lines:
        if item.sales_order_id != sales_order.pk:
            raise ValidationError("Reservation line does not belong to this sales order")
        qty = positive_quantity(allocation.quantity, field_name="reserved_quantity")
        requested[allocation.batch.pk] += qty

    locked = lock_batches(requested.keys())

    # Validate everything before writing anything.
    for batch_id, qty in requested.items():
        batch = locked[batch_id]
        available = batch.free_stock
        if batch.is_expired(today) or not batch.is_active:
            available = ZERO
        if qty > available:
            logger.warning(
                "reservation refused",
                extra={
                    "sales_order_id": str(sales_order.pk),
                    "batch_id": str(batch.pk),
                    "batch_number": batch.batch_number,
                    "requested": str(qty),
                    "available": str(available),
                },
            )
            raise InsufficientStockError(
                batch_id=batch.pk,
                batch_number=batch.batch_number,
                product_id=batch.product_id,
                requested=qty,
                available=available,
            )

    created = []
    for item, allocation in lines:
        batch = locked[allocation.batch.pk]
        if batch.product_id != item.product_id:
            raise ValidationError(
                f"Batch {batch.batch_number} does not hold the product of this order line"
            )
        created.append(
            StockReservation.objects.create(
                sales_order=sales_order,
                sales_order_item=item,
                batch=batch,
                product_id=item.product_id,
                reserved_quantity=positive_quantity(allocation.quantity),
                reserved_by=user,
            )
        )

    for batch in locked.values():
        _sync_reserved(batch)

    logger.info(
        "stock reserved",
        extra={
            "sales_order_id": str(sales_order.pk),
            "reservations": len(created),
            "batches": [str(b) for b in locked.keys()],
        },
    )
    return created


# ============================================================
# RELEASE
# ============================================================

def _release_locked(reservation: StockReservation, reason: str) -> None:
    reservation.status = StockReservation.Status.RELEASED
    reservation.release_reason = reason
    reservation.released_at = timezone.now()
    reservation.save(update_fields=["status", "release_reason", "released_at", "updated_at"])


@transaction.atomic
def release(*, reservation, reason: str = Reason.MANUAL, user=None) -> StockReservation:
    """Release one hold back to the free pool. Idempotent on released rows."""
    if reason not in Reason.values:
        raise ValidationError(f"Unknown release reason {reason!r}")

    batch = lock_batch(reservation.batch_id)
    reservation = StockReservation.objects.select_for_update().get(pk=reservation.pk)

    if reservation.status == StockReservation.Status.RELEASED:
        return reservation

    _release_locked(reservation, reason)
    _sync_reserved(batch)

    logger.info(
        "reservation released",
        extra={
            "reservation_id": str(reservation.pk),
            "batch_id": str(batch.pk),
            "quantity": str(reservation.reserved_quantity),
            "reason": reason,
        },
    )
    return reservation


@transaction.atomic
def release_for_order(*, sales_order, reason: str, items: Optional[Iterable] = None) -> int:
    """Release every active hold of an order (optionally only for some lines)."""
    qs = StockReservation.objects.filter(
        sales_order=sales_order, status=StockReservation.Status.ACTIVE
    )
    if items is not None:
        qs = qs.filter(sales_order_item__in=list(items))

    batch_ids = set(qs.values_list("batch_id", flat=True))
    if not batch_ids:
        return 0

    locked = lock_batches(batch_ids)
    reservations = list(qs.select_for_update())
    for reservation in reservations:
        _release_locked(reservation, reason)
    for batch in locked.values():
        _sync_reserved(batch)

    logger.info(
        "order reservations released",
        extra={
            "sales_order_id": str(sales_order.pk),
            "count": len(reservations),
            "reason": reason,
        },
    )
    return len(reservations)


# ============================================================
# CONSUME
# ============================================================

def _reduce_hold(reservation: StockReservation, quantity: Decimal) -> None:
    reservation.reserved_quantity = reservation.reserved_quantity - quantity
    if reservation.reserved_quantity <= ZERO:
        reservation.reserved_quantity = ZERO
        reservation.status = StockReservation.Status.RELEASED
        reservation.release_reason = Reason.CONSUMED
        reservation.released_at = timezone.now()
    reservation.save()


@transaction.atomic
def consume(*, reservation, quantity, challan_item=None, user=None) -> AdjustmentResult:
    """
    Dispatch `quantity` out of one hold: reduce (or close) the reservation and
    write the matching SALE deduction, as one atomic unit.
    """
    qty = positive_quantity(quantity)

    batch = lock_batch(reservation.batch_id)
    reservation = StockReservation.objects.select_for_update().get(pk=reservation.pk)

    if reservation.status != StockReservation.Status.ACTIVE:
        raise ValidationError("Cannot consume a released reservation")
    if qty > reservation.reserved_quantity:
        raise ValidationError(
            f"Cannot consume {qty}; reservation holds {reservation.reserved_quantity}"
        )

    _reduce_hold(reservation, qty)
    _sync_reserved(batch)

    return adjust_stock(
        batch=batch,
        quantity_delta=-qty,
        transaction_type=InventoryTransaction.TransactionType.SALE,
        reference_type=InventoryTransaction.ReferenceType.CHALLAN_ITEM,
        reference_id=getattr(challan_item, "pk", None),
        user=user,
        notes=f"Dispatch against reservation {reservation.pk}",
    )


def hold_batch_ids(sales_order_item_ids: Iterable) -> set:
    """Batches carrying active holds of the given order lines."""
    ids = [i for i in sales_order_item_ids if i]
    if not ids:
        return set()
    return set(
        StockReservation.objects.filter(
            sales_order_item_id__in=ids, status=StockReservation.Status.ACTIVE
        ).values_list("batch_id", flat=True)
    )


@transaction.atomic
def consume_for_challan_item(*, challan_item, user=None) -> AdjustmentResult:
    """
    Dispatch one approved challan line.

    Holds of the linked order line on the same batch are consumed first
    (oldest first); any remainder comes from free stock. Whatever the line
    still holds beyond its undelivered quantity (holds on other batches the
    dispatch bypassed) is then trimmed, oldest first. One SALE transaction
    of -quantity is written for the line.
    """
    qty = positive_quantity(challan_item.quantity)
    soi_id = challan_item.sales_order_item_id

    locked = lock_batches({challan_item.batch_id} | hold_batch_ids([soi_id]))
    batch = locked[challan_item.batch_id]

    consumed = ZERO
    trimmed = ZERO
    if soi_id:
        holds = list(
            StockReservation.objects.select_for_update()
            .filter(sales_order_item_id=soi_id, status=StockReservation.Status.ACTIVE)
            .order_by("reserved_at", "id")
        )
        for hold in holds:
            if hold.batch_id != batch.pk or consumed >= qty:
                continue
            take = min(hold.reserved_quantity, qty - consumed)
            _reduce_hold(hold, take)
            consumed += take

        soi = SalesOrderItem.objects.get(pk=soi_id)
        still_needed = max(soi.quantity - soi.delivered_quantity - qty, ZERO)
        held = sum((h.reserved_quantity for h in holds), ZERO)
        excess = held - still_needed
        for hold in holds:
            if excess <= ZERO:
                break
            if hold.batch_id == batch.pk or hold.reserved_quantity <= ZERO:
                continue
            take = min(hold.reserved_quantity, excess)
            _reduce_hold(hold, take)
            excess -= take
            trimmed += take

        for locked_batch in locked.values():
            _sync_reserved(locked_batch)

    result = adjust_stock(
        batch=batch,
        quantity_delta=-qty,
        transaction_type=InventoryTransaction.TransactionType.SALE,
        reference_type=InventoryTransaction.ReferenceType.CHALLAN_ITEM,
        reference_id=challan_item.pk,
        user=user,
        notes=f"Delivery challan {challan_item.challan.challan_number}",
    )

    logger.info(
        "challan item dispatched",
        extra={
            "challan_item_id": str(challan_item.pk),
            "batch_id": str(batch.pk),
            "quantity": str(qty),
            "from_reservation": str(consumed),
            "from_free_stock": str(qty - consumed),
            "trimmed_elsewhere": str(trimmed),
        },
    )
    return result
