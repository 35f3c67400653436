# sales/services/delivery.py

"""
======================================================
PATH: sales/services/delivery.py
======================================================
DELIVERY CHALLANS (FULFILLMENT STATE MACHINE, DISPATCH SIDE)

Purpose:
- Raise, approve, reject, edit and delete delivery challans.
- Approval is the ONLY place stock leaves a batch for a sale.

Rules:
- A pending challan has zero stock effect; rejecting it is a no-op on stock.
- approve_challan(): per item, consume the order line's holds and write one
  SALE transaction of -quantity, then raise delivered_quantity. All items
  succeed or none do.
- Editing / deleting an approved challan reverses its deductions (positive
  SALE rows, so sold quantity nets out) inside the same atomic unit.
- Lock order: challan -> sales order -> batches (primary-key order).
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable, Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from products.models import Batch, InventoryTransaction
from products.services.exceptions import InsufficientStockError
from products.services.inventory import adjust_stock, lock_batches
from products.services.quantities import ZERO, positive_quantity
from sales.models import (
    DeliveryChallan,
    DeliveryChallanItem,
    SalesInvoiceItem,
    SalesOrder,
    SalesOrderItem,
    StockReservation,
)
from sales.services.order_lifecycle import DISPATCHABLE_STATES, OPEN_STATES, FulfillmentError
from sales.services.order_service import (
    lock_order,
    order_reserved_quantity,
    outstanding_quantity,
    settle_order_status,
    transition_order,
)
from sales.services.reservations import (
    _sync_reserved,
    consume_for_challan_item,
    hold_batch_ids,
)

logger = logging.getLogger(__name__)

Approval = DeliveryChallan.ApprovalStatus
TxType = InventoryTransaction.TransactionType
RefType = InventoryTransaction.ReferenceType

# ============================================================
# DOMAIN ERRORS
# ============================================================


class ChallanStateError(FulfillmentError):
    code = "challan_state_error"


class ChallanValidationError(FulfillmentError):
    code = "challan_validation_error"


# ============================================================
# HELPERS
# ============================================================

def lock_challan(challan) -> DeliveryChallan:
    challan_id = getattr(challan, "pk", challan)
    return DeliveryChallan.objects.select_for_update().get(pk=challan_id)


def _normalize_lines(items, *, order: Optional[SalesOrder]) -> list[dict]:
    if not items:
        raise ChallanValidationError("A delivery challan needs at least one item")

    lines = []
    for raw in items:
        batch = raw.get("batch")
        if batch is None:
            raise ChallanValidationError("Each challan item needs a batch")
        batch = Batch.objects.get(pk=getattr(batch, "pk", batch))

        soi = raw.get("sales_order_item")
        if soi is not None:
            soi = SalesOrderItem.objects.get(pk=getattr(soi, "pk", soi))

        if soi is not None:
            if order is None or soi.sales_order_id != order.pk:
                raise ChallanValidationError(
                    "Challan item references a line of a different sales order"
                )
            if soi.product_id != batch.product_id:
                raise ChallanValidationError(
                    f"Batch {batch.batch_number} does not hold the product of the order line"
                )

        lines.append(
            {
                "batch": batch,
                "sales_order_item": soi,
                "quantity": positive_quantity(raw.get("quantity")),
                "pack_size": raw.get("pack_size") or "",
                "number_of_packs": raw.get("number_of_packs"),
            }
        )
    return lines


def _validate_lines(lines, *, order, challan_date, exclude_challan=None) -> None:
    """
    - no expired batch (expiry_date <= challan_date)
    - per order line: quantity <= requested - delivered - other pending challans
    - per batch: quantity <= free stock + this order's own holds (soft check;
      the hard check happens at approval under lock)
    """
    per_soi = defaultdict(lambda: ZERO)
    per_batch = defaultdict(lambda: ZERO)

    for line in lines:
        batch = line["batch"]
        if batch.is_expired(challan_date):
            raise ChallanValidationError(
                f"Batch {batch.batch_number} expired on {batch.expiry_date}"
            )
        if line["sales_order_item"] is not None:
            per_soi[line["sales_order_item"]] += line["quantity"]
        per_batch[batch.pk] += line["quantity"]

    for soi, qty in per_soi.items():
        soi.refresh_from_db()
        outstanding = outstanding_quantity(soi, exclude_challan=exclude_challan)
        if qty > outstanding:
            raise ChallanValidationError(
                f"Only {outstanding} of {soi.product} remain to be delivered on this order; "
                f"{qty} requested"
            )

    for batch_id, qty in per_batch.items():
        batch = Batch.objects.get(pk=batch_id)
        own_holds = ZERO
        if order is not None:
            own_holds = sum(
                (
                    r.reserved_quantity
                    for r in StockReservation.objects.filter(
                        sales_order=order,
                        batch_id=batch_id,
                        status=StockReservation.Status.ACTIVE,
                    )
                ),
                ZERO,
            )
        available = batch.free_stock + own_holds
        if qty > available:
            raise InsufficientStockError(
                batch_id=batch.pk,
                batch_number=batch.batch_number,
                product_id=batch.product_id,
                requested=qty,
                available=available,
            )


def _write_items(challan: DeliveryChallan, lines) -> list[DeliveryChallanItem]:
    return [
        DeliveryChallanItem.objects.create(
            challan=challan,
            sales_order_item=line["sales_order_item"],
            product_id=line["batch"].product_id,
            batch=line["batch"],
            quantity=line["quantity"],
            pack_size=line["pack_size"],
            number_of_packs=line["number_of_packs"],
        )
        for line in lines
    ]


def _apply(challan: DeliveryChallan, *, user=None) -> None:
    """Dispatch every item: consume holds, deduct stock, raise delivered_quantity."""
    items = list(challan.items.select_related("batch", "sales_order_item").order_by("id"))
    lock_batches(
        {i.batch_id for i in items} | hold_batch_ids(i.sales_order_item_id for i in items)
    )

    for item in items:
        consume_for_challan_item(challan_item=item, user=user)

        if item.sales_order_item_id:
            soi = SalesOrderItem.objects.select_for_update().get(pk=item.sales_order_item_id)
            delivered = soi.delivered_quantity + item.quantity
            if delivered > soi.quantity:
                raise ChallanValidationError(
                    f"Dispatch would exceed the ordered quantity of {soi.product} "
                    f"({delivered} > {soi.quantity})"
                )
            soi.delivered_quantity = delivered
            soi.save(update_fields=["delivered_quantity"])


def _reverse(challan: DeliveryChallan, *, user=None) -> dict:
    """
    Undo an approved challan's deductions. Returns {(soi_id, batch_id): qty}
    of the reversed linked quantities.
    """
    items = list(challan.items.select_related("batch").order_by("id"))
    lock_batches(i.batch_id for i in items)

    reversed_qty = defaultdict(lambda: ZERO)
    for item in items:
        adjust_stock(
            batch=item.batch_id,
            quantity_delta=item.quantity,
            transaction_type=TxType.SALE,
            reference_type=RefType.CHALLAN_ITEM,
            reference_id=item.pk,
            user=user,
            notes=f"Reversal of delivery challan {challan.challan_number}",
        )
        if item.sales_order_item_id:
            soi = SalesOrderItem.objects.select_for_update().get(pk=item.sales_order_item_id)
            soi.delivered_quantity = max(soi.delivered_quantity - item.quantity, ZERO)
            soi.save(update_fields=["delivered_quantity"])
            reversed_qty[(soi.pk, item.batch_id)] += item.quantity
    return reversed_qty


def _restore_holds(order: Optional[SalesOrder], reversed_qty: dict, *, user=None) -> int:
    """
    Put reversed quantities back on hold for an open order, on the batch they
    came from, bounded by free stock and by what the line still needs.
    """
    if order is None or order.status not in OPEN_STATES | {SalesOrder.STATUS_DELIVERED}:
        return 0

    created = 0
    locked = lock_batches(batch_id for _, batch_id in reversed_qty)
    for (soi_id, batch_id), qty in reversed_qty.items():
        soi = SalesOrderItem.objects.get(pk=soi_id)
        batch = locked[batch_id]

        need = soi.quantity - soi.delivered_quantity - order_reserved_quantity(soi)
        take = min(qty, need, batch.free_stock)
        if take <= ZERO or batch.is_expired(timezone.localdate()):
            continue

        StockReservation.objects.create(
            sales_order=order,
            sales_order_item=soi,
            batch=batch,
            product_id=soi.product_id,
            reserved_quantity=take,
            reserved_by=user,
        )
        _sync_reserved(batch)
        batch.refresh_from_db()
        created += 1
    return created


def _blocking_references(challan: DeliveryChallan) -> list[str]:
    refs = []
    item_ids = list(challan.items.values_list("id", flat=True))
    if not item_ids:
        return refs
    if SalesInvoiceItem.objects.filter(challan_item_id__in=item_ids).exists():
        refs.append("sales_invoice_items")
    if DeliveryChallanItem.objects.filter(
        pk__in=item_ids, material_return_items__isnull=False
    ).exists():
        refs.append("material_return_items")
    return refs


# ============================================================
# CREATE
# ============================================================

@transaction.atomic
def create_challan(
    *,
    customer=None,
    items: Iterable,
    sales_order=None,
    challan_date=None,
    delivery_address: str = "",
    vehicle_number: str = "",
    driver_name: str = "",
    notes: str = "",
    user=None,
) -> DeliveryChallan:
    """
    Raise a pending challan (no stock effect). When linked to an order the
    order moves to pending_delivery.
    """
    order = None
    if sales_order is not None:
        order = lock_order(sales_order)
        if order.status not in DISPATCHABLE_STATES:
            raise ChallanStateError(
                f"Sales order {order.so_number} cannot be dispatched in status '{order.status}'"
            )
        if customer is None:
            customer = order.customer
        elif customer.pk != order.customer_id:
            raise ChallanValidationError("Challan customer differs from the sales order customer")

    if customer is None:
        raise ValidationError("customer is required")

    challan_date = challan_date or timezone.localdate()
    lines = _normalize_lines(items, order=order)
    _validate_lines(lines, order=order, challan_date=challan_date)

    challan = DeliveryChallan.objects.create(
        customer=customer,
        sales_order=order,
        challan_date=challan_date,
        delivery_address=delivery_address or "",
        vehicle_number=vehicle_number or "",
        driver_name=driver_name or "",
        notes=notes or "",
        created_by=user,
    )
    _write_items(challan, lines)

    if order is not None:
        transition_order(order, SalesOrder.STATUS_PENDING_DELIVERY)

    logger.info(
        "delivery challan created",
        extra={
            "challan_id": str(challan.pk),
            "challan_number": challan.challan_number,
            "sales_order_id": str(order.pk) if order else None,
            "items": len(lines),
        },
    )
    return challan


# ============================================================
# APPROVAL GATE
# ============================================================

@transaction.atomic
def approve_challan(*, challan, user=None) -> DeliveryChallan:
    """
    pending_approval -> approved. Performs the actual stock deduction.
    Raises InsufficientStockError (nothing applied) if any batch cannot cover
    its line at approval time.
    """
    locked = lock_challan(challan)
    if not locked.is_pending:
        raise ChallanStateError(
            f"Delivery challan {locked.challan_number} is already {locked.approval_status}"
        )

    order = lock_order(locked.sales_order_id) if locked.sales_order_id else None

    for item in locked.items.select_related("batch", "sales_order_item"):
        if item.batch.is_expired(locked.challan_date):
            raise ChallanValidationError(
                f"Batch {item.batch.batch_number} expired on {item.batch.expiry_date}"
            )
        if item.sales_order_item_id:
            outstanding = outstanding_quantity(item.sales_order_item, exclude_challan=locked)
            if item.quantity > outstanding:
                raise ChallanValidationError(
                    f"Only {outstanding} of {item.product} remain to be delivered; "
                    f"challan carries {item.quantity}"
                )

    _apply(locked, user=user)

    locked.approval_status = Approval.APPROVED
    locked.approved_by = user
    locked.approved_at = timezone.now()
    locked.save(update_fields=["approval_status", "approved_by", "approved_at", "updated_at"])

    if order is not None:
        settle_order_status(sales_order=order)

    logger.info(
        "delivery challan approved",
        extra={
            "challan_id": str(locked.pk),
            "challan_number": locked.challan_number,
            "sales_order_id": str(order.pk) if order else None,
        },
    )
    return locked


@transaction.atomic
def reject_challan(*, challan, reason: str = "", user=None) -> DeliveryChallan:
    """pending_approval -> rejected. No stock effect."""
    locked = lock_challan(challan)
    if not locked.is_pending:
        raise ChallanStateError(
            f"Only pending challans can be rejected; {locked.challan_number} is {locked.approval_status}"
        )

    locked.approval_status = Approval.REJECTED
    locked.rejection_reason = reason or ""
    locked.save(update_fields=["approval_status", "rejection_reason", "updated_at"])

    if locked.sales_order_id:
        settle_order_status(sales_order=lock_order(locked.sales_order_id))

    logger.info(
        "delivery challan rejected",
        extra={"challan_id": str(locked.pk), "challan_number": locked.challan_number},
    )
    return locked


# ============================================================
# EDIT / DELETE
# ============================================================

@transaction.atomic
def edit_challan(*, challan, items: Iterable, user=None, **fields) -> DeliveryChallan:
    """
    Replace a challan's items.

    pending  -> items are simply replaced (re-validated).
    approved -> reverse old deductions, replace, re-apply; the new quantities
                are checked against free stock plus what this challan had
                consumed, all inside one atomic unit.
    rejected -> not editable.
    """
    locked = lock_challan(challan)
    if locked.approval_status == Approval.REJECTED:
        raise ChallanStateError(f"Rejected challan {locked.challan_number} cannot be edited")

    order = lock_order(locked.sales_order_id) if locked.sales_order_id else None
    lines = _normalize_lines(items, order=order)

    for name in ("challan_date", "delivery_address", "vehicle_number", "driver_name", "notes"):
        if name in fields and fields[name] is not None:
            setattr(locked, name, fields[name])

    if locked.is_pending:
        _validate_lines(lines, order=order, challan_date=locked.challan_date, exclude_challan=locked)
        locked.items.all().delete()
        _write_items(locked, lines)
        locked.save()
        return locked

    refs = _blocking_references(locked)
    if refs:
        raise ChallanStateError(
            f"Delivery challan {locked.challan_number} is referenced by {', '.join(refs)}"
        )

    reversed_qty = _reverse(locked, user=user)
    # Delete the old rows through the queryset: instance save/delete guards
    # approved items.
    DeliveryChallanItem.objects.filter(challan=locked).delete()

    locked.approval_status = Approval.PENDING_APPROVAL
    locked.save()
    _validate_lines(lines, order=order, challan_date=locked.challan_date, exclude_challan=locked)
    _write_items(locked, lines)
    _apply(locked, user=user)
    locked.approval_status = Approval.APPROVED
    locked.save(update_fields=["approval_status", "updated_at"])

    if order is not None:
        _restore_holds(order, reversed_qty, user=user)
        settle_order_status(sales_order=order)

    logger.info(
        "approved delivery challan edited",
        extra={"challan_id": str(locked.pk), "challan_number": locked.challan_number},
    )
    return locked


@transaction.atomic
def delete_challan(*, challan, user=None) -> None:
    """
    pending / rejected -> deleted, no stock effect.
    approved           -> blocked when invoiced or returned; otherwise its
                          deductions are reversed and the order's holds are
                          restored before the rows go.
    """
    locked = lock_challan(challan)
    order = lock_order(locked.sales_order_id) if locked.sales_order_id else None
    challan_id, number = locked.pk, locked.challan_number

    reversed_qty = {}
    if locked.is_approved:
        refs = _blocking_references(locked)
        if refs:
            raise ChallanStateError(
                f"Delivery challan {number} is referenced by {', '.join(refs)}"
            )
        reversed_qty = _reverse(locked, user=user)

    DeliveryChallanItem.objects.filter(challan=locked).delete()
    locked.delete()

    if order is not None:
        if reversed_qty:
            _restore_holds(order, reversed_qty, user=user)
        settle_order_status(sales_order=order)

    logger.info(
        "delivery challan deleted",
        extra={
            "challan_id": str(challan_id),
            "challan_number": number,
            "reversed_lines": len(reversed_qty),
        },
    )
