# products/services/inventory.py

"""
======================================================
PATH: products/services/inventory.py
======================================================
BATCH LEDGER (INVENTORY CORE SERVICES)

Purpose:
- Canonical batch intake: create Batch + one PURCHASE transaction.
- Atomic stock adjustment with the reserved-stock guard.
- Imported-quantity edits that rewrite the purchase row and re-derive
  current_stock from the ledger.
- Guarded batch deletion.

Rules:
- Batch.current_stock is written ONLY here.
- Every write locks the batch row first (select_for_update) so concurrent
  adjustments on one batch serialize instead of racing.
- A negative delta may never cut into reserved stock:
  current_stock + delta >= reserved_stock.
- After any edit, current_stock is re-derived as SUM(transactions); the
  cached value is never trusted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Sum

from products.models import Batch, InventoryTransaction
from products.services.container_allocation import reallocate_container_costs
from products.services.exceptions import (
    BatchInUseError,
    DuplicateBatchNumberError,
    InsufficientStockError,
    QuantityBelowSoldError,
)
from products.services.landed_cost import apply_landed_cost
from products.services.quantities import ZERO, positive_quantity, to_quantity

logger = logging.getLogger(__name__)

TxType = InventoryTransaction.TransactionType
RefType = InventoryTransaction.ReferenceType

EDITABLE_BATCH_FIELDS = {
    "batch_number",
    "import_date",
    "expiry_date",
    "packaging_details",
    "import_container",
    "import_price_usd",
    "exchange_rate",
    "duty_percent",
    "freight_charge",
    "freight_charge_type",
    "other_charge",
    "other_charge_type",
    "imported_quantity",
}


@dataclass(frozen=True)
class AdjustmentResult:
    batch: Batch
    transaction: InventoryTransaction
    quantity_delta: Decimal


# ============================================================
# LOCKING / LEDGER READS
# ============================================================

def lock_batch(batch) -> Batch:
    if batch is None:
        raise ValidationError("batch is required")
    batch_id = getattr(batch, "pk", batch)
    return Batch.objects.select_for_update().select_related("product").get(pk=batch_id)


def lock_batches(batch_ids: Iterable) -> dict:
    """
    Lock several batches in primary-key order (deadlock-safe ordering) and
    return them keyed by id.
    """
    ids = sorted({getattr(b, "pk", b) for b in batch_ids}, key=str)
    locked = {}
    for batch_id in ids:
        batch = Batch.objects.select_for_update().select_related("product").get(pk=batch_id)
        locked[batch.pk] = batch
    return locked


def ledger_balance(batch) -> Decimal:
    batch_id = getattr(batch, "pk", batch)
    return (
        InventoryTransaction.objects.filter(batch_id=batch_id).aggregate(total=Sum("quantity"))["total"]
        or ZERO
    )


def sold_quantity(batch) -> Decimal:
    """Net quantity dispatched out of the batch (sale rows are negative, reversals positive)."""
    batch_id = getattr(batch, "pk", batch)
    net = (
        InventoryTransaction.objects.filter(
            batch_id=batch_id, transaction_type=TxType.SALE
        ).aggregate(total=Sum("quantity"))["total"]
        or ZERO
    )
    return max(-net, ZERO)


def _record(
    *,
    batch: Batch,
    quantity: Decimal,
    transaction_type: str,
    reference_type: str = "",
    reference_id=None,
    user=None,
    notes: str = "",
) -> InventoryTransaction:
    return InventoryTransaction.objects.create(
        product=batch.product,
        batch=batch,
        transaction_type=transaction_type,
        quantity=quantity,
        reference_type=reference_type or "",
        reference_id=reference_id,
        notes=notes or "",
        created_by=user,
    )


def _reallocate_container(container) -> None:
    if container is None:
        return
    reallocate_container_costs(container=container)


# ============================================================
# CREATE
# ============================================================

@transaction.atomic
def create_batch(
    *,
    product,
    batch_number: str,
    import_date,
    imported_quantity,
    expiry_date=None,
    import_price_usd=ZERO,
    exchange_rate=ZERO,
    duty_percent=None,
    freight_charge=ZERO,
    freight_charge_type: str = Batch.ChargeType.FIXED,
    other_charge=ZERO,
    other_charge_type: str = Batch.ChargeType.FIXED,
    import_container=None,
    packaging_details: str = "",
    user=None,
) -> Batch:
    """
    CANONICAL BATCH INTAKE

    Creates:
    - Batch (current_stock = imported_quantity, landed cost derived)
    - PURCHASE InventoryTransaction for the full quantity
    """
    if product is None:
        raise ValidationError("product is required")
    if not product.is_active:
        raise ValidationError("Cannot import into an inactive product")

    bn = (batch_number or "").strip()
    if not bn:
        raise ValidationError("batch_number is required")
    if not import_date:
        raise ValidationError("import_date is required")

    qty = positive_quantity(imported_quantity, field_name="imported_quantity")

    if Batch.objects.filter(batch_number=bn).exists():
        raise DuplicateBatchNumberError(bn)

    batch = Batch(
        product=product,
        batch_number=bn,
        import_date=import_date,
        expiry_date=expiry_date or None,
        packaging_details=packaging_details or "",
        imported_quantity=qty,
        current_stock=qty,
        reserved_stock=ZERO,
        import_price_usd=import_price_usd or ZERO,
        exchange_rate=exchange_rate or ZERO,
        duty_percent=product.default_duty_percent if duty_percent is None else duty_percent,
        freight_charge=freight_charge or ZERO,
        freight_charge_type=freight_charge_type,
        other_charge=other_charge or ZERO,
        other_charge_type=other_charge_type,
        import_container=import_container,
        created_by=user,
    )
    apply_landed_cost(batch)

    try:
        with transaction.atomic():
            batch.save()
    except IntegrityError as exc:
        raise DuplicateBatchNumberError(bn) from exc

    _record(
        batch=batch,
        quantity=qty,
        transaction_type=TxType.PURCHASE,
        reference_type=RefType.BATCH,
        reference_id=batch.pk,
        user=user,
        notes="Initial import",
    )

    _reallocate_container(import_container)

    logger.info(
        "batch created",
        extra={
            "batch_id": str(batch.pk),
            "batch_number": bn,
            "product_id": str(product.pk),
            "quantity": str(qty),
        },
    )
    return batch


# ============================================================
# ADJUST
# ============================================================

@transaction.atomic
def adjust_stock(
    *,
    batch,
    quantity_delta,
    transaction_type: str = TxType.ADJUSTMENT,
    reference_type: str = "",
    reference_id=None,
    user=None,
    notes: str = "",
) -> AdjustmentResult:
    """
    Apply a signed delta to a batch as ONE atomic unit:
    lock row -> check reserved guard -> write transaction -> update current_stock.

    quantity_delta:
      +N -> adds to current_stock
      -N -> removes from current_stock (never below reserved_stock)
    """
    delta = to_quantity(quantity_delta, field_name="quantity_delta")
    if delta == ZERO:
        raise ValidationError("quantity_delta cannot be 0")

    if transaction_type not in TxType.values:
        raise ValidationError(f"Unknown transaction_type {transaction_type!r}")
    if transaction_type == TxType.PURCHASE and delta < ZERO:
        raise ValidationError("purchase adjustments must be positive")

    locked = lock_batch(batch)
    current = locked.current_stock
    new_stock = current + delta

    if delta < ZERO and new_stock < locked.reserved_stock:
        logger.warning(
            "stock deduction refused",
            extra={
                "batch_id": str(locked.pk),
                "batch_number": locked.batch_number,
                "delta": str(delta),
                "current_stock": str(current),
                "reserved_stock": str(locked.reserved_stock),
            },
        )
        raise InsufficientStockError(
            batch_id=locked.pk,
            batch_number=locked.batch_number,
            product_id=locked.product_id,
            requested=-delta,
            available=locked.free_stock,
        )

    tx = _record(
        batch=locked,
        quantity=delta,
        transaction_type=transaction_type,
        reference_type=reference_type,
        reference_id=reference_id,
        user=user,
        notes=notes,
    )

    locked.current_stock = new_stock
    locked.save(update_fields=["current_stock", "updated_at"])

    logger.info(
        "stock adjusted",
        extra={
            "batch_id": str(locked.pk),
            "batch_number": locked.batch_number,
            "delta": str(delta),
            "transaction_type": transaction_type,
            "reference_type": reference_type,
            "reference_id": str(reference_id) if reference_id else None,
        },
    )

    return AdjustmentResult(batch=locked, transaction=tx, quantity_delta=delta)


# ============================================================
# EDIT
# ============================================================

@transaction.atomic
def recompute_current_stock(*, batch) -> Batch:
    """Re-derive current_stock from the ledger (SUM of transactions)."""
    locked = lock_batch(batch)
    balance = ledger_balance(locked)

    if locked.reserved_stock > balance:
        raise InsufficientStockError(
            batch_id=locked.pk,
            batch_number=locked.batch_number,
            product_id=locked.product_id,
            requested=locked.reserved_stock,
            available=balance,
        )

    if balance != locked.current_stock:
        logger.warning(
            "current_stock drift corrected",
            extra={
                "batch_id": str(locked.pk),
                "cached": str(locked.current_stock),
                "ledger": str(balance),
            },
        )
        locked.current_stock = balance
        locked.save(update_fields=["current_stock", "updated_at"])

    return locked


@transaction.atomic
def edit_imported_quantity(*, batch, new_quantity, user=None) -> Batch:
    """
    Change a batch's imported quantity after the fact.

    - new_quantity < sold -> QuantityBelowSoldError
    - the PURCHASE row is rewritten by the delta
    - current_stock is re-derived from the ledger
    """
    locked = lock_batch(batch)
    new_qty = positive_quantity(new_quantity, field_name="imported_quantity")

    sold = sold_quantity(locked)
    if new_qty < sold:
        raise QuantityBelowSoldError(
            batch_number=locked.batch_number, sold=sold, requested=new_qty
        )

    delta = new_qty - locked.imported_quantity
    if delta == ZERO:
        return locked

    purchase = (
        InventoryTransaction.objects.filter(batch=locked, transaction_type=TxType.PURCHASE)
        .order_by("created_at", "id")
        .first()
    )
    if purchase is None:
        raise ValidationError(
            f"Batch {locked.batch_number} has no purchase transaction; run reconcile_batch_stock first."
        )
    if purchase.quantity + delta <= ZERO:
        raise ValidationError("Edited purchase quantity must stay above zero")

    # The single sanctioned rewrite of a ledger row.
    InventoryTransaction.objects.filter(pk=purchase.pk).update(quantity=purchase.quantity + delta)

    balance = ledger_balance(locked)
    if locked.reserved_stock > balance:
        raise InsufficientStockError(
            batch_id=locked.pk,
            batch_number=locked.batch_number,
            product_id=locked.product_id,
            requested=locked.reserved_stock,
            available=balance,
        )

    locked.imported_quantity = new_qty
    locked.current_stock = balance
    apply_landed_cost(locked)
    locked.save()

    _reallocate_container(locked.import_container)

    logger.info(
        "imported quantity edited",
        extra={
            "batch_id": str(locked.pk),
            "batch_number": locked.batch_number,
            "delta": str(delta),
            "sold": str(sold),
            "current_stock": str(balance),
        },
    )
    return locked


@transaction.atomic
def edit_batch(*, batch, user=None, **fields) -> Batch:
    """
    Edit batch metadata + cost inputs (+ imported quantity) atomically.
    Landed cost is always re-derived; container overhead is reallocated
    for both the old and the new container when the link changes.
    """
    unknown = set(fields) - EDITABLE_BATCH_FIELDS
    if unknown:
        raise ValidationError(f"Fields not editable on a batch: {sorted(unknown)}")

    new_quantity = fields.pop("imported_quantity", None)
    if new_quantity is not None:
        edit_imported_quantity(batch=batch, new_quantity=new_quantity, user=user)

    locked = lock_batch(batch)
    old_container = locked.import_container

    if "batch_number" in fields:
        bn = (fields["batch_number"] or "").strip()
        if not bn:
            raise ValidationError("batch_number is required")
        if Batch.objects.filter(batch_number=bn).exclude(pk=locked.pk).exists():
            raise DuplicateBatchNumberError(bn)
        fields["batch_number"] = bn

    for name, value in fields.items():
        setattr(locked, name, value)

    if locked.import_container is None:
        locked.import_cost_allocated = ZERO

    apply_landed_cost(locked)

    try:
        with transaction.atomic():
            locked.save()
    except IntegrityError as exc:
        raise DuplicateBatchNumberError(locked.batch_number) from exc

    new_container = locked.import_container
    if old_container is not None and old_container != new_container:
        _reallocate_container(old_container)
    _reallocate_container(new_container)

    locked.refresh_from_db()

    edited = sorted(fields)
    if new_quantity is not None:
        edited.append("imported_quantity")
    logger.info("batch edited", extra={"batch_id": str(locked.pk), "fields": edited})
    return locked


# ============================================================
# DELETE
# ============================================================

def batch_references(batch: Batch) -> list[str]:
    """Names of the documents that block deleting this batch."""
    refs = []
    if batch.invoice_items.exists():
        refs.append("sales_invoice_items")
    if batch.challan_items.exists():
        refs.append("delivery_challan_items")
    if batch.reservations.filter(status="active").exists():
        refs.append("active_reservations")
    return refs


@transaction.atomic
def delete_batch(*, batch, user=None) -> None:
    locked = lock_batch(batch)

    refs = batch_references(locked)
    if refs:
        raise BatchInUseError(batch_number=locked.batch_number, references=refs)

    container: Optional[object] = locked.import_container
    batch_id, batch_number = locked.pk, locked.batch_number

    # Transactions, released reservations and stock rejections cascade.
    locked.delete()

    _reallocate_container(container)

    logger.info(
        "batch deleted",
        extra={
            "batch_id": str(batch_id),
            "batch_number": batch_number,
            "user_id": str(getattr(user, "pk", "")) or None,
        },
    )
