# returns/services/reconciler.py

"""
======================================================
PATH: returns/services/reconciler.py
======================================================
RETURN / REJECTION RECONCILER

Purpose:
- Material returns: credit stock back (restock) or book the loss
  (scrap / return_to_supplier) for goods that already left on a challan.
- Stock rejections: write quality failures off a batch before dispatch.

Rules:
- Only approval has a stock effect; create / reject never touch batches.
- Every stock effect goes through the batch ledger (adjust_stock, type
  ADJUSTMENT) so SUM(transactions) == current_stock keeps holding.
- A rejection can never cut into reserved stock (ledger guard) nor exceed
  current stock.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from products.models import InventoryTransaction
from products.services.exceptions import InsufficientStockError
from products.services.inventory import adjust_stock, lock_batch, lock_batches
from products.services.landed_cost import full_unit_cost
from products.services.quantities import ZERO, money, positive_quantity
from returns.models import MaterialReturn, MaterialReturnItem, StockRejection
from sales.models import DeliveryChallanItem

logger = logging.getLogger(__name__)

TxType = InventoryTransaction.TransactionType
RefType = InventoryTransaction.ReferenceType
Disposition = MaterialReturnItem.Disposition

# ============================================================
# DOMAIN ERRORS
# ============================================================


class ReturnError(Exception):
    """Base exception for returns / rejections workflow failures."""

    code = "return_error"

    def context(self) -> dict:
        return {}


class ReturnStateError(ReturnError):
    code = "return_state_error"


class ReturnValidationError(ReturnError):
    code = "return_validation_error"


# ============================================================
# HELPERS
# ============================================================

def returned_quantity(challan_item, *, exclude_return=None) -> Decimal:
    """Quantity already claimed back on pending or approved returns."""
    qs = MaterialReturnItem.objects.filter(challan_item=challan_item).exclude(
        material_return__status=MaterialReturn.Status.REJECTED
    )
    if exclude_return is not None:
        qs = qs.exclude(material_return=exclude_return)
    return qs.aggregate(total=Sum("quantity"))["total"] or ZERO


def _check_returnable(lines, *, customer, exclude_return=None) -> None:
    claimed = defaultdict(lambda: ZERO)
    for ci, qty in lines:
        if not ci.challan.is_approved:
            raise ReturnValidationError(
                f"Challan {ci.challan.challan_number} is not approved; nothing was dispatched"
            )
        if ci.challan.customer_id != customer.pk:
            raise ReturnValidationError(
                f"Challan {ci.challan.challan_number} belongs to a different customer"
            )
        claimed[ci.pk] += qty
        returnable = ci.quantity - returned_quantity(ci, exclude_return=exclude_return)
        if claimed[ci.pk] > returnable:
            raise ReturnValidationError(
                f"Only {max(returnable, ZERO)} of {ci.batch.batch_number} on challan "
                f"{ci.challan.challan_number} can be returned; {claimed[ci.pk]} requested"
            )


# ============================================================
# MATERIAL RETURNS
# ============================================================

@transaction.atomic
def create_material_return(
    *,
    customer,
    lines,
    return_date=None,
    reason: str = "",
    user=None,
) -> MaterialReturn:
    """lines: iterable of {"challan_item", "quantity", "disposition", "notes"?}."""
    lines = list(lines or [])
    if not lines:
        raise ReturnValidationError("A material return needs at least one item")

    prepared = []
    for line in lines:
        ci = line.get("challan_item")
        if ci is None:
            raise ReturnValidationError("Each return item needs a challan item")
        if not isinstance(ci, DeliveryChallanItem):
            ci = DeliveryChallanItem.objects.select_related("challan", "batch").get(pk=ci)
        disposition = line.get("disposition") or Disposition.RESTOCK
        if disposition not in Disposition.values:
            raise ReturnValidationError(f"Unknown disposition {disposition!r}")
        prepared.append((ci, positive_quantity(line.get("quantity")), disposition, line.get("notes") or ""))

    _check_returnable([(ci, qty) for ci, qty, _, _ in prepared], customer=customer)

    mr = MaterialReturn.objects.create(
        customer=customer,
        return_date=return_date or timezone.localdate(),
        reason=reason or "",
        created_by=user,
    )
    for ci, qty, disposition, notes in prepared:
        MaterialReturnItem.objects.create(
            material_return=mr,
            challan_item=ci,
            product_id=ci.product_id,
            batch_id=ci.batch_id,
            quantity=qty,
            disposition=disposition,
            notes=notes,
        )

    logger.info(
        "material return created",
        extra={"material_return_id": str(mr.pk), "return_number": mr.return_number},
    )
    return mr


@transaction.atomic
def approve_material_return(*, material_return, user=None) -> MaterialReturn:
    """
    Restock items credit the batch (+quantity, ADJUSTMENT); the other
    dispositions book quantity x (landed + container cost per unit) as loss.
    """
    locked = MaterialReturn.objects.select_for_update().get(pk=material_return.pk)
    if not locked.is_pending:
        raise ReturnStateError(f"Material return {locked.return_number} is already {locked.status}")

    items = list(locked.items.select_related("challan_item__challan", "batch").order_by("id"))
    _check_returnable(
        [(i.challan_item, i.quantity) for i in items],
        customer=locked.customer,
        exclude_return=locked,
    )

    lock_batches({i.batch_id for i in items if i.disposition == Disposition.RESTOCK})

    total_loss = ZERO
    for item in items:
        if item.disposition == Disposition.RESTOCK:
            adjust_stock(
                batch=item.batch_id,
                quantity_delta=item.quantity,
                transaction_type=TxType.ADJUSTMENT,
                reference_type=RefType.MATERIAL_RETURN,
                reference_id=item.pk,
                user=user,
                notes=f"Material return {locked.return_number}",
            )
            loss = ZERO
        else:
            loss = money(item.quantity * full_unit_cost(item.batch))

        MaterialReturnItem.objects.filter(pk=item.pk).update(financial_loss=money(loss))
        total_loss += loss

    locked.status = MaterialReturn.Status.APPROVED
    locked.total_loss = money(total_loss)
    locked.approved_by = user
    locked.approved_at = timezone.now()
    locked.save(update_fields=["status", "total_loss", "approved_by", "approved_at", "updated_at"])

    logger.info(
        "material return approved",
        extra={
            "material_return_id": str(locked.pk),
            "return_number": locked.return_number,
            "total_loss": str(locked.total_loss),
        },
    )
    return locked


@transaction.atomic
def reject_material_return(*, material_return, reason: str = "", user=None) -> MaterialReturn:
    locked = MaterialReturn.objects.select_for_update().get(pk=material_return.pk)
    if not locked.is_pending:
        raise ReturnStateError(f"Material return {locked.return_number} is already {locked.status}")
    locked.status = MaterialReturn.Status.REJECTED
    locked.rejection_reason = reason or ""
    locked.save(update_fields=["status", "rejection_reason", "updated_at"])
    return locked


# ============================================================
# STOCK REJECTIONS
# ============================================================

@transaction.atomic
def create_stock_rejection(*, batch, quantity, reason: str = "", rejection_date=None, user=None) -> StockRejection:
    if batch is None:
        raise ValidationError("batch is required")
    qty = positive_quantity(quantity)
    if qty > batch.current_stock:
        raise InsufficientStockError(
            batch_id=batch.pk,
            batch_number=batch.batch_number,
            product_id=batch.product_id,
            requested=qty,
            available=batch.current_stock,
        )
    return StockRejection.objects.create(
        batch=batch,
        quantity=qty,
        reason=reason or "",
        rejection_date=rejection_date or timezone.localdate(),
        created_by=user,
    )


@transaction.atomic
def approve_stock_rejection(*, rejection, user=None) -> StockRejection:
    """Deduct the rejected quantity (-quantity, ADJUSTMENT) from the batch."""
    locked = StockRejection.objects.select_for_update().get(pk=rejection.pk)
    if not locked.is_pending:
        raise ReturnStateError(f"Stock rejection {locked.rejection_number} is already {locked.status}")

    batch = lock_batch(locked.batch_id)
    if locked.quantity > batch.current_stock:
        raise InsufficientStockError(
            batch_id=batch.pk,
            batch_number=batch.batch_number,
            product_id=batch.product_id,
            requested=locked.quantity,
            available=batch.current_stock,
        )

    adjust_stock(
        batch=batch,
        quantity_delta=-locked.quantity,
        transaction_type=TxType.ADJUSTMENT,
        reference_type=RefType.STOCK_REJECTION,
        reference_id=locked.pk,
        user=user,
        notes=f"Stock rejection {locked.rejection_number}: {locked.reason}",
    )

    locked.status = StockRejection.Status.APPROVED
    locked.approved_by = user
    locked.approved_at = timezone.now()
    locked.save(update_fields=["status", "approved_by", "approved_at", "updated_at"])

    logger.info(
        "stock rejection approved",
        extra={
            "rejection_id": str(locked.pk),
            "batch_id": str(batch.pk),
            "quantity": str(locked.quantity),
        },
    )
    return locked


@transaction.atomic
def reject_stock_rejection(*, rejection, reason: str = "", user=None) -> StockRejection:
    locked = StockRejection.objects.select_for_update().get(pk=rejection.pk)
    if not locked.is_pending:
        raise ReturnStateError(f"Stock rejection {locked.rejection_number} is already {locked.status}")
    locked.status = StockRejection.Status.REJECTED
    locked.decision_notes = reason or ""
    locked.save(update_fields=["status", "decision_notes", "updated_at"])
    return locked
