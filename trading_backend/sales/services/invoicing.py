# sales/services/invoicing.py

"""
SALES INVOICING

Rules:
- Invoices bill approved challan items only; no stock effect.
- Per challan item: invoiced quantity (issued invoices) <= dispatched quantity.
- unit_cost_snapshot = landed cost per unit + container cost per unit,
  frozen at invoicing time.
- Cancelling an invoice frees its quantities for re-invoicing.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from products.services.landed_cost import full_unit_cost
from products.services.quantities import ZERO, money, positive_quantity, to_decimal
from sales.models import DeliveryChallan, DeliveryChallanItem, SalesInvoice, SalesInvoiceItem
from sales.services.order_lifecycle import FulfillmentError

logger = logging.getLogger(__name__)

# ============================================================
# DOMAIN ERRORS
# ============================================================


class InvoicingError(FulfillmentError):
    code = "invoicing_error"


# ============================================================
# HELPERS
# ============================================================

def invoiced_quantity(challan_item, *, exclude_invoice=None) -> Decimal:
    qs = SalesInvoiceItem.objects.filter(
        challan_item=challan_item,
        invoice__status=SalesInvoice.STATUS_ISSUED,
    )
    if exclude_invoice is not None:
        qs = qs.exclude(invoice=exclude_invoice)
    return qs.aggregate(total=Sum("quantity"))["total"] or ZERO


def uninvoiced_quantity(challan_item) -> Decimal:
    """Dispatched but not yet billed; read from the database, not the instance cache."""
    ci = DeliveryChallanItem.objects.get(pk=getattr(challan_item, "pk", challan_item))
    approved = DeliveryChallan.objects.filter(
        pk=ci.challan_id, approval_status=DeliveryChallan.ApprovalStatus.APPROVED
    ).exists()
    if not approved:
        return ZERO
    return ci.quantity - invoiced_quantity(ci)


# ============================================================
# SERVICES
# ============================================================

@transaction.atomic
def create_sales_invoice(
    *,
    customer,
    lines,
    tax_percent=ZERO,
    invoice_date=None,
    due_date=None,
    notes: str = "",
    user=None,
) -> SalesInvoice:
    """
    lines: iterable of {"challan_item", "unit_price", "quantity"?}; quantity
    defaults to whatever is still uninvoiced on the challan item.
    """
    lines = list(lines or [])
    if not lines:
        raise InvoicingError("An invoice needs at least one line")

    tax = to_decimal(tax_percent or ZERO, field_name="tax_percent")
    if tax < ZERO:
        raise InvoicingError("tax_percent cannot be negative")

    item_ids = sorted(
        {str(getattr(line["challan_item"], "pk", line["challan_item"])) for line in lines}
    )
    locked = {
        str(ci.pk): ci
        for ci in DeliveryChallanItem.objects.select_for_update()
        .select_related("challan", "batch", "product")
        .filter(pk__in=item_ids)
    }

    billed = defaultdict(lambda: ZERO)
    prepared = []
    for line in lines:
        key = str(getattr(line["challan_item"], "pk", line["challan_item"]))
        ci = locked.get(key)
        if ci is None:
            raise InvoicingError(f"Challan item {key} does not exist")
        if not ci.challan.is_approved:
            raise InvoicingError(
                f"Challan {ci.challan.challan_number} is not approved; nothing was dispatched"
            )
        if ci.challan.customer_id != customer.pk:
            raise InvoicingError(
                f"Challan {ci.challan.challan_number} belongs to a different customer"
            )

        remaining = ci.quantity - invoiced_quantity(ci) - billed[key]
        qty = line.get("quantity")
        qty = remaining if qty in (None, "") else positive_quantity(qty)
        if qty <= ZERO or qty > remaining:
            raise InvoicingError(
                f"Only {max(remaining, ZERO)} of challan item {ci.challan.challan_number}/"
                f"{ci.batch.batch_number} can still be invoiced; {qty} requested"
            )
        billed[key] += qty

        unit_price = money(line.get("unit_price") or ZERO)
        if unit_price < ZERO:
            raise InvoicingError("unit_price cannot be negative")
        prepared.append((ci, qty, unit_price))

    invoice = SalesInvoice.objects.create(
        customer=customer,
        invoice_date=invoice_date or timezone.localdate(),
        due_date=due_date,
        tax_percent=tax,
        notes=notes or "",
        created_by=user,
    )

    subtotal = ZERO
    for ci, qty, unit_price in prepared:
        line_total = money(qty * unit_price)
        SalesInvoiceItem.objects.create(
            invoice=invoice,
            challan_item=ci,
            product=ci.product,
            batch=ci.batch,
            quantity=qty,
            unit_price=unit_price,
            unit_cost_snapshot=full_unit_cost(ci.batch),
            line_total=line_total,
        )
        subtotal += line_total

    invoice.subtotal = money(subtotal)
    invoice.tax_amount = money(subtotal * tax / Decimal("100"))
    invoice.total_amount = money(invoice.subtotal + invoice.tax_amount)
    invoice.save(update_fields=["subtotal", "tax_amount", "total_amount", "updated_at"])

    logger.info(
        "sales invoice created",
        extra={
            "invoice_id": str(invoice.pk),
            "invoice_number": invoice.invoice_number,
            "lines": len(prepared),
            "total_amount": str(invoice.total_amount),
        },
    )
    return invoice


@transaction.atomic
def cancel_sales_invoice(*, invoice, user=None) -> SalesInvoice:
    locked = SalesInvoice.objects.select_for_update().get(pk=invoice.pk)
    if locked.status == SalesInvoice.STATUS_CANCELLED:
        raise InvoicingError(f"Invoice {locked.invoice_number} is already cancelled")

    locked.status = SalesInvoice.STATUS_CANCELLED
    locked.cancelled_at = timezone.now()
    locked.save(update_fields=["status", "cancelled_at", "updated_at"])

    logger.info(
        "sales invoice cancelled",
        extra={"invoice_id": str(locked.pk), "invoice_number": locked.invoice_number},
    )
    return locked
