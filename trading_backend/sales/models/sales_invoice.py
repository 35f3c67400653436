# sales/models/sales_invoice.py

"""
SALES INVOICE

Bills quantities that already left the warehouse on approved challans.

GUARANTEES:
- No stock effect (the deduction happened at challan approval)
- Each line references exactly one approved challan item
- unit_cost_snapshot freezes landed + container cost per unit at invoicing
  time for margin display
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from products.models import Batch, Product

from .customer import Customer
from .delivery_challan import DeliveryChallanItem


class SalesInvoice(models.Model):
    STATUS_ISSUED = "issued"
    STATUS_CANCELLED = "cancelled"

    STATUS_CHOICES = [
        (STATUS_ISSUED, "Issued"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    invoice_number = models.CharField(max_length=64, unique=True, blank=True)

    customer = models.ForeignKey(
        Customer,
        on_delete=models.PROTECT,
        related_name="sales_invoices",
    )

    invoice_date = models.DateField(default=timezone.localdate)
    due_date = models.DateField(null=True, blank=True)

    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ISSUED)

    subtotal = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    tax_percent = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0.00"))
    tax_amount = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    total_amount = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))

    notes = models.TextField(blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sales_invoices",
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="sales_invoice_status_idx"),
            models.Index(fields=["customer", "invoice_date"], name="sales_invoice_cust_date_idx"),
        ]

    def save(self, *args, **kwargs):
        if not self.invoice_number:
            prefix = timezone.now().strftime("INV%Y%m%d")
            self.invoice_number = f"{prefix}-{uuid.uuid4().hex[:8].upper()}"
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.invoice_number} | {self.total_amount}"


class SalesInvoiceItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    invoice = models.ForeignKey(
        SalesInvoice,
        on_delete=models.CASCADE,
        related_name="items",
    )
    challan_item = models.ForeignKey(
        DeliveryChallanItem,
        on_delete=models.PROTECT,
        related_name="invoice_items",
    )
    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name="invoice_items",
    )
    batch = models.ForeignKey(
        Batch,
        on_delete=models.PROTECT,
        related_name="invoice_items",
    )

    quantity = models.DecimalField(max_digits=14, decimal_places=3)
    unit_price = models.DecimalField(max_digits=18, decimal_places=2)
    unit_cost_snapshot = models.DecimalField(
        max_digits=18,
        decimal_places=4,
        default=Decimal("0.0000"),
        help_text="Landed + container cost per unit at invoicing time",
    )
    line_total = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))

    class Meta:
        ordering = ["invoice", "id"]
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity__gt=0),
                name="chk_invoice_item_qty_gt_zero",
            ),
        ]

    @property
    def cost_total(self) -> Decimal:
        return (self.unit_cost_snapshot * self.quantity).quantize(Decimal("0.01"))

    @property
    def margin(self) -> Decimal:
        return self.line_total - self.cost_total

    def __str__(self):
        return f"{self.invoice_id} | {self.product_id} x {self.quantity}"
