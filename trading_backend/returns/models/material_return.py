# returns/models/material_return.py

"""
MATERIAL RETURN (POST-DISPATCH)

Goods coming back from a customer against approved challan items.

GUARANTEES:
- Stock effect only on approval, and only for the RESTOCK disposition
  (one ADJUSTMENT transaction of +quantity per item).
- SCRAP / RETURN_TO_SUPPLIER record a financial loss, stock untouched.
- Returned quantity per challan item never exceeds what was dispatched
  (enforced by returns/services/reconciler.py).
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone

from products.models import Batch, Product
from sales.models import Customer, DeliveryChallanItem


class MaterialReturn(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending approval"
        APPROVED = "approved", "Approved"
        REJECTED = "rejected", "Rejected"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    return_number = models.CharField(max_length=64, unique=True, blank=True)

    customer = models.ForeignKey(
        Customer,
        on_delete=models.PROTECT,
        related_name="material_returns",
    )

    return_date = models.DateField(default=timezone.localdate)
    reason = models.TextField(blank=True)

    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    rejection_reason = models.TextField(blank=True)

    total_loss = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_material_returns",
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="approved_material_returns",
    )
    approved_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["status"], name="returns_mr_status_idx")]

    def save(self, *args, **kwargs):
        if not self.return_number:
            prefix = timezone.now().strftime("MR%Y%m%d")
            self.return_number = f"{prefix}-{uuid.uuid4().hex[:8].upper()}"
        super().save(*args, **kwargs)

    @property
    def is_pending(self) -> bool:
        return self.status == self.Status.PENDING

    def __str__(self):
        return f"{self.return_number} | {self.status}"


class MaterialReturnItem(models.Model):
    class Disposition(models.TextChoices):
        RESTOCK = "restock", "Restock"
        SCRAP = "scrap", "Scrap"
        RETURN_TO_SUPPLIER = "return_to_supplier", "Return to supplier"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    material_return = models.ForeignKey(
        MaterialReturn,
        on_delete=models.CASCADE,
        related_name="items",
    )
    challan_item = models.ForeignKey(
        DeliveryChallanItem,
        on_delete=models.PROTECT,
        related_name="material_return_items",
    )
    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name="material_return_items",
    )
    batch = models.ForeignKey(
        Batch,
        on_delete=models.PROTECT,
        related_name="material_return_items",
    )

    quantity = models.DecimalField(max_digits=14, decimal_places=3)
    disposition = models.CharField(
        max_length=24,
        choices=Disposition.choices,
        default=Disposition.RESTOCK,
    )
    financial_loss = models.DecimalField(max_digits=18, decimal_places=2, default=Decimal("0.00"))
    notes = models.CharField(max_length=255, blank=True)

    class Meta:
        ordering = ["material_return", "id"]
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity__gt=0),
                name="chk_return_item_qty_gt_zero",
            ),
        ]

    def clean(self):
        if self.quantity is None or self.quantity <= 0:
            raise ValidationError({"quantity": "quantity must be greater than zero"})
        if self.challan_item_id and self.batch_id and self.challan_item.batch_id != self.batch_id:
            raise ValidationError({"batch": "Batch differs from the dispatched challan item"})

    def save(self, *args, **kwargs):
        self.full_clean(validate_constraints=False)
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.material_return_id} | {self.batch_id} x {self.quantity} ({self.disposition})"
