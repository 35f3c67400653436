# sales/models/delivery_challan.py

"""
DELIVERY CHALLAN (DISPATCH NOTE)

Two-state approval gate: pending_approval -> approved | rejected.

GUARANTEES:
- A pending challan has ZERO stock effect.
- Stock leaves the batch ONLY when the challan is approved
  (sales/services/delivery.py), one SALE transaction per item.
- Items of an approved challan are immutable; an approved challan is edited
  only through the service that reverses and re-applies it atomically.
"""

import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone

from products.models import Batch, Product

from .customer import Customer
from .sales_order import SalesOrder, SalesOrderItem


class DeliveryChallan(models.Model):
    class ApprovalStatus(models.TextChoices):
        PENDING_APPROVAL = "pending_approval", "Pending approval"
        APPROVED = "approved", "Approved"
        REJECTED = "rejected", "Rejected"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    challan_number = models.CharField(max_length=64, unique=True, blank=True)

    customer = models.ForeignKey(
        Customer,
        on_delete=models.PROTECT,
        related_name="delivery_challans",
    )
    sales_order = models.ForeignKey(
        SalesOrder,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="challans",
    )

    challan_date = models.DateField(default=timezone.localdate)
    delivery_address = models.TextField(blank=True)
    vehicle_number = models.CharField(max_length=32, blank=True)
    driver_name = models.CharField(max_length=128, blank=True)
    notes = models.TextField(blank=True)

    approval_status = models.CharField(
        max_length=24,
        choices=ApprovalStatus.choices,
        default=ApprovalStatus.PENDING_APPROVAL,
    )
    rejection_reason = models.TextField(blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_challans",
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="approved_challans",
    )
    approved_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["approval_status"], name="sales_challan_status_idx"),
            models.Index(fields=["sales_order", "approval_status"], name="sales_challan_order_idx"),
        ]

    def save(self, *args, **kwargs):
        if not self.challan_number:
            prefix = timezone.now().strftime("DC%Y%m%d")
            self.challan_number = f"{prefix}-{uuid.uuid4().hex[:8].upper()}"
        super().save(*args, **kwargs)

    @property
    def is_approved(self) -> bool:
        return self.approval_status == self.ApprovalStatus.APPROVED

    @property
    def is_pending(self) -> bool:
        return self.approval_status == self.ApprovalStatus.PENDING_APPROVAL

    def __str__(self):
        return f"{self.challan_number} | {self.approval_status}"


class DeliveryChallanItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    challan = models.ForeignKey(
        DeliveryChallan,
        on_delete=models.CASCADE,
        related_name="items",
    )

    # Null for manual/unlinked dispatches.
    sales_order_item = models.ForeignKey(
        SalesOrderItem,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="challan_items",
    )

    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name="challan_items",
    )
    batch = models.ForeignKey(
        Batch,
        on_delete=models.PROTECT,
        related_name="challan_items",
    )

    quantity = models.DecimalField(max_digits=14, decimal_places=3)

    pack_size = models.CharField(max_length=64, blank=True)
    number_of_packs = models.PositiveIntegerField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["challan", "created_at", "id"]
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity__gt=0),
                name="chk_challan_item_qty_gt_zero",
            ),
        ]

    def clean(self):
        if self.quantity is None or self.quantity <= 0:
            raise ValidationError({"quantity": "quantity must be greater than zero"})
        if self.batch_id and self.product_id and self.batch.product_id != self.product_id:
            raise ValidationError({"batch": "Batch does not belong to product"})
        if self.sales_order_item_id and self.sales_order_item.product_id != self.product_id:
            raise ValidationError({"product": "Product differs from the sales order line"})

    def save(self, *args, **kwargs):
        if not self._state.adding and self.challan.is_approved:
            raise ValidationError("Items of an approved delivery challan are immutable")
        self.full_clean(validate_constraints=False)
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.challan_id} | {self.batch_id} x {self.quantity}"
