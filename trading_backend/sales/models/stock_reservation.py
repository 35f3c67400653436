# sales/models/stock_reservation.py

"""
STOCK RESERVATION

A non-destructive hold on one batch for one sales-order line.

GUARANTEES:
- Never mutates Batch.current_stock
- Batch.reserved_stock == SUM(active reservations) (kept in sync by
  sales/services/reservations.py, the only writer)
- Released rows are kept for audit (reason + timestamp)
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q

from products.models import Batch, Product

from .sales_order import SalesOrder, SalesOrderItem


class StockReservation(models.Model):
    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        RELEASED = "released", "Released"

    class ReleaseReason(models.TextChoices):
        CONSUMED = "consumed", "Consumed by delivery"
        FULFILLED = "fulfilled", "Order fully delivered"
        REALLOCATED = "reallocated", "Re-derived by allocation"
        CANCELLED = "cancelled", "Order cancelled"
        REJECTED = "rejected", "Order rejected"
        MANUAL = "manual", "Released manually"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    sales_order = models.ForeignKey(
        SalesOrder,
        on_delete=models.CASCADE,
        related_name="reservations",
    )
    sales_order_item = models.ForeignKey(
        SalesOrderItem,
        on_delete=models.CASCADE,
        related_name="reservations",
    )
    batch = models.ForeignKey(
        Batch,
        on_delete=models.CASCADE,
        related_name="reservations",
    )
    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name="reservations",
    )

    reserved_quantity = models.DecimalField(max_digits=14, decimal_places=3)

    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.ACTIVE,
    )
    release_reason = models.CharField(
        max_length=32,
        choices=ReleaseReason.choices,
        blank=True,
    )

    reserved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    reserved_at = models.DateTimeField(auto_now_add=True)
    released_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["reserved_at", "id"]
        indexes = [
            models.Index(fields=["batch", "status"], name="sales_reservation_batch_idx"),
            models.Index(fields=["sales_order", "status"], name="sales_reservation_order_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(reserved_quantity__gte=0),
                name="chk_reservation_qty_gte_zero",
            ),
            models.CheckConstraint(
                condition=Q(status="released") | Q(reserved_quantity__gt=0),
                name="chk_active_reservation_qty_gt_zero",
            ),
        ]

    def clean(self):
        if self.reserved_quantity is None or self.reserved_quantity < 0:
            raise ValidationError({"reserved_quantity": "reserved_quantity cannot be negative"})
        if self.status == self.Status.ACTIVE and self.reserved_quantity == Decimal("0"):
            raise ValidationError({"reserved_quantity": "active reservation must hold stock"})
        if self.status == self.Status.RELEASED and not self.release_reason:
            raise ValidationError({"release_reason": "released reservation needs a reason"})

    def save(self, *args, **kwargs):
        self.full_clean(validate_constraints=False)
        super().save(*args, **kwargs)

    @property
    def is_active(self) -> bool:
        return self.status == self.Status.ACTIVE

    def __str__(self):
        return f"{self.sales_order_id} | {self.batch_id} | {self.reserved_quantity} ({self.status})"
