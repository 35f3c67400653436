# returns/models/stock_rejection.py

"""
STOCK REJECTION (PRE-DISPATCH QUALITY FAILURE)

Written off straight from a batch's current stock on approval
(one ADJUSTMENT transaction of -quantity).
"""

import uuid

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from products.models import Batch


class StockRejection(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending", "Pending approval"
        APPROVED = "approved", "Approved"
        REJECTED = "rejected", "Rejected"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    rejection_number = models.CharField(max_length=64, unique=True, blank=True)

    batch = models.ForeignKey(
        Batch,
        on_delete=models.CASCADE,
        related_name="stock_rejections",
    )

    quantity = models.DecimalField(max_digits=14, decimal_places=3)
    reason = models.TextField(blank=True)
    rejection_date = models.DateField(default=timezone.localdate)

    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    decision_notes = models.TextField(blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_stock_rejections",
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="approved_stock_rejections",
    )
    approved_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity__gt=0),
                name="chk_stock_rejection_qty_gt_zero",
            ),
        ]

    def save(self, *args, **kwargs):
        if not self.rejection_number:
            prefix = timezone.now().strftime("SR%Y%m%d")
            self.rejection_number = f"{prefix}-{uuid.uuid4().hex[:8].upper()}"
        super().save(*args, **kwargs)

    @property
    def is_pending(self) -> bool:
        return self.status == self.Status.PENDING

    def __str__(self):
        return f"{self.rejection_number} | {self.batch_id} x {self.quantity}"
