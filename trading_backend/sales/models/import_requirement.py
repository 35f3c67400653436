# sales/models/import_requirement.py

"""
IMPORT REQUIREMENT

Procurement-facing record produced when order allocation detects a shortage.
Informational only: never holds or moves stock.

One PENDING row per (sales order, product); re-detection updates it.
"""

import uuid
from decimal import Decimal

from django.db import models
from django.db.models import Q

from products.models import Product

from .sales_order import SalesOrder


class ImportRequirement(models.Model):
    class Priority(models.TextChoices):
        HIGH = "high", "High"
        MEDIUM = "medium", "Medium"
        LOW = "low", "Low"

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        ORDERED = "ordered", "Ordered from supplier"
        RECEIVED = "received", "Received"
        RESOLVED = "resolved", "Resolved by allocation"
        CANCELLED = "cancelled", "Cancelled"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    sales_order = models.ForeignKey(
        SalesOrder,
        on_delete=models.CASCADE,
        related_name="import_requirements",
    )
    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name="import_requirements",
    )

    required_quantity = models.DecimalField(max_digits=14, decimal_places=3)
    available_quantity = models.DecimalField(
        max_digits=14, decimal_places=3, default=Decimal("0")
    )
    shortage_quantity = models.DecimalField(max_digits=14, decimal_places=3)

    required_by = models.DateField(null=True, blank=True)

    priority = models.CharField(
        max_length=8,
        choices=Priority.choices,
        default=Priority.MEDIUM,
    )
    status = models.CharField(
        max_length=16,
        choices=Status.choices,
        default=Status.PENDING,
    )

    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["sales_order", "product"],
                condition=Q(status="pending"),
                name="uniq_pending_import_requirement_per_order_product",
            ),
        ]

    def __str__(self):
        return f"{self.product_id} short {self.shortage_quantity} ({self.priority}, {self.status})"
