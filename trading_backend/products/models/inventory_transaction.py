# products/models/inventory_transaction.py

"""
CANONICAL INVENTORY LEDGER

Immutable inventory ledger entry.

GUARANTEES:
- Append-only (no model-level updates, no deletes)
- Signed quantity: + adds to the batch, - removes from it
- Sum of a batch's transactions == Batch.current_stock
- A batch-bound entry must belong to the batch's product

The one sanctioned rewrite is the purchase row of a batch whose imported
quantity is edited; it goes through QuerySet.update() inside
products.services.inventory.edit_imported_quantity.
"""

import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from .batch import Batch
from .product import Product


class InventoryTransaction(models.Model):
    class TransactionType(models.TextChoices):
        PURCHASE = "purchase", "Purchase"
        SALE = "sale", "Sale"
        ADJUSTMENT = "adjustment", "Adjustment"

    class ReferenceType(models.TextChoices):
        BATCH = "batch", "Batch intake"
        CHALLAN_ITEM = "delivery_challan_item", "Delivery challan item"
        MATERIAL_RETURN = "material_return_item", "Material return item"
        STOCK_REJECTION = "stock_rejection", "Stock rejection"
        MANUAL = "manual", "Manual adjustment"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    product = models.ForeignKey(
        Product, on_delete=models.PROTECT, related_name="inventory_transactions"
    )
    batch = models.ForeignKey(
        Batch,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="transactions",
    )

    transaction_type = models.CharField(max_length=16, choices=TransactionType.choices)

    quantity = models.DecimalField(
        max_digits=14,
        decimal_places=3,
        help_text="Signed delta applied to the batch",
    )

    reference_type = models.CharField(
        max_length=32,
        choices=ReferenceType.choices,
        blank=True,
    )
    reference_id = models.UUIDField(null=True, blank=True)

    notes = models.TextField(blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="inventory_transactions",
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["batch", "created_at"], name="products_in_batch_i_3c8d21_idx"),
            models.Index(fields=["product", "created_at"], name="products_in_product_7e2a90_idx"),
            models.Index(fields=["transaction_type"], name="products_in_transac_b41f06_idx"),
            models.Index(fields=["reference_type", "reference_id"], name="products_in_referen_5d9c7b_idx"),
        ]

    def clean(self):
        if self.quantity is None or self.quantity == 0:
            raise ValidationError("quantity must be non-zero")

        if self.transaction_type == self.TransactionType.PURCHASE and self.quantity < 0:
            raise ValidationError("purchase transactions must be positive")

        if self.batch_id and self.product_id:
            batch_product_id = (
                Batch.objects.filter(id=self.batch_id).values_list("product_id", flat=True).first()
            )
            if batch_product_id and batch_product_id != self.product_id:
                raise ValidationError("Batch does not belong to product")

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValidationError("InventoryTransaction records are immutable")

        self.full_clean()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError(
            "InventoryTransaction records are immutable and cannot be deleted"
        )

    def __str__(self):
        product_name = getattr(self.product, "name", "Product")
        return f"{product_name} | {self.transaction_type} | {self.quantity}"
