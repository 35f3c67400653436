# products/models/product.py

import uuid
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Sum


class Product(models.Model):
    """
    Represents a traded product (chemical, ingredient, packaged good).

    STOCK MODEL (IMPORTANT):
    - Product itself does NOT store stock
    - Stock lives in Batch (one row per import lot)
    - unit and default_duty_percent freeze once any batch references the product
    - Products are soft-deactivated, never deleted while referenced
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    product_code = models.CharField(max_length=64, unique=True, db_index=True)
    name = models.CharField(max_length=255, db_index=True)

    unit = models.CharField(
        max_length=16,
        default="kg",
        help_text="Unit of measure for every quantity on this product (kg, liter, pcs...)",
    )

    default_duty_percent = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Import duty percent copied onto new batches.",
    )

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.product_code})"

    def clean(self):
        if not (self.unit or "").strip():
            raise ValidationError({"unit": "unit is required"})

        if self.default_duty_percent is None or self.default_duty_percent < 0:
            raise ValidationError(
                {"default_duty_percent": "default_duty_percent cannot be negative"}
            )

    def save(self, *args, **kwargs):
        if not self._state.adding and self.batches.exists():
            original = Product.objects.only("unit", "default_duty_percent").get(pk=self.pk)
            if self.unit != original.unit:
                raise ValidationError({"unit": "unit is immutable once batches exist"})
            if self.default_duty_percent != original.default_duty_percent:
                raise ValidationError(
                    {"default_duty_percent": "default_duty_percent is immutable once batches exist"}
                )

        self.full_clean()
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        if self.batches.exists():
            raise ValidationError(
                "Cannot delete Product: batches reference it. Deactivate it instead."
            )
        return super().delete(*args, **kwargs)

    @property
    def total_stock(self) -> Decimal:
        return (
            self.batches.filter(is_active=True).aggregate(total=Sum("current_stock"))["total"]
            or Decimal("0")
        )

    @property
    def free_stock(self) -> Decimal:
        agg = self.batches.filter(is_active=True).aggregate(
            current=Sum("current_stock"), reserved=Sum("reserved_stock")
        )
        return (agg["current"] or Decimal("0")) - (agg["reserved"] or Decimal("0"))
