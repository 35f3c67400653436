# products/models/batch.py

"""
BATCH (IMPORT LOT)

Represents ONE import lot of a product with its own cost basis and expiry.

CANONICAL MODEL:
- batch_number is globally unique
- current_stock is mutated ONLY by the batch ledger (products/services/inventory.py)
- reserved_stock is mutated ONLY by the reservation manager (sales/services/reservations.py)
- reserved_stock <= current_stock ALWAYS (DB constraint + model validation)
- is_active is ALWAYS derived from current_stock (exhausted lots are archived)
- cost outputs (import_price_local ... landed_cost_per_unit) are derived by
  products/services/landed_cost.py, never typed in
"""

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import F, Q

from .import_container import ImportContainer
from .product import Product


def _qty_field(**kwargs):
    return models.DecimalField(max_digits=14, decimal_places=3, **kwargs)


def _money_field(**kwargs):
    return models.DecimalField(max_digits=18, decimal_places=2, **kwargs)


class Batch(models.Model):
    class ChargeType(models.TextChoices):
        PERCENTAGE = "percentage", "Percentage of import price"
        FIXED = "fixed", "Fixed amount"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name="batches",
    )

    batch_number = models.CharField(max_length=128, unique=True)

    import_date = models.DateField()
    expiry_date = models.DateField(null=True, blank=True)

    packaging_details = models.CharField(max_length=255, blank=True)

    # -------------------------------------------------
    # QUANTITIES
    # -------------------------------------------------
    imported_quantity = _qty_field(help_text="Quantity imported (ledger-edited only)")
    current_stock = _qty_field(
        default=Decimal("0"),
        help_text="On-hand quantity = sum of ledger transactions (service-managed only)",
    )
    reserved_stock = _qty_field(
        default=Decimal("0"),
        help_text="Sum of active reservations (reservation-managed only)",
    )

    # -------------------------------------------------
    # COST INPUTS
    # -------------------------------------------------
    import_price_usd = _money_field(
        default=Decimal("0.00"),
        help_text="Invoice value of the whole lot in USD",
    )
    exchange_rate = models.DecimalField(
        max_digits=14,
        decimal_places=4,
        default=Decimal("0"),
        help_text="Local currency per 1 USD",
    )
    duty_percent = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    freight_charge = _money_field(default=Decimal("0.00"))
    freight_charge_type = models.CharField(
        max_length=16,
        choices=ChargeType.choices,
        default=ChargeType.FIXED,
    )
    other_charge = _money_field(default=Decimal("0.00"))
    other_charge_type = models.CharField(
        max_length=16,
        choices=ChargeType.choices,
        default=ChargeType.FIXED,
    )

    # -------------------------------------------------
    # COST OUTPUTS (derived)
    # -------------------------------------------------
    import_price_local = _money_field(default=Decimal("0.00"))
    duty_amount = _money_field(default=Decimal("0.00"))
    freight_amount = _money_field(default=Decimal("0.00"))
    other_amount = _money_field(default=Decimal("0.00"))
    landed_cost_total = _money_field(default=Decimal("0.00"))
    landed_cost_per_unit = models.DecimalField(
        max_digits=18,
        decimal_places=4,
        null=True,
        blank=True,
        help_text="landed_cost_total / imported_quantity (null while imported_quantity is 0)",
    )

    # -------------------------------------------------
    # CONTAINER OVERHEAD
    # -------------------------------------------------
    import_container = models.ForeignKey(
        ImportContainer,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="batches",
    )
    import_cost_allocated = _money_field(
        default=Decimal("0.00"),
        help_text="This batch's share of the container overhead",
    )

    # Derived field: NEVER edited directly
    is_active = models.BooleanField(default=False)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_batches",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["import_date", "id"]
        indexes = [
            models.Index(fields=["product", "is_active", "import_date"], name="products_ba_product_0d1c2e_idx"),
            models.Index(fields=["expiry_date"], name="products_ba_expiry__5b7f3a_idx"),
            models.Index(fields=["import_date"], name="products_ba_import__9a4e61_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(imported_quantity__gte=0),
                name="chk_batch_imported_qty_gte_zero",
            ),
            models.CheckConstraint(
                condition=Q(reserved_stock__gte=0),
                name="chk_batch_reserved_gte_zero",
            ),
            models.CheckConstraint(
                condition=Q(reserved_stock__lte=F("current_stock")),
                name="chk_batch_reserved_lte_current",
            ),
        ]

    # -------------------------------------------------
    # VALIDATION
    # -------------------------------------------------

    def clean(self):
        if self.imported_quantity is None or self.imported_quantity < 0:
            raise ValidationError(
                {"imported_quantity": "imported_quantity cannot be negative"}
            )

        if self.reserved_stock < 0:
            raise ValidationError({"reserved_stock": "reserved_stock cannot be negative"})

        if self.reserved_stock > self.current_stock:
            raise ValidationError(
                {"reserved_stock": "reserved_stock cannot exceed current_stock"}
            )

        if self.expiry_date and self.import_date and self.expiry_date < self.import_date:
            raise ValidationError({"expiry_date": "expiry_date cannot precede import_date"})

    # -------------------------------------------------
    # DERIVED STATE
    # -------------------------------------------------

    def save(self, *args, **kwargs):
        self.is_active = (self.current_stock or Decimal("0")) > 0

        # Uniqueness is left to the DB so services can map IntegrityError
        # onto DuplicateBatchNumberError.
        self.full_clean(validate_unique=False, validate_constraints=False)

        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "current_stock" in update_fields:
            kwargs["update_fields"] = {*update_fields, "is_active"}

        super().save(*args, **kwargs)

    # -------------------------------------------------
    # READ-ONLY HELPERS
    # -------------------------------------------------

    @property
    def free_stock(self) -> Decimal:
        return (self.current_stock or Decimal("0")) - (self.reserved_stock or Decimal("0"))

    @property
    def container_cost_per_unit(self) -> Decimal:
        if not self.imported_quantity:
            return Decimal("0.0000")
        return (self.import_cost_allocated / self.imported_quantity).quantize(Decimal("0.0001"))

    def is_expired(self, as_of) -> bool:
        return self.expiry_date is not None and self.expiry_date <= as_of

    def __str__(self):
        product_name = getattr(self.product, "name", "Product")
        return f"{product_name} | Batch {self.batch_number}"
