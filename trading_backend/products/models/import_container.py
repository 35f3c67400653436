# products/models/import_container.py

"""
IMPORT CONTAINER

One shipping container (or consolidated shipment) whose overhead is spread
over the batches that arrived in it.

Rules:
- Overhead components are landed cost.
- Import taxes (duty BM, PPN import, PPh import) are tracked here but are
  NEVER part of the allocatable overhead.
- Allocation itself lives in products/services/container_allocation.py.
"""

import uuid
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models


def _amount_field(help_text: str = ""):
    return models.DecimalField(
        max_digits=16,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text=help_text,
    )


class ImportContainer(models.Model):
    OVERHEAD_FIELDS = (
        "freight_charges",
        "clearing_forwarding",
        "port_charges",
        "container_handling",
        "transportation",
        "loading_import",
        "bpom_ski_fees",
        "other_import_costs",
    )

    TAX_FIELDS = (
        "duty_bm",
        "ppn_import",
        "pph_import",
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    container_ref = models.CharField(max_length=64, unique=True)
    supplier_name = models.CharField(max_length=255, blank=True)
    import_date = models.DateField()

    # Overhead (allocatable)
    freight_charges = _amount_field()
    clearing_forwarding = _amount_field()
    port_charges = _amount_field()
    container_handling = _amount_field()
    transportation = _amount_field()
    loading_import = _amount_field()
    bpom_ski_fees = _amount_field("BPOM / SKI registration fees")
    other_import_costs = _amount_field()

    # Import taxes (not allocated)
    duty_bm = _amount_field("Bea Masuk")
    ppn_import = _amount_field("PPN Import (recoverable input VAT)")
    pph_import = _amount_field("PPh 22 Import (prepaid income tax)")

    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-import_date", "container_ref"]

    def __str__(self):
        return self.container_ref

    def clean(self):
        for name in self.OVERHEAD_FIELDS + self.TAX_FIELDS:
            value = getattr(self, name)
            if value is None or value < 0:
                raise ValidationError({name: f"{name} cannot be negative"})

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    @property
    def allocatable_cost(self) -> Decimal:
        return sum((getattr(self, f) for f in self.OVERHEAD_FIELDS), Decimal("0.00"))

    @property
    def total_taxes(self) -> Decimal:
        return sum((getattr(self, f) for f in self.TAX_FIELDS), Decimal("0.00"))
