# products/services/container_allocation.py

"""
CONTAINER COST ALLOCATION

Purpose:
- Spread a container's allocatable overhead (ImportContainer.allocatable_cost,
  import taxes excluded) over its linked batches, proportionally to each
  batch's imported quantity.

Rules:
- Shares are rounded to 2 places; the rounding remainder lands on the last
  batch so the shares always sum to the allocatable total exactly.
- Re-run whenever a batch is linked/unlinked/edited/deleted or the container's
  cost components change.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from django.db import transaction

from products.models import Batch, ImportContainer
from products.services.quantities import ZERO, money

logger = logging.getLogger(__name__)


@transaction.atomic
def reallocate_container_costs(*, container: ImportContainer) -> list[Batch]:
    container = ImportContainer.objects.select_for_update().get(pk=container.pk)

    batches = list(
        Batch.objects.select_for_update()
        .filter(import_container=container)
        .order_by("import_date", "id")
    )
    if not batches:
        return []

    total_cost = money(container.allocatable_cost)
    total_qty = sum((b.imported_quantity for b in batches), ZERO)

    allocated_so_far = Decimal("0.00")
    for index, batch in enumerate(batches):
        if index == len(batches) - 1:
            share = total_cost - allocated_so_far
        elif total_qty > ZERO:
            share = money(total_cost * batch.imported_quantity / total_qty)
        else:
            share = Decimal("0.00")

        allocated_so_far += share
        if batch.import_cost_allocated != share:
            batch.import_cost_allocated = share
            batch.save(update_fields=["import_cost_allocated", "updated_at"])

    logger.info(
        "container costs reallocated",
        extra={
            "container_id": str(container.pk),
            "container_ref": container.container_ref,
            "allocatable_cost": str(total_cost),
            "batch_count": len(batches),
        },
    )
    return batches


@transaction.atomic
def update_container(*, container: ImportContainer, **fields) -> ImportContainer:
    """Update cost components / metadata and reallocate across linked batches."""
    locked = ImportContainer.objects.select_for_update().get(pk=container.pk)
    for name, value in fields.items():
        setattr(locked, name, value)
    locked.save()
    reallocate_container_costs(container=locked)
    return locked
