# sales/services/import_requirements.py

"""
IMPORT REQUIREMENTS

Side effect of shortage detection: tells procurement what to import.

Rules:
- One PENDING requirement per (sales order, product); re-detection updates it.
- Priority from the shortage share of the requirement:
    high   : nothing available, or share > IMPORT_REQUIREMENT_HIGH_RATIO
    medium : share >= 25%
    low    : otherwise
- pending -> ordered -> received; pending -> resolved (later allocation
  covered it) | cancelled (order cancelled).
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import transaction

from products.services.quantities import ZERO
from sales.models import ImportRequirement

Status = ImportRequirement.Status
Priority = ImportRequirement.Priority

MEDIUM_RATIO = Decimal("0.25")

ALLOWED_TRANSITIONS = {
    Status.PENDING: {Status.ORDERED, Status.RESOLVED, Status.CANCELLED},
    Status.ORDERED: {Status.RECEIVED, Status.CANCELLED},
}


def priority_for(*, required: Decimal, shortage: Decimal) -> str:
    if required <= ZERO or shortage >= required:
        return Priority.HIGH
    ratio = shortage / required
    if ratio > settings.IMPORT_REQUIREMENT_HIGH_RATIO:
        return Priority.HIGH
    if ratio >= MEDIUM_RATIO:
        return Priority.MEDIUM
    return Priority.LOW


@transaction.atomic
def upsert_requirement(*, sales_order, product_id, required, available, shortage) -> ImportRequirement:
    priority = priority_for(required=required, shortage=shortage)

    existing = (
        ImportRequirement.objects.select_for_update()
        .filter(sales_order=sales_order, product_id=product_id, status=Status.PENDING)
        .first()
    )
    if existing:
        existing.required_quantity = required
        existing.available_quantity = available
        existing.shortage_quantity = shortage
        existing.priority = priority
        existing.required_by = sales_order.expected_delivery_date
        existing.save()
        return existing

    return ImportRequirement.objects.create(
        sales_order=sales_order,
        product_id=product_id,
        required_quantity=required,
        available_quantity=available,
        shortage_quantity=shortage,
        priority=priority,
        required_by=sales_order.expected_delivery_date,
        notes=f"Auto-created from sales order {sales_order.so_number}",
    )


def resolve_for_order(*, sales_order) -> int:
    return ImportRequirement.objects.filter(
        sales_order=sales_order, status=Status.PENDING
    ).update(status=Status.RESOLVED)


def cancel_for_order(*, sales_order) -> int:
    return ImportRequirement.objects.filter(
        sales_order=sales_order, status=Status.PENDING
    ).update(status=Status.CANCELLED)


@transaction.atomic
def set_requirement_status(*, requirement: ImportRequirement, status: str) -> ImportRequirement:
    locked = ImportRequirement.objects.select_for_update().get(pk=requirement.pk)
    if status not in ALLOWED_TRANSITIONS.get(locked.status, set()):
        raise ValidationError(
            f"Import requirement cannot move from '{locked.status}' to '{status}'"
        )
    locked.status = status
    locked.save(update_fields=["status", "updated_at"])
    return locked
