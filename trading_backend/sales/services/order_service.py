# sales/services/order_service.py

"""
======================================================
PATH: sales/services/order_service.py
======================================================
SALES ORDER WORKFLOW (FULFILLMENT STATE MACHINE, ORDER SIDE)

Purpose:
- Create / submit / approve / reject / cancel / archive sales orders.
- allocate_for_order(): FIFO plan + all-or-nothing reservation; a shortage is
  a normal outcome that raises ImportRequirements instead of an error.
- settle_order_status(): derive the delivery-side status after a challan is
  raised, approved, rejected, edited or deleted.

Rules:
- Every status write goes through order_lifecycle.validate_transition.
- Only the part of a line not yet delivered is reserved.
- A shortage order holds NOTHING: the reservation attempt runs in a savepoint
  and is rolled back as a whole.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from products.services.exceptions import InsufficientStockError
from products.services.quantities import ZERO, money, positive_quantity
from products.services.stock_fifo import select_batches
from sales.models import DeliveryChallan, SalesOrder, SalesOrderItem, StockReservation
from sales.services import import_requirements
from sales.services.order_lifecycle import (
    ALLOCATABLE_STATES,
    InvalidOrderTransitionError,
    validate_transition,
)
from sales.services.reservations import release_for_order, reserve

logger = logging.getLogger(__name__)

Reason = StockReservation.ReleaseReason

OUTCOME_RESERVED = "reserved"
OUTCOME_SHORTAGE = "shortage"


@dataclass(frozen=True)
class ShortageLine:
    product_id: object
    required: Decimal
    available: Decimal
    shortage: Decimal


@dataclass(frozen=True)
class AllocationResult:
    sales_order: SalesOrder
    outcome: str
    reservations: tuple = field(default_factory=tuple)
    shortages: tuple = field(default_factory=tuple)
    requirements: tuple = field(default_factory=tuple)

    @property
    def is_reserved(self) -> bool:
        return self.outcome == OUTCOME_RESERVED


# ============================================================
# HELPERS
# ============================================================

def lock_order(sales_order) -> SalesOrder:
    order_id = getattr(sales_order, "pk", sales_order)
    return SalesOrder.objects.select_for_update().get(pk=order_id)


def transition_order(order: SalesOrder, target: str, *, extra_fields=()) -> SalesOrder:
    if order.status == target:
        if extra_fields:
            order.save(update_fields=[*extra_fields, "updated_at"])
        return order
    validate_transition(order=order, target_status=target)
    previous = order.status
    order.status = target
    order.save(update_fields=["status", *extra_fields, "updated_at"])
    logger.info(
        "sales order status changed",
        extra={
            "sales_order_id": str(order.pk),
            "so_number": order.so_number,
            "from_status": previous,
            "to_status": target,
        },
    )
    return order


def _build_items(order: SalesOrder, items) -> list[SalesOrderItem]:
    if not items:
        raise ValidationError("A sales order needs at least one item")

    created = []
    for line in items:
        product = line.get("product")
        if product is None:
            raise ValidationError("Each item needs a product")
        if not product.is_active:
            raise ValidationError(f"Product {product.product_code} is inactive")
        created.append(
            SalesOrderItem.objects.create(
                sales_order=order,
                product=product,
                quantity=positive_quantity(line.get("quantity")),
                unit_price=money(line.get("unit_price") or "0"),
            )
        )
    return created


# ============================================================
# CREATE / EDIT
# ============================================================

@transaction.atomic
def create_sales_order(
    *,
    customer,
    items,
    user=None,
    order_date=None,
    expected_delivery_date=None,
    customer_po_number: str = "",
    notes: str = "",
    submit: bool = False,
) -> SalesOrder:
    if customer is None:
        raise ValidationError("customer is required")
    if not customer.is_active:
        raise ValidationError("Cannot create an order for an inactive customer")

    order = SalesOrder.objects.create(
        customer=customer,
        order_date=order_date or timezone.localdate(),
        expected_delivery_date=expected_delivery_date,
        customer_po_number=customer_po_number or "",
        notes=notes or "",
        created_by=user,
    )
    _build_items(order, items)

    if submit:
        transition_order(order, SalesOrder.STATUS_PENDING_APPROVAL)

    logger.info(
        "sales order created",
        extra={"sales_order_id": str(order.pk), "so_number": order.so_number},
    )
    return order


@transaction.atomic
def replace_order_items(*, sales_order, items) -> SalesOrder:
    """Lines are editable only before approval."""
    order = lock_order(sales_order)
    if order.status not in {SalesOrder.STATUS_DRAFT, SalesOrder.STATUS_PENDING_APPROVAL}:
        raise InvalidOrderTransitionError(
            f"Items of sales order {order.so_number} are locked in status '{order.status}'"
        )
    order.items.all().delete()
    _build_items(order, items)
    return order


# ============================================================
# APPROVAL GATE
# ============================================================

@transaction.atomic
def submit_order(*, sales_order, user=None) -> SalesOrder:
    order = lock_order(sales_order)
    if not order.items.exists():
        raise ValidationError("Cannot submit a sales order without items")
    return transition_order(order, SalesOrder.STATUS_PENDING_APPROVAL)


@transaction.atomic
def approve_order(*, sales_order, user=None, as_of=None) -> AllocationResult:
    """pending_approval -> approved, then allocate immediately."""
    order = lock_order(sales_order)
    validate_transition(order=order, target_status=SalesOrder.STATUS_APPROVED)

    order.approved_by = user
    order.approved_at = timezone.now()
    transition_order(order, SalesOrder.STATUS_APPROVED, extra_fields=("approved_by", "approved_at"))

    return allocate_for_order(sales_order=order, user=user, as_of=as_of)


@transaction.atomic
def reject_order(*, sales_order, reason: str = "", user=None) -> SalesOrder:
    order = lock_order(sales_order)
    validate_transition(order=order, target_status=SalesOrder.STATUS_REJECTED)
    release_for_order(sales_order=order, reason=Reason.REJECTED)
    order.rejection_reason = reason or ""
    return transition_order(order, SalesOrder.STATUS_REJECTED, extra_fields=("rejection_reason",))


@transaction.atomic
def cancel_order(*, sales_order, reason: str = "", user=None) -> SalesOrder:
    """
    Cancel from any non-delivered state: holds go back to the free pool,
    pending challans are rejected, pending import requirements are cancelled.
    Already-approved challans keep their deductions.
    """
    order = lock_order(sales_order)
    validate_transition(order=order, target_status=SalesOrder.STATUS_CANCELLED)

    released = release_for_order(sales_order=order, reason=Reason.CANCELLED)

    pending = order.challans.filter(
        approval_status=DeliveryChallan.ApprovalStatus.PENDING_APPROVAL
    )
    rejected = pending.update(
        approval_status=DeliveryChallan.ApprovalStatus.REJECTED,
        rejection_reason="Sales order cancelled",
        updated_at=timezone.now(),
    )
    import_requirements.cancel_for_order(sales_order=order)

    order.cancelled_at = timezone.now()
    if reason:
        order.notes = f"{order.notes}\nCancelled: {reason}".strip()
    transition_order(order, SalesOrder.STATUS_CANCELLED, extra_fields=("cancelled_at", "notes"))

    logger.info(
        "sales order cancelled",
        extra={
            "sales_order_id": str(order.pk),
            "released_reservations": released,
            "rejected_challans": rejected,
        },
    )
    return order


@transaction.atomic
def archive_order(*, sales_order, user=None) -> SalesOrder:
    order = lock_order(sales_order)
    return transition_order(order, SalesOrder.STATUS_ARCHIVED)


# ============================================================
# ALLOCATION
# ============================================================

def _plan_order(order: SalesOrder, *, as_of=None, add_back=None):
    """FIFO plan for every line's undelivered quantity."""
    claimed = defaultdict(lambda: ZERO)
    lines = []
    needed_by_product = defaultdict(lambda: ZERO)
    short_by_product = defaultdict(lambda: ZERO)

    for item in order.items.select_related("product").order_by("id"):
        need = item.quantity - item.delivered_quantity
        if need <= ZERO:
            continue

        plan = select_batches(
            product=item.product,
            required_qty=need,
            as_of=as_of,
            add_back=add_back,
            claimed=claimed,
        )
        for allocation in plan.allocations:
            claimed[allocation.batch.pk] += allocation.quantity
            lines.append((item, allocation))

        needed_by_product[item.product_id] += need
        short_by_product[item.product_id] += plan.shortage

    shortages = tuple(
        ShortageLine(
            product_id=product_id,
            required=needed_by_product[product_id],
            available=needed_by_product[product_id] - short,
            shortage=short,
        )
        for product_id, short in short_by_product.items()
        if short > ZERO
    )
    return lines, shortages, needed_by_product


def _record_shortage(order: SalesOrder, shortages, *, user=None) -> AllocationResult:
    requirements = tuple(
        import_requirements.upsert_requirement(
            sales_order=order,
            product_id=line.product_id,
            required=line.required,
            available=line.available,
            shortage=line.shortage,
        )
        for line in shortages
    )
    transition_order(order, SalesOrder.STATUS_SHORTAGE)

    logger.warning(
        "shortage detected",
        extra={
            "sales_order_id": str(order.pk),
            "so_number": order.so_number,
            "shortages": [
                {"product_id": str(s.product_id), "required": str(s.required), "shortage": str(s.shortage)}
                for s in shortages
            ],
        },
    )
    return AllocationResult(
        sales_order=order,
        outcome=OUTCOME_SHORTAGE,
        shortages=tuple(shortages),
        requirements=requirements,
    )


@transaction.atomic
def allocate_for_order(*, sales_order, user=None, as_of=None) -> AllocationResult:
    """
    (Re-)derive an order's holds.

    1. lock the order, release its own active holds
    2. FIFO-plan each line's undelivered quantity
    3. any shortage -> status shortage + ImportRequirements, nothing held
    4. otherwise reserve all-or-nothing (savepoint); a lost race at commit
       time re-plans and ends in shortage
    5. on success pending requirements resolve and the status follows the
       order's delivery state
    """
    order = lock_order(sales_order)
    if order.status not in ALLOCATABLE_STATES:
        raise InvalidOrderTransitionError(
            f"Sales order {order.so_number} cannot be allocated in status '{order.status}'"
        )

    release_for_order(sales_order=order, reason=Reason.REALLOCATED)

    lines, shortages, needed_by_product = _plan_order(order, as_of=as_of)
    if shortages:
        return _record_shortage(order, shortages, user=user)

    try:
        with transaction.atomic():
            reservations = reserve(sales_order=order, lines=lines, user=user, as_of=as_of)
    except InsufficientStockError as exc:
        # Lost a race at commit time: re-plan against committed stock.
        _, shortages, _ = _plan_order(order, as_of=as_of)
        if not shortages:
            required = needed_by_product.get(exc.product_id, exc.requested)
            gap = min(exc.gap, required)
            shortages = (
                ShortageLine(
                    product_id=exc.product_id,
                    required=required,
                    available=required - gap,
                    shortage=gap,
                ),
            )
        return _record_shortage(order, shortages, user=user)

    import_requirements.resolve_for_order(sales_order=order)
    settle_order_status(sales_order=order)

    return AllocationResult(
        sales_order=order,
        outcome=OUTCOME_RESERVED,
        reservations=tuple(reservations),
    )


def preview_allocation(*, sales_order, as_of=None) -> AllocationResult:
    """
    Read-only: what allocate_for_order would do right now. The order's own
    active holds are added back so an already-reserved order never shows a
    spurious shortage.
    """
    add_back = defaultdict(lambda: ZERO)
    for r in StockReservation.objects.filter(
        sales_order=sales_order, status=StockReservation.Status.ACTIVE
    ):
        add_back[r.batch_id] += r.reserved_quantity

    lines, shortages, _ = _plan_order(sales_order, as_of=as_of, add_back=add_back)
    return AllocationResult(
        sales_order=sales_order,
        outcome=OUTCOME_SHORTAGE if shortages else OUTCOME_RESERVED,
        reservations=tuple(lines),
        shortages=shortages,
    )


# ============================================================
# DELIVERY-SIDE STATUS
# ============================================================

def settle_order_status(*, sales_order: SalesOrder) -> SalesOrder:
    """
    Derive the status that follows a challan event. Caller holds the order lock.

    all lines delivered      -> delivered (leftover holds released as fulfilled)
    a pending challan exists -> pending_delivery
    some quantity delivered  -> partially_delivered
    holds exist              -> stock_reserved
    otherwise                -> shortage
    """
    order = sales_order
    if order.status in {SalesOrder.STATUS_CANCELLED, SalesOrder.STATUS_ARCHIVED}:
        return order

    items = list(order.items.all())

    if items and all(i.delivered_quantity >= i.quantity for i in items):
        release_for_order(sales_order=order, reason=Reason.FULFILLED)
        return transition_order(order, SalesOrder.STATUS_DELIVERED)

    if order.challans.filter(
        approval_status=DeliveryChallan.ApprovalStatus.PENDING_APPROVAL
    ).exists():
        return transition_order(order, SalesOrder.STATUS_PENDING_DELIVERY)

    if any(i.delivered_quantity > ZERO for i in items):
        return transition_order(order, SalesOrder.STATUS_PARTIALLY_DELIVERED)

    if order.reservations.filter(status=StockReservation.Status.ACTIVE).exists():
        return transition_order(order, SalesOrder.STATUS_STOCK_RESERVED)

    return transition_order(order, SalesOrder.STATUS_SHORTAGE)


def order_reserved_quantity(order_item) -> Decimal:
    return sum(
        (
            r.reserved_quantity
            for r in order_item.reservations.filter(status=StockReservation.Status.ACTIVE)
        ),
        ZERO,
    )


def outstanding_quantity(order_item, *, exclude_challan=None) -> Decimal:
    """Requested - delivered - quantity already on other pending challans."""
    pending = order_item.challan_items.filter(
        challan__approval_status=DeliveryChallan.ApprovalStatus.PENDING_APPROVAL
    )
    if exclude_challan is not None:
        pending = pending.exclude(challan=exclude_challan)
    on_pending = sum((ci.quantity for ci in pending), ZERO)
    return order_item.quantity - order_item.delivered_quantity - on_pending

