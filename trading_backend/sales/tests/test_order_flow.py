# sales/tests/test_order_flow.py

from decimal import Decimal
from unittest import mock

from django.core.exceptions import ValidationError
from django.test import TestCase

from products.models import Batch
from products.services.stock_fifo import available_quantity
from products.tests.builders import TODAY, make_batch, make_product, make_user
from sales.models import ImportRequirement, SalesOrder, StockReservation
from sales.services import order_service
from sales.services.delivery import approve_challan, create_challan
from sales.services.import_requirements import priority_for, set_requirement_status
from sales.services.order_lifecycle import InvalidOrderTransitionError
from sales.services.order_service import (
    allocate_for_order,
    approve_order,
    archive_order,
    cancel_order,
    preview_allocation,
    reject_order,
    replace_order_items,
    submit_order,
)
from sales.services.reservations import active_reserved_total, release
from sales.tests.builders import make_approved_order, make_customer, make_order


class OrderApprovalTests(TestCase):
    """
    Sales order approval gate.

    GUARANTEES:
    - Drafts must be submitted before approval
    - Approval allocates immediately
    - Illegal transitions are refused without side effects
    """

    def setUp(self):
        self.user = make_user("manager")
        self.customer = make_customer()
        self.product = make_product()
        self.batch = make_batch(self.product, "LOT-001", 1000)

    def test_draft_cannot_be_approved(self):
        order = make_order(self.customer, [(self.product, 100, 250)], submit=False)

        with self.assertRaises(InvalidOrderTransitionError):
            approve_order(sales_order=order, user=self.user)

        order.refresh_from_db()
        self.assertEqual(order.status, SalesOrder.STATUS_DRAFT)
        self.assertFalse(StockReservation.objects.exists())

    def test_submit_then_approve_reserves(self):
        order = make_order(self.customer, [(self.product, 100, 250)], submit=False)
        submit_order(sales_order=order, user=self.user)

        result = approve_order(sales_order=order, user=self.user, as_of=TODAY)

        order.refresh_from_db()
        self.assertTrue(result.is_reserved)
        self.assertEqual(order.status, SalesOrder.STATUS_STOCK_RESERVED)
        self.assertEqual(order.approved_by, self.user)
        self.assertEqual(len(result.reservations), 1)

        self.batch.refresh_from_db()
        self.assertEqual(self.batch.reserved_stock, Decimal("100.000"))
        self.assertEqual(self.batch.current_stock, Decimal("1000.000"))

    def test_reject_pending_order(self):
        order = make_order(self.customer, [(self.product, 100, 250)])

        reject_order(sales_order=order, reason="credit hold", user=self.user)

        order.refresh_from_db()
        self.assertEqual(order.status, SalesOrder.STATUS_REJECTED)
        self.assertEqual(order.rejection_reason, "credit hold")

    def test_items_lock_after_approval(self):
        order, _ = make_approved_order(self.customer, self.product, 100, user=self.user)

        with self.assertRaises(InvalidOrderTransitionError):
            replace_order_items(
                sales_order=order,
                items=[{"product": self.product, "quantity": Decimal("5")}],
            )

    def test_items_editable_before_approval(self):
        order = make_order(self.customer, [(self.product, 100, 250)])

        replace_order_items(
            sales_order=order,
            items=[{"product": self.product, "quantity": Decimal("40"), "unit_price": Decimal("300")}],
        )

        item = order.items.get()
        self.assertEqual(item.quantity, Decimal("40.000"))
        self.assertEqual(item.unit_price, Decimal("300.00"))

    def test_archive_only_after_delivery(self):
        order, _ = make_approved_order(self.customer, self.product, 100, user=self.user)

        with self.assertRaises(InvalidOrderTransitionError):
            archive_order(sales_order=order, user=self.user)


class ShortageTests(TestCase):
    """
    Two orders competing for one batch.

    GUARANTEES:
    - The first order reserves, the second goes to shortage
    - A shortage order holds nothing
    - Shortages raise an ImportRequirement per product
    - Re-allocation after new stock arrives resolves the requirement
    """

    def setUp(self):
        self.user = make_user("manager")
        self.customer = make_customer()
        self.product = make_product()
        self.batch = make_batch(self.product, "LOT-001", 1000)

    def test_second_order_goes_to_shortage(self):
        first, first_result = make_approved_order(self.customer, self.product, 600, user=self.user)
        second, second_result = make_approved_order(self.customer, self.product, 600, user=self.user)

        self.assertEqual(first.status, SalesOrder.STATUS_STOCK_RESERVED)
        self.assertTrue(first_result.is_reserved)

        self.assertEqual(second.status, SalesOrder.STATUS_SHORTAGE)
        self.assertFalse(second_result.is_reserved)
        self.assertFalse(second.reservations.filter(status=StockReservation.Status.ACTIVE).exists())

        shortage = second_result.shortages[0]
        self.assertEqual(shortage.required, Decimal("600.000"))
        self.assertEqual(shortage.available, Decimal("400.000"))
        self.assertEqual(shortage.shortage, Decimal("200.000"))

        requirement = ImportRequirement.objects.get(sales_order=second)
        self.assertEqual(requirement.product, self.product)
        self.assertEqual(requirement.shortage_quantity, Decimal("200.000"))
        self.assertEqual(requirement.priority, ImportRequirement.Priority.MEDIUM)
        self.assertEqual(requirement.status, ImportRequirement.Status.PENDING)

        self.batch.refresh_from_db()
        self.assertEqual(self.batch.reserved_stock, Decimal("600.000"))
        self.assertEqual(available_quantity(product=self.product, as_of=TODAY), Decimal("400.000"))

    def test_reallocation_after_restock(self):
        make_approved_order(self.customer, self.product, 600, user=self.user)
        second, _ = make_approved_order(self.customer, self.product, 600, user=self.user)

        again = allocate_for_order(sales_order=second, user=self.user, as_of=TODAY)
        self.assertFalse(again.is_reserved)
        self.assertEqual(ImportRequirement.objects.filter(sales_order=second).count(), 1)

        make_batch(self.product, "LOT-002", 500, days_ago=1)
        result = allocate_for_order(sales_order=second, user=self.user, as_of=TODAY)

        second.refresh_from_db()
        self.assertTrue(result.is_reserved)
        self.assertEqual(second.status, SalesOrder.STATUS_STOCK_RESERVED)
        self.assertEqual(
            sorted((r.batch.batch_number, r.reserved_quantity) for r in result.reservations),
            [("LOT-001", Decimal("400.000")), ("LOT-002", Decimal("200.000"))],
        )
        requirement = ImportRequirement.objects.get(sales_order=second)
        self.assertEqual(requirement.status, ImportRequirement.Status.RESOLVED)

    def test_expired_batch_is_not_allocated(self):
        Batch.objects.filter(pk=self.batch.pk).update(expiry_date=TODAY)

        order, result = make_approved_order(self.customer, self.product, 10, user=self.user)

        self.assertEqual(order.status, SalesOrder.STATUS_SHORTAGE)
        self.assertEqual(result.shortages[0].shortage, Decimal("10.000"))
        self.assertEqual(
            ImportRequirement.objects.get(sales_order=order).priority,
            ImportRequirement.Priority.HIGH,
        )

    def test_priority_thresholds(self):
        self.assertEqual(priority_for(required=Decimal("100"), shortage=Decimal("100")), "high")
        self.assertEqual(priority_for(required=Decimal("100"), shortage=Decimal("60")), "high")
        self.assertEqual(priority_for(required=Decimal("100"), shortage=Decimal("25")), "medium")
        self.assertEqual(priority_for(required=Decimal("100"), shortage=Decimal("10")), "low")

    def test_requirement_status_transitions(self):
        make_approved_order(self.customer, self.product, 600, user=self.user)
        second, _ = make_approved_order(self.customer, self.product, 600, user=self.user)
        requirement = ImportRequirement.objects.get(sales_order=second)

        requirement = set_requirement_status(requirement=requirement, status="ordered")
        requirement = set_requirement_status(requirement=requirement, status="received")
        self.assertEqual(requirement.status, ImportRequirement.Status.RECEIVED)

        with self.assertRaises(ValidationError):
            set_requirement_status(requirement=requirement, status="pending")

    def test_reallocation_after_partial_dispatch(self):
        make_approved_order(self.customer, self.product, 600, user=self.user)
        second, _ = make_approved_order(self.customer, self.product, 600, user=self.user)
        item = second.items.get()

        challan = create_challan(
            sales_order=second,
            items=[{"batch": self.batch, "sales_order_item": item, "quantity": Decimal("300")}],
            challan_date=TODAY,
            user=self.user,
        )
        approve_challan(challan=challan, user=self.user)
        second.refresh_from_db()
        self.assertEqual(second.status, SalesOrder.STATUS_PARTIALLY_DELIVERED)

        make_batch(self.product, "LOT-002", 1000, days_ago=1)
        result = allocate_for_order(sales_order=second, user=self.user, as_of=TODAY)

        second.refresh_from_db()
        self.assertTrue(result.is_reserved)
        self.assertEqual(second.status, SalesOrder.STATUS_PARTIALLY_DELIVERED)
        self.assertEqual(
            sum((r.reserved_quantity for r in result.reservations), Decimal("0")),
            Decimal("300.000"),
        )
        requirement = ImportRequirement.objects.get(sales_order=second)
        self.assertEqual(requirement.status, ImportRequirement.Status.RESOLVED)

    def test_lost_race_records_every_short_product(self):
        first = make_product(code="CHEM-010", name="Sodium Benzoate")
        other = make_product(code="CHEM-011", name="Potassium Sorbate")
        make_batch(first, "LOT-A01", 100)
        make_batch(other, "LOT-B01", 100)

        competitor = make_order(self.customer, [(first, 50, 250), (other, 50, 250)])
        order = make_order(self.customer, [(first, 80, 250), (other, 80, 250)])

        real_plan = order_service._plan_order
        raced = []

        def stale_plan(target, **kwargs):
            if raced:
                return real_plan(target, **kwargs)
            raced.append(target.pk)
            plan = real_plan(target, **kwargs)
            approve_order(sales_order=competitor, user=self.user, as_of=TODAY)
            return plan

        with mock.patch.object(order_service, "_plan_order", side_effect=stale_plan):
            result = approve_order(sales_order=order, user=self.user, as_of=TODAY)

        order.refresh_from_db()
        self.assertEqual(order.status, SalesOrder.STATUS_SHORTAGE)
        self.assertFalse(result.is_reserved)
        self.assertFalse(order.reservations.filter(status=StockReservation.Status.ACTIVE).exists())

        requirements = ImportRequirement.objects.filter(sales_order=order)
        self.assertEqual(
            sorted(r.product_id for r in requirements), sorted([first.pk, other.pk])
        )
        for requirement in requirements:
            self.assertEqual(requirement.shortage_quantity, Decimal("30.000"))

        competitor.refresh_from_db()
        self.assertEqual(competitor.status, SalesOrder.STATUS_STOCK_RESERVED)


class ReservationLifecycleTests(TestCase):
    """
    GUARANTEES:
    - reserved_stock always equals the SUM of active reservations
    - Re-allocating an order is idempotent
    - Cancelling an order releases every hold
    """

    def setUp(self):
        self.user = make_user("manager")
        self.customer = make_customer()
        self.product = make_product()
        self.old = make_batch(self.product, "LOT-OLD", 300, days_ago=60)
        self.new = make_batch(self.product, "LOT-NEW", 700, days_ago=5)

    def _assert_reserved_in_sync(self):
        for batch in (self.old, self.new):
            batch.refresh_from_db()
            self.assertEqual(batch.reserved_stock, active_reserved_total(batch))

    def test_fifo_spans_batches(self):
        order, result = make_approved_order(self.customer, self.product, 500, user=self.user)

        self.assertEqual(
            [(r.batch_id, r.reserved_quantity) for r in result.reservations],
            [(self.old.pk, Decimal("300.000")), (self.new.pk, Decimal("200.000"))],
        )
        self._assert_reserved_in_sync()
        self.assertEqual(self.old.free_stock, Decimal("0.000"))
        self.assertEqual(self.new.free_stock, Decimal("500.000"))

    def test_reallocation_is_idempotent(self):
        order, _ = make_approved_order(self.customer, self.product, 500, user=self.user)

        allocate_for_order(sales_order=order, user=self.user, as_of=TODAY)
        allocate_for_order(sales_order=order, user=self.user, as_of=TODAY)

        self._assert_reserved_in_sync()
        self.assertEqual(self.old.reserved_stock + self.new.reserved_stock, Decimal("500.000"))
        self.assertEqual(order.reservations.filter(status=StockReservation.Status.ACTIVE).count(), 2)
        self.assertEqual(
            order.reservations.filter(
                release_reason=StockReservation.ReleaseReason.REALLOCATED
            ).count(),
            4,
        )

    def test_preview_adds_back_own_holds(self):
        order, _ = make_approved_order(self.customer, self.product, 1000, user=self.user)

        preview = preview_allocation(sales_order=order, as_of=TODAY)

        self.assertEqual(preview.outcome, "reserved")
        self.assertEqual(preview.shortages, ())
        self.assertEqual(StockReservation.objects.filter(status="active").count(), 2)

    def test_manual_release_then_reallocate(self):
        order, result = make_approved_order(self.customer, self.product, 500, user=self.user)

        release(reservation=result.reservations[0], reason="manual", user=self.user)
        release(reservation=result.reservations[0], reason="manual", user=self.user)

        self._assert_reserved_in_sync()
        self.assertEqual(self.old.reserved_stock, Decimal("0.000"))

        allocate_for_order(sales_order=order, user=self.user, as_of=TODAY)
        self._assert_reserved_in_sync()
        self.assertEqual(self.old.reserved_stock, Decimal("300.000"))
        self.assertEqual(self.new.reserved_stock, Decimal("200.000"))

    def test_cancel_releases_holds(self):
        order, _ = make_approved_order(self.customer, self.product, 500, user=self.user)

        cancel_order(sales_order=order, reason="customer withdrew", user=self.user)

        order.refresh_from_db()
        self.assertEqual(order.status, SalesOrder.STATUS_CANCELLED)
        self.assertIsNotNone(order.cancelled_at)
        self._assert_reserved_in_sync()
        self.assertEqual(self.old.reserved_stock + self.new.reserved_stock, Decimal("0"))
        self.assertEqual(
            set(order.reservations.values_list("release_reason", flat=True)),
            {StockReservation.ReleaseReason.CANCELLED},
        )

        with self.assertRaises(InvalidOrderTransitionError):
            cancel_order(sales_order=order, user=self.user)
