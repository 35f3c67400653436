# sales/tests/test_delivery.py

from decimal import Decimal

from django.test import TestCase

from products.models import Batch, InventoryTransaction
from products.services.exceptions import BatchInUseError, InsufficientStockError
from products.services.inventory import delete_batch, ledger_balance, sold_quantity
from products.tests.builders import TODAY, make_batch, make_product, make_user
from sales.models import DeliveryChallan, SalesOrder, StockReservation
from sales.services.delivery import (
    ChallanStateError,
    ChallanValidationError,
    approve_challan,
    create_challan,
    delete_challan,
    edit_challan,
    reject_challan,
)
from sales.services.order_service import cancel_order
from sales.services.reservations import active_reserved_total
from sales.tests.builders import make_approved_order, make_customer

TxType = InventoryTransaction.TransactionType


class ChallanTestMixin:
    def setUp(self):
        self.user = make_user("manager")
        self.customer = make_customer()
        self.product = make_product()
        self.batch = make_batch(self.product, "LOT-001", 1000)
        self.order, _ = make_approved_order(self.customer, self.product, 600, user=self.user)
        self.item = self.order.items.get()

    def _challan(self, quantity, batch=None):
        return create_challan(
            sales_order=self.order,
            items=[
                {
                    "batch": batch or self.batch,
                    "sales_order_item": self.item,
                    "quantity": Decimal(str(quantity)),
                }
            ],
            challan_date=TODAY,
            user=self.user,
        )

    def _assert_batch(self, *, current, reserved):
        self.batch.refresh_from_db()
        self.assertEqual(self.batch.current_stock, Decimal(current))
        self.assertEqual(self.batch.reserved_stock, Decimal(reserved))
        self.assertEqual(self.batch.current_stock, ledger_balance(self.batch))
        self.assertEqual(self.batch.reserved_stock, active_reserved_total(self.batch))

    def _order_status(self):
        self.order.refresh_from_db()
        return self.order.status


class ChallanApprovalTests(ChallanTestMixin, TestCase):
    """
    Delivery challan approval gate.

    GUARANTEES:
    - A pending challan never moves stock
    - Approval consumes the hold and writes one SALE row per line
    - Rejecting a pending challan leaves stock untouched
    """

    def test_pending_challan_has_no_stock_effect(self):
        challan = self._challan(300)

        self.assertEqual(challan.approval_status, DeliveryChallan.ApprovalStatus.PENDING_APPROVAL)
        self.assertEqual(self._order_status(), SalesOrder.STATUS_PENDING_DELIVERY)
        self._assert_batch(current="1000", reserved="600")

    def test_approval_dispatches_from_the_hold(self):
        challan = self._challan(300)

        approve_challan(challan=challan, user=self.user)

        self._assert_batch(current="700", reserved="300")
        sales = self.batch.transactions.filter(transaction_type=TxType.SALE)
        self.assertEqual(sales.count(), 1)
        self.assertEqual(sales.get().quantity, Decimal("-300.000"))

        self.item.refresh_from_db()
        self.assertEqual(self.item.delivered_quantity, Decimal("300.000"))
        self.assertEqual(self._order_status(), SalesOrder.STATUS_PARTIALLY_DELIVERED)

    def test_full_delivery_closes_the_order(self):
        approve_challan(challan=self._challan(600), user=self.user)

        self._assert_batch(current="400", reserved="0")
        self.assertEqual(self._order_status(), SalesOrder.STATUS_DELIVERED)
        self.assertFalse(
            self.order.reservations.filter(status=StockReservation.Status.ACTIVE).exists()
        )

    def test_approving_twice_is_refused(self):
        challan = self._challan(300)
        approve_challan(challan=challan, user=self.user)

        with self.assertRaises(ChallanStateError):
            approve_challan(challan=challan, user=self.user)

        self._assert_batch(current="700", reserved="300")

    def test_reject_pending_challan(self):
        challan = self._challan(300)

        reject_challan(challan=challan, reason="wrong address", user=self.user)

        challan.refresh_from_db()
        self.assertEqual(challan.approval_status, DeliveryChallan.ApprovalStatus.REJECTED)
        self._assert_batch(current="1000", reserved="600")
        self.assertEqual(self._order_status(), SalesOrder.STATUS_STOCK_RESERVED)

        with self.assertRaises(ChallanStateError):
            reject_challan(challan=challan, user=self.user)

    def test_overdelivery_is_refused(self):
        self._challan(400)

        with self.assertRaises(ChallanValidationError):
            self._challan(300)

    def test_expired_batch_cannot_be_dispatched(self):
        expired = make_batch(self.product, "LOT-EXP", 50, days_ago=400)
        Batch.objects.filter(pk=expired.pk).update(expiry_date=TODAY)

        with self.assertRaises(ChallanValidationError):
            self._challan(10, batch=expired)

    def test_unlinked_challan_cannot_take_held_stock(self):
        with self.assertRaises(InsufficientStockError) as ctx:
            create_challan(
                customer=self.customer,
                items=[{"batch": self.batch, "quantity": Decimal("401")}],
                challan_date=TODAY,
                user=self.user,
            )

        self.assertEqual(ctx.exception.available, Decimal("400"))
        self.assertFalse(DeliveryChallan.objects.exists())

    def test_cancel_rejects_pending_challans(self):
        challan = self._challan(300)

        cancel_order(sales_order=self.order, user=self.user)

        challan.refresh_from_db()
        self.assertEqual(challan.approval_status, DeliveryChallan.ApprovalStatus.REJECTED)
        self._assert_batch(current="1000", reserved="0")


class ChallanEditDeleteTests(ChallanTestMixin, TestCase):
    """
    GUARANTEES:
    - Deleting an approved challan returns its stock and re-holds it for the order
    - Editing an approved challan nets the old and new deductions
    - The ledger balance and the hold totals stay in sync throughout
    """

    def setUp(self):
        super().setUp()
        self.challan = self._challan(300)
        approve_challan(challan=self.challan, user=self.user)

    def test_delete_approved_challan_restores_stock_and_holds(self):
        delete_challan(challan=self.challan, user=self.user)

        self._assert_batch(current="1000", reserved="600")
        self.assertEqual(sold_quantity(self.batch), Decimal("0"))
        self.assertFalse(DeliveryChallan.objects.filter(pk=self.challan.pk).exists())

        self.item.refresh_from_db()
        self.assertEqual(self.item.delivered_quantity, Decimal("0.000"))
        self.assertEqual(self._order_status(), SalesOrder.STATUS_STOCK_RESERVED)

    def test_edit_approved_challan_down(self):
        edit_challan(
            challan=self.challan,
            items=[{"batch": self.batch, "sales_order_item": self.item, "quantity": Decimal("200")}],
            user=self.user,
        )

        self._assert_batch(current="800", reserved="400")
        self.assertEqual(sold_quantity(self.batch), Decimal("200.000"))
        self.item.refresh_from_db()
        self.assertEqual(self.item.delivered_quantity, Decimal("200.000"))

        self.challan.refresh_from_db()
        self.assertEqual(self.challan.approval_status, DeliveryChallan.ApprovalStatus.APPROVED)
        self.assertEqual(self.challan.items.get().quantity, Decimal("200.000"))

    def test_edit_approved_challan_up(self):
        edit_challan(
            challan=self.challan,
            items=[{"batch": self.batch, "sales_order_item": self.item, "quantity": Decimal("600")}],
            user=self.user,
        )

        self._assert_batch(current="400", reserved="0")
        self.assertEqual(self._order_status(), SalesOrder.STATUS_DELIVERED)

    def test_rejected_challan_cannot_be_edited(self):
        pending = self._challan(100)
        reject_challan(challan=pending, user=self.user)

        with self.assertRaises(ChallanStateError):
            edit_challan(
                challan=pending,
                items=[{"batch": self.batch, "sales_order_item": self.item, "quantity": Decimal("50")}],
                user=self.user,
            )

    def test_batch_with_dispatches_cannot_be_deleted(self):
        with self.assertRaises(BatchInUseError) as ctx:
            delete_batch(batch=self.batch, user=self.user)

        self.assertIn("delivery_challan_items", ctx.exception.references)
        self.assertIn("active_reservations", ctx.exception.references)


class CrossBatchDispatchTests(ChallanTestMixin, TestCase):
    """
    Dispatching from a batch the order line does not hold.

    GUARANTEES:
    - The dispatched batch loses only free stock
    - Holds elsewhere shrink so the line never holds more than it still needs
    - reserved_stock stays equal to the active holds on every batch
    """

    def setUp(self):
        super().setUp()
        self.other = make_batch(self.product, "LOT-002", 1000, days_ago=10)

    def _line_holds(self):
        return sum(
            (
                r.reserved_quantity
                for r in StockReservation.objects.filter(
                    sales_order_item=self.item, status=StockReservation.Status.ACTIVE
                )
            ),
            Decimal("0"),
        )

    def test_dispatch_from_unheld_batch_trims_other_holds(self):
        approve_challan(challan=self._challan(300, batch=self.other), user=self.user)

        self._assert_batch(current="1000", reserved="300")

        self.other.refresh_from_db()
        self.assertEqual(self.other.current_stock, Decimal("700.000"))
        self.assertEqual(self.other.reserved_stock, Decimal("0.000"))
        self.assertEqual(self.other.current_stock, ledger_balance(self.other))

        self.item.refresh_from_db()
        self.assertEqual(self.item.delivered_quantity, Decimal("300.000"))
        self.assertEqual(self._line_holds(), Decimal("300.000"))
        self.assertEqual(self._order_status(), SalesOrder.STATUS_PARTIALLY_DELIVERED)

    def test_full_dispatch_from_unheld_batch_releases_every_hold(self):
        approve_challan(challan=self._challan(600, batch=self.other), user=self.user)

        self._assert_batch(current="1000", reserved="0")
        self.assertEqual(self._line_holds(), Decimal("0"))
        self.assertEqual(self._order_status(), SalesOrder.STATUS_DELIVERED)
