# returns/tests/test_reconciler.py

from decimal import Decimal
from unittest import mock

from django.test import TestCase
from rest_framework.test import APIClient

from products.models import Batch, InventoryTransaction
from products.services.exceptions import InsufficientStockError
from products.services.inventory import ledger_balance, lock_batches
from products.tests.builders import TODAY, make_batch, make_product, make_user
from returns.models import MaterialReturn, StockRejection
from returns.services.reconciler import (
    ReturnStateError,
    ReturnValidationError,
    approve_material_return,
    approve_stock_rejection,
    create_material_return,
    create_stock_rejection,
    reject_material_return,
)
from sales.services.delivery import ChallanStateError, approve_challan, create_challan, delete_challan
from sales.tests.builders import make_approved_order, make_customer

TxType = InventoryTransaction.TransactionType


class MaterialReturnTests(TestCase):
    """
    Post-dispatch returns.

    GUARANTEES:
    - Restocked goods come back through the ledger
    - Scrapped goods book a loss at full unit cost and never touch stock
    - A challan line can never be returned beyond what left on it
    """

    def setUp(self):
        self.user = make_user("manager")
        self.customer = make_customer()
        self.product = make_product()
        self.batch = make_batch(
            self.product,
            "LOT-001",
            1000,
            import_price_usd=Decimal("10"),
            exchange_rate=Decimal("15000"),
            duty_percent=Decimal("5"),
            freight_charge=Decimal("2"),
            freight_charge_type="percentage",
        )
        order, _ = make_approved_order(self.customer, self.product, 600)
        challan = create_challan(
            sales_order=order,
            items=[{"batch": self.batch, "sales_order_item": order.items.get(), "quantity": Decimal("300")}],
            challan_date=TODAY,
        )
        self.challan = approve_challan(challan=challan)
        self.challan_item = self.challan.items.get()

    def _return(self, quantity, disposition="restock"):
        return create_material_return(
            customer=self.customer,
            lines=[
                {
                    "challan_item": self.challan_item,
                    "quantity": Decimal(str(quantity)),
                    "disposition": disposition,
                }
            ],
            reason="leaking drums",
            user=self.user,
        )

    def test_pending_return_has_no_stock_effect(self):
        mr = self._return(50)

        self.assertEqual(mr.status, MaterialReturn.Status.PENDING)
        self.batch.refresh_from_db()
        self.assertEqual(self.batch.current_stock, Decimal("700.000"))

    def test_restock_adds_stock_through_the_ledger(self):
        mr = self._return(50)

        approve_material_return(material_return=mr, user=self.user)

        self.batch.refresh_from_db()
        self.assertEqual(self.batch.current_stock, Decimal("750.000"))
        self.assertEqual(self.batch.current_stock, ledger_balance(self.batch))
        row = self.batch.transactions.get(
            reference_type=InventoryTransaction.ReferenceType.MATERIAL_RETURN
        )
        self.assertEqual(row.transaction_type, TxType.ADJUSTMENT)
        self.assertEqual(row.quantity, Decimal("50.000"))

    def test_scrap_books_loss_without_stock(self):
        mr = self._return(20, disposition="scrap")

        mr = approve_material_return(material_return=mr, user=self.user)

        self.assertEqual(mr.total_loss, Decimal("3210.00"))
        self.assertEqual(mr.items.get().financial_loss, Decimal("3210.00"))
        self.batch.refresh_from_db()
        self.assertEqual(self.batch.current_stock, Decimal("700.000"))

    def test_over_return_is_refused(self):
        self._return(200)

        with self.assertRaises(ReturnValidationError):
            self._return(150)

    def test_rejected_return_frees_the_quantity(self):
        mr = self._return(200)
        reject_material_return(material_return=mr, reason="not ours", user=self.user)

        again = self._return(300)
        self.assertEqual(again.items.get().quantity, Decimal("300.000"))

        with self.assertRaises(ReturnStateError):
            approve_material_return(material_return=mr, user=self.user)

    def test_returned_challan_cannot_be_deleted(self):
        self._return(10)

        with self.assertRaises(ChallanStateError):
            delete_challan(challan=self.challan)


class StockRejectionTests(TestCase):
    """
    Pre-dispatch quality rejections.

    GUARANTEES:
    - Approval writes the quantity off through the ledger
    - A rejection can never exceed current stock nor cut into reserved stock
    """

    def setUp(self):
        self.user = make_user("warehouse")
        self.product = make_product()
        self.batch = make_batch(self.product, "LOT-QC", 100)

    def test_approved_rejection_deducts_stock(self):
        rejection = create_stock_rejection(batch=self.batch, quantity=Decimal("15"), reason="moisture")

        self.batch.refresh_from_db()
        self.assertEqual(self.batch.current_stock, Decimal("100.000"))

        approve_stock_rejection(rejection=rejection, user=self.user)

        self.batch.refresh_from_db()
        self.assertEqual(self.batch.current_stock, Decimal("85.000"))
        self.assertEqual(self.batch.current_stock, ledger_balance(self.batch))

        with self.assertRaises(ReturnStateError):
            approve_stock_rejection(rejection=rejection, user=self.user)

    def test_rejection_above_current_stock_is_refused(self):
        with self.assertRaises(InsufficientStockError):
            create_stock_rejection(batch=self.batch, quantity=Decimal("101"))

    def test_rejection_respects_reserved_stock(self):
        rejection = create_stock_rejection(batch=self.batch, quantity=Decimal("30"))
        Batch.objects.filter(pk=self.batch.pk).update(reserved_stock=Decimal("80"))

        with self.assertRaises(InsufficientStockError):
            approve_stock_rejection(rejection=rejection, user=self.user)

        rejection.refresh_from_db()
        self.assertEqual(rejection.status, StockRejection.Status.PENDING)
        self.batch.refresh_from_db()
        self.assertEqual(self.batch.current_stock, Decimal("100.000"))


class MultiBatchReturnTests(TestCase):
    """
    GUARANTEES:
    - Every restocked batch is locked up front, in one ordered pass
    - Each batch is credited with its own line's quantity
    """

    def setUp(self):
        self.user = make_user("manager")
        self.customer = make_customer()
        self.product = make_product()
        self.first = make_batch(self.product, "LOT-001", 1000, days_ago=60)
        self.second = make_batch(self.product, "LOT-002", 1000, days_ago=10)
        order, _ = make_approved_order(self.customer, self.product, 600)
        item = order.items.get()
        challan = create_challan(
            sales_order=order,
            items=[
                {"batch": self.first, "sales_order_item": item, "quantity": Decimal("300")},
                {"batch": self.second, "sales_order_item": item, "quantity": Decimal("200")},
            ],
            challan_date=TODAY,
        )
        challan = approve_challan(challan=challan)
        self.challan_items = {ci.batch_id: ci for ci in challan.items.all()}

    def test_restock_across_batches(self):
        mr = create_material_return(
            customer=self.customer,
            lines=[
                {
                    "challan_item": self.challan_items[self.second.pk],
                    "quantity": Decimal("40"),
                    "disposition": "restock",
                },
                {
                    "challan_item": self.challan_items[self.first.pk],
                    "quantity": Decimal("50"),
                    "disposition": "restock",
                },
            ],
            reason="wrong grade",
            user=self.user,
        )

        with mock.patch(
            "returns.services.reconciler.lock_batches", wraps=lock_batches
        ) as locker:
            approve_material_return(material_return=mr, user=self.user)

        locker.assert_called_once_with({self.first.pk, self.second.pk})

        self.first.refresh_from_db()
        self.second.refresh_from_db()
        self.assertEqual(self.first.current_stock, Decimal("750.000"))
        self.assertEqual(self.second.current_stock, Decimal("840.000"))
        self.assertEqual(self.first.current_stock, ledger_balance(self.first))
        self.assertEqual(self.second.current_stock, ledger_balance(self.second))


class ReturnsApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.product = make_product()
        self.batch = make_batch(self.product, "LOT-API", 100)

    def test_rejection_workflow_capabilities(self):
        self.client.force_authenticate(make_user("warehouse"))
        response = self.client.post(
            "/api/returns/stock-rejections/",
            {"batch_id": str(self.batch.pk), "quantity": "10", "reason": "contaminated"},
            format="json",
        )
        self.assertEqual(response.status_code, 201, response.data)
        url = f"/api/returns/stock-rejections/{response.data['id']}/approve/"

        self.assertEqual(self.client.post(url).status_code, 403)

        self.client.force_authenticate(make_user("manager"))
        response = self.client.post(url)
        self.assertEqual(response.status_code, 200, response.data)
        self.assertEqual(response.data["status"], StockRejection.Status.APPROVED)

        again = self.client.post(url)
        self.assertEqual(again.status_code, 409)
        self.assertEqual(again.data["error"]["code"], "RETURN_STATE_ERROR")

        self.batch.refresh_from_db()
        self.assertEqual(self.batch.current_stock, Decimal("90.000"))
