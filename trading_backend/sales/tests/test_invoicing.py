# sales/tests/test_invoicing.py

from decimal import Decimal

from django.test import TestCase

from products.tests.builders import TODAY, make_batch, make_product, make_user
from sales.services.delivery import (
    ChallanStateError,
    approve_challan,
    create_challan,
    delete_challan,
)
from sales.services.invoicing import (
    InvoicingError,
    cancel_sales_invoice,
    create_sales_invoice,
    uninvoiced_quantity,
)
from sales.tests.builders import make_approved_order, make_customer


class SalesInvoiceTests(TestCase):
    """
    GUARANTEES:
    - Only dispatched quantities can be billed, and never twice
    - The unit cost is frozen on the invoice line
    - Invoicing has no stock effect
    """

    def setUp(self):
        self.user = make_user("accounts")
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
        self.challan = create_challan(
            sales_order=order,
            items=[{"batch": self.batch, "sales_order_item": order.items.get(), "quantity": Decimal("300")}],
            challan_date=TODAY,
        )
        self.challan_item = self.challan.items.get()

    def test_pending_challan_cannot_be_invoiced(self):
        with self.assertRaises(InvoicingError):
            create_sales_invoice(
                customer=self.customer,
                lines=[{"challan_item": self.challan_item, "unit_price": Decimal("250")}],
            )

    def test_invoice_totals_and_cost_snapshot(self):
        approve_challan(challan=self.challan)

        invoice = create_sales_invoice(
            customer=self.customer,
            lines=[
                {
                    "challan_item": self.challan_item,
                    "unit_price": Decimal("250"),
                    "quantity": Decimal("200"),
                }
            ],
            tax_percent=Decimal("11"),
            user=self.user,
        )

        line = invoice.items.get()
        self.assertEqual(line.line_total, Decimal("50000.00"))
        self.assertEqual(line.unit_cost_snapshot, Decimal("160.5000"))
        self.assertEqual(invoice.subtotal, Decimal("50000.00"))
        self.assertEqual(invoice.tax_amount, Decimal("5500.00"))
        self.assertEqual(invoice.total_amount, Decimal("55500.00"))

        self.batch.refresh_from_db()
        self.assertEqual(self.batch.current_stock, Decimal("700.000"))
        self.assertEqual(uninvoiced_quantity(self.challan_item), Decimal("100.000"))

    def test_over_invoicing_is_refused(self):
        approve_challan(challan=self.challan)
        create_sales_invoice(
            customer=self.customer,
            lines=[{"challan_item": self.challan_item, "unit_price": Decimal("250"), "quantity": Decimal("200")}],
        )

        with self.assertRaises(InvoicingError):
            create_sales_invoice(
                customer=self.customer,
                lines=[{"challan_item": self.challan_item, "unit_price": Decimal("250"), "quantity": Decimal("150")}],
            )

    def test_default_quantity_bills_the_remainder(self):
        approve_challan(challan=self.challan)

        invoice = create_sales_invoice(
            customer=self.customer,
            lines=[{"challan_item": self.challan_item, "unit_price": Decimal("250")}],
        )

        self.assertEqual(invoice.items.get().quantity, Decimal("300.000"))
        self.assertEqual(uninvoiced_quantity(self.challan_item), Decimal("0.000"))

    def test_cancel_frees_quantity_for_rebilling(self):
        approve_challan(challan=self.challan)
        invoice = create_sales_invoice(
            customer=self.customer,
            lines=[{"challan_item": self.challan_item, "unit_price": Decimal("250")}],
        )

        cancel_sales_invoice(invoice=invoice, user=self.user)
        with self.assertRaises(InvoicingError):
            cancel_sales_invoice(invoice=invoice, user=self.user)

        again = create_sales_invoice(
            customer=self.customer,
            lines=[{"challan_item": self.challan_item, "unit_price": Decimal("260")}],
        )
        self.assertEqual(again.items.get().quantity, Decimal("300.000"))

    def test_other_customer_cannot_be_billed(self):
        approve_challan(challan=self.challan)

        with self.assertRaises(InvoicingError):
            create_sales_invoice(
                customer=make_customer("PT Lain"),
                lines=[{"challan_item": self.challan_item, "unit_price": Decimal("250")}],
            )

    def test_invoiced_challan_cannot_be_deleted(self):
        approve_challan(challan=self.challan)
        invoice = create_sales_invoice(
            customer=self.customer,
            lines=[{"challan_item": self.challan_item, "unit_price": Decimal("250")}],
        )
        cancel_sales_invoice(invoice=invoice)

        with self.assertRaises(ChallanStateError):
            delete_challan(challan=self.challan)
