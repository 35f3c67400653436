# products/tests/test_batch_ledger.py

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.test import TestCase

from products.models import Batch, InventoryTransaction
from products.services.exceptions import (
    DuplicateBatchNumberError,
    InsufficientStockError,
    QuantityBelowSoldError,
)
from products.services.inventory import (
    adjust_stock,
    delete_batch,
    edit_batch,
    ledger_balance,
    recompute_current_stock,
    sold_quantity,
)
from products.tests.builders import make_batch, make_product, make_user

TxType = InventoryTransaction.TransactionType


class BatchLedgerTests(TestCase):
    """
    Batch stock ledger tests.

    GUARANTEES:
    - current_stock always equals the SUM of the batch's transactions
    - Deductions never cut into reserved stock
    - Ledger rows are immutable
    """

    def setUp(self):
        self.user = make_user()
        self.product = make_product()
        self.batch = make_batch(self.product, "LOT-001", 1000, user=self.user)

    def _assert_ledger_matches(self):
        self.batch.refresh_from_db()
        self.assertEqual(self.batch.current_stock, ledger_balance(self.batch))

    def test_intake_writes_one_purchase_row(self):
        rows = list(self.batch.transactions.all())

        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].transaction_type, TxType.PURCHASE)
        self.assertEqual(rows[0].quantity, Decimal("1000.000"))
        self.assertTrue(self.batch.is_active)
        self._assert_ledger_matches()

    def test_adjustments_keep_ledger_in_sync(self):
        adjust_stock(batch=self.batch, quantity_delta=Decimal("-150"), user=self.user, notes="damaged")
        adjust_stock(batch=self.batch, quantity_delta=Decimal("25.5"), user=self.user, notes="recount")

        self.batch.refresh_from_db()
        self.assertEqual(self.batch.current_stock, Decimal("875.500"))
        self.assertEqual(self.batch.transactions.count(), 3)
        self._assert_ledger_matches()

    def test_deduction_below_reserved_is_refused(self):
        Batch.objects.filter(pk=self.batch.pk).update(reserved_stock=Decimal("900"))

        with self.assertRaises(InsufficientStockError) as ctx:
            adjust_stock(batch=self.batch, quantity_delta=Decimal("-200"), user=self.user)

        self.assertEqual(ctx.exception.requested, Decimal("200"))
        self.assertEqual(ctx.exception.available, Decimal("100"))
        self.assertEqual(ctx.exception.gap, Decimal("100"))

        self.batch.refresh_from_db()
        self.assertEqual(self.batch.current_stock, Decimal("1000.000"))
        self.assertEqual(self.batch.transactions.count(), 1)

    def test_zero_delta_is_rejected(self):
        with self.assertRaises(ValidationError):
            adjust_stock(batch=self.batch, quantity_delta=0, user=self.user)

    def test_ledger_rows_are_immutable(self):
        row = self.batch.transactions.get()

        row.quantity = Decimal("1")
        with self.assertRaises(ValidationError):
            row.save()
        with self.assertRaises(ValidationError):
            row.delete()

    def test_recompute_corrects_cached_drift(self):
        Batch.objects.filter(pk=self.batch.pk).update(current_stock=Decimal("42"))

        recompute_current_stock(batch=self.batch)

        self._assert_ledger_matches()
        self.assertEqual(self.batch.current_stock, Decimal("1000.000"))

    def test_duplicate_batch_number_is_rejected(self):
        with self.assertRaises(DuplicateBatchNumberError):
            make_batch(self.product, "LOT-001", 10)

    def test_exhausted_batch_is_archived(self):
        adjust_stock(
            batch=self.batch,
            quantity_delta=Decimal("-1000"),
            transaction_type=TxType.SALE,
            user=self.user,
        )

        self.batch.refresh_from_db()
        self.assertFalse(self.batch.is_active)
        self.assertEqual(sold_quantity(self.batch), Decimal("1000.000"))


class ImportedQuantityEditTests(TestCase):
    """
    GUARANTEES:
    - Imported quantity can never drop below what was already sold
    - The edit rewrites the PURCHASE row and re-derives current_stock
    - Landed cost per unit follows the new quantity
    """

    def setUp(self):
        self.user = make_user()
        self.product = make_product()
        self.batch = make_batch(
            self.product,
            "LOT-EDIT",
            1000,
            import_price_usd=Decimal("10"),
            exchange_rate=Decimal("15000"),
            duty_percent=Decimal("0"),
        )
        adjust_stock(
            batch=self.batch,
            quantity_delta=Decimal("-300"),
            transaction_type=TxType.SALE,
            user=self.user,
        )

    def test_edit_below_sold_is_refused(self):
        with self.assertRaises(QuantityBelowSoldError) as ctx:
            edit_batch(batch=self.batch, user=self.user, imported_quantity=Decimal("200"))

        self.assertEqual(ctx.exception.sold, Decimal("300"))
        self.batch.refresh_from_db()
        self.assertEqual(self.batch.imported_quantity, Decimal("1000.000"))
        self.assertEqual(self.batch.current_stock, Decimal("700.000"))

    def test_edit_down_keeps_ledger_consistent(self):
        batch = edit_batch(batch=self.batch, user=self.user, imported_quantity=Decimal("500"))

        purchase = batch.transactions.get(transaction_type=TxType.PURCHASE)
        self.assertEqual(purchase.quantity, Decimal("500.000"))
        self.assertEqual(batch.imported_quantity, Decimal("500.000"))
        self.assertEqual(batch.current_stock, Decimal("200.000"))
        self.assertEqual(batch.current_stock, ledger_balance(batch))
        self.assertEqual(batch.landed_cost_per_unit, Decimal("300.0000"))

    def test_edit_up_adds_stock(self):
        batch = edit_batch(batch=self.batch, user=self.user, imported_quantity=Decimal("1200"))

        self.assertEqual(batch.current_stock, Decimal("900.000"))
        self.assertEqual(batch.landed_cost_per_unit, Decimal("125.0000"))

    def test_metadata_edit_recomputes_cost(self):
        batch = edit_batch(batch=self.batch, user=self.user, duty_percent=Decimal("10"))

        self.assertEqual(batch.duty_amount, Decimal("15000.00"))
        self.assertEqual(batch.landed_cost_per_unit, Decimal("165.0000"))

    def test_unknown_field_is_rejected(self):
        with self.assertRaises(ValidationError):
            edit_batch(batch=self.batch, user=self.user, current_stock=Decimal("5"))


class BatchDeleteTests(TestCase):
    def test_unreferenced_batch_is_deleted_with_its_ledger(self):
        product = make_product()
        batch = make_batch(product, "LOT-DEL", 50)

        delete_batch(batch=batch)

        self.assertFalse(Batch.objects.filter(pk=batch.pk).exists())
        self.assertFalse(InventoryTransaction.objects.filter(batch_id=batch.pk).exists())
