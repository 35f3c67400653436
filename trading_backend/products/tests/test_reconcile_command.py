# products/tests/test_reconcile_command.py

from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.test import TestCase

from products.models import Batch
from products.tests.builders import make_batch, make_product


class ReconcileBatchStockCommandTests(TestCase):
    """
    GUARANTEES:
    - Dry run reports drift without writing
    - --fix re-derives cached figures from the ledger and active holds
    - A second run after a fix is clean
    """

    def setUp(self):
        product = make_product()
        self.clean = make_batch(product, "LOT-CLEAN", 100)
        self.drifted = make_batch(product, "LOT-DRIFT", 250)
        Batch.objects.filter(pk=self.drifted.pk).update(
            current_stock=Decimal("240"),
            reserved_stock=Decimal("15"),
        )

    def _run(self, *args):
        out = StringIO()
        call_command("reconcile_batch_stock", *args, stdout=out, stderr=StringIO())
        return out.getvalue()

    def test_dry_run_reports_only(self):
        output = self._run()

        self.assertIn("DRY RUN", output)
        self.assertIn("LOT-DRIFT", output)
        self.assertIn("Checked: 2", output)
        self.assertIn("Drifted: 1", output)

        self.drifted.refresh_from_db()
        self.assertEqual(self.drifted.current_stock, Decimal("240.000"))

    def test_fix_repairs_and_is_idempotent(self):
        output = self._run("--fix")

        self.assertIn("Fixed: 1", output)
        self.drifted.refresh_from_db()
        self.assertEqual(self.drifted.current_stock, Decimal("250.000"))
        self.assertEqual(self.drifted.reserved_stock, Decimal("0.000"))

        again = self._run("--fix")
        self.assertIn("Drifted: 0", again)

    def test_single_batch_filter(self):
        output = self._run("--batch", "LOT-CLEAN")

        self.assertIn("Checked: 1", output)
        self.assertIn("Drifted: 0", output)
