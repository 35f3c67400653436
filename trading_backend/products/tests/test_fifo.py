# products/tests/test_fifo.py

from datetime import timedelta
from decimal import Decimal

from django.test import TestCase

from products.models import Batch
from products.services.stock_fifo import available_quantity, select_batches
from products.tests.builders import TODAY, make_batch, make_product


class FifoAllocatorTests(TestCase):
    """
    FIFO batch selection.

    GUARANTEES:
    - Oldest import date is drawn first
    - Expired and fully reserved batches are skipped
    - A shortage is reported, never raised
    """

    def setUp(self):
        self.product = make_product()
        self.old = make_batch(self.product, "LOT-OLD", 400, days_ago=90)
        self.new = make_batch(self.product, "LOT-NEW", 600, days_ago=10)

    def _pairs(self, plan):
        return [(a.batch.batch_number, a.quantity) for a in plan.allocations]

    def test_oldest_batch_first(self):
        plan = select_batches(product=self.product, required_qty=Decimal("500"), as_of=TODAY)

        self.assertEqual(
            self._pairs(plan),
            [("LOT-OLD", Decimal("400.000")), ("LOT-NEW", Decimal("100.000"))],
        )
        self.assertEqual(plan.allocated, Decimal("500.000"))
        self.assertFalse(plan.is_short)

    def test_shortage_is_part_of_the_plan(self):
        plan = select_batches(product=self.product, required_qty=Decimal("1200"), as_of=TODAY)

        self.assertEqual(plan.allocated, Decimal("1000.000"))
        self.assertEqual(plan.shortage, Decimal("200.000"))
        self.assertTrue(plan.is_short)

    def test_expired_batch_is_skipped(self):
        Batch.objects.filter(pk=self.old.pk).update(expiry_date=TODAY)

        plan = select_batches(product=self.product, required_qty=Decimal("500"), as_of=TODAY)

        self.assertEqual(self._pairs(plan), [("LOT-NEW", Decimal("500.000"))])
        self.assertEqual(available_quantity(product=self.product, as_of=TODAY), Decimal("600.000"))

    def test_unexpired_batch_is_used_until_expiry(self):
        Batch.objects.filter(pk=self.old.pk).update(expiry_date=TODAY + timedelta(days=1))

        plan = select_batches(product=self.product, required_qty=Decimal("100"), as_of=TODAY)

        self.assertEqual(self._pairs(plan), [("LOT-OLD", Decimal("100.000"))])

    def test_reserved_stock_is_not_free(self):
        Batch.objects.filter(pk=self.old.pk).update(reserved_stock=Decimal("400"))

        plan = select_batches(product=self.product, required_qty=Decimal("100"), as_of=TODAY)

        self.assertEqual(self._pairs(plan), [("LOT-NEW", Decimal("100.000"))])

    def test_add_back_and_claimed_adjust_free_stock(self):
        Batch.objects.filter(pk=self.old.pk).update(reserved_stock=Decimal("400"))

        plan = select_batches(
            product=self.product,
            required_qty=Decimal("500"),
            as_of=TODAY,
            add_back={self.old.pk: Decimal("400")},
            claimed={self.new.pk: Decimal("550")},
        )

        self.assertEqual(
            self._pairs(plan),
            [("LOT-OLD", Decimal("400.000")), ("LOT-NEW", Decimal("50.000"))],
        )
        self.assertEqual(plan.shortage, Decimal("50.000"))

    def test_zero_requirement_plans_nothing(self):
        plan = select_batches(product=self.product, required_qty=0, as_of=TODAY)

        self.assertEqual(plan.allocations, ())
        self.assertEqual(plan.shortage, Decimal("0"))

    def test_other_products_are_ignored(self):
        other = make_product(code="CHEM-002", name="Sodium Benzoate")
        make_batch(other, "LOT-OTHER", 5000, days_ago=365)

        plan = select_batches(product=self.product, required_qty=Decimal("50"), as_of=TODAY)

        self.assertEqual(self._pairs(plan), [("LOT-OLD", Decimal("50.000"))])
