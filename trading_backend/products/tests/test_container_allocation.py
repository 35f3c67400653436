# products/tests/test_container_allocation.py

from decimal import Decimal

from django.test import TestCase

from products.models import Batch, ImportContainer
from products.services.container_allocation import update_container
from products.services.inventory import delete_batch, edit_batch
from products.tests.builders import TODAY, make_batch, make_product


class ContainerAllocationTests(TestCase):
    """
    GUARANTEES:
    - Overhead is spread proportionally to imported quantity
    - Import taxes are never allocated
    - Shares always add up to the allocatable total
    """

    def setUp(self):
        self.product = make_product()
        self.container = ImportContainer.objects.create(
            container_ref="CONT-001",
            import_date=TODAY,
            freight_charges=Decimal("600.00"),
            port_charges=Decimal("400.00"),
            duty_bm=Decimal("9999.00"),
            ppn_import=Decimal("1234.00"),
        )

    def _shares(self):
        return list(
            Batch.objects.filter(import_container=self.container)
            .order_by("import_date", "id")
            .values_list("import_cost_allocated", flat=True)
        )

    def test_proportional_split_excludes_taxes(self):
        make_batch(self.product, "LOT-A", 600, days_ago=20, import_container=self.container)
        make_batch(self.product, "LOT-B", 400, days_ago=10, import_container=self.container)

        self.assertEqual(self.container.allocatable_cost, Decimal("1000.00"))
        self.assertEqual(self._shares(), [Decimal("600.00"), Decimal("400.00")])

    def test_rounding_remainder_lands_on_last_batch(self):
        update_container(
            container=self.container,
            freight_charges=Decimal("100.00"),
            port_charges=Decimal("0.00"),
        )
        for days_ago, number in ((30, "LOT-1"), (20, "LOT-2"), (10, "LOT-3")):
            make_batch(self.product, number, 1, days_ago=days_ago, import_container=self.container)

        shares = self._shares()
        self.assertEqual(shares, [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")])
        self.assertEqual(sum(shares), Decimal("100.00"))

    def test_container_edit_reallocates(self):
        make_batch(self.product, "LOT-A", 600, days_ago=20, import_container=self.container)
        make_batch(self.product, "LOT-B", 400, days_ago=10, import_container=self.container)

        update_container(container=self.container, port_charges=Decimal("1400.00"))

        self.assertEqual(self._shares(), [Decimal("1200.00"), Decimal("800.00")])

    def test_unlink_and_delete_reallocate(self):
        first = make_batch(self.product, "LOT-A", 600, days_ago=20, import_container=self.container)
        second = make_batch(self.product, "LOT-B", 400, days_ago=10, import_container=self.container)

        edit_batch(batch=first, import_container=None)

        first.refresh_from_db()
        self.assertEqual(first.import_cost_allocated, Decimal("0.00"))
        self.assertEqual(self._shares(), [Decimal("1000.00")])

        edit_batch(batch=first, import_container=self.container)
        delete_batch(batch=second)

        self.assertEqual(self._shares(), [Decimal("1000.00")])
