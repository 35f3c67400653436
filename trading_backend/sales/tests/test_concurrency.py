# sales/tests/test_concurrency.py

import threading
from decimal import Decimal

from django.db import connection
from django.test import TransactionTestCase, skipUnlessDBFeature

from products.tests.builders import TODAY, make_batch, make_product, make_user
from sales.models import SalesOrder
from sales.services.order_service import approve_order
from sales.services.reservations import active_reserved_total
from sales.tests.builders import make_customer, make_order


@skipUnlessDBFeature("has_select_for_update")
class ConcurrentApprovalTests(TransactionTestCase):
    """
    GUARANTEES:
    - Two approvals racing for the same batch never over-reserve it
    - Exactly one of them ends in shortage
    """

    def setUp(self):
        self.user = make_user("manager")
        customer = make_customer()
        self.product = make_product()
        self.batch = make_batch(self.product, "LOT-RACE", 1000)
        self.orders = [make_order(customer, [(self.product, 600, 250)]) for _ in range(2)]

    def test_parallel_approvals_split_reserved_and_shortage(self):
        barrier = threading.Barrier(len(self.orders))
        errors = []

        def approve(order):
            try:
                barrier.wait(timeout=10)
                approve_order(sales_order=order, user=self.user, as_of=TODAY)
            except Exception as exc:  # surfaced through `errors`
                errors.append(exc)
            finally:
                connection.close()

        threads = [threading.Thread(target=approve, args=(order,)) for order in self.orders]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])

        statuses = sorted(SalesOrder.objects.values_list("status", flat=True))
        self.assertEqual(statuses, [SalesOrder.STATUS_SHORTAGE, SalesOrder.STATUS_STOCK_RESERVED])

        self.batch.refresh_from_db()
        self.assertEqual(self.batch.reserved_stock, Decimal("600.000"))
        self.assertEqual(self.batch.reserved_stock, active_reserved_total(self.batch))
        self.assertLessEqual(self.batch.reserved_stock, self.batch.current_stock)
