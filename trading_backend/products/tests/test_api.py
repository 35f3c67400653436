# products/tests/test_api.py

from decimal import Decimal

from django.test import TestCase
from rest_framework.test import APIClient

from products.models import Batch
from products.services.inventory import adjust_stock
from products.tests.builders import TODAY, make_batch, make_product, make_user


class InventoryApiTests(TestCase):
    """
    Inventory endpoints.

    GUARANTEES:
    - Writes need the matching capability
    - Domain conflicts come back as 409 with the canonical error body
    - Stock figures are never writable through the API
    """

    def setUp(self):
        self.client = APIClient()
        self.admin = make_user("admin")
        self.warehouse = make_user("warehouse")
        self.sales = make_user("sales")
        self.product = make_product()

    def _batch_payload(self, **overrides):
        payload = {
            "product_id": str(self.product.pk),
            "batch_number": "LOT-API",
            "import_date": TODAY.isoformat(),
            "imported_quantity": "1000",
            "import_price_usd": "10",
            "exchange_rate": "15000",
            "duty_percent": "5",
            "freight_charge": "2",
            "freight_charge_type": "percentage",
        }
        payload.update(overrides)
        return payload

    def test_anonymous_is_denied(self):
        response = self.client.get("/api/products/batches/")
        self.assertEqual(response.status_code, 401)

    def test_create_batch_derives_costs(self):
        self.client.force_authenticate(self.warehouse)

        response = self.client.post("/api/products/batches/", self._batch_payload(), format="json")

        self.assertEqual(response.status_code, 201, response.data)
        self.assertEqual(response.data["current_stock"], "1000.000")
        self.assertEqual(response.data["landed_cost_per_unit"], "160.5000")
        self.assertEqual(response.data["suggested_selling_price"], "200.63")

    def test_stock_fields_are_read_only(self):
        self.client.force_authenticate(self.warehouse)

        response = self.client.post(
            "/api/products/batches/",
            self._batch_payload(current_stock="5", reserved_stock="5"),
            format="json",
        )

        self.assertEqual(response.status_code, 201, response.data)
        self.assertEqual(response.data["current_stock"], "1000.000")
        self.assertEqual(response.data["reserved_stock"], "0.000")

    def test_sales_role_cannot_create_batches(self):
        self.client.force_authenticate(self.sales)

        response = self.client.post("/api/products/batches/", self._batch_payload(), format="json")

        self.assertEqual(response.status_code, 403)
        self.assertFalse(Batch.objects.exists())

    def test_duplicate_batch_number_is_conflict(self):
        make_batch(self.product, "LOT-API", 10)
        self.client.force_authenticate(self.warehouse)

        response = self.client.post("/api/products/batches/", self._batch_payload(), format="json")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["error"]["code"], "DUPLICATE_BATCH_NUMBER")

    def test_adjust_needs_adjust_capability(self):
        batch = make_batch(self.product, "LOT-ADJ", 100)

        self.client.force_authenticate(self.warehouse)
        response = self.client.post(
            f"/api/products/batches/{batch.pk}/adjust/", {"quantity_delta": "-5"}, format="json"
        )
        self.assertEqual(response.status_code, 403)

        self.client.force_authenticate(self.admin)
        response = self.client.post(
            f"/api/products/batches/{batch.pk}/adjust/",
            {"quantity_delta": "-5", "notes": "spillage"},
            format="json",
        )
        self.assertEqual(response.status_code, 200, response.data)
        self.assertEqual(response.data["batch"]["current_stock"], "95.000")

    def test_adjust_into_reserved_stock_is_conflict(self):
        batch = make_batch(self.product, "LOT-RES", 100)
        Batch.objects.filter(pk=batch.pk).update(reserved_stock=Decimal("80"))
        self.client.force_authenticate(self.admin)

        response = self.client.post(
            f"/api/products/batches/{batch.pk}/adjust/", {"quantity_delta": "-30"}, format="json"
        )

        self.assertEqual(response.status_code, 409)
        error = response.data["error"]
        self.assertEqual(error["code"], "INSUFFICIENT_STOCK")
        self.assertEqual(error["batch_number"], "LOT-RES")
        self.assertEqual(error["gap"], "10.000")

    def test_edit_below_sold_is_conflict(self):
        batch = make_batch(self.product, "LOT-SOLD", 100)

        adjust_stock(batch=batch, quantity_delta=Decimal("-60"), transaction_type="sale")
        self.client.force_authenticate(self.warehouse)

        response = self.client.patch(
            f"/api/products/batches/{batch.pk}/", {"imported_quantity": "50"}, format="json"
        )

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["error"]["code"], "QUANTITY_BELOW_SOLD")

    def test_ledger_and_fifo_preview(self):
        make_batch(self.product, "LOT-1", 30, days_ago=60)
        batch = make_batch(self.product, "LOT-2", 50, days_ago=5)
        self.client.force_authenticate(self.sales)

        ledger = self.client.get(f"/api/products/batches/{batch.pk}/ledger/")
        self.assertEqual(ledger.status_code, 200)
        self.assertEqual(ledger.data["count"], 1)
        self.assertEqual(ledger.data["ledger_total"], "50.000")

        preview = self.client.get(
            "/api/products/batches/fifo-preview/",
            {"product": str(self.product.pk), "quantity": "40"},
        )
        self.assertEqual(preview.status_code, 200)
        self.assertEqual(
            [a["batch_number"] for a in preview.data["allocations"]], ["LOT-1", "LOT-2"]
        )
        self.assertEqual(preview.data["shortage"], "0.000")

    def test_product_with_batches_cannot_be_deleted(self):
        make_batch(self.product, "LOT-KEEP", 10)
        self.client.force_authenticate(self.admin)

        response = self.client.delete(f"/api/products/products/{self.product.pk}/")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["error"]["code"], "PRODUCT_IN_USE")
