# products/tests/test_landed_cost.py

from decimal import Decimal

from django.test import SimpleTestCase, TestCase, override_settings

from products.models import Batch
from products.services.exceptions import InvalidChargeConfigError
from products.services.landed_cost import (
    compute_landed_cost,
    full_unit_cost,
    suggested_selling_price,
)
from products.tests.builders import make_batch, make_product


class LandedCostFormulaTests(SimpleTestCase):
    """
    GUARANTEES:
    - Duty is a percent of the local price
    - Charges are either a percent of the local price or a fixed amount
    - Per-unit cost is undefined while imported quantity is zero
    """

    def _compute(self, **overrides):
        params = {
            "import_price_usd": Decimal("10"),
            "exchange_rate": Decimal("15000"),
            "duty_percent": Decimal("5"),
            "freight_charge": Decimal("2"),
            "freight_charge_type": Batch.ChargeType.PERCENTAGE,
            "imported_quantity": Decimal("1000"),
        }
        params.update(overrides)
        return compute_landed_cost(**params)

    def test_percentage_freight(self):
        result = self._compute()

        self.assertEqual(result.import_price_local, Decimal("150000.00"))
        self.assertEqual(result.duty_amount, Decimal("7500.00"))
        self.assertEqual(result.freight_amount, Decimal("3000.00"))
        self.assertEqual(result.landed_cost_total, Decimal("160500.00"))
        self.assertEqual(result.landed_cost_per_unit, Decimal("160.5000"))

    def test_fixed_freight_and_other_charge(self):
        result = self._compute(
            freight_charge=Decimal("5000"),
            freight_charge_type=Batch.ChargeType.FIXED,
            other_charge=Decimal("1"),
            other_charge_type=Batch.ChargeType.PERCENTAGE,
        )

        self.assertEqual(result.freight_amount, Decimal("5000.00"))
        self.assertEqual(result.other_amount, Decimal("1500.00"))
        self.assertEqual(result.landed_cost_total, Decimal("164000.00"))
        self.assertEqual(result.landed_cost_per_unit, Decimal("164.0000"))

    def test_zero_quantity_has_no_unit_cost(self):
        result = self._compute(imported_quantity=Decimal("0"))

        self.assertEqual(result.landed_cost_total, Decimal("160500.00"))
        self.assertIsNone(result.landed_cost_per_unit)

    def test_zero_exchange_rate_with_price_is_rejected(self):
        with self.assertRaises(InvalidChargeConfigError):
            self._compute(exchange_rate=Decimal("0"))

    def test_negative_inputs_are_rejected(self):
        with self.assertRaises(InvalidChargeConfigError):
            self._compute(duty_percent=Decimal("-1"))
        with self.assertRaises(InvalidChargeConfigError):
            self._compute(freight_charge=Decimal("-10"))

    def test_unknown_charge_type_is_rejected(self):
        with self.assertRaises(InvalidChargeConfigError):
            self._compute(freight_charge_type="per_kg")

    def test_suggested_price_uses_markup_factor(self):
        self.assertEqual(
            suggested_selling_price(Decimal("160.5000"), factor=Decimal("1.25")),
            Decimal("200.63"),
        )
        self.assertEqual(suggested_selling_price(None), Decimal("0.00"))

    @override_settings(SUGGESTED_MARKUP_FACTOR=Decimal("2"))
    def test_suggested_price_defaults_to_setting(self):
        self.assertEqual(suggested_selling_price(Decimal("10.0000")), Decimal("20.00"))


class BatchLandedCostTests(TestCase):
    """
    GUARANTEES:
    - Batch intake stamps every derived cost field
    - The product's default duty applies when the batch gives none
    - Container overhead is reported beside the landed cost, never inside it
    """

    def setUp(self):
        self.product = make_product(default_duty_percent=Decimal("5"))

    def test_intake_stamps_landed_cost(self):
        batch = make_batch(
            self.product,
            "LOT-A",
            1000,
            import_price_usd=Decimal("10"),
            exchange_rate=Decimal("15000"),
            freight_charge=Decimal("2"),
            freight_charge_type=Batch.ChargeType.PERCENTAGE,
        )
        batch.refresh_from_db()

        self.assertEqual(batch.duty_percent, Decimal("5.00"))
        self.assertEqual(batch.import_price_local, Decimal("150000.00"))
        self.assertEqual(batch.landed_cost_total, Decimal("160500.00"))
        self.assertEqual(batch.landed_cost_per_unit, Decimal("160.5000"))
        self.assertEqual(full_unit_cost(batch), Decimal("160.5000"))

    def test_full_unit_cost_adds_container_share(self):
        batch = make_batch(
            self.product,
            "LOT-B",
            1000,
            import_price_usd=Decimal("10"),
            exchange_rate=Decimal("15000"),
            duty_percent=Decimal("0"),
        )
        Batch.objects.filter(pk=batch.pk).update(import_cost_allocated=Decimal("2500.00"))
        batch.refresh_from_db()

        self.assertEqual(batch.landed_cost_per_unit, Decimal("150.0000"))
        self.assertEqual(batch.container_cost_per_unit, Decimal("2.5000"))
        self.assertEqual(full_unit_cost(batch), Decimal("152.5000"))
