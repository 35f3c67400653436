import uuid
from decimal import Decimal

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Product",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("product_code", models.CharField(db_index=True, max_length=64, unique=True)),
                ("name", models.CharField(db_index=True, max_length=255)),
                (
                    "unit",
                    models.CharField(
                        default="kg",
                        help_text="Unit of measure for every quantity on this product (kg, liter, pcs...)",
                        max_length=16,
                    ),
                ),
                (
                    "default_duty_percent",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="Import duty percent copied onto new batches.",
                        max_digits=6,
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="ImportContainer",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("container_ref", models.CharField(max_length=64, unique=True)),
                ("supplier_name", models.CharField(blank=True, max_length=255)),
                ("import_date", models.DateField()),
                ("freight_charges", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=16)),
                ("clearing_forwarding", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=16)),
                ("port_charges", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=16)),
                ("container_handling", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=16)),
                ("transportation", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=16)),
                ("loading_import", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=16)),
                (
                    "bpom_ski_fees",
                    models.DecimalField(
                        decimal_places=2, default=Decimal("0.00"), help_text="BPOM / SKI registration fees", max_digits=16
                    ),
                ),
                ("other_import_costs", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=16)),
                ("duty_bm", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Bea Masuk", max_digits=16)),
                (
                    "ppn_import",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="PPN Import (recoverable input VAT)",
                        max_digits=16,
                    ),
                ),
                (
                    "pph_import",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="PPh 22 Import (prepaid income tax)",
                        max_digits=16,
                    ),
                ),
                ("notes", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["-import_date", "container_ref"],
            },
        ),
        migrations.CreateModel(
            name="Batch",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("batch_number", models.CharField(max_length=128, unique=True)),
                ("import_date", models.DateField()),
                ("expiry_date", models.DateField(blank=True, null=True)),
                ("packaging_details", models.CharField(blank=True, max_length=255)),
                (
                    "imported_quantity",
                    models.DecimalField(
                        decimal_places=3, help_text="Quantity imported (ledger-edited only)", max_digits=14
                    ),
                ),
                (
                    "current_stock",
                    models.DecimalField(
                        decimal_places=3,
                        default=Decimal("0"),
                        help_text="On-hand quantity = sum of ledger transactions (service-managed only)",
                        max_digits=14,
                    ),
                ),
                (
                    "reserved_stock",
                    models.DecimalField(
                        decimal_places=3,
                        default=Decimal("0"),
                        help_text="Sum of active reservations (reservation-managed only)",
                        max_digits=14,
                    ),
                ),
                (
                    "import_price_usd",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="Invoice value of the whole lot in USD",
                        max_digits=18,
                    ),
                ),
                (
                    "exchange_rate",
                    models.DecimalField(
                        decimal_places=4, default=Decimal("0"), help_text="Local currency per 1 USD", max_digits=14
                    ),
                ),
                ("duty_percent", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=6)),
                ("freight_charge", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                (
                    "freight_charge_type",
                    models.CharField(
                        choices=[("percentage", "Percentage of import price"), ("fixed", "Fixed amount")],
                        default="fixed",
                        max_length=16,
                    ),
                ),
                ("other_charge", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                (
                    "other_charge_type",
                    models.CharField(
                        choices=[("percentage", "Percentage of import price"), ("fixed", "Fixed amount")],
                        default="fixed",
                        max_length=16,
                    ),
                ),
                ("import_price_local", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("duty_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("freight_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("other_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("landed_cost_total", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                (
                    "landed_cost_per_unit",
                    models.DecimalField(
                        blank=True,
                        decimal_places=4,
                        help_text="landed_cost_total / imported_quantity (null while imported_quantity is 0)",
                        max_digits=18,
                        null=True,
                    ),
                ),
                (
                    "import_cost_allocated",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="This batch's share of the container overhead",
                        max_digits=18,
                    ),
                ),
                ("is_active", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="created_batches",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "import_container",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="batches",
                        to="products.importcontainer",
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="batches",
                        to="products.product",
                    ),
                ),
            ],
            options={
                "ordering": ["import_date", "id"],
                "indexes": [
                    models.Index(fields=["product", "is_active", "import_date"], name="products_ba_product_0d1c2e_idx"),
                    models.Index(fields=["expiry_date"], name="products_ba_expiry__5b7f3a_idx"),
                    models.Index(fields=["import_date"], name="products_ba_import__9a4e61_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("imported_quantity__gte", 0)),
                        name="chk_batch_imported_qty_gte_zero",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("reserved_stock__gte", 0)),
                        name="chk_batch_reserved_gte_zero",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("reserved_stock__lte", models.F("current_stock"))),
                        name="chk_batch_reserved_lte_current",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="InventoryTransaction",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "transaction_type",
                    models.CharField(
                        choices=[("purchase", "Purchase"), ("sale", "Sale"), ("adjustment", "Adjustment")],
                        max_length=16,
                    ),
                ),
                (
                    "quantity",
                    models.DecimalField(decimal_places=3, help_text="Signed delta applied to the batch", max_digits=14),
                ),
                (
                    "reference_type",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("batch", "Batch intake"),
                            ("delivery_challan_item", "Delivery challan item"),
                            ("material_return_item", "Material return item"),
                            ("stock_rejection", "Stock rejection"),
                            ("manual", "Manual adjustment"),
                        ],
                        max_length=32,
                    ),
                ),
                ("reference_id", models.UUIDField(blank=True, null=True)),
                ("notes", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "batch",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="transactions",
                        to="products.batch",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="inventory_transactions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "product",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="inventory_transactions",
                        to="products.product",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at", "id"],
                "indexes": [
                    models.Index(fields=["batch", "created_at"], name="products_in_batch_i_3c8d21_idx"),
                    models.Index(fields=["product", "created_at"], name="products_in_product_7e2a90_idx"),
                    models.Index(fields=["transaction_type"], name="products_in_transac_b41f06_idx"),
                    models.Index(fields=["reference_type", "reference_id"], name="products_in_referen_5d9c7b_idx"),
                ],
            },
        ),
    ]
