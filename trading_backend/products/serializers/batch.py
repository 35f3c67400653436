# products/serializers/batch.py
"""
======================================================
PATH: products/serializers/batch.py
======================================================
BATCH SERIALIZERS

Purpose:
- Validate batch intake / edit payloads at the ViewSet boundary.
- Expose derived quantities and costs read-only.

Rules:
- current_stock / reserved_stock / cost outputs are NEVER writable.
- Writes are carried out by products/services/inventory.py, not by
  serializer.save().
"""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from products.models import Batch, ImportContainer, InventoryTransaction, Product
from products.services.landed_cost import full_unit_cost, suggested_selling_price

QTY = {"max_digits": 14, "decimal_places": 3}


class BatchSerializer(serializers.ModelSerializer):
    product_id = serializers.PrimaryKeyRelatedField(
        source="product",
        queryset=Product.objects.all(),
    )
    product_name = serializers.CharField(source="product.name", read_only=True)
    import_container_id = serializers.PrimaryKeyRelatedField(
        source="import_container",
        queryset=ImportContainer.objects.all(),
        required=False,
        allow_null=True,
    )

    free_stock = serializers.DecimalField(**QTY, read_only=True)
    container_cost_per_unit = serializers.DecimalField(max_digits=18, decimal_places=4, read_only=True)
    full_unit_cost = serializers.SerializerMethodField()
    suggested_selling_price = serializers.SerializerMethodField()

    class Meta:
        model = Batch
        fields = [
            "id",
            "product_id",
            "product_name",
            "batch_number",
            "import_date",
            "expiry_date",
            "packaging_details",
            "imported_quantity",
            "current_stock",
            "reserved_stock",
            "free_stock",
            "import_price_usd",
            "exchange_rate",
            "duty_percent",
            "freight_charge",
            "freight_charge_type",
            "other_charge",
            "other_charge_type",
            "import_price_local",
            "duty_amount",
            "freight_amount",
            "other_amount",
            "landed_cost_total",
            "landed_cost_per_unit",
            "import_container_id",
            "import_cost_allocated",
            "container_cost_per_unit",
            "full_unit_cost",
            "suggested_selling_price",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = [
            "id",
            "current_stock",
            "reserved_stock",
            "import_price_local",
            "duty_amount",
            "freight_amount",
            "other_amount",
            "landed_cost_total",
            "landed_cost_per_unit",
            "import_cost_allocated",
            "is_active",
            "created_at",
            "updated_at",
        ]
        extra_kwargs = {
            "duty_percent": {"required": False, "allow_null": True},
            # uniqueness is reported by the service as DuplicateBatchNumberError
            "batch_number": {"validators": []},
        }

    def get_full_unit_cost(self, obj) -> str:
        return str(full_unit_cost(obj))

    def get_suggested_selling_price(self, obj) -> str:
        return str(suggested_selling_price(obj.landed_cost_per_unit))

    def validate_imported_quantity(self, value):
        if value is None or value <= 0:
            raise serializers.ValidationError("imported_quantity must be greater than zero")
        return value

    def validate(self, attrs):
        if self.instance is not None and "product" in attrs and attrs["product"] != self.instance.product:
            raise serializers.ValidationError({"product_id": "A batch cannot move to another product"})
        return attrs


class StockAdjustmentSerializer(serializers.Serializer):
    quantity_delta = serializers.DecimalField(**QTY)
    notes = serializers.CharField(required=False, allow_blank=True, default="")

    def validate_quantity_delta(self, value):
        if value == Decimal("0"):
            raise serializers.ValidationError("quantity_delta cannot be 0")
        return value


class InventoryTransactionSerializer(serializers.ModelSerializer):
    batch_number = serializers.CharField(source="batch.batch_number", read_only=True)

    class Meta:
        model = InventoryTransaction
        fields = [
            "id",
            "product",
            "batch",
            "batch_number",
            "transaction_type",
            "quantity",
            "reference_type",
            "reference_id",
            "notes",
            "created_by",
            "created_at",
        ]
        read_only_fields = fields
