# sales/serializers/delivery.py

from rest_framework import serializers

from products.models import Batch
from sales.models import (
    Customer,
    DeliveryChallan,
    DeliveryChallanItem,
    ImportRequirement,
    SalesInvoice,
    SalesInvoiceItem,
    SalesOrder,
    SalesOrderItem,
    StockReservation,
)
from sales.services.invoicing import uninvoiced_quantity

# ============================================================
# DELIVERY CHALLANS
# ============================================================


class DeliveryChallanItemSerializer(serializers.ModelSerializer):
    batch_number = serializers.CharField(source="batch.batch_number", read_only=True)
    product_name = serializers.CharField(source="product.name", read_only=True)
    uninvoiced_quantity = serializers.SerializerMethodField()

    class Meta:
        model = DeliveryChallanItem
        fields = [
            "id",
            "sales_order_item",
            "product",
            "product_name",
            "batch",
            "batch_number",
            "quantity",
            "uninvoiced_quantity",
            "pack_size",
            "number_of_packs",
        ]
        read_only_fields = fields

    def get_uninvoiced_quantity(self, obj) -> str:
        return str(uninvoiced_quantity(obj))


class DeliveryChallanSerializer(serializers.ModelSerializer):
    items = DeliveryChallanItemSerializer(many=True, read_only=True)
    so_number = serializers.CharField(source="sales_order.so_number", read_only=True, default=None)

    class Meta:
        model = DeliveryChallan
        fields = [
            "id",
            "challan_number",
            "customer",
            "sales_order",
            "so_number",
            "challan_date",
            "delivery_address",
            "vehicle_number",
            "driver_name",
            "notes",
            "approval_status",
            "rejection_reason",
            "items",
            "created_by",
            "approved_by",
            "approved_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ChallanLineInputSerializer(serializers.Serializer):
    batch_id = serializers.PrimaryKeyRelatedField(source="batch", queryset=Batch.objects.all())
    sales_order_item_id = serializers.PrimaryKeyRelatedField(
        source="sales_order_item",
        queryset=SalesOrderItem.objects.all(),
        required=False,
        allow_null=True,
        default=None,
    )
    quantity = serializers.DecimalField(max_digits=14, decimal_places=3)
    pack_size = serializers.CharField(required=False, allow_blank=True, default="")
    number_of_packs = serializers.IntegerField(required=False, allow_null=True, default=None, min_value=0)


class DeliveryChallanWriteSerializer(serializers.Serializer):
    customer_id = serializers.PrimaryKeyRelatedField(
        source="customer",
        queryset=Customer.objects.all(),
        required=False,
        allow_null=True,
        default=None,
    )
    sales_order_id = serializers.PrimaryKeyRelatedField(
        source="sales_order",
        queryset=SalesOrder.objects.all(),
        required=False,
        allow_null=True,
        default=None,
    )
    challan_date = serializers.DateField(required=False, allow_null=True, default=None)
    delivery_address = serializers.CharField(required=False, allow_blank=True, default="")
    vehicle_number = serializers.CharField(required=False, allow_blank=True, default="")
    driver_name = serializers.CharField(required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    items = ChallanLineInputSerializer(many=True, allow_empty=False)

    def validate(self, attrs):
        if attrs.get("customer") is None and attrs.get("sales_order") is None:
            raise serializers.ValidationError("customer_id or sales_order_id is required")
        return attrs


# ============================================================
# INVOICES
# ============================================================


class SalesInvoiceItemSerializer(serializers.ModelSerializer):
    batch_number = serializers.CharField(source="batch.batch_number", read_only=True)
    cost_total = serializers.DecimalField(max_digits=18, decimal_places=2, read_only=True)
    margin = serializers.DecimalField(max_digits=18, decimal_places=2, read_only=True)

    class Meta:
        model = SalesInvoiceItem
        fields = [
            "id",
            "challan_item",
            "product",
            "batch",
            "batch_number",
            "quantity",
            "unit_price",
            "unit_cost_snapshot",
            "line_total",
            "cost_total",
            "margin",
        ]
        read_only_fields = fields


class SalesInvoiceSerializer(serializers.ModelSerializer):
    items = SalesInvoiceItemSerializer(many=True, read_only=True)

    class Meta:
        model = SalesInvoice
        fields = [
            "id",
            "invoice_number",
            "customer",
            "invoice_date",
            "due_date",
            "status",
            "subtotal",
            "tax_percent",
            "tax_amount",
            "total_amount",
            "notes",
            "items",
            "created_by",
            "cancelled_at",
            "created_at",
        ]
        read_only_fields = fields


class InvoiceLineInputSerializer(serializers.Serializer):
    challan_item_id = serializers.PrimaryKeyRelatedField(
        source="challan_item",
        queryset=DeliveryChallanItem.objects.select_related("challan"),
    )
    unit_price = serializers.DecimalField(max_digits=18, decimal_places=2, min_value=0)
    quantity = serializers.DecimalField(max_digits=14, decimal_places=3, required=False, allow_null=True, default=None)


class SalesInvoiceCreateSerializer(serializers.Serializer):
    customer_id = serializers.PrimaryKeyRelatedField(source="customer", queryset=Customer.objects.all())
    invoice_date = serializers.DateField(required=False, allow_null=True, default=None)
    due_date = serializers.DateField(required=False, allow_null=True, default=None)
    tax_percent = serializers.DecimalField(max_digits=5, decimal_places=2, required=False, default=0)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    lines = InvoiceLineInputSerializer(many=True, allow_empty=False)


# ============================================================
# RESERVATIONS / IMPORT REQUIREMENTS
# ============================================================


class StockReservationSerializer(serializers.ModelSerializer):
    batch_number = serializers.CharField(source="batch.batch_number", read_only=True)

    class Meta:
        model = StockReservation
        fields = [
            "id",
            "sales_order",
            "sales_order_item",
            "batch",
            "batch_number",
            "product",
            "reserved_quantity",
            "status",
            "release_reason",
            "reserved_by",
            "reserved_at",
            "released_at",
        ]
        read_only_fields = fields


class ImportRequirementSerializer(serializers.ModelSerializer):
    so_number = serializers.CharField(source="sales_order.so_number", read_only=True)
    product_name = serializers.CharField(source="product.name", read_only=True)

    class Meta:
        model = ImportRequirement
        fields = [
            "id",
            "sales_order",
            "so_number",
            "product",
            "product_name",
            "required_quantity",
            "available_quantity",
            "shortage_quantity",
            "required_by",
            "priority",
            "status",
            "notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class ImportRequirementStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=ImportRequirement.Status.choices)
