# sales/serializers/sales_order.py

from rest_framework import serializers

from products.models import Product
from sales.models import Customer, SalesOrder, SalesOrderItem


class CustomerSerializer(serializers.ModelSerializer):
    class Meta:
        model = Customer
        fields = [
            "id",
            "company_name",
            "contact_person",
            "email",
            "phone",
            "address",
            "npwp",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]


class SalesOrderItemSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source="product.name", read_only=True)
    pending_quantity = serializers.DecimalField(max_digits=14, decimal_places=3, read_only=True)
    line_total = serializers.DecimalField(max_digits=18, decimal_places=2, read_only=True)

    class Meta:
        model = SalesOrderItem
        fields = [
            "id",
            "product",
            "product_name",
            "quantity",
            "delivered_quantity",
            "pending_quantity",
            "unit_price",
            "line_total",
        ]
        read_only_fields = fields


class SalesOrderSerializer(serializers.ModelSerializer):
    """Read model: header + lines."""

    customer_name = serializers.CharField(source="customer.company_name", read_only=True)
    items = SalesOrderItemSerializer(many=True, read_only=True)

    class Meta:
        model = SalesOrder
        fields = [
            "id",
            "so_number",
            "customer",
            "customer_name",
            "customer_po_number",
            "order_date",
            "expected_delivery_date",
            "status",
            "notes",
            "rejection_reason",
            "items",
            "created_by",
            "approved_by",
            "approved_at",
            "cancelled_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class SalesOrderLineInputSerializer(serializers.Serializer):
    product_id = serializers.PrimaryKeyRelatedField(source="product", queryset=Product.objects.all())
    quantity = serializers.DecimalField(max_digits=14, decimal_places=3, min_value=0)
    unit_price = serializers.DecimalField(max_digits=18, decimal_places=2, required=False, default=0)

    def validate_quantity(self, value):
        if value <= 0:
            raise serializers.ValidationError("quantity must be greater than zero")
        return value


class SalesOrderCreateSerializer(serializers.Serializer):
    customer_id = serializers.PrimaryKeyRelatedField(source="customer", queryset=Customer.objects.all())
    customer_po_number = serializers.CharField(required=False, allow_blank=True, default="")
    order_date = serializers.DateField(required=False, allow_null=True, default=None)
    expected_delivery_date = serializers.DateField(required=False, allow_null=True, default=None)
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    submit = serializers.BooleanField(required=False, default=False)
    items = SalesOrderLineInputSerializer(many=True, allow_empty=False)


class SalesOrderItemsUpdateSerializer(serializers.Serializer):
    items = SalesOrderLineInputSerializer(many=True, allow_empty=False)


class ReasonSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")
