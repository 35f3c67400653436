# returns/serializers/returns.py

from rest_framework import serializers

from products.models import Batch
from returns.models import MaterialReturn, MaterialReturnItem, StockRejection
from sales.models import Customer, DeliveryChallanItem


class MaterialReturnItemSerializer(serializers.ModelSerializer):
    batch_number = serializers.CharField(source="batch.batch_number", read_only=True)

    class Meta:
        model = MaterialReturnItem
        fields = [
            "id",
            "challan_item",
            "product",
            "batch",
            "batch_number",
            "quantity",
            "disposition",
            "financial_loss",
            "notes",
        ]
        read_only_fields = fields


class MaterialReturnSerializer(serializers.ModelSerializer):
    items = MaterialReturnItemSerializer(many=True, read_only=True)

    class Meta:
        model = MaterialReturn
        fields = [
            "id",
            "return_number",
            "customer",
            "return_date",
            "reason",
            "status",
            "rejection_reason",
            "total_loss",
            "items",
            "created_by",
            "approved_by",
            "approved_at",
            "created_at",
        ]
        read_only_fields = fields


class MaterialReturnLineInputSerializer(serializers.Serializer):
    challan_item_id = serializers.PrimaryKeyRelatedField(
        source="challan_item",
        queryset=DeliveryChallanItem.objects.select_related("challan", "batch"),
    )
    quantity = serializers.DecimalField(max_digits=14, decimal_places=3)
    disposition = serializers.ChoiceField(
        choices=MaterialReturnItem.Disposition.choices,
        default=MaterialReturnItem.Disposition.RESTOCK,
    )
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class MaterialReturnCreateSerializer(serializers.Serializer):
    customer_id = serializers.PrimaryKeyRelatedField(source="customer", queryset=Customer.objects.all())
    return_date = serializers.DateField(required=False, allow_null=True, default=None)
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    items = MaterialReturnLineInputSerializer(many=True, allow_empty=False)


class StockRejectionSerializer(serializers.ModelSerializer):
    batch_number = serializers.CharField(source="batch.batch_number", read_only=True)

    class Meta:
        model = StockRejection
        fields = [
            "id",
            "rejection_number",
            "batch",
            "batch_number",
            "quantity",
            "reason",
            "rejection_date",
            "status",
            "decision_notes",
            "created_by",
            "approved_by",
            "approved_at",
            "created_at",
        ]
        read_only_fields = fields


class StockRejectionCreateSerializer(serializers.Serializer):
    batch_id = serializers.PrimaryKeyRelatedField(source="batch", queryset=Batch.objects.all())
    quantity = serializers.DecimalField(max_digits=14, decimal_places=3)
    reason = serializers.CharField(required=False, allow_blank=True, default="")
    rejection_date = serializers.DateField(required=False, allow_null=True, default=None)
