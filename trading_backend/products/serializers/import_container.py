# products/serializers/import_container.py

from rest_framework import serializers

from products.models import ImportContainer


class ImportContainerSerializer(serializers.ModelSerializer):
    allocatable_cost = serializers.DecimalField(max_digits=18, decimal_places=2, read_only=True)
    total_taxes = serializers.DecimalField(max_digits=18, decimal_places=2, read_only=True)
    batch_count = serializers.IntegerField(source="batches.count", read_only=True)

    class Meta:
        model = ImportContainer
        fields = [
            "id",
            "container_ref",
            "supplier_name",
            "import_date",
            *ImportContainer.OVERHEAD_FIELDS,
            *ImportContainer.TAX_FIELDS,
            "allocatable_cost",
            "total_taxes",
            "batch_count",
            "notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "allocatable_cost", "total_taxes", "batch_count", "created_at", "updated_at"]
