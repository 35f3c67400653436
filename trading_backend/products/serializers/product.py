# products/serializers/product.py

"""
PRODUCT SERIALIZER

Purpose:
- Product master read/write.
- Stock figures are derived from batches (single source of truth), never typed in.
"""

from rest_framework import serializers

from products.models import Product


class ProductSerializer(serializers.ModelSerializer):
    total_stock = serializers.DecimalField(max_digits=14, decimal_places=3, read_only=True)
    free_stock = serializers.DecimalField(max_digits=14, decimal_places=3, read_only=True)

    class Meta:
        model = Product
        fields = [
            "id",
            "product_code",
            "name",
            "unit",
            "default_duty_percent",
            "total_stock",
            "free_stock",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "total_stock", "free_stock", "created_at", "updated_at"]

    def validate_product_code(self, value):
        code = (value or "").strip()
        if not code:
            raise serializers.ValidationError("product_code cannot be blank")
        return code

    def validate(self, attrs):
        # unit / default duty are locked once a batch references the product
        instance = self.instance
        if instance is not None and instance.batches.exists():
            locked = [
                name
                for name in ("unit", "default_duty_percent")
                if name in attrs and attrs[name] != getattr(instance, name)
            ]
            if locked:
                raise serializers.ValidationError(
                    {name: "Cannot change once batches exist for this product" for name in locked}
                )
        return attrs
