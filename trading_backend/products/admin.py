# products/admin.py
"""
=====================================================
PATH: products/admin.py
=====================================================

Admin rules (audit-safe inventory):

- Products and containers are edited here; container saves reallocate
  overhead across linked batches.
- Batches are created and edited only through the batch ledger service (API);
  the admin shows them read-only.
- InventoryTransaction rows are append-only and never editable.
"""

from django.contrib import admin

from products.models import Batch, ImportContainer, InventoryTransaction, Product
from products.services.container_allocation import reallocate_container_costs


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("product_code", "name", "unit", "default_duty_percent", "is_active")
    list_filter = ("is_active", "unit")
    search_fields = ("product_code", "name")


@admin.register(ImportContainer)
class ImportContainerAdmin(admin.ModelAdmin):
    list_display = ("container_ref", "supplier_name", "import_date")
    search_fields = ("container_ref", "supplier_name")

    def save_model(self, request, obj, form, change):
        super().save_model(request, obj, form, change)
        reallocate_container_costs(container=obj)


@admin.register(Batch)
class BatchAdmin(admin.ModelAdmin):
    list_display = (
        "batch_number",
        "product",
        "import_date",
        "expiry_date",
        "imported_quantity",
        "current_stock",
        "reserved_stock",
        "landed_cost_per_unit",
        "is_active",
    )
    list_filter = ("is_active", "product")
    search_fields = ("batch_number", "product__name", "product__product_code")
    readonly_fields = (
        "imported_quantity",
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
        "created_by",
        "created_at",
        "updated_at",
    )

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(InventoryTransaction)
class InventoryTransactionAdmin(admin.ModelAdmin):
    list_display = ("created_at", "batch", "transaction_type", "quantity", "reference_type", "reference_id")
    list_filter = ("transaction_type", "reference_type")
    search_fields = ("batch__batch_number", "product__name")

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
