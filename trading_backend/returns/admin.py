# returns/admin.py

from django.contrib import admin

from returns.models import MaterialReturn, MaterialReturnItem, StockRejection


class MaterialReturnItemInline(admin.TabularInline):
    model = MaterialReturnItem
    extra = 0
    fields = ("challan_item", "batch", "quantity", "disposition", "financial_loss", "notes")
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(MaterialReturn)
class MaterialReturnAdmin(admin.ModelAdmin):
    list_display = ("return_number", "customer", "status", "total_loss", "return_date")
    list_filter = ("status", "return_date")
    search_fields = ("return_number", "customer__company_name")
    readonly_fields = (
        "return_number",
        "customer",
        "status",
        "total_loss",
        "approved_by",
        "approved_at",
        "created_by",
        "created_at",
    )
    inlines = [MaterialReturnItemInline]

    def has_add_permission(self, request):
        return False


@admin.register(StockRejection)
class StockRejectionAdmin(admin.ModelAdmin):
    list_display = ("rejection_number", "batch", "quantity", "status", "rejection_date")
    list_filter = ("status",)
    search_fields = ("rejection_number", "batch__batch_number")
    readonly_fields = (
        "rejection_number",
        "batch",
        "quantity",
        "status",
        "approved_by",
        "approved_at",
        "created_by",
        "created_at",
    )

    def has_add_permission(self, request):
        return False
