# sales/admin.py

from django.contrib import admin

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


class ReadOnlyAdminMixin:
    """Workflow records change only through sales/services."""

    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# ======================================================
# CUSTOMER ADMIN
# ======================================================


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ("company_name", "contact_person", "email", "phone", "is_active")
    list_filter = ("is_active",)
    search_fields = ("company_name", "contact_person", "email", "npwp")


# ======================================================
# SALES ORDER ADMIN
# ======================================================


class SalesOrderItemInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = SalesOrderItem
    extra = 0
    fields = ("product", "quantity", "delivered_quantity", "unit_price")
    readonly_fields = fields


@admin.register(SalesOrder)
class SalesOrderAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("so_number", "customer", "status", "order_date", "expected_delivery_date", "created_at")
    list_filter = ("status", "order_date")
    search_fields = ("so_number", "customer_po_number", "customer__company_name")
    inlines = [SalesOrderItemInline]


@admin.register(StockReservation)
class StockReservationAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("sales_order", "batch", "reserved_quantity", "status", "release_reason", "reserved_at")
    list_filter = ("status", "release_reason")
    search_fields = ("sales_order__so_number", "batch__batch_number")


@admin.register(ImportRequirement)
class ImportRequirementAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("sales_order", "product", "required_quantity", "shortage_quantity", "priority", "status")
    list_filter = ("status", "priority")
    search_fields = ("sales_order__so_number", "product__name")


# ======================================================
# DELIVERY / INVOICE ADMIN
# ======================================================


class DeliveryChallanItemInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = DeliveryChallanItem
    extra = 0
    fields = ("sales_order_item", "product", "batch", "quantity", "pack_size", "number_of_packs")
    readonly_fields = fields


@admin.register(DeliveryChallan)
class DeliveryChallanAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("challan_number", "customer", "sales_order", "approval_status", "challan_date")
    list_filter = ("approval_status", "challan_date")
    search_fields = ("challan_number", "sales_order__so_number", "customer__company_name")
    inlines = [DeliveryChallanItemInline]


class SalesInvoiceItemInline(ReadOnlyAdminMixin, admin.TabularInline):
    model = SalesInvoiceItem
    extra = 0
    fields = ("challan_item", "product", "batch", "quantity", "unit_price", "unit_cost_snapshot", "line_total")
    readonly_fields = fields


@admin.register(SalesInvoice)
class SalesInvoiceAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("invoice_number", "customer", "status", "total_amount", "invoice_date")
    list_filter = ("status", "invoice_date")
    search_fields = ("invoice_number", "customer__company_name")
    inlines = [SalesInvoiceItemInline]
