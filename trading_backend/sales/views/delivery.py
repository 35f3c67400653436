"""
======================================================
PATH: sales/views/delivery.py
======================================================
DELIVERY CHALLAN + SALES INVOICE VIEWSETS

Purpose:
- Raise / edit / delete challans and run the approval gate.
- Issue invoices against approved challan lines; cancel them.

Rules:
- Approving a challan is the ONLY endpoint that moves stock out.
- Editing or deleting an approved challan reverses its deductions
  in the same request; blocked when invoiced or returned (409).
"""

from django.core.exceptions import ObjectDoesNotExist, ValidationError
from django.db.models import Prefetch
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from permissions.roles import (
    CAP_DELIVERY_APPROVE,
    CAP_INVOICE_EDIT,
    CAP_SALES_EDIT,
    CapabilityViewSetMixin,
)
from products.services.exceptions import InventoryError
from products.views.errors import domain_error_response
from sales.models import DeliveryChallan, DeliveryChallanItem, SalesInvoice
from sales.serializers import (
    DeliveryChallanSerializer,
    DeliveryChallanWriteSerializer,
    ReasonSerializer,
    SalesInvoiceCreateSerializer,
    SalesInvoiceSerializer,
)
from sales.services import delivery, invoicing
from sales.services.order_lifecycle import FulfillmentError, InvalidOrderTransitionError
from sales.views.access import SALES_READ_CAPABILITIES

DOMAIN_ERRORS = (FulfillmentError, InventoryError, ValidationError, ObjectDoesNotExist)
CONFLICTS = (InvalidOrderTransitionError, delivery.ChallanStateError)

CHALLAN_FIELDS = ("challan_date", "delivery_address", "vehicle_number", "driver_name", "notes")


class DeliveryChallanViewSet(CapabilityViewSetMixin, viewsets.ModelViewSet):
    serializer_class = DeliveryChallanSerializer
    queryset = DeliveryChallan.objects.select_related("customer", "sales_order").prefetch_related(
        Prefetch("items", queryset=DeliveryChallanItem.objects.select_related("batch", "product"))
    )

    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ["approval_status", "customer", "sales_order"]
    search_fields = ["challan_number", "sales_order__so_number", "customer__company_name"]
    ordering_fields = ["created_at", "challan_date"]

    read_capabilities = SALES_READ_CAPABILITIES
    action_capabilities = {
        "create": CAP_SALES_EDIT,
        "update": CAP_SALES_EDIT,
        "partial_update": CAP_SALES_EDIT,
        "destroy": CAP_SALES_EDIT,
        "approve": CAP_DELIVERY_APPROVE,
        "reject": CAP_DELIVERY_APPROVE,
    }

    def _fresh(self, challan):
        return self.get_queryset().get(pk=challan.pk)

    def create(self, request, *args, **kwargs):
        command = DeliveryChallanWriteSerializer(data=request.data)
        command.is_valid(raise_exception=True)
        v = command.validated_data

        try:
            challan = delivery.create_challan(
                customer=v.get("customer"),
                sales_order=v.get("sales_order"),
                items=v["items"],
                user=request.user,
                **{name: v.get(name) for name in CHALLAN_FIELDS},
            )
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc, conflict=CONFLICTS)

        return Response(self.get_serializer(self._fresh(challan)).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        challan = self.get_object()
        command = DeliveryChallanWriteSerializer(
            data={
                "customer_id": str(challan.customer_id),
                **request.data,
            }
        )
        command.is_valid(raise_exception=True)
        v = command.validated_data

        try:
            challan = delivery.edit_challan(
                challan=challan,
                items=v["items"],
                user=request.user,
                **{name: v[name] for name in CHALLAN_FIELDS if name in request.data},
            )
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc, conflict=CONFLICTS)

        return Response(self.get_serializer(self._fresh(challan)).data)

    def partial_update(self, request, *args, **kwargs):
        return self.update(request, *args, **kwargs)

    def destroy(self, request, *args, **kwargs):
        challan = self.get_object()
        try:
            delivery.delete_challan(challan=challan, user=request.user)
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc, conflict=CONFLICTS)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"], url_path="approve")
    def approve(self, request, pk=None):
        """Approve a pending challan: one SALE ledger row per line."""
        challan = self.get_object()
        try:
            challan = delivery.approve_challan(challan=challan, user=request.user)
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc, conflict=CONFLICTS)
        return Response(self.get_serializer(self._fresh(challan)).data)

    @action(detail=True, methods=["post"], url_path="reject")
    def reject(self, request, pk=None):
        challan = self.get_object()
        command = ReasonSerializer(data=request.data)
        command.is_valid(raise_exception=True)
        try:
            challan = delivery.reject_challan(
                challan=challan,
                reason=command.validated_data["reason"],
                user=request.user,
            )
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc, conflict=CONFLICTS)
        return Response(self.get_serializer(self._fresh(challan)).data)


class SalesInvoiceViewSet(
    CapabilityViewSetMixin,
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """Invoices are never edited or deleted; cancel and reissue."""

    serializer_class = SalesInvoiceSerializer
    queryset = SalesInvoice.objects.select_related("customer").prefetch_related("items__batch")

    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ["status", "customer"]
    search_fields = ["invoice_number", "customer__company_name"]
    ordering_fields = ["created_at", "invoice_date", "total_amount"]

    read_capabilities = SALES_READ_CAPABILITIES
    action_capabilities = {
        "create": CAP_INVOICE_EDIT,
        "cancel": CAP_INVOICE_EDIT,
    }

    def create(self, request, *args, **kwargs):
        command = SalesInvoiceCreateSerializer(data=request.data)
        command.is_valid(raise_exception=True)
        v = command.validated_data

        try:
            invoice = invoicing.create_sales_invoice(
                customer=v["customer"],
                lines=v["lines"],
                tax_percent=v.get("tax_percent"),
                invoice_date=v.get("invoice_date"),
                due_date=v.get("due_date"),
                notes=v.get("notes", ""),
                user=request.user,
            )
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc)

        invoice = self.get_queryset().get(pk=invoice.pk)
        return Response(self.get_serializer(invoice).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, pk=None):
        invoice = self.get_object()
        try:
            invoice = invoicing.cancel_sales_invoice(invoice=invoice, user=request.user)
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc, conflict=(invoicing.InvoicingError,))
        return Response(self.get_serializer(invoice).data)
