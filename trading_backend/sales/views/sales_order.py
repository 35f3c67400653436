"""
======================================================
PATH: sales/views/sales_order.py
======================================================
SALES ORDER VIEWSET

Purpose:
- Order CRUD while draft, then the approval / allocation workflow as
  explicit actions.

Rules:
- Status is never written from the request body; every change is a
  service call validated by the order state machine.
- A shortage is a normal 200 outcome with the import requirements it raised.
"""

from django.core.exceptions import ObjectDoesNotExist, ValidationError
from django.db.models import Prefetch
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from permissions.roles import CAP_SALES_APPROVE, CAP_SALES_EDIT, CapabilityViewSetMixin
from products.services.exceptions import InventoryError
from products.views.errors import domain_error_response, error_response
from sales.models import SalesOrder, SalesOrderItem
from sales.serializers import (
    ImportRequirementSerializer,
    ReasonSerializer,
    SalesOrderCreateSerializer,
    SalesOrderItemsUpdateSerializer,
    SalesOrderSerializer,
    StockReservationSerializer,
)
from sales.services import order_service
from sales.services.order_lifecycle import FulfillmentError, InvalidOrderTransitionError
from sales.views.access import SALES_READ_CAPABILITIES

DOMAIN_ERRORS = (FulfillmentError, InventoryError, ValidationError, ObjectDoesNotExist)
CONFLICTS = (InvalidOrderTransitionError,)


def allocation_payload(result) -> dict:
    """Serialize an AllocationResult (real or preview)."""
    holds = []
    for entry in result.reservations:
        if isinstance(entry, tuple):
            item, allocation = entry
            holds.append(
                {
                    "sales_order_item": str(item.pk),
                    "batch": str(allocation.batch.pk),
                    "batch_number": allocation.batch.batch_number,
                    "quantity": str(allocation.quantity),
                }
            )
        else:
            holds.append(StockReservationSerializer(entry).data)

    return {
        "outcome": result.outcome,
        "sales_order": SalesOrderSerializer(result.sales_order).data,
        "reservations": holds,
        "shortages": [
            {
                "product_id": str(s.product_id),
                "required": str(s.required),
                "available": str(s.available),
                "shortage": str(s.shortage),
            }
            for s in result.shortages
        ],
        "import_requirements": ImportRequirementSerializer(result.requirements, many=True).data,
    }


class SalesOrderViewSet(CapabilityViewSetMixin, viewsets.ModelViewSet):
    """
    /api/sales/orders/

    create           -> create_sales_order()
    update           -> replace_order_items()   (draft / pending approval)
    destroy          -> drafts only
    submit / approve / allocate / reject / cancel / archive -> workflow
    allocation-preview -> read-only FIFO plan
    """

    serializer_class = SalesOrderSerializer
    queryset = SalesOrder.objects.select_related("customer").prefetch_related(
        Prefetch("items", queryset=SalesOrderItem.objects.select_related("product"))
    )

    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ["status", "customer"]
    search_fields = ["so_number", "customer_po_number", "customer__company_name"]
    ordering_fields = ["created_at", "order_date", "expected_delivery_date"]

    read_capabilities = SALES_READ_CAPABILITIES
    action_capabilities = {
        "create": CAP_SALES_EDIT,
        "update": CAP_SALES_EDIT,
        "partial_update": CAP_SALES_EDIT,
        "destroy": CAP_SALES_EDIT,
        "submit": CAP_SALES_EDIT,
        "cancel": CAP_SALES_EDIT,
        "approve": CAP_SALES_APPROVE,
        "reject": CAP_SALES_APPROVE,
        "allocate": CAP_SALES_APPROVE,
        "archive": CAP_SALES_APPROVE,
    }

    def _fresh(self, order):
        return self.get_queryset().get(pk=order.pk)

    # -------------------------------------------------
    # CRUD
    # -------------------------------------------------
    def create(self, request, *args, **kwargs):
        command = SalesOrderCreateSerializer(data=request.data)
        command.is_valid(raise_exception=True)
        v = command.validated_data

        try:
            order = order_service.create_sales_order(
                customer=v["customer"],
                items=v["items"],
                user=request.user,
                order_date=v.get("order_date"),
                expected_delivery_date=v.get("expected_delivery_date"),
                customer_po_number=v.get("customer_po_number", ""),
                notes=v.get("notes", ""),
                submit=v.get("submit", False),
            )
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc, conflict=CONFLICTS)

        return Response(self.get_serializer(self._fresh(order)).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        order = self.get_object()
        command = SalesOrderItemsUpdateSerializer(data=request.data)
        command.is_valid(raise_exception=True)

        try:
            order = order_service.replace_order_items(
                sales_order=order, items=command.validated_data["items"]
            )
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc, conflict=CONFLICTS)

        return Response(self.get_serializer(self._fresh(order)).data)

    def partial_update(self, request, *args, **kwargs):
        return self.update(request, *args, **kwargs)

    def destroy(self, request, *args, **kwargs):
        order = self.get_object()
        if order.status != SalesOrder.STATUS_DRAFT:
            return error_response(
                code="INVALID_ORDER_TRANSITION",
                message="Only draft orders can be deleted; cancel it instead",
                http_status=status.HTTP_409_CONFLICT,
                status=order.status,
            )
        order.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    # -------------------------------------------------
    # WORKFLOW
    # -------------------------------------------------
    @action(detail=True, methods=["post"], url_path="submit")
    def submit(self, request, pk=None):
        order = self.get_object()
        try:
            order = order_service.submit_order(sales_order=order, user=request.user)
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc, conflict=CONFLICTS)
        return Response(self.get_serializer(self._fresh(order)).data)

    @action(detail=True, methods=["post"], url_path="approve")
    def approve(self, request, pk=None):
        order = self.get_object()
        try:
            result = order_service.approve_order(sales_order=order, user=request.user)
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc, conflict=CONFLICTS)
        return Response(allocation_payload(result))

    @action(detail=True, methods=["post"], url_path="allocate")
    def allocate(self, request, pk=None):
        """Re-run allocation (e.g. after a new batch arrived for a shortage order)."""
        order = self.get_object()
        try:
            result = order_service.allocate_for_order(sales_order=order, user=request.user)
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc, conflict=CONFLICTS)
        return Response(allocation_payload(result))

    @action(detail=True, methods=["get"], url_path="allocation-preview")
    def allocation_preview(self, request, pk=None):
        order = self.get_object()
        return Response(allocation_payload(order_service.preview_allocation(sales_order=order)))

    @action(detail=True, methods=["post"], url_path="reject")
    def reject(self, request, pk=None):
        order = self.get_object()
        command = ReasonSerializer(data=request.data)
        command.is_valid(raise_exception=True)
        try:
            order = order_service.reject_order(
                sales_order=order,
                reason=command.validated_data["reason"],
                user=request.user,
            )
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc, conflict=CONFLICTS)
        return Response(self.get_serializer(self._fresh(order)).data)

    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, pk=None):
        order = self.get_object()
        command = ReasonSerializer(data=request.data)
        command.is_valid(raise_exception=True)
        try:
            order = order_service.cancel_order(
                sales_order=order,
                reason=command.validated_data["reason"],
                user=request.user,
            )
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc, conflict=CONFLICTS)
        return Response(self.get_serializer(self._fresh(order)).data)

    @action(detail=True, methods=["post"], url_path="archive")
    def archive(self, request, pk=None):
        order = self.get_object()
        try:
            order = order_service.archive_order(sales_order=order, user=request.user)
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc, conflict=CONFLICTS)
        return Response(self.get_serializer(self._fresh(order)).data)
