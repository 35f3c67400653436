"""
======================================================
PATH: products/views/batch.py
======================================================
BATCH VIEWSET

Purpose:
- Batch intake / edit / delete through the batch ledger services.
- Operator actions: manual adjustment, ledger view, ledger recompute,
  FIFO preview.

Rules:
- Quantities and cost outputs are never written from the request body.
- Every write is a single service call; domain errors map to the canonical
  error body (400 / 404 / 409).
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from django.core.exceptions import ObjectDoesNotExist, ValidationError
from django.db import transaction
from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from permissions.roles import (
    CAP_INVENTORY_ADJUST,
    CAP_INVENTORY_EDIT,
    CAP_INVENTORY_VIEW,
    CapabilityViewSetMixin,
)
from products.models import Batch, Product
from products.serializers.batch import (
    BatchSerializer,
    InventoryTransactionSerializer,
    StockAdjustmentSerializer,
)
from products.services.exceptions import InventoryError
from products.services.inventory import (
    EDITABLE_BATCH_FIELDS,
    adjust_stock,
    create_batch,
    delete_batch,
    edit_batch,
    recompute_current_stock,
)
from products.services.stock_fifo import select_batches
from products.views.errors import domain_error_response, error_response
from sales.services.reservations import recompute_reserved_stock

DOMAIN_ERRORS = (InventoryError, ValidationError, ObjectDoesNotExist)


class BatchViewSet(CapabilityViewSetMixin, viewsets.ModelViewSet):
    """
    /api/products/batches/

    RULES:
    - create()  -> create_batch()   (batch + PURCHASE transaction)
    - update()  -> edit_batch()     (metadata, cost inputs, imported quantity)
    - destroy() -> delete_batch()   (blocked while referenced)
    """

    serializer_class = BatchSerializer
    queryset = Batch.objects.select_related("product", "import_container")

    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ["product", "is_active", "import_container"]
    search_fields = ["batch_number", "product__name", "product__product_code"]
    ordering_fields = ["import_date", "expiry_date", "batch_number", "created_at"]

    read_capabilities = {CAP_INVENTORY_VIEW}
    action_capabilities = {
        "create": CAP_INVENTORY_EDIT,
        "update": CAP_INVENTORY_EDIT,
        "partial_update": CAP_INVENTORY_EDIT,
        "destroy": CAP_INVENTORY_EDIT,
        "adjust": CAP_INVENTORY_ADJUST,
        "recompute": CAP_INVENTORY_ADJUST,
    }

    # -------------------------------------------------
    # CREATE / UPDATE / DELETE
    # -------------------------------------------------
    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        v = dict(serializer.validated_data)

        try:
            batch = create_batch(
                product=v.pop("product"),
                batch_number=v.pop("batch_number"),
                import_date=v.pop("import_date"),
                imported_quantity=v.pop("imported_quantity"),
                user=request.user,
                **v,
            )
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc)

        return Response(self.get_serializer(batch).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop("partial", False)
        instance = self.get_object()
        serializer = self.get_serializer(instance, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)

        fields = {
            name: value
            for name, value in serializer.validated_data.items()
            if name in EDITABLE_BATCH_FIELDS
        }
        if fields.get("duty_percent", "") is None:
            fields.pop("duty_percent")

        try:
            batch = edit_batch(batch=instance, user=request.user, **fields)
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc)

        return Response(self.get_serializer(batch).data, status=status.HTTP_200_OK)

    def destroy(self, request, *args, **kwargs):
        batch = self.get_object()
        try:
            delete_batch(batch=batch, user=request.user)
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc)
        return Response(status=status.HTTP_204_NO_CONTENT)

    # -------------------------------------------------
    # ACTIONS
    # -------------------------------------------------
    @action(detail=True, methods=["post"], url_path="adjust")
    def adjust(self, request, pk=None):
        """
        POST /api/products/batches/{id}/adjust/
        {"quantity_delta": "-5.000", "notes": "damaged in warehouse"}
        """
        batch = self.get_object()
        command = StockAdjustmentSerializer(data=request.data)
        command.is_valid(raise_exception=True)

        try:
            result = adjust_stock(
                batch=batch,
                quantity_delta=command.validated_data["quantity_delta"],
                user=request.user,
                notes=command.validated_data.get("notes", ""),
            )
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc)

        return Response(
            {
                "batch": self.get_serializer(result.batch).data,
                "transaction": InventoryTransactionSerializer(result.transaction).data,
            },
            status=status.HTTP_200_OK,
        )

    @action(detail=True, methods=["get"], url_path="ledger")
    def ledger(self, request, pk=None):
        batch = self.get_object()
        qs = batch.transactions.select_related("batch").order_by("created_at", "id")
        data = InventoryTransactionSerializer(qs, many=True).data
        return Response(
            {
                "batch_id": str(batch.pk),
                "current_stock": str(batch.current_stock),
                "ledger_total": str(sum((t.quantity for t in qs), Decimal("0"))),
                "count": len(data),
                "results": data,
            }
        )

    @action(detail=True, methods=["post"], url_path="recompute")
    @transaction.atomic
    def recompute(self, request, pk=None):
        """Re-derive current_stock from the ledger and reserved_stock from active holds."""
        batch = self.get_object()
        try:
            recompute_current_stock(batch=batch)
            batch = recompute_reserved_stock(batch=batch)
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc)
        return Response(self.get_serializer(batch).data, status=status.HTTP_200_OK)

    @action(detail=False, methods=["get"], url_path="fifo-preview")
    def fifo_preview(self, request):
        """GET /api/products/batches/fifo-preview/?product=<uuid>&quantity=<qty>"""
        product_id = (request.query_params.get("product") or "").strip()
        raw_qty = (request.query_params.get("quantity") or "").strip()
        try:
            quantity = Decimal(raw_qty)
        except InvalidOperation:
            return error_response(
                code="VALIDATION_ERROR",
                message="quantity must be a decimal value",
                http_status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            product = Product.objects.get(pk=product_id)
        except (Product.DoesNotExist, ValidationError):
            return error_response(
                code="NOT_FOUND",
                message="Unknown product",
                http_status=status.HTTP_404_NOT_FOUND,
            )

        plan = select_batches(product=product, required_qty=quantity, as_of=timezone.localdate())
        return Response(
            {
                "product_id": str(product.pk),
                "required": str(plan.required),
                "allocated": str(plan.allocated),
                "shortage": str(plan.shortage),
                "allocations": [
                    {
                        "batch_id": str(a.batch.pk),
                        "batch_number": a.batch.batch_number,
                        "import_date": a.batch.import_date,
                        "expiry_date": a.batch.expiry_date,
                        "quantity": str(a.quantity),
                    }
                    for a in plan.allocations
                ],
            }
        )
