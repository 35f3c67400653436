"""
======================================================
PATH: returns/views/__init__.py
======================================================
RETURNS VIEWSETS

Purpose:
- Material returns (post-dispatch) and stock rejections (pre-dispatch):
  raise, approve, reject.

Rules:
- Records are never edited or deleted through the API; a wrong record is
  rejected and raised again.
- Approving a record that was already decided is a 409.
"""

from django.core.exceptions import ObjectDoesNotExist, ValidationError
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from permissions.roles import (
    CAP_INVENTORY_VIEW,
    CAP_RETURNS_APPROVE,
    CAP_RETURNS_EDIT,
    CapabilityViewSetMixin,
)
from products.services.exceptions import InventoryError
from products.views.errors import domain_error_response
from returns.models import MaterialReturn, StockRejection
from returns.serializers import (
    MaterialReturnCreateSerializer,
    MaterialReturnSerializer,
    StockRejectionCreateSerializer,
    StockRejectionSerializer,
)
from returns.services import reconciler
from sales.serializers import ReasonSerializer

DOMAIN_ERRORS = (reconciler.ReturnError, InventoryError, ValidationError, ObjectDoesNotExist)
CONFLICTS = (reconciler.ReturnStateError,)

READ_CAPABILITIES = {CAP_RETURNS_EDIT, CAP_RETURNS_APPROVE, CAP_INVENTORY_VIEW}


class _DecisionViewSet(
    CapabilityViewSetMixin,
    mixins.CreateModelMixin,
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    read_capabilities = READ_CAPABILITIES
    action_capabilities = {
        "create": CAP_RETURNS_EDIT,
        "approve": CAP_RETURNS_APPROVE,
        "reject": CAP_RETURNS_APPROVE,
    }

    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    ordering_fields = ["created_at"]

    approve_service = None
    reject_service = None
    instance_kwarg = ""

    def _run(self, service, **kwargs):
        try:
            obj = service(**{self.instance_kwarg: self.get_object()}, user=self.request.user, **kwargs)
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc, conflict=CONFLICTS)
        return Response(self.get_serializer(self.get_queryset().get(pk=obj.pk)).data)

    @action(detail=True, methods=["post"], url_path="approve")
    def approve(self, request, pk=None):
        return self._run(self.approve_service)

    @action(detail=True, methods=["post"], url_path="reject")
    def reject(self, request, pk=None):
        command = ReasonSerializer(data=request.data)
        command.is_valid(raise_exception=True)
        return self._run(self.reject_service, reason=command.validated_data["reason"])


class MaterialReturnViewSet(_DecisionViewSet):
    serializer_class = MaterialReturnSerializer
    queryset = MaterialReturn.objects.select_related("customer").prefetch_related("items__batch")
    filterset_fields = ["status", "customer"]

    approve_service = staticmethod(reconciler.approve_material_return)
    reject_service = staticmethod(reconciler.reject_material_return)
    instance_kwarg = "material_return"

    def create(self, request, *args, **kwargs):
        command = MaterialReturnCreateSerializer(data=request.data)
        command.is_valid(raise_exception=True)
        v = command.validated_data

        try:
            mr = reconciler.create_material_return(
                customer=v["customer"],
                lines=v["items"],
                return_date=v.get("return_date"),
                reason=v.get("reason", ""),
                user=request.user,
            )
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc, conflict=CONFLICTS)

        mr = self.get_queryset().get(pk=mr.pk)
        return Response(self.get_serializer(mr).data, status=status.HTTP_201_CREATED)


class StockRejectionViewSet(_DecisionViewSet):
    serializer_class = StockRejectionSerializer
    queryset = StockRejection.objects.select_related("batch")
    filterset_fields = ["status", "batch"]

    approve_service = staticmethod(reconciler.approve_stock_rejection)
    reject_service = staticmethod(reconciler.reject_stock_rejection)
    instance_kwarg = "rejection"

    def create(self, request, *args, **kwargs):
        command = StockRejectionCreateSerializer(data=request.data)
        command.is_valid(raise_exception=True)
        v = command.validated_data

        try:
            rejection = reconciler.create_stock_rejection(
                batch=v["batch"],
                quantity=v["quantity"],
                reason=v.get("reason", ""),
                rejection_date=v.get("rejection_date"),
                user=request.user,
            )
        except DOMAIN_ERRORS as exc:
            return domain_error_response(exc, conflict=CONFLICTS)

        rejection = self.get_queryset().get(pk=rejection.pk)
        return Response(self.get_serializer(rejection).data, status=status.HTTP_201_CREATED)
