# sales/views/reservation.py

"""
RESERVATION + IMPORT REQUIREMENT VIEWSETS

Read-mostly views over the allocation side effects. Holds are created only
by order allocation; the one write here is a manual release.
"""

from django.core.exceptions import ValidationError
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from permissions.roles import CAP_INVENTORY_ADJUST, CAP_SALES_APPROVE, CapabilityViewSetMixin
from products.views.errors import domain_error_response
from sales.models import ImportRequirement, StockReservation
from sales.serializers import (
    ImportRequirementSerializer,
    ImportRequirementStatusSerializer,
    StockReservationSerializer,
)
from sales.services.import_requirements import set_requirement_status
from sales.services.reservations import release
from sales.views.access import SALES_READ_CAPABILITIES


class StockReservationViewSet(CapabilityViewSetMixin, viewsets.ReadOnlyModelViewSet):
    serializer_class = StockReservationSerializer
    queryset = StockReservation.objects.select_related("batch", "sales_order")

    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ["status", "batch", "product", "sales_order"]
    ordering_fields = ["reserved_at", "released_at"]

    read_capabilities = SALES_READ_CAPABILITIES
    action_capabilities = {
        "release": CAP_INVENTORY_ADJUST,
    }

    @action(detail=True, methods=["post"], url_path="release")
    def release(self, request, pk=None):
        reservation = self.get_object()
        reservation = release(
            reservation=reservation,
            reason=StockReservation.ReleaseReason.MANUAL,
            user=request.user,
        )
        return Response(self.get_serializer(reservation).data)


class ImportRequirementViewSet(CapabilityViewSetMixin, viewsets.ReadOnlyModelViewSet):
    serializer_class = ImportRequirementSerializer
    queryset = ImportRequirement.objects.select_related("sales_order", "product")

    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ["status", "priority", "product", "sales_order"]
    ordering_fields = ["created_at", "required_by", "shortage_quantity"]

    read_capabilities = SALES_READ_CAPABILITIES
    action_capabilities = {
        "set_status": CAP_SALES_APPROVE,
    }

    @action(detail=True, methods=["post"], url_path="set-status")
    def set_status(self, request, pk=None):
        requirement = self.get_object()
        command = ImportRequirementStatusSerializer(data=request.data)
        command.is_valid(raise_exception=True)
        try:
            requirement = set_requirement_status(
                requirement=requirement, status=command.validated_data["status"]
            )
        except ValidationError as exc:
            return domain_error_response(exc)
        return Response(self.get_serializer(requirement).data)
