# products/views/import_container.py

"""
IMPORT CONTAINER VIEWSET

Purpose:
- Container cost sheet CRUD.
- Every cost change reallocates the overhead across the linked batches.
"""

from django.core.exceptions import ValidationError
from django.db import transaction
from rest_framework import filters, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from permissions.roles import CAP_INVENTORY_EDIT, CAP_INVENTORY_VIEW, CapabilityViewSetMixin
from products.models import ImportContainer
from products.serializers.batch import BatchSerializer
from products.serializers.import_container import ImportContainerSerializer
from products.services.container_allocation import reallocate_container_costs, update_container
from products.views.errors import domain_error_response


class ImportContainerViewSet(CapabilityViewSetMixin, viewsets.ModelViewSet):
    serializer_class = ImportContainerSerializer
    queryset = ImportContainer.objects.all()

    filter_backends = [filters.SearchFilter, filters.OrderingFilter]
    search_fields = ["container_ref", "supplier_name"]
    ordering_fields = ["import_date", "container_ref"]

    read_capabilities = {CAP_INVENTORY_VIEW}
    action_capabilities = {
        "create": CAP_INVENTORY_EDIT,
        "update": CAP_INVENTORY_EDIT,
        "partial_update": CAP_INVENTORY_EDIT,
        "destroy": CAP_INVENTORY_EDIT,
        "reallocate": CAP_INVENTORY_EDIT,
    }

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop("partial", False)
        instance = self.get_object()
        serializer = self.get_serializer(instance, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)

        try:
            container = update_container(container=instance, **serializer.validated_data)
        except ValidationError as exc:
            return domain_error_response(exc)

        return Response(self.get_serializer(container).data, status=status.HTTP_200_OK)

    @transaction.atomic
    def destroy(self, request, *args, **kwargs):
        container = self.get_object()
        # Linked batches drop to SET_NULL; clear their stale allocation.
        container.batches.update(import_cost_allocated=0)
        container.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"], url_path="reallocate")
    def reallocate(self, request, pk=None):
        container = self.get_object()
        batches = reallocate_container_costs(container=container)
        return Response(
            {
                "container": self.get_serializer(container).data,
                "batches": BatchSerializer(batches, many=True).data,
            },
            status=status.HTTP_200_OK,
        )
