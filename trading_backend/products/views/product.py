# products/views/product.py

"""
PRODUCT VIEWSET

Purpose:
- Product master CRUD.
- Products referenced by batches are soft-deactivated, never deleted.
"""

from django.core.exceptions import ValidationError
from django.db.models import ProtectedError
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, status, viewsets
from rest_framework.response import Response

from permissions.roles import CAP_INVENTORY_EDIT, CAP_INVENTORY_VIEW, CapabilityViewSetMixin
from products.models import Product
from products.serializers.product import ProductSerializer
from products.views.errors import error_response, raise_drf_validation


class ProductViewSet(CapabilityViewSetMixin, viewsets.ModelViewSet):
    serializer_class = ProductSerializer
    queryset = Product.objects.all()

    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ["is_active", "unit"]
    search_fields = ["product_code", "name"]
    ordering_fields = ["name", "product_code", "created_at"]

    read_capabilities = {CAP_INVENTORY_VIEW}
    action_capabilities = {
        "create": CAP_INVENTORY_EDIT,
        "update": CAP_INVENTORY_EDIT,
        "partial_update": CAP_INVENTORY_EDIT,
        "destroy": CAP_INVENTORY_EDIT,
    }

    def perform_create(self, serializer):
        try:
            serializer.save()
        except ValidationError as exc:
            raise_drf_validation(exc)

    def perform_update(self, serializer):
        try:
            serializer.save()
        except ValidationError as exc:
            raise_drf_validation(exc)

    def destroy(self, request, *args, **kwargs):
        product = self.get_object()
        try:
            product.delete()
        except (ProtectedError, ValidationError):
            return error_response(
                code="PRODUCT_IN_USE",
                message="Product is referenced by other documents; deactivate it instead.",
                http_status=status.HTTP_409_CONFLICT,
            )
        return Response(status=status.HTTP_204_NO_CONTENT)

