# sales/views/customer.py

from django.db.models import ProtectedError
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, status, viewsets
from rest_framework.response import Response

from permissions.roles import CAP_SALES_EDIT, CapabilityViewSetMixin
from products.views.errors import error_response
from sales.models import Customer
from sales.serializers import CustomerSerializer
from sales.views.access import SALES_READ_CAPABILITIES


class CustomerViewSet(CapabilityViewSetMixin, viewsets.ModelViewSet):
    serializer_class = CustomerSerializer
    queryset = Customer.objects.all()

    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ["is_active"]
    search_fields = ["company_name", "contact_person", "email", "npwp"]
    ordering_fields = ["company_name", "created_at"]

    read_capabilities = SALES_READ_CAPABILITIES
    action_capabilities = {
        "create": CAP_SALES_EDIT,
        "update": CAP_SALES_EDIT,
        "partial_update": CAP_SALES_EDIT,
        "destroy": CAP_SALES_EDIT,
    }

    def destroy(self, request, *args, **kwargs):
        customer = self.get_object()
        try:
            customer.delete()
        except ProtectedError:
            return error_response(
                code="CUSTOMER_IN_USE",
                message="Customer has orders, challans or invoices; deactivate it instead",
                http_status=status.HTTP_409_CONFLICT,
                customer_id=str(customer.pk),
            )
        return Response(status=status.HTTP_204_NO_CONTENT)
