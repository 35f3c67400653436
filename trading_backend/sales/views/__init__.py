# sales/views/__init__.py

"""
Sales views package exports.

Purpose:
- Central export point for router imports.
"""

from .customer import CustomerViewSet
from .delivery import DeliveryChallanViewSet, SalesInvoiceViewSet
from .reservation import ImportRequirementViewSet, StockReservationViewSet
from .sales_order import SalesOrderViewSet

__all__ = [
    "CustomerViewSet",
    "SalesOrderViewSet",
    "DeliveryChallanViewSet",
    "SalesInvoiceViewSet",
    "StockReservationViewSet",
    "ImportRequirementViewSet",
]
