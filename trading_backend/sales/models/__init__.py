# sales/models/__init__.py

"""
SALES MODELS PACKAGE EXPORTS

Purpose:
- Central export surface for sales app models.
"""

from .customer import Customer
from .sales_order import SalesOrder, SalesOrderItem
from .stock_reservation import StockReservation
from .import_requirement import ImportRequirement
from .delivery_challan import DeliveryChallan, DeliveryChallanItem
from .sales_invoice import SalesInvoice, SalesInvoiceItem

__all__ = [
    "Customer",
    "SalesOrder",
    "SalesOrderItem",
    "StockReservation",
    "ImportRequirement",
    "DeliveryChallan",
    "DeliveryChallanItem",
    "SalesInvoice",
    "SalesInvoiceItem",
]
