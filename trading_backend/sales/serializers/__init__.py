from .delivery import (
    DeliveryChallanSerializer,
    DeliveryChallanWriteSerializer,
    ImportRequirementSerializer,
    ImportRequirementStatusSerializer,
    SalesInvoiceCreateSerializer,
    SalesInvoiceSerializer,
    StockReservationSerializer,
)
from .sales_order import (
    CustomerSerializer,
    ReasonSerializer,
    SalesOrderCreateSerializer,
    SalesOrderItemsUpdateSerializer,
    SalesOrderSerializer,
)

__all__ = [
    "CustomerSerializer",
    "SalesOrderSerializer",
    "SalesOrderCreateSerializer",
    "SalesOrderItemsUpdateSerializer",
    "ReasonSerializer",
    "DeliveryChallanSerializer",
    "DeliveryChallanWriteSerializer",
    "SalesInvoiceSerializer",
    "SalesInvoiceCreateSerializer",
    "StockReservationSerializer",
    "ImportRequirementSerializer",
    "ImportRequirementStatusSerializer",
]
