# sales/urls.py

"""
SALES URLS

Purpose:
- Register order-to-invoice routes under /api/sales/
    /customers/                     customer master
    /orders/                        sales orders (+ submit / approve / allocate /
                                    reject / cancel / archive / allocation-preview)
    /challans/                      delivery challans (+ approve / reject)
    /invoices/                      sales invoices (+ cancel)
    /reservations/                  stock holds (+ release)
    /import-requirements/           shortage records (+ set-status)
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from sales.views import (
    CustomerViewSet,
    DeliveryChallanViewSet,
    ImportRequirementViewSet,
    SalesInvoiceViewSet,
    SalesOrderViewSet,
    StockReservationViewSet,
)

router = DefaultRouter()

router.register(r"customers", CustomerViewSet, basename="customers")
router.register(r"orders", SalesOrderViewSet, basename="sales-orders")
router.register(r"challans", DeliveryChallanViewSet, basename="challans")
router.register(r"invoices", SalesInvoiceViewSet, basename="sales-invoices")
router.register(r"reservations", StockReservationViewSet, basename="reservations")
router.register(r"import-requirements", ImportRequirementViewSet, basename="import-requirements")

urlpatterns = [
    path("", include(router.urls)),
]
