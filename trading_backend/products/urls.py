# products/urls.py

"""
PRODUCTS URLS

Purpose:
- Register inventory routes under /api/products/
    /products/                      product master
    /batches/                       batches (+ adjust / ledger / recompute / fifo-preview)
    /containers/                    import containers (+ reallocate)
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from products.views import BatchViewSet, ImportContainerViewSet, ProductViewSet

router = DefaultRouter()

router.register(r"products", ProductViewSet, basename="products")
router.register(r"batches", BatchViewSet, basename="batches")
router.register(r"containers", ImportContainerViewSet, basename="containers")

urlpatterns = [
    path("", include(router.urls)),
]
