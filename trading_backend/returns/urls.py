# returns/urls.py

"""
RETURNS URLS

Purpose:
- Register under /api/returns/
    /material-returns/              customer returns (+ approve / reject)
    /stock-rejections/              pre-dispatch write-offs (+ approve / reject)
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from returns.views import MaterialReturnViewSet, StockRejectionViewSet

router = DefaultRouter()

router.register(r"material-returns", MaterialReturnViewSet, basename="material-returns")
router.register(r"stock-rejections", StockRejectionViewSet, basename="stock-rejections")

urlpatterns = [
    path("", include(router.urls)),
]
