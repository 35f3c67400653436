# products/views/__init__.py

"""
Products views package exports.

Purpose:
- Central export point for router imports.
"""

from .batch import BatchViewSet
from .import_container import ImportContainerViewSet
from .product import ProductViewSet

__all__ = [
    "BatchViewSet",
    "ImportContainerViewSet",
    "ProductViewSet",
]
