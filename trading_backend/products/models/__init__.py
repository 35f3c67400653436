"""
PATH: products/models/__init__.py

Products models export surface.
"""

from .product import Product
from .import_container import ImportContainer
from .batch import Batch
from .inventory_transaction import InventoryTransaction

__all__ = [
    "Product",
    "ImportContainer",
    "Batch",
    "InventoryTransaction",
]
