# products/serializers/__init__.py

from .batch import BatchSerializer, InventoryTransactionSerializer, StockAdjustmentSerializer
from .import_container import ImportContainerSerializer
from .product import ProductSerializer

__all__ = [
    "BatchSerializer",
    "ImportContainerSerializer",
    "InventoryTransactionSerializer",
    "ProductSerializer",
    "StockAdjustmentSerializer",
]
