# returns/models/__init__.py

from .material_return import MaterialReturn, MaterialReturnItem
from .stock_rejection import StockRejection

__all__ = [
    "MaterialReturn",
    "MaterialReturnItem",
    "StockRejection",
]
