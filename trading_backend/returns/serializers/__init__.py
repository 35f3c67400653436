from .returns import (
    MaterialReturnCreateSerializer,
    MaterialReturnSerializer,
    StockRejectionCreateSerializer,
    StockRejectionSerializer,
)

__all__ = [
    "MaterialReturnSerializer",
    "MaterialReturnCreateSerializer",
    "StockRejectionSerializer",
    "StockRejectionCreateSerializer",
]
