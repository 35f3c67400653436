from .inventory import adjust_stock, create_batch, delete_batch, edit_batch, edit_imported_quantity
from .landed_cost import compute_landed_cost, suggested_selling_price
from .stock_fifo import select_batches

__all__ = [
    "adjust_stock",
    "create_batch",
    "delete_batch",
    "edit_batch",
    "edit_imported_quantity",
    "compute_landed_cost",
    "suggested_selling_price",
    "select_batches",
]
