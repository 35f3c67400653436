# products/services/exceptions.py

"""
INVENTORY CORE ERRORS

Typed domain errors raised by the cost allocator, batch ledger and FIFO
allocator. Each carries enough context for the operator to act on
(batch, product, numeric gap).
"""

from __future__ import annotations

from decimal import Decimal


class InventoryError(Exception):
    """Base exception for all inventory core failures."""

    code = "inventory_error"

    def context(self) -> dict:
        return {}


class InsufficientStockError(InventoryError):
    """Requested deduction/reservation exceeds the stock that is free for it."""

    code = "insufficient_stock"

    def __init__(
        self,
        message: str = "",
        *,
        batch_id=None,
        batch_number: str = "",
        product_id=None,
        requested: Decimal = Decimal("0"),
        available: Decimal = Decimal("0"),
    ):
        self.batch_id = batch_id
        self.batch_number = batch_number
        self.product_id = product_id
        self.requested = Decimal(requested)
        self.available = Decimal(available)
        if not message:
            where = f"batch {batch_number}" if batch_number else f"product {product_id}"
            message = (
                f"Insufficient stock in {where}. "
                f"Requested: {self.requested}, Available: {self.available}, Short by: {self.gap}"
            )
        super().__init__(message)

    @property
    def gap(self) -> Decimal:
        return max(self.requested - self.available, Decimal("0"))

    def context(self) -> dict:
        return {
            "batch_id": str(self.batch_id) if self.batch_id else None,
            "batch_number": self.batch_number or None,
            "product_id": str(self.product_id) if self.product_id else None,
            "requested": str(self.requested),
            "available": str(self.available),
            "gap": str(self.gap),
        }


class QuantityBelowSoldError(InventoryError):
    """Batch edit would set imported quantity below what was already sold."""

    code = "quantity_below_sold"

    def __init__(self, *, batch_number: str, sold: Decimal, requested: Decimal):
        self.batch_number = batch_number
        self.sold = Decimal(sold)
        self.requested = Decimal(requested)
        super().__init__(
            f"Cannot reduce imported quantity of batch {batch_number} to {self.requested}. "
            f"{self.sold} units have already been sold from it."
        )

    def context(self) -> dict:
        return {
            "batch_number": self.batch_number,
            "sold": str(self.sold),
            "requested": str(self.requested),
        }


class DuplicateBatchNumberError(InventoryError):
    code = "duplicate_batch_number"

    def __init__(self, batch_number: str):
        self.batch_number = batch_number
        super().__init__(f"Batch number {batch_number!r} already exists.")

    def context(self) -> dict:
        return {"batch_number": self.batch_number}


class BatchInUseError(InventoryError):
    """Delete blocked: invoices, challan items or active reservations reference the batch."""

    code = "batch_in_use"

    def __init__(self, *, batch_number: str, references: list[str]):
        self.batch_number = batch_number
        self.references = list(references)
        super().__init__(
            f"Batch {batch_number} cannot be deleted; referenced by: {', '.join(self.references)}"
        )

    def context(self) -> dict:
        return {"batch_number": self.batch_number, "references": self.references}


class InvalidChargeConfigError(InventoryError):
    """Bad cost inputs (negative amounts, unknown charge type, zero exchange rate)."""

    code = "invalid_charge_config"
