"""
SALES ORDER LIFECYCLE DOMAIN RULES

This module defines the ONLY allowed lifecycle transitions
for SalesOrder entities.

DESIGN PRINCIPLES:
- No database writes
- No stock mutation
- No side effects
- Single source of truth

Flow:
    draft -> pending_approval -> approved | rejected
    approved -> stock_reserved | shortage            (allocation outcome)
    stock_reserved | shortage -> pending_delivery    (challan raised)
    pending_delivery -> partially_delivered -> delivered -> archived
    any non-delivered state -> cancelled

Back-edges exist only for re-allocation and for challan rejection/deletion
(stock returns to the order, so its status must follow).
"""

from sales.models import SalesOrder

# ============================================================
# DOMAIN ERRORS
# ============================================================


class FulfillmentError(Exception):
    """Base exception for sales order / delivery workflow failures."""

    code = "fulfillment_error"

    def context(self) -> dict:
        return {}


class InvalidOrderTransitionError(FulfillmentError):
    code = "invalid_order_transition"


# ============================================================
# STATE DEFINITIONS
# ============================================================

S = SalesOrder

TERMINAL_STATES = {
    S.STATUS_CANCELLED,
    S.STATUS_ARCHIVED,
}

ALLOWED_TRANSITIONS = {
    S.STATUS_DRAFT: {
        S.STATUS_PENDING_APPROVAL,
        S.STATUS_CANCELLED,
    },
    S.STATUS_PENDING_APPROVAL: {
        S.STATUS_APPROVED,
        S.STATUS_REJECTED,
        S.STATUS_CANCELLED,
    },
    S.STATUS_REJECTED: {
        S.STATUS_CANCELLED,
    },
    S.STATUS_APPROVED: {
        S.STATUS_STOCK_RESERVED,
        S.STATUS_SHORTAGE,
        S.STATUS_CANCELLED,
    },
    S.STATUS_STOCK_RESERVED: {
        S.STATUS_SHORTAGE,
        S.STATUS_PENDING_DELIVERY,
        S.STATUS_PARTIALLY_DELIVERED,
        S.STATUS_DELIVERED,
        S.STATUS_CANCELLED,
    },
    S.STATUS_SHORTAGE: {
        S.STATUS_STOCK_RESERVED,
        S.STATUS_PENDING_DELIVERY,
        S.STATUS_PARTIALLY_DELIVERED,
        S.STATUS_DELIVERED,
        S.STATUS_CANCELLED,
    },
    S.STATUS_PENDING_DELIVERY: {
        S.STATUS_STOCK_RESERVED,
        S.STATUS_SHORTAGE,
        S.STATUS_PARTIALLY_DELIVERED,
        S.STATUS_DELIVERED,
        S.STATUS_CANCELLED,
    },
    S.STATUS_PARTIALLY_DELIVERED: {
        S.STATUS_STOCK_RESERVED,
        S.STATUS_SHORTAGE,
        S.STATUS_PENDING_DELIVERY,
        S.STATUS_DELIVERED,
        S.STATUS_CANCELLED,
    },
    # Only a challan deletion/edit moves a delivered order backwards.
    S.STATUS_DELIVERED: {
        S.STATUS_ARCHIVED,
        S.STATUS_PARTIALLY_DELIVERED,
        S.STATUS_PENDING_DELIVERY,
        S.STATUS_STOCK_RESERVED,
        S.STATUS_SHORTAGE,
    },
}

# Orders that may be (re-)allocated against stock.
ALLOCATABLE_STATES = {
    S.STATUS_APPROVED,
    S.STATUS_STOCK_RESERVED,
    S.STATUS_SHORTAGE,
    S.STATUS_PENDING_DELIVERY,
    S.STATUS_PARTIALLY_DELIVERED,
}

# Orders that may receive a new delivery challan.
DISPATCHABLE_STATES = {
    S.STATUS_STOCK_RESERVED,
    S.STATUS_SHORTAGE,
    S.STATUS_PENDING_DELIVERY,
    S.STATUS_PARTIALLY_DELIVERED,
}

# Orders whose stock holds are still meaningful.
OPEN_STATES = set(ALLOCATABLE_STATES)


# ============================================================
# DOMAIN RULES
# ============================================================


def can_transition(*, from_status: str, to_status: str) -> bool:
    if from_status in TERMINAL_STATES:
        return False

    return to_status in ALLOWED_TRANSITIONS.get(from_status, set())


def validate_transition(*, order: SalesOrder, target_status: str):
    if not can_transition(
        from_status=order.status,
        to_status=target_status,
    ):
        raise InvalidOrderTransitionError(
            f"Sales order {order.so_number} cannot transition from "
            f"'{order.status}' to '{target_status}'"
        )
