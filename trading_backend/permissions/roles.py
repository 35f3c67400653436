# permissions/roles.py

from __future__ import annotations

from typing import Optional

from rest_framework.permissions import BasePermission, IsAuthenticated


# =========================================================
# ROLE CONSTANTS (STAFF JOB ROLES)
# =========================================================
ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_WAREHOUSE = "warehouse"
ROLE_SALES = "sales"
ROLE_ACCOUNTS = "accounts"

STAFF_ROLES = {
    ROLE_ADMIN,
    ROLE_MANAGER,
    ROLE_WAREHOUSE,
    ROLE_SALES,
    ROLE_ACCOUNTS,
}


# =========================================================
# CAPABILITIES (THE REAL PERMISSION LANGUAGE)
# =========================================================
# Views protect capabilities, not raw roles.
CAP_INVENTORY_VIEW = "inventory.view"
CAP_INVENTORY_EDIT = "inventory.edit"         # batches, containers, products
CAP_INVENTORY_ADJUST = "inventory.adjust"     # sensitive manual adjustments

CAP_SALES_EDIT = "sales.edit"                 # orders, customers, challan drafts
CAP_SALES_APPROVE = "sales.approve"           # order approval / rejection
CAP_DELIVERY_APPROVE = "delivery.approve"     # challan approval (moves stock)

CAP_INVOICE_EDIT = "invoice.edit"
CAP_RETURNS_EDIT = "returns.edit"
CAP_RETURNS_APPROVE = "returns.approve"

ALL_CAPABILITIES = {
    CAP_INVENTORY_VIEW,
    CAP_INVENTORY_EDIT,
    CAP_INVENTORY_ADJUST,
    CAP_SALES_EDIT,
    CAP_SALES_APPROVE,
    CAP_DELIVERY_APPROVE,
    CAP_INVOICE_EDIT,
    CAP_RETURNS_EDIT,
    CAP_RETURNS_APPROVE,
}


# =========================================================
# ROLE → CAPABILITY MAP (DEFAULT)
# =========================================================
ROLE_CAPABILITIES: dict[str, set[str]] = {
    ROLE_ADMIN: {
        *ALL_CAPABILITIES,
    },
    ROLE_MANAGER: {
        CAP_INVENTORY_VIEW,
        CAP_INVENTORY_EDIT,
        CAP_SALES_EDIT,
        CAP_SALES_APPROVE,
        CAP_DELIVERY_APPROVE,
        CAP_INVOICE_EDIT,
        CAP_RETURNS_EDIT,
        CAP_RETURNS_APPROVE,
        # NOT inventory.adjust: manual corrections stay with admin
    },
    ROLE_WAREHOUSE: {
        CAP_INVENTORY_VIEW,
        CAP_INVENTORY_EDIT,
        CAP_RETURNS_EDIT,
    },
    ROLE_SALES: {
        CAP_INVENTORY_VIEW,
        CAP_SALES_EDIT,
        CAP_RETURNS_EDIT,
    },
    ROLE_ACCOUNTS: {
        CAP_INVENTORY_VIEW,
        CAP_INVOICE_EDIT,
    },
}


# =========================================================
# Helpers
# =========================================================
def get_user_role(user) -> Optional[str]:
    return getattr(user, "role", None)


def effective_capabilities_for(user) -> set[str]:
    if getattr(user, "is_superuser", False):
        return set(ALL_CAPABILITIES)
    return set(ROLE_CAPABILITIES.get(get_user_role(user), set()))


# =========================================================
# Capability Permissions
# =========================================================
class HasCapability(BasePermission):
    """
    Require a specific capability.

    Usage:
        permission_classes = [IsAuthenticated, HasCapability]
        view.required_capability = CAP_DELIVERY_APPROVE

    ViewSets may instead define get_required_capability() to vary by action.
    """

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False

        getter = getattr(view, "get_required_capability", None)
        required = getter() if callable(getter) else getattr(view, "required_capability", None)
        if not required:
            # deny-by-default to avoid accidental open endpoints
            return False

        return required in effective_capabilities_for(user)


class HasAnyCapability(BasePermission):
    """
    Require ANY capability from a list.

    Usage:
        view.required_any_capabilities = {CAP_SALES_EDIT, CAP_INVOICE_EDIT}
    """

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False

        required = getattr(view, "required_any_capabilities", None)
        if not required:
            return False

        caps = effective_capabilities_for(user)
        return any(cap in caps for cap in set(required))


# =========================================================
# ViewSet wiring
# =========================================================
class CapabilityViewSetMixin:
    """
    Per-action capability wiring for ViewSets.

    - actions listed in `action_capabilities` need that exact capability
    - every other action needs ANY of `read_capabilities`
    """

    action_capabilities: dict = {}
    read_capabilities: set = set()

    required_any_capabilities = None

    def get_required_capability(self):
        return self.action_capabilities.get(self.action)

    def get_permissions(self):
        # reset per request to avoid state leaking between actions
        self.required_any_capabilities = None

        if self.action in self.action_capabilities:
            return [IsAuthenticated(), HasCapability()]

        self.required_any_capabilities = set(self.read_capabilities)
        return [IsAuthenticated(), HasAnyCapability()]
