# sales/views/access.py

from permissions.roles import (
    CAP_DELIVERY_APPROVE,
    CAP_INVENTORY_EDIT,
    CAP_INVOICE_EDIT,
    CAP_SALES_APPROVE,
    CAP_SALES_EDIT,
)

# Anyone working an order through its life cycle may read the sales side.
SALES_READ_CAPABILITIES = {
    CAP_SALES_EDIT,
    CAP_SALES_APPROVE,
    CAP_DELIVERY_APPROVE,
    CAP_INVOICE_EDIT,
    CAP_INVENTORY_EDIT,
}
