# sales/models/sales_order.py

import uuid
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from products.models import Product

from .customer import Customer

User = settings.AUTH_USER_MODEL


class SalesOrder(models.Model):
    """
    A customer's order for one or more products.

    GUARANTEES:
    - status changes ONLY through sales/services (see order_lifecycle.py)
    - stock is never touched here; holds live in StockReservation,
      deductions happen on delivery challan approval
    """

    STATUS_DRAFT = "draft"
    STATUS_PENDING_APPROVAL = "pending_approval"
    STATUS_APPROVED = "approved"
    STATUS_REJECTED = "rejected"
    STATUS_STOCK_RESERVED = "stock_reserved"
    STATUS_SHORTAGE = "shortage"
    STATUS_PENDING_DELIVERY = "pending_delivery"
    STATUS_PARTIALLY_DELIVERED = "partially_delivered"
    STATUS_DELIVERED = "delivered"
    STATUS_CANCELLED = "cancelled"
    STATUS_ARCHIVED = "archived"

    STATUS_CHOICES = [
        (STATUS_DRAFT, "Draft"),
        (STATUS_PENDING_APPROVAL, "Pending approval"),
        (STATUS_APPROVED, "Approved"),
        (STATUS_REJECTED, "Rejected"),
        (STATUS_STOCK_RESERVED, "Stock reserved"),
        (STATUS_SHORTAGE, "Shortage"),
        (STATUS_PENDING_DELIVERY, "Pending delivery"),
        (STATUS_PARTIALLY_DELIVERED, "Partially delivered"),
        (STATUS_DELIVERED, "Delivered"),
        (STATUS_CANCELLED, "Cancelled"),
        (STATUS_ARCHIVED, "Archived"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    so_number = models.CharField(max_length=64, unique=True, blank=True)

    customer = models.ForeignKey(
        Customer,
        on_delete=models.PROTECT,
        related_name="sales_orders",
    )

    customer_po_number = models.CharField(max_length=64, blank=True)
    order_date = models.DateField(default=timezone.localdate)
    expected_delivery_date = models.DateField(null=True, blank=True)

    status = models.CharField(
        max_length=32,
        choices=STATUS_CHOICES,
        default=STATUS_DRAFT,
    )

    notes = models.TextField(blank=True)
    rejection_reason = models.TextField(blank=True)

    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_sales_orders",
    )
    approved_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="approved_sales_orders",
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="sales_salesorder_status_idx"),
            models.Index(fields=["customer", "created_at"], name="sales_salesorder_cust_idx"),
        ]

    def save(self, *args, **kwargs):
        if not self.so_number:
            prefix = timezone.now().strftime("SO%Y%m%d")
            self.so_number = f"{prefix}-{uuid.uuid4().hex[:8].upper()}"
        super().save(*args, **kwargs)

    @property
    def is_fully_delivered(self) -> bool:
        return all(item.delivered_quantity >= item.quantity for item in self.items.all())

    @property
    def has_deliveries(self) -> bool:
        return any(item.delivered_quantity > 0 for item in self.items.all())

    def __str__(self):
        return f"{self.so_number} | {self.status}"


class SalesOrderItem(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    sales_order = models.ForeignKey(
        SalesOrder,
        on_delete=models.CASCADE,
        related_name="items",
    )

    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name="sales_order_items",
    )

    quantity = models.DecimalField(max_digits=14, decimal_places=3)

    # Monotonic (except challan reversal); capped at quantity.
    delivered_quantity = models.DecimalField(
        max_digits=14,
        decimal_places=3,
        default=Decimal("0"),
    )

    unit_price = models.DecimalField(
        max_digits=18,
        decimal_places=2,
        default=Decimal("0.00"),
    )

    class Meta:
        ordering = ["sales_order", "id"]
        constraints = [
            models.CheckConstraint(
                condition=Q(quantity__gt=0),
                name="chk_so_item_qty_gt_zero",
            ),
            models.CheckConstraint(
                condition=Q(delivered_quantity__gte=0),
                name="chk_so_item_delivered_gte_zero",
            ),
            models.CheckConstraint(
                condition=Q(delivered_quantity__lte=F("quantity")),
                name="chk_so_item_delivered_lte_qty",
            ),
        ]

    def clean(self):
        if self.quantity is None or self.quantity <= 0:
            raise ValidationError({"quantity": "quantity must be greater than zero"})
        if self.delivered_quantity < 0 or self.delivered_quantity > self.quantity:
            raise ValidationError(
                {"delivered_quantity": "delivered_quantity must be between 0 and quantity"}
            )

    def save(self, *args, **kwargs):
        self.full_clean(validate_constraints=False)
        super().save(*args, **kwargs)

    @property
    def pending_quantity(self) -> Decimal:
        return self.quantity - self.delivered_quantity

    @property
    def line_total(self) -> Decimal:
        return (self.quantity * self.unit_price).quantize(Decimal("0.01"))

    def __str__(self):
        return f"{self.sales_order_id} | {self.product_id} x {self.quantity}"
