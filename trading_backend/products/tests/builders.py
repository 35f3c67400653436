# products/tests/builders.py

"""
Small object builders shared by the inventory, sales and returns tests.
Batches always go through create_batch so the PURCHASE row exists.
"""

from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.utils import timezone

from products.models import Batch, Product
from products.services.inventory import create_batch

User = get_user_model()

TODAY = timezone.localdate()


def make_user(role="admin", email=None, **extra):
    return User.objects.create_user(
        email=email or f"{role}@example.com",
        password="pass12345",
        role=role,
        **extra,
    )


def make_product(code="CHEM-001", name="Citric Acid", **extra):
    return Product.objects.create(product_code=code, name=name, **extra)


def make_batch(product, batch_number, quantity, *, days_ago=30, expiry_in=None, user=None, **extra) -> Batch:
    import_date = TODAY - timedelta(days=days_ago)
    expiry_date = TODAY + timedelta(days=expiry_in) if expiry_in is not None else None
    return create_batch(
        product=product,
        batch_number=batch_number,
        import_date=import_date,
        imported_quantity=Decimal(str(quantity)),
        expiry_date=expiry_date,
        user=user,
        **extra,
    )
