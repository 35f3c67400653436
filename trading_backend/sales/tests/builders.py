# sales/tests/builders.py

from decimal import Decimal

from products.tests.builders import TODAY
from sales.models import Customer
from sales.services.order_service import approve_order, create_sales_order


def make_customer(name="PT Sinar Kimia", **extra):
    return Customer.objects.create(company_name=name, **extra)


def make_order(customer, lines, *, user=None, submit=True):
    """lines: [(product, quantity, unit_price), ...]"""
    return create_sales_order(
        customer=customer,
        items=[
            {"product": product, "quantity": Decimal(str(qty)), "unit_price": Decimal(str(price))}
            for product, qty, price in lines
        ],
        user=user,
        submit=submit,
    )


def make_approved_order(customer, product, quantity, *, unit_price=250, user=None):
    order = make_order(customer, [(product, quantity, unit_price)], user=user)
    result = approve_order(sales_order=order, user=user, as_of=TODAY)
    order.refresh_from_db()
    return order, result
