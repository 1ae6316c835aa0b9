from marketplace.catalog.domain.models import Product
from marketplace.ordering.domain.models import Order, OrderItem


__all__ = [
    "Product",
    "Order",
    "OrderItem",
]
