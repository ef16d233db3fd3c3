from storefront.models.audit_log import AuditLog
from storefront.models.counter import Counter
from storefront.models.order import Order
from storefront.models.product import Product

__all__ = [
    "AuditLog",
    "Counter",
    "Order",
    "Product",
]
