"""
Payment provider integration.
"""

from entitlement_sync.integrations.payments.client import PaymentProviderClient
from entitlement_sync.integrations.payments.models import (
    Customer,
    Invoice,
    InvoiceLine,
    Price,
    PriceMetadata,
    Product,
    ProductMetadata,
    Subscription,
)

__all__ = [
    "PaymentProviderClient",
    "Customer",
    "Invoice",
    "InvoiceLine",
    "Price",
    "PriceMetadata",
    "Product",
    "ProductMetadata",
    "Subscription",
]
