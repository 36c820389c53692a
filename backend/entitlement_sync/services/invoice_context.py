"""
Invoice context: the validated view of a paid invoice.

Everything the reconciliation engine needs from the payment provider is
resolved and validated here, so the engine never handles raw payloads.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from entitlement_sync.entitlements.errors import (
    CustomerNotResolvedError,
    InvoiceNotPaidError,
    MissingPriceError,
)
from entitlement_sync.entitlements.models import BillingContext, BillingType, ProductType
from entitlement_sync.integrations.payments.client import PaymentProviderClient
from entitlement_sync.integrations.payments.exceptions import PaymentProviderNotFoundError
from entitlement_sync.integrations.payments.models import (
    Customer,
    Invoice,
    Price,
    PriceMetadata,
    Product,
    ProductMetadata,
)

logger = logging.getLogger(__name__)

ONE_TIME_PLAN_TYPE = "one_time"


@dataclass(frozen=True)
class InvoiceContext:
    invoice: Invoice
    customer: Customer
    price: Price
    product: Product
    product_metadata: ProductMetadata
    price_metadata: Optional[PriceMetadata]
    seats: int = 1
    coupon_ids: List[str] = field(default_factory=list)

    @property
    def is_business_plan(self) -> bool:
        return self.product_metadata.type == ProductType.BUSINESS

    @property
    def is_object_storage_plan(self) -> bool:
        return self.product_metadata.type == ProductType.OBJECT_STORAGE

    @property
    def is_lifetime(self) -> bool:
        return self.price_metadata is not None and self.price_metadata.plan_type == ONE_TIME_PLAN_TYPE

    @property
    def billing_type(self) -> BillingType:
        return BillingType.LIFETIME if self.is_lifetime else BillingType.SUBSCRIPTION

    @property
    def billing_context(self) -> BillingContext:
        return BillingContext.BUSINESS if self.is_business_plan else BillingContext.INDIVIDUAL

    @property
    def email(self) -> Optional[str]:
        return self.customer.email or self.invoice.customer_email


async def build_invoice_context(invoice: Invoice, provider: PaymentProviderClient) -> InvoiceContext:
    """
    Resolve and validate everything a paid invoice implies.

    Raises:
        InvoiceNotPaidError: Invoice status is not paid
        CustomerNotResolvedError: Customer is missing or deleted
        MissingPriceError: First line item has no price
        InvalidMetadataError: Price/product metadata is malformed
    """
    if not invoice.is_paid:
        raise InvoiceNotPaidError(
            "Invoice is not paid",
            invoice_id=invoice.id,
            status=invoice.status,
        )

    if not invoice.customer_id:
        raise CustomerNotResolvedError("Invoice has no customer", invoice_id=invoice.id)

    try:
        customer = await provider.get_customer(invoice.customer_id)
    except PaymentProviderNotFoundError as e:
        raise CustomerNotResolvedError(
            "Customer not found",
            invoice_id=invoice.id,
            customer_id=invoice.customer_id,
        ) from e

    if customer.deleted:
        raise CustomerNotResolvedError(
            "Customer has been deleted",
            invoice_id=invoice.id,
            customer_id=customer.id,
        )

    line = invoice.lines[0] if invoice.lines else None
    if line is None or not line.price_id:
        raise MissingPriceError("Invoice line item has no price", invoice_id=invoice.id)

    price = line.price or await provider.get_price(line.price_id)
    product = price.product or await provider.get_product(price.product_id)

    product_metadata = ProductMetadata.parse(product.metadata, product_id=product.id)

    # object storage prices carry no storage quota
    price_metadata = None
    if product_metadata.type != ProductType.OBJECT_STORAGE:
        price_metadata = PriceMetadata.parse(price.metadata, price_id=price.id)

    return InvoiceContext(
        invoice=invoice,
        customer=customer,
        price=price,
        product=product,
        product_metadata=product_metadata,
        price_metadata=price_metadata,
        seats=max(line.quantity, 1),
        coupon_ids=list(line.coupon_ids),
    )
