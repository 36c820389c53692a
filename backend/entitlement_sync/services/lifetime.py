"""
Lifetime storage stacking.

A user may buy several lifetime plans, possibly under different provider
customers that share one email. The drive space they get is the sum of every
lifetime purchase still standing (paid, not refunded, not disputed), on top
of the highest lifetime tier among those purchases.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from entitlement_sync.entitlements.errors import InvalidMetadataError
from entitlement_sync.entitlements.models import BillingType, Tier
from entitlement_sync.integrations.payments.client import PaymentProviderClient
from entitlement_sync.integrations.payments.models import Customer, Invoice, PriceMetadata
from entitlement_sync.repositories.tiers_repo import TiersRepository
from entitlement_sync.services.invoice_context import ONE_TIME_PLAN_TYPE

logger = logging.getLogger(__name__)

INVOICE_LIMIT = 100


@dataclass(frozen=True)
class LifetimePurchase:
    invoice_id: str
    product_id: str
    max_space_bytes: int


@dataclass(frozen=True)
class LifetimeConditions:
    """Highest lifetime tier plus the space stacked from every standing purchase."""
    tier: Tier
    max_space_bytes: int
    purchases: List[LifetimePurchase]


class LifetimeStacker:

    def __init__(
        self,
        provider: PaymentProviderClient,
        tiers_repo: TiersRepository,
        invoice_limit: int = INVOICE_LIMIT,
    ):
        self.provider = provider
        self.tiers_repo = tiers_repo
        self.invoice_limit = invoice_limit

    async def determine(
        self,
        customer: Customer,
        candidates: Sequence[Tier] = (),
    ) -> Optional[LifetimeConditions]:
        """
        Stack the lifetime purchases of everyone sharing the customer's email.

        Args:
            customer: The user's provider customer
            candidates: Lifetime tiers to consider besides the purchases found,
                e.g. the one being bought right now

        Returns:
            LifetimeConditions, or None when no purchase stands and there are
            no candidates

        Raises:
            PaymentProviderError: If the provider cannot be read
        """
        purchases = await self.standing_purchases(customer)

        tier = self._highest_tier([purchase.product_id for purchase in purchases], candidates)
        if tier is None:
            return None

        total = sum(purchase.max_space_bytes for purchase in purchases)
        conditions = LifetimeConditions(
            tier=tier,
            max_space_bytes=total or tier.drive.max_space_bytes,
            purchases=purchases,
        )
        logger.info(
            "Lifetime purchases stacked",
            extra={
                "customer_id": customer.id,
                "tier_id": tier.id,
                "max_space_bytes": conditions.max_space_bytes,
                "purchases": len(purchases),
            },
        )
        return conditions

    async def standing_purchases(self, customer: Customer) -> List[LifetimePurchase]:
        customers = [customer]
        if customer.email:
            related = await self.provider.list_customers_by_email(customer.email)
            customers.extend(other for other in related if other.id != customer.id)

        purchases: List[LifetimePurchase] = []
        for related_customer in customers:
            invoices = await self.provider.list_paid_invoices(related_customer.id, limit=self.invoice_limit)
            for invoice in invoices:
                purchase = await self._standing_purchase(related_customer, invoice)
                if purchase is not None:
                    purchases.append(purchase)
        return purchases

    async def _standing_purchase(self, customer: Customer, invoice: Invoice) -> Optional[LifetimePurchase]:
        line = invoice.lines[0] if invoice.lines else None
        price = line.price if line else None
        if price is None or not price.metadata:
            logger.warning(
                "Invoice has no price metadata",
                extra={"invoice_id": invoice.id, "customer_id": customer.id},
            )
            return None

        try:
            metadata = PriceMetadata.parse(price.metadata, price_id=price.id)
        except InvalidMetadataError as e:
            logger.warning(
                "Skipping invoice with invalid price metadata",
                extra={"invoice_id": invoice.id, "customer_id": customer.id, "error": e.to_dict()},
            )
            return None

        if metadata.plan_type != ONE_TIME_PLAN_TYPE or not invoice.is_paid:
            return None

        if invoice.charge_id is None:
            # only out-of-band payments (license codes) have no charge
            if not invoice.paid_out_of_band:
                return None
        else:
            charge = await self.provider.get_charge(invoice.charge_id)
            if charge.refunded or charge.disputed:
                return None

        return LifetimePurchase(
            invoice_id=invoice.id,
            product_id=price.product_id,
            max_space_bytes=metadata.max_space_bytes,
        )

    def _highest_tier(self, product_ids: List[str], candidates: Sequence[Tier]) -> Optional[Tier]:
        best: Optional[Tier] = None
        tiers = [tier for tier in candidates if tier.billing_type == BillingType.LIFETIME]
        for product_id in product_ids:
            tier = self.tiers_repo.find_by_product(product_id, BillingType.LIFETIME)
            if tier is not None:
                tiers.append(tier)

        for tier in tiers:
            if best is None or tier.drive.max_space_bytes > best.drive.max_space_bytes:
                best = tier
        return best
