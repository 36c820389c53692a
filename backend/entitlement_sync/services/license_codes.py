"""
License code redemption.

A license code is a prepaid price sold by a reseller. Redeeming it
subscribes the user's provider customer to that price and grants the tier
behind it. A code is redeemed at most once.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from entitlement_sync.entitlements.cache import EntitlementCacheInvalidator
from entitlement_sync.entitlements.errors import (
    CustomerNotResolvedError,
    GatewayError,
    InvalidLicenseCodeError,
    LicenseCodeAlreadyAppliedError,
)
from entitlement_sync.entitlements.models import BillingContext, BillingType
from entitlement_sync.integrations.payments.client import PaymentProviderClient
from entitlement_sync.integrations.payments.models import Customer, PriceMetadata
from entitlement_sync.models.user import User
from entitlement_sync.repositories.license_codes_repo import LicenseCodesRepository
from entitlement_sync.repositories.user_tiers_repo import UserTiersRepository
from entitlement_sync.repositories.users_repo import UsersRepository
from entitlement_sync.services.gateway_appliers import ApplyReport, GatewayAppliers
from entitlement_sync.services.reconciliation import ReconciliationEngine, target_for

logger = logging.getLogger(__name__)


@dataclass
class RedemptionResult:
    code: str
    provider: str
    user_uuid: str
    customer_id: str
    tier_id: str
    lifetime: bool
    report: Optional[ApplyReport] = None


class LicenseCodeService:
    """Redeems license codes into tier assignments."""

    def __init__(
        self,
        provider: PaymentProviderClient,
        license_codes_repo: LicenseCodesRepository,
        users_repo: UsersRepository,
        user_tiers_repo: UserTiersRepository,
        engine: ReconciliationEngine,
        appliers: GatewayAppliers,
        cache_invalidator: EntitlementCacheInvalidator,
    ):
        self.provider = provider
        self.license_codes_repo = license_codes_repo
        self.users_repo = users_repo
        self.user_tiers_repo = user_tiers_repo
        self.engine = engine
        self.appliers = appliers
        self.cache_invalidator = cache_invalidator

    async def _resolve_customer(self, existing: Optional[User], email: str, name: Optional[str]) -> Customer:
        """
        Provider customer to subscribe.

        A known user keeps the customer already linked to it; only users
        without one get a customer looked up or created by email.
        """
        if existing is None or not existing.customer_id:
            return await self.provider.get_or_create_customer(email, name)

        customer = await self.provider.get_customer(existing.customer_id)
        if customer.deleted:
            raise CustomerNotResolvedError(
                "Linked customer has been deleted",
                user_uuid=existing.uuid,
                customer_id=existing.customer_id,
            )
        return customer

    async def redeem(
        self,
        code: str,
        provider: str,
        user_uuid: str,
        email: str,
        name: Optional[str] = None,
    ) -> RedemptionResult:
        """
        Redeem a license code for a user.

        Gateways are applied in strict mode: if any of them fails nothing is
        committed and the code stays available.

        Raises:
            InvalidLicenseCodeError: Unknown code
            LicenseCodeAlreadyAppliedError: Code was redeemed before (or concurrently)
            CustomerNotResolvedError: The user's linked customer was deleted
            GatewayError: A gateway rejected the new tier
        """
        license_code = self.license_codes_repo.find(code, provider)
        if license_code is None:
            raise InvalidLicenseCodeError(code, provider)
        if license_code.redeemed:
            raise LicenseCodeAlreadyAppliedError(code, provider)

        existing = self.users_repo.find_by_uuid(user_uuid)
        customer = await self._resolve_customer(existing, email, name)
        price = await self.provider.subscribe(customer.id, license_code.price_id)
        price_metadata = PriceMetadata.parse(price.metadata, price_id=price.id)
        product = price.product or await self.provider.get_product(price.product_id)

        recurring = price.is_recurring
        billing_type = BillingType.SUBSCRIPTION if recurring else BillingType.LIFETIME

        try:
            tier = self.engine.resolve_tier(
                product.id,
                billing_type,
                price_metadata,
                is_business=False,
                label=product.name,
            )

            lifetime = bool(existing.lifetime if existing else False) or not recurring
            user = self.users_repo.upsert(user_uuid, customer_id=customer.id)

            old_tier = self.user_tiers_repo.find_tier_for_context(user.id, BillingContext.INDIVIDUAL)
            self.user_tiers_repo.replace(user.id, BillingContext.INDIVIDUAL, tier.id)

            report = await self.appliers.apply_tier_change(
                target_for(user, email),
                old_tier,
                tier,
                strict=True,
            )

            user = self.users_repo.upsert(user_uuid, lifetime=lifetime)

            if not self.license_codes_repo.mark_redeemed(license_code.id):
                raise LicenseCodeAlreadyAppliedError(code, provider)
        except (GatewayError, LicenseCodeAlreadyAppliedError):
            self.license_codes_repo.rollback()
            logger.error(
                "License code redemption aborted",
                extra={"code": code, "provider": provider, "user_uuid": user_uuid},
            )
            raise

        self.license_codes_repo.commit()
        await self.cache_invalidator.invalidate(customer.id, user_uuid, reason="license_code_redeemed")

        logger.info(
            "License code redeemed",
            extra={
                "code": code,
                "provider": provider,
                "user_uuid": user_uuid,
                "tier_id": tier.id,
                "lifetime": lifetime,
            },
        )
        return RedemptionResult(
            code=code,
            provider=provider,
            user_uuid=user_uuid,
            customer_id=customer.id,
            tier_id=tier.id,
            lifetime=lifetime,
            report=report,
        )
