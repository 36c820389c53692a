"""
Wiring: build the engine and its collaborators from Settings.

Every component takes its dependencies explicitly; this is the only place
that knows how they fit together.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from redis.asyncio import Redis
from sqlalchemy.orm import Session

from entitlement_sync.config.settings import Settings
from entitlement_sync.entitlements.cache import EntitlementCache, EntitlementCacheInvalidator
from entitlement_sync.entitlements.collector import AvailabilityCollector
from entitlement_sync.entitlements.service import EntitlementService
from entitlement_sync.integrations.gateways.base import GatewayTokenSigner
from entitlement_sync.integrations.gateways.drive import DriveGatewayClient
from entitlement_sync.integrations.gateways.object_storage import ObjectStorageGatewayClient
from entitlement_sync.integrations.gateways.vpn import VpnGatewayClient
from entitlement_sync.integrations.payments.client import PaymentProviderClient
from entitlement_sync.repositories.coupons_repo import CouponsRepository
from entitlement_sync.repositories.license_codes_repo import LicenseCodesRepository
from entitlement_sync.repositories.tiers_repo import TiersRepository
from entitlement_sync.repositories.user_tiers_repo import UserTiersRepository
from entitlement_sync.repositories.users_repo import UsersRepository
from entitlement_sync.services.billing_webhook_handler import BillingWebhookHandler
from entitlement_sync.services.gateway_appliers import GatewayAppliers
from entitlement_sync.services.license_codes import LicenseCodeService
from entitlement_sync.services.reconciliation import ReconciliationEngine

logger = logging.getLogger(__name__)


@dataclass
class Components:
    provider: PaymentProviderClient
    drive: DriveGatewayClient
    vpn: VpnGatewayClient
    object_storage: ObjectStorageGatewayClient
    appliers: GatewayAppliers
    cache: EntitlementCache
    engine: ReconciliationEngine
    license_codes: LicenseCodeService
    webhooks: BillingWebhookHandler
    entitlements: EntitlementService
    redis: Optional[Redis] = None

    async def aclose(self) -> None:
        for client in (self.provider, self.drive, self.vpn, self.object_storage):
            await client.close()
        if self.redis is not None:
            await self.redis.aclose()


def _signer(settings: Settings, secret: str, scope: str) -> GatewayTokenSigner:
    return GatewayTokenSigner(
        secret,
        scope=scope,
        algorithm=settings.gateway_token_algorithm,
        ttl_minutes=settings.gateway_token_ttl_minutes,
    )


def build_components(settings: Settings, session: Session) -> Components:
    """Build every collaborator for one database session."""
    provider = PaymentProviderClient(
        api_key=settings.payment_provider_api_key,
        base_url=settings.payment_provider_base_url,
    )
    drive = DriveGatewayClient(
        settings.drive_gateway_url,
        _signer(settings, settings.drive_gateway_secret, "drive"),
    )
    vpn = VpnGatewayClient(
        settings.vpn_gateway_url,
        _signer(settings, settings.vpn_gateway_secret, "vpn"),
    )
    object_storage = ObjectStorageGatewayClient(
        settings.object_storage_gateway_url,
        _signer(settings, settings.object_storage_gateway_secret, "object_storage"),
    )

    redis_client = Redis.from_url(settings.redis_url) if settings.redis_url else None
    if redis_client is None:
        logger.info("REDIS_URL not configured - using in-memory entitlement cache")
    cache = EntitlementCache(redis_client=redis_client, ttl_seconds=settings.entitlement_cache_ttl)
    invalidator = EntitlementCacheInvalidator(cache)

    users_repo = UsersRepository(session)
    tiers_repo = TiersRepository(session)
    user_tiers_repo = UserTiersRepository(session)

    appliers = GatewayAppliers([drive, vpn], object_storage=object_storage)
    engine = ReconciliationEngine(
        provider=provider,
        users_repo=users_repo,
        tiers_repo=tiers_repo,
        user_tiers_repo=user_tiers_repo,
        coupons_repo=CouponsRepository(session),
        appliers=appliers,
        drive_gateway=drive,
        cache_invalidator=invalidator,
        free_tier_product_id=settings.free_tier_product_id,
    )
    license_codes = LicenseCodeService(
        provider=provider,
        license_codes_repo=LicenseCodesRepository(session),
        users_repo=users_repo,
        user_tiers_repo=user_tiers_repo,
        engine=engine,
        appliers=appliers,
        cache_invalidator=invalidator,
    )

    return Components(
        provider=provider,
        drive=drive,
        vpn=vpn,
        object_storage=object_storage,
        appliers=appliers,
        cache=cache,
        engine=engine,
        license_codes=license_codes,
        webhooks=BillingWebhookHandler(session, engine, license_codes),
        entitlements=EntitlementService(AvailabilityCollector(users_repo, user_tiers_repo), cache),
        redis=redis_client,
    )
