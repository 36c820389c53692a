"""
Reconciliation engine: apply payment provider events to user tiers.

Entry points:
- handle_invoice_paid(invoice)
- handle_subscription_canceled(subscription)
- handle_charge_refunded(charge)
- handle_dispute_closed(dispute)

Each entry point resolves the tier delta, persists it (single-row writes),
fans it out to the feature gateways and finally invalidates the cache.
All of them are safe to run again for the same event.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from entitlement_sync.entitlements.cache import EntitlementCacheInvalidator
from entitlement_sync.entitlements.errors import (
    CustomerNotResolvedError,
    FreeTierMissingError,
    GatewayError,
    MissingPriceError,
    PaymentProviderError,
)
from entitlement_sync.entitlements.models import (
    BillingContext,
    BillingType,
    DriveFeatures,
    FeaturesPerService,
    ProductType,
    Tier,
    WorkspaceFeatures,
    with_lifetime_space,
)
from entitlement_sync.integrations.gateways.base import GatewayTarget
from entitlement_sync.integrations.gateways.drive import DriveGatewayClient
from entitlement_sync.integrations.payments.client import PaymentProviderClient
from entitlement_sync.integrations.payments.models import (
    Charge,
    Dispute,
    Invoice,
    PriceMetadata,
    ProductMetadata,
    Subscription,
)
from entitlement_sync.models.base import generate_uuid
from entitlement_sync.models.user import User
from entitlement_sync.repositories.coupons_repo import CouponsRepository
from entitlement_sync.repositories.tiers_repo import TiersRepository
from entitlement_sync.repositories.user_tiers_repo import UserTiersRepository
from entitlement_sync.repositories.users_repo import UsersRepository
from entitlement_sync.services.gateway_appliers import ApplyReport, GatewayAppliers
from entitlement_sync.services.invoice_context import InvoiceContext, build_invoice_context
from entitlement_sync.services.lifetime import LifetimeStacker

logger = logging.getLogger(__name__)

DEFAULT_FREE_TIER_PRODUCT_ID = "free"


@dataclass
class ReconciliationResult:
    """Outcome of one reconciliation entry point."""
    action: str
    user_uuid: Optional[str] = None
    tier_id: Optional[str] = None
    old_tier_id: Optional[str] = None
    report: Optional[ApplyReport] = None


def tier_from_price(
    product_id: str,
    billing_type: BillingType,
    price_metadata: PriceMetadata,
    is_business: bool,
    label: str = "",
) -> Tier:
    """
    Build a drive-only tier from price metadata.

    Business tiers get workspaces with the quota as per-seat bytes.
    """
    workspaces = WorkspaceFeatures()
    if is_business:
        workspaces = WorkspaceFeatures(
            enabled=True,
            max_space_bytes_per_seat=price_metadata.max_space_bytes,
        )
    return Tier(
        id=generate_uuid(),
        product_id=product_id,
        billing_type=billing_type,
        label=label,
        features_per_service=FeaturesPerService(
            drive=DriveFeatures(
                enabled=True,
                max_space_bytes=price_metadata.max_space_bytes,
                workspaces=workspaces,
            ),
        ),
    )


def target_for(user: User, email: Optional[str] = None) -> GatewayTarget:
    return GatewayTarget(uuid=user.uuid, customer_id=user.customer_id, email=email)


class ReconciliationEngine:
    """
    Event-driven reconciliation of user tiers.

    Every collaborator is injected; the engine owns no connections.
    """

    def __init__(
        self,
        provider: PaymentProviderClient,
        users_repo: UsersRepository,
        tiers_repo: TiersRepository,
        user_tiers_repo: UserTiersRepository,
        coupons_repo: CouponsRepository,
        appliers: GatewayAppliers,
        drive_gateway: DriveGatewayClient,
        cache_invalidator: EntitlementCacheInvalidator,
        free_tier_product_id: str = DEFAULT_FREE_TIER_PRODUCT_ID,
        lifetime_stacker: Optional[LifetimeStacker] = None,
    ):
        self.provider = provider
        self.users_repo = users_repo
        self.tiers_repo = tiers_repo
        self.user_tiers_repo = user_tiers_repo
        self.coupons_repo = coupons_repo
        self.appliers = appliers
        self.drive_gateway = drive_gateway
        self.cache_invalidator = cache_invalidator
        self.free_tier_product_id = free_tier_product_id
        self.lifetime_stacker = lifetime_stacker or LifetimeStacker(provider, tiers_repo)

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    def resolve_tier(
        self,
        product_id: str,
        billing_type: BillingType,
        price_metadata: PriceMetadata,
        is_business: bool,
        label: str = "",
    ) -> Tier:
        """Find the tier for (product, billing type), creating it from price metadata if absent."""
        tier = self.tiers_repo.find_by_product(product_id, billing_type)
        if tier is not None:
            return tier

        logger.info(
            "Tier not found, creating from price metadata",
            extra={"product_id": product_id, "billing_type": billing_type.value},
        )
        return self.tiers_repo.create(
            tier_from_price(product_id, billing_type, price_metadata, is_business, label)
        )

    async def _resolve_invoice_user(self, ctx: InvoiceContext) -> User:
        user = self.users_repo.find_by_customer_id(ctx.customer.id)
        if user is not None:
            return user

        email = ctx.email
        if email:
            found = await self.drive_gateway.find_user_by_email(email)
            if found is not None:
                logger.info(
                    "Linked customer to drive user by email",
                    extra={"customer_id": ctx.customer.id, "user_uuid": found.uuid},
                )
                return self.users_repo.upsert(found.uuid, customer_id=ctx.customer.id)

        raise CustomerNotResolvedError(
            "No user for customer",
            invoice_id=ctx.invoice.id,
            customer_id=ctx.customer.id,
        )

    def _free_tier(self) -> Tier:
        free_tier = self.tiers_repo.find_first_by_product(self.free_tier_product_id)
        if free_tier is None:
            raise FreeTierMissingError(
                "Free tier is not in the catalog",
                product_id=self.free_tier_product_id,
            )
        return free_tier

    def _user_for_customer(self, customer_id: Optional[str], **context) -> User:
        user = self.users_repo.find_by_customer_id(customer_id) if customer_id else None
        if user is None:
            raise CustomerNotResolvedError("No user for customer", customer_id=customer_id, **context)
        return user

    def _record_coupons(self, user: User, ctx: InvoiceContext) -> None:
        for coupon_code in ctx.coupon_ids:
            try:
                coupon = self.coupons_repo.find_by_code(coupon_code)
                if coupon is not None:
                    self.coupons_repo.record_usage(user.id, coupon.id)
            except SQLAlchemyError as e:
                logger.error(
                    "Failed to record coupon usage",
                    extra={"user_uuid": user.uuid, "coupon": coupon_code, "error": str(e)},
                )

    # ------------------------------------------------------------------
    # Invoice paid
    # ------------------------------------------------------------------

    async def handle_invoice_paid(self, invoice: Invoice) -> ReconciliationResult:
        """
        Grant the tier bought with a paid invoice.

        Raises:
            InvoiceNotPaidError, CustomerNotResolvedError, MissingPriceError,
            InvalidMetadataError: Structural problems with the invoice
        """
        ctx = await build_invoice_context(invoice, self.provider)

        if ctx.is_object_storage_plan:
            return await self._provision_object_storage(ctx)

        user = await self._resolve_invoice_user(ctx)

        if ctx.is_business_plan:
            user = self.users_repo.upsert(user.uuid, customer_id=ctx.customer.id)
        else:
            user = self.users_repo.upsert(
                user.uuid,
                customer_id=ctx.customer.id,
                lifetime=bool(user.lifetime) or ctx.is_lifetime,
            )

        new_tier = self.resolve_tier(
            ctx.product.id,
            ctx.billing_type,
            ctx.price_metadata,
            ctx.is_business_plan,
            label=ctx.product.name,
        )

        context = ctx.billing_context
        old_tier = self.user_tiers_repo.find_tier_for_context(user.id, context)
        old_applied = with_lifetime_space(old_tier, user.lifetime_space_bytes)

        if ctx.is_lifetime and not ctx.is_business_plan:
            new_tier, space_bytes = await self._stack_lifetime(ctx, new_tier, old_tier)
            self.users_repo.set_lifetime_space(user, space_bytes)

        self.user_tiers_repo.replace(user.id, context, new_tier.id)
        self._record_coupons(user, ctx)
        self.user_tiers_repo.commit()

        report = await self.appliers.apply_tier_change(
            target_for(user, ctx.email),
            old_applied,
            with_lifetime_space(new_tier, user.lifetime_space_bytes),
            seats=ctx.seats,
        )

        await self.cache_invalidator.invalidate(ctx.customer.id, user.uuid, reason="invoice_paid")

        logger.info(
            "Invoice reconciled",
            extra={
                "invoice_id": invoice.id,
                "user_uuid": user.uuid,
                "tier_id": new_tier.id,
                "old_tier_id": old_tier.id if old_tier else None,
                "context": context.value,
                "gateways": report.to_dict(),
            },
        )
        return ReconciliationResult(
            action="tier_applied",
            user_uuid=user.uuid,
            tier_id=new_tier.id,
            old_tier_id=old_tier.id if old_tier else None,
            report=report,
        )

    async def _stack_lifetime(
        self,
        ctx: InvoiceContext,
        bought: Tier,
        current: Optional[Tier],
    ) -> Tuple[Tier, Optional[int]]:
        """
        Highest lifetime tier and stacked space after a lifetime purchase.

        Falls back to the bought tier alone when the provider cannot be read.
        """
        candidates = [bought] + ([current] if current is not None else [])
        try:
            conditions = await self.lifetime_stacker.determine(ctx.customer, candidates)
        except PaymentProviderError as e:
            logger.error(
                "Failed to stack lifetime purchases",
                extra={"invoice_id": ctx.invoice.id, "customer_id": ctx.customer.id, "error": e.to_dict()},
            )
            return bought, None
        if conditions is None:
            return bought, None
        return conditions.tier, conditions.max_space_bytes

    async def _provision_object_storage(self, ctx: InvoiceContext) -> ReconciliationResult:
        user = self.users_repo.find_by_customer_id(ctx.customer.id)
        target = GatewayTarget(
            uuid=user.uuid if user else None,
            customer_id=ctx.customer.id,
            email=ctx.email,
        )
        report = await self.appliers.provision_object_storage(target)
        await self.cache_invalidator.invalidate(
            ctx.customer.id,
            target.uuid,
            reason="object_storage_invoice_paid",
        )

        logger.info(
            "Object storage invoice reconciled",
            extra={
                "invoice_id": ctx.invoice.id,
                "customer_id": ctx.customer.id,
                "user_uuid": target.uuid,
                "gateways": report.to_dict(),
            },
        )
        return ReconciliationResult(action="object_storage_provisioned", user_uuid=target.uuid, report=report)

    # ------------------------------------------------------------------
    # Subscription canceled
    # ------------------------------------------------------------------

    async def handle_subscription_canceled(self, subscription: Subscription) -> ReconciliationResult:
        """
        Withdraw what a canceled subscription granted.

        Object storage is suspended and business workspaces destroyed before
        the lifetime check; only individual downgrades respect lifetime.
        """
        product_id = subscription.product_id
        if not product_id:
            if not subscription.price_id:
                raise MissingPriceError("Subscription has no price", subscription_id=subscription.id)
            price = await self.provider.get_price(subscription.price_id)
            product_id = price.product_id

        product = await self.provider.get_product(product_id)
        product_metadata = ProductMetadata.parse(product.metadata, product_id=product.id)
        user = self.users_repo.find_by_customer_id(subscription.customer_id)

        if product_metadata.type == ProductType.OBJECT_STORAGE:
            target = GatewayTarget(
                uuid=user.uuid if user else None,
                customer_id=subscription.customer_id,
            )
            report = await self.appliers.suspend_object_storage(target)
            await self.cache_invalidator.invalidate(
                subscription.customer_id,
                target.uuid,
                reason="object_storage_canceled",
            )
            logger.info(
                "Object storage subscription canceled",
                extra={
                    "subscription_id": subscription.id,
                    "customer_id": subscription.customer_id,
                    "gateways": report.to_dict(),
                },
            )
            return ReconciliationResult(action="object_storage_suspended", user_uuid=target.uuid, report=report)

        if user is None:
            raise CustomerNotResolvedError(
                "No user for customer",
                subscription_id=subscription.id,
                customer_id=subscription.customer_id,
            )

        if product_metadata.type == ProductType.BUSINESS:
            return await self._cancel_business(user, subscription)

        if user.lifetime:
            logger.info(
                "Lifetime user keeps tier after cancellation",
                extra={"user_uuid": user.uuid, "subscription_id": subscription.id},
            )
            return ReconciliationResult(action="lifetime_kept", user_uuid=user.uuid)

        free_tier = self._free_tier()
        old_tier = self.user_tiers_repo.find_tier_for_context(user.id, BillingContext.INDIVIDUAL)
        self.user_tiers_repo.replace(user.id, BillingContext.INDIVIDUAL, free_tier.id)
        self.user_tiers_repo.commit()

        report = await self.appliers.apply_tier_change(target_for(user), old_tier, free_tier)
        await self.cache_invalidator.invalidate(user.customer_id, user.uuid, reason="subscription_canceled")

        logger.info(
            "Subscription canceled, downgraded to free tier",
            extra={
                "subscription_id": subscription.id,
                "user_uuid": user.uuid,
                "old_tier_id": old_tier.id if old_tier else None,
                "tier_id": free_tier.id,
                "gateways": report.to_dict(),
            },
        )
        return ReconciliationResult(
            action="downgraded_to_free",
            user_uuid=user.uuid,
            tier_id=free_tier.id,
            old_tier_id=old_tier.id if old_tier else None,
            report=report,
        )

    async def _cancel_business(self, user: User, subscription: Subscription) -> ReconciliationResult:
        old_tier = self.user_tiers_repo.find_tier_for_context(user.id, BillingContext.BUSINESS)

        try:
            await self.drive_gateway.destroy_workspace(user.uuid)
        except GatewayError as e:
            logger.error(
                "Workspace destroy failed",
                extra={
                    "user_uuid": user.uuid,
                    "tier_id": old_tier.id if old_tier else None,
                    "gateway": e.gateway,
                    "error": e.to_dict(),
                },
            )

        self.user_tiers_repo.delete_for_context(user.id, BillingContext.BUSINESS)
        self.user_tiers_repo.commit()
        await self.cache_invalidator.invalidate(user.customer_id, user.uuid, reason="business_canceled")

        return ReconciliationResult(
            action="workspace_destroyed",
            user_uuid=user.uuid,
            old_tier_id=old_tier.id if old_tier else None,
        )

    # ------------------------------------------------------------------
    # Refunds and disputes
    # ------------------------------------------------------------------

    async def handle_charge_refunded(self, charge: Charge) -> ReconciliationResult:
        """
        Withdraw a fully refunded lifetime purchase.

        Partial refunds change nothing. Refunded subscriptions are left to the
        subscription.canceled event that follows them.

        Raises:
            CustomerNotResolvedError: No user for the charge's customer
        """
        if not charge.refunded:
            logger.info("Partial refund ignored", extra={"charge_id": charge.id, "customer_id": charge.customer_id})
            return ReconciliationResult(action="partial_refund_ignored")

        user = self._user_for_customer(charge.customer_id, charge_id=charge.id)
        if not user.lifetime:
            logger.info(
                "Refund for a non-lifetime user left to subscription events",
                extra={"charge_id": charge.id, "user_uuid": user.uuid},
            )
            return ReconciliationResult(action="not_lifetime", user_uuid=user.uuid)

        return await self._withdraw_lifetime(user, reason="lifetime_refunded", charge_id=charge.id)

    async def handle_dispute_closed(self, dispute: Dispute) -> ReconciliationResult:
        """
        Act on a lost dispute.

        A lost lifetime purchase is withdrawn like a refund; a lost
        subscription payment cancels the subscription at the provider.

        Raises:
            CustomerNotResolvedError: No user for the disputed charge's customer
        """
        if not dispute.is_lost:
            logger.info("Dispute not lost, nothing to do", extra={"dispute_id": dispute.id, "status": dispute.status})
            return ReconciliationResult(action="dispute_not_lost")

        charge = await self.provider.get_charge(dispute.charge_id)
        user = self._user_for_customer(charge.customer_id, charge_id=charge.id, dispute_id=dispute.id)

        if user.lifetime:
            return await self._withdraw_lifetime(user, reason="dispute_lost", charge_id=charge.id)

        subscription_id = None
        if charge.invoice_id:
            invoice = await self.provider.get_invoice(charge.invoice_id)
            subscription_id = invoice.subscription_id

        if not subscription_id:
            logger.warning(
                "Lost dispute has no subscription to cancel",
                extra={"dispute_id": dispute.id, "charge_id": charge.id, "user_uuid": user.uuid},
            )
            return ReconciliationResult(action="no_subscription", user_uuid=user.uuid)

        await self.provider.cancel_subscription(subscription_id)
        logger.info(
            "Subscription canceled after lost dispute",
            extra={"dispute_id": dispute.id, "subscription_id": subscription_id, "user_uuid": user.uuid},
        )
        return ReconciliationResult(action="subscription_canceled", user_uuid=user.uuid)

    async def _withdraw_lifetime(self, user: User, reason: str, charge_id: str) -> ReconciliationResult:
        """
        Re-stack the user's lifetime purchases after one was withdrawn.

        With purchases left the user keeps the highest remaining lifetime tier
        and their summed space. With none left the user loses lifetime and an
        individual lifetime tier falls back to free.
        """
        customer = await self.provider.get_customer(user.customer_id)
        conditions = None
        if not customer.deleted:
            conditions = await self.lifetime_stacker.determine(customer)

        old_tier = self.user_tiers_repo.find_tier_for_context(user.id, BillingContext.INDIVIDUAL)
        old_applied = with_lifetime_space(old_tier, user.lifetime_space_bytes)

        if conditions is not None:
            new_tier, space_bytes, action = conditions.tier, conditions.max_space_bytes, "lifetime_restacked"
        elif old_tier is not None and old_tier.billing_type != BillingType.LIFETIME:
            new_tier, space_bytes, action = old_tier, None, "lifetime_cleared"
        else:
            new_tier, space_bytes, action = self._free_tier(), None, "downgraded_to_free"

        self.users_repo.upsert(user.uuid, lifetime=conditions is not None)
        self.users_repo.set_lifetime_space(user, space_bytes)
        self.user_tiers_repo.replace(user.id, BillingContext.INDIVIDUAL, new_tier.id)
        self.user_tiers_repo.commit()

        report = await self.appliers.apply_tier_change(
            target_for(user, customer.email),
            old_applied,
            with_lifetime_space(new_tier, space_bytes),
        )
        await self.cache_invalidator.invalidate(user.customer_id, user.uuid, reason=reason)

        logger.info(
            "Lifetime purchase withdrawn",
            extra={
                "charge_id": charge_id,
                "user_uuid": user.uuid,
                "action": action,
                "old_tier_id": old_tier.id if old_tier else None,
                "tier_id": new_tier.id,
                "lifetime_space_bytes": space_bytes,
                "gateways": report.to_dict(),
            },
        )
        return ReconciliationResult(
            action=action,
            user_uuid=user.uuid,
            tier_id=new_tier.id,
            old_tier_id=old_tier.id if old_tier else None,
            report=report,
        )
