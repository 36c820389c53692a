"""
Drive tier sync job.

Re-applies every user's assigned tier on the drive gateway so the gateway's
quota and tier id match the billing database. Safe to run at any time: drive
applies are idempotent.

Usage:
    python -m entitlement_sync.jobs.sync_users_with_drive_tiers [individual|business]

Without an argument both billing contexts are synced.
"""

import asyncio
import logging
import sys
from datetime import datetime, timezone
from typing import Dict, List, Optional

from entitlement_sync.config.settings import Settings
from entitlement_sync.database.session import session_scope
from entitlement_sync.entitlements.errors import GatewayError
from entitlement_sync.entitlements.loader import TierCatalogLoader, TierCatalogSeeder
from entitlement_sync.entitlements.models import BillingContext, Tier, with_lifetime_space
from entitlement_sync.integrations.gateways.base import GatewayTarget, GatewayTokenSigner
from entitlement_sync.integrations.gateways.drive import DriveGatewayClient
from entitlement_sync.models.user import User
from entitlement_sync.platform.logging_config import configure_logging
from entitlement_sync.repositories.tiers_repo import TiersRepository
from entitlement_sync.repositories.user_tiers_repo import UserTiersRepository
from entitlement_sync.repositories.users_repo import UsersRepository

logger = logging.getLogger(__name__)

BATCH_SIZE = 500


class SyncStats:
    """Track sync run statistics."""

    def __init__(self):
        self.users_processed = 0
        self.users_synced = 0
        self.users_skipped = 0
        self.errors = 0
        self.start_time = datetime.now(timezone.utc)

    def to_dict(self) -> dict:
        duration = (datetime.now(timezone.utc) - self.start_time).total_seconds()
        return {
            "users_processed": self.users_processed,
            "users_synced": self.users_synced,
            "users_skipped": self.users_skipped,
            "errors": self.errors,
            "duration_seconds": duration,
        }


async def sync_user(
    drive: DriveGatewayClient,
    user: User,
    tiers: List[Tier],
    semaphore: asyncio.Semaphore,
    stats: SyncStats,
) -> None:
    """
    Apply one user's tiers on the drive gateway.

    A user holding both an individual and a business tier gets them applied
    one after the other, never concurrently.
    """
    async with semaphore:
        target = GatewayTarget(uuid=user.uuid, customer_id=user.customer_id)
        for tier in tiers:
            stats.users_processed += 1
            try:
                # seats=None keeps the workspace size the gateway already has
                await drive.apply(target, with_lifetime_space(tier, user.lifetime_space_bytes), seats=None)
                stats.users_synced += 1
            except GatewayError as e:
                stats.errors += 1
                logger.error("Failed to sync user", extra={
                    "user_uuid": user.uuid,
                    "tier_id": tier.id,
                    "gateway": e.gateway,
                    "error": e.to_dict(),
                })


async def sync_users_with_drive_tiers(
    user_tiers_repo: UserTiersRepository,
    users_repo: UsersRepository,
    tiers_repo: TiersRepository,
    drive: DriveGatewayClient,
    context: Optional[BillingContext] = None,
    max_concurrency: int = 10,
    batch_size: int = BATCH_SIZE,
) -> SyncStats:
    """
    Re-apply the assigned tier of every user with a tier relation.

    Database reads happen between batches; only gateway calls run
    concurrently, one task per user. Relations come ordered by user, and a
    batch finishes before the next one starts, so a user's relations are
    never applied in parallel.

    Returns:
        SyncStats for the run
    """
    stats = SyncStats()
    semaphore = asyncio.Semaphore(max_concurrency)
    tiers: Dict[str, Tier] = {tier.id: tier for tier in tiers_repo.list_all()}

    for batch in user_tiers_repo.iter_batches(context=context, batch_size=batch_size):
        users = {user.id: user for user in users_repo.find_by_ids([row.user_id for row in batch])}
        per_user: Dict[str, List[Tier]] = {}
        for row in batch:
            user = users.get(row.user_id)
            tier = tiers.get(row.tier_id)
            if user is None or tier is None or not tier.drive.enabled:
                stats.users_skipped += 1
                continue
            per_user.setdefault(user.id, []).append(tier)
        await asyncio.gather(*[
            sync_user(drive, users[user_id], user_tiers, semaphore, stats)
            for user_id, user_tiers in per_user.items()
        ])

    logger.info("Drive tier sync completed", extra=stats.to_dict())
    return stats


async def run(settings: Settings, context: Optional[BillingContext] = None) -> SyncStats:
    with session_scope(settings.database_url) as session:
        tiers_repo = TiersRepository(session)
        TierCatalogSeeder(tiers_repo, TierCatalogLoader(settings.tier_catalog_path)).seed()

        signer = GatewayTokenSigner(
            settings.drive_gateway_secret,
            scope="drive",
            algorithm=settings.gateway_token_algorithm,
            ttl_minutes=settings.gateway_token_ttl_minutes,
        )
        async with DriveGatewayClient(settings.drive_gateway_url, signer) as drive:
            return await sync_users_with_drive_tiers(
                UserTiersRepository(session),
                UsersRepository(session),
                tiers_repo,
                drive,
                context=context,
                max_concurrency=settings.sync_max_concurrency,
            )


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the sync job."""
    argv = sys.argv[1:] if argv is None else argv
    context = BillingContext(argv[0].lower()) if argv else None

    settings = Settings.from_env()
    configure_logging(settings.log_level)

    logger.info("Starting drive tier sync", extra={"context": context.value if context else "all"})
    try:
        stats = asyncio.run(run(settings, context))
    except Exception as e:
        logger.error("Drive tier sync failed", extra={"error": str(e)})
        return 1

    return 1 if stats.errors else 0


if __name__ == "__main__":
    sys.exit(main())
