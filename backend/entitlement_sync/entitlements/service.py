"""
Entitlement Service - read side of entitlement resolution.

Provides:
- get_entitlements(user_uuid, owner_uuids) -> MergedEntitlement
- has_service(user_uuid, service, owner_uuids) -> bool

Resolution: collector (user tiers + owners' workspace tiers) -> merge.
Results are cached per user; the cached entry remembers which owners it was
computed for and is ignored when asked for a different owner set.

Owner tier changes do not invalidate members' entries. Those heal when the
entry's TTL expires.
"""

import json
import logging
from typing import List, Sequence

from entitlement_sync.entitlements.cache import EntitlementCache, entitlement_key
from entitlement_sync.entitlements.collector import AvailabilityCollector
from entitlement_sync.entitlements.merge import merge
from entitlement_sync.entitlements.models import MergedEntitlement, Service

logger = logging.getLogger(__name__)


class EntitlementService:
    """
    Single entry point for reading a user's effective entitlement.

    Usage:
        service = EntitlementService(collector, cache)
        merged = await service.get_entitlements(user_uuid, owner_uuids=[owner])
        merged.drive.max_space_bytes
    """

    def __init__(self, collector: AvailabilityCollector, cache: EntitlementCache):
        self.collector = collector
        self.cache = cache

    async def get_entitlements(
        self,
        user_uuid: str,
        owner_uuids: Sequence[str] = (),
    ) -> MergedEntitlement:
        """
        Resolve the merged entitlement for a user.

        Raises:
            UserNotFoundError: If the user does not exist
            TierNotFoundError: If no tier applies to the user
        """
        owners: List[str] = list(owner_uuids)
        key = entitlement_key(user_uuid)

        cached = await self.cache.get(key)
        if cached:
            try:
                entry = json.loads(cached)
                if entry.get("owners") == owners:
                    logger.debug(f"Cache hit for user {user_uuid}")
                    return MergedEntitlement.from_dict(entry["entitlement"])
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(f"Failed to deserialize cached entitlement: {e}")

        tiers = self.collector.collect_tiers(user_uuid, owners)
        merged = merge(tiers)

        await self.cache.set(key, json.dumps({"owners": owners, "entitlement": merged.to_dict()}))
        logger.debug(
            "Resolved entitlement",
            extra={
                "user_uuid": user_uuid,
                "tier_ids": [tier.id for tier in tiers],
                "drive_tier_id": merged.drive.source_tier_id,
            },
        )
        return merged

    async def has_service(
        self,
        user_uuid: str,
        service: Service,
        owner_uuids: Sequence[str] = (),
    ) -> bool:
        merged = await self.get_entitlements(user_uuid, owner_uuids)
        return getattr(merged, service.value).enabled
