"""
Entitlement Cache - Redis-backed cache with explicit invalidation.

Provides:
- InMemoryCache: process-local fallback with TTL support
- EntitlementCache: async cache over an injected redis.asyncio client
- EntitlementCacheInvalidator: drops every key derived from a customer/user

CRITICAL: Every flow that changes a user's tiers MUST invalidate afterwards.
Invalidation failures never fail the flow; stale entries expire by TTL.
"""

import logging
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, Optional, Tuple

from redis.asyncio import Redis
from redis.exceptions import RedisError

from entitlement_sync.entitlements.errors import CacheError
from entitlement_sync.entitlements.models import BillingContext

logger = logging.getLogger(__name__)

# Cache configuration
DEFAULT_CACHE_TTL_SECONDS = 300  # 5 minutes


def subscription_key(customer_id: str, context: BillingContext) -> str:
    return f"subscription-{customer_id}-{context.value}"


def user_tier_key(user_uuid: str) -> str:
    return f"user-tier-{user_uuid}"


def entitlement_key(user_uuid: str) -> str:
    return f"entitlement-{user_uuid}"


class InMemoryCache:
    """
    In-memory fallback cache when Redis is not configured.

    Thread-safe with basic TTL support.
    """

    def __init__(self, max_size: int = 10000):
        self._cache: Dict[str, Tuple[str, datetime]] = {}
        self._lock = Lock()
        self._max_size = max_size

    def get(self, key: str, ttl_seconds: int) -> Optional[str]:
        """Get value if not expired."""
        with self._lock:
            if key not in self._cache:
                return None
            value, cached_at = self._cache[key]
            if (datetime.now(timezone.utc) - cached_at).total_seconds() > ttl_seconds:
                del self._cache[key]
                return None
            return value

    def set(self, key: str, value: str) -> None:
        """Set value with current timestamp."""
        with self._lock:
            # Evict oldest if at capacity
            if len(self._cache) >= self._max_size and key not in self._cache:
                oldest_key = min(self._cache.keys(), key=lambda k: self._cache[k][1])
                del self._cache[oldest_key]
            self._cache[key] = (value, datetime.now(timezone.utc))

    def delete(self, key: str) -> bool:
        """Delete a key."""
        with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    def clear(self) -> None:
        """Clear all cache entries."""
        with self._lock:
            self._cache.clear()


class EntitlementCache:
    """
    Key/value cache for entitlement read models.

    Uses the injected Redis client when given, the in-memory cache otherwise.

    Usage:
        cache = EntitlementCache(redis_client=Redis.from_url(url), ttl_seconds=300)
        await cache.set(key, value)
        value = await cache.get(key)
        await cache.delete(key)
    """

    def __init__(
        self,
        redis_client: Optional[Redis] = None,
        ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        memory_cache: Optional[InMemoryCache] = None,
    ):
        self._redis = redis_client
        self._memory_cache = memory_cache or InMemoryCache()
        self._ttl_seconds = ttl_seconds

    @property
    def uses_redis(self) -> bool:
        return self._redis is not None

    async def get(self, key: str) -> Optional[str]:
        """Get a cached value; read failures count as a miss."""
        if self._redis is not None:
            try:
                value = await self._redis.get(key)
            except RedisError as e:
                logger.warning(f"Redis GET failed: {e}", extra={"key": key})
                return None
            if isinstance(value, bytes):
                value = value.decode("utf-8")
            return value

        return self._memory_cache.get(key, self._ttl_seconds)

    async def set(self, key: str, value: str) -> bool:
        """Store a value with the configured TTL."""
        if self._redis is not None:
            try:
                await self._redis.set(key, value, ex=self._ttl_seconds)
                return True
            except RedisError as e:
                logger.warning(f"Redis SET failed: {e}", extra={"key": key})
                return False

        self._memory_cache.set(key, value)
        return True

    async def delete(self, *keys: str) -> int:
        """
        Delete keys.

        Raises:
            CacheError: If the Redis delete fails
        """
        if not keys:
            return 0

        if self._redis is not None:
            try:
                return int(await self._redis.delete(*keys))
            except RedisError as e:
                raise CacheError(f"Redis DELETE failed: {e}", keys=list(keys)) from e

        return sum(1 for key in keys if self._memory_cache.delete(key))


class EntitlementCacheInvalidator:
    """Drops cached subscription and tier views after a tier change."""

    def __init__(self, cache: EntitlementCache):
        self.cache = cache

    def keys_for(self, customer_id: Optional[str], user_uuid: Optional[str] = None) -> list:
        keys = []
        if customer_id:
            keys.extend(subscription_key(customer_id, context) for context in BillingContext)
        if user_uuid:
            keys.append(user_tier_key(user_uuid))
            keys.append(entitlement_key(user_uuid))
        return keys

    async def invalidate(
        self,
        customer_id: Optional[str],
        user_uuid: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> bool:
        """
        Invalidate every key derived from a customer and user.

        Never raises: a failure is logged and the entries expire by TTL.

        Returns:
            True if the delete call succeeded
        """
        keys = self.keys_for(customer_id, user_uuid)
        if not keys:
            return True

        try:
            deleted = await self.cache.delete(*keys)
        except Exception as e:
            logger.error(
                "Entitlement cache invalidation failed",
                extra={
                    "customer_id": customer_id,
                    "user_uuid": user_uuid,
                    "reason": reason,
                    "error": str(e),
                },
            )
            return False

        logger.info(
            "Invalidated entitlement cache",
            extra={
                "customer_id": customer_id,
                "user_uuid": user_uuid,
                "reason": reason,
                "deleted": deleted,
            },
        )
        return True
