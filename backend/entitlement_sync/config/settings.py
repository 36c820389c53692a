"""
Runtime configuration loaded from environment variables.

SECURITY: Settings hold API keys and gateway secrets. Never log a Settings
instance; use safe_dict() for diagnostics.
"""

import os
from typing import Optional

from pydantic import BaseModel

from entitlement_sync.platform.logging_config import redact_secrets

REQUIRED_ENV_VARS = (
    "DATABASE_URL",
    "PAYMENT_PROVIDER_API_KEY",
    "DRIVE_GATEWAY_URL",
    "DRIVE_GATEWAY_SECRET",
    "VPN_GATEWAY_URL",
    "VPN_GATEWAY_SECRET",
    "OBJECT_STORAGE_GATEWAY_URL",
    "OBJECT_STORAGE_GATEWAY_SECRET",
)


class Settings(BaseModel):
    """Configuration for the entitlement sync service and jobs."""
    database_url: str
    redis_url: Optional[str] = None
    entitlement_cache_ttl: int = 300

    payment_provider_api_key: str
    payment_provider_base_url: Optional[str] = None

    drive_gateway_url: str
    drive_gateway_secret: str
    vpn_gateway_url: str
    vpn_gateway_secret: str
    object_storage_gateway_url: str
    object_storage_gateway_secret: str
    gateway_token_algorithm: str = "RS256"
    gateway_token_ttl_minutes: int = 5

    free_tier_product_id: str = "free"
    tier_catalog_path: Optional[str] = None
    sync_max_concurrency: int = 10
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from the environment.

        Raises:
            ValueError: If a required variable is missing
        """
        missing = [name for name in REQUIRED_ENV_VARS if not os.getenv(name)]
        if missing:
            raise ValueError(f"Missing required environment variables: {', '.join(missing)}")

        return cls(
            database_url=os.getenv("DATABASE_URL"),
            redis_url=os.getenv("REDIS_URL") or None,
            entitlement_cache_ttl=int(os.getenv("ENTITLEMENT_CACHE_TTL", "300")),
            payment_provider_api_key=os.getenv("PAYMENT_PROVIDER_API_KEY"),
            payment_provider_base_url=os.getenv("PAYMENT_PROVIDER_BASE_URL") or None,
            drive_gateway_url=os.getenv("DRIVE_GATEWAY_URL"),
            drive_gateway_secret=os.getenv("DRIVE_GATEWAY_SECRET"),
            vpn_gateway_url=os.getenv("VPN_GATEWAY_URL"),
            vpn_gateway_secret=os.getenv("VPN_GATEWAY_SECRET"),
            object_storage_gateway_url=os.getenv("OBJECT_STORAGE_GATEWAY_URL"),
            object_storage_gateway_secret=os.getenv("OBJECT_STORAGE_GATEWAY_SECRET"),
            gateway_token_algorithm=os.getenv("GATEWAY_TOKEN_ALGORITHM", "RS256"),
            gateway_token_ttl_minutes=int(os.getenv("GATEWAY_TOKEN_TTL_MINUTES", "5")),
            free_tier_product_id=os.getenv("FREE_TIER_PRODUCT_ID", "free"),
            tier_catalog_path=os.getenv("TIER_CATALOG_PATH") or None,
            sync_max_concurrency=int(os.getenv("SYNC_MAX_CONCURRENCY", "10")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    def safe_dict(self) -> dict:
        """Settings with secrets redacted, for logging."""
        return redact_secrets(self.model_dump())
