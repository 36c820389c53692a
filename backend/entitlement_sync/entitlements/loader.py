"""
Tier catalog loader - load tier definitions from config/tiers.json.

Provides:
- TierCatalogLoader: parses the catalog file into immutable Tier objects
- TierCatalogSeeder: inserts missing catalog tiers into the tiers table

The file seeds the catalog; tiers already stored are never rewritten.
Tiers created on the fly from provider metadata live only in the database.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from entitlement_sync.entitlements.errors import InvalidMetadataError, TierNotFoundError
from entitlement_sync.entitlements.models import Tier
from entitlement_sync.repositories.tiers_repo import TiersRepository

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config" / "tiers.json"


class TierCatalogLoader:
    """
    Loader for the tier catalog file.

    Usage:
        loader = TierCatalogLoader()
        free = loader.get_by_product("free")
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize the loader.

        Args:
            config_path: Optional path to tiers.json (defaults to the packaged catalog)
        """
        self._config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        self._tiers: List[Tier] = []
        self._by_product: Dict[str, Tier] = {}
        self._load_config()

    def _load_config(self) -> None:
        if not self._config_path.exists():
            raise FileNotFoundError(f"tiers.json not found at {self._config_path}")

        logger.info("Loading tier catalog", extra={"path": str(self._config_path)})

        with open(self._config_path, "r") as f:
            raw = json.load(f)

        tiers = []
        for entry in raw.get("tiers", []):
            try:
                tiers.append(Tier.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                raise InvalidMetadataError(
                    f"Invalid tier entry in catalog: {e}",
                    path=str(self._config_path),
                    tier_id=entry.get("id") if isinstance(entry, dict) else None,
                ) from e

        self._tiers = tiers
        self._by_product = {}
        for tier in tiers:
            # first entry wins when a product is sold under several billing types
            self._by_product.setdefault(tier.product_id, tier)

        logger.info(f"Loaded {len(self._tiers)} tiers from catalog")

    def reload(self) -> None:
        """Reload the catalog from disk."""
        self._load_config()

    @property
    def tiers(self) -> List[Tier]:
        return list(self._tiers)

    def get_by_product(self, product_id: str) -> Tier:
        tier = self._by_product.get(product_id)
        if tier is None:
            raise TierNotFoundError("Tier not found in catalog", product_id=product_id)
        return tier


class TierCatalogSeeder:
    """Inserts catalog tiers the tiers table does not have yet (idempotent)."""

    def __init__(self, tiers_repo: TiersRepository, loader: TierCatalogLoader):
        self.tiers_repo = tiers_repo
        self.loader = loader

    def seed(self) -> int:
        """
        Insert every catalog tier that is not stored yet.

        Stored tiers are left as they are, even when the catalog file now
        describes them differently.

        Returns:
            Number of tiers inserted
        """
        count = 0
        for tier in self.loader.tiers:
            _, created = self.tiers_repo.create_if_missing(tier)
            if created:
                count += 1
        self.tiers_repo.commit()
        logger.info("Seeded tier catalog", extra={"inserted": count, "catalog_size": len(self.loader.tiers)})
        return count
