"""
Tiers repository.

Tiers are global catalog entries keyed by (product_id, billing_type).
Lookups return immutable domain Tier objects, never ORM rows.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from entitlement_sync.entitlements.models import BillingType, Tier
from entitlement_sync.models.tier import TierRecord

logger = logging.getLogger(__name__)


class TiersRepository:
    """Repository for the tier catalog."""

    def __init__(self, db_session: Session):
        """
        Initialize repository with database session.

        Args:
            db_session: SQLAlchemy database session
        """
        self.db = db_session

    def find_by_product(self, product_id: str, billing_type: BillingType) -> Optional[Tier]:
        """
        Find the tier sold under a provider product for a billing type.

        Returns:
            Tier if found, None otherwise
        """
        record = self.db.query(TierRecord).filter(
            TierRecord.product_id == product_id,
            TierRecord.billing_type == billing_type.value,
        ).first()
        return record.to_domain() if record else None

    def find_first_by_product(self, product_id: str) -> Optional[Tier]:
        """Any tier sold under a product, regardless of billing type."""
        record = self.db.query(TierRecord).filter(
            TierRecord.product_id == product_id
        ).order_by(TierRecord.billing_type).first()
        return record.to_domain() if record else None

    def list_all(self) -> List[Tier]:
        records = self.db.query(TierRecord).order_by(TierRecord.product_id).all()
        return [record.to_domain() for record in records]

    def create(self, tier: Tier) -> Tier:
        """
        Insert a new tier.

        Args:
            tier: Domain tier; its id is used as the primary key

        Returns:
            The stored tier
        """
        record = TierRecord(
            id=tier.id,
            product_id=tier.product_id,
            billing_type=tier.billing_type.value,
            label=tier.label,
            features_per_service=tier.features_per_service.to_dict(),
        )
        self.db.add(record)
        self.db.flush()
        logger.info(
            "Tier created",
            extra={"tier_id": tier.id, "product_id": tier.product_id, "billing_type": tier.billing_type.value},
        )
        return record.to_domain()

    def create_if_missing(self, tier: Tier) -> Tuple[Tier, bool]:
        """
        Insert a catalog entry unless (product_id, billing_type) already exists.

        An existing tier is never rewritten: users already assigned to it
        keep exactly the features they were granted.

        Returns:
            (stored tier, whether it was inserted)
        """
        existing = self.find_by_product(tier.product_id, tier.billing_type)
        if existing is not None:
            if existing.features_per_service != tier.features_per_service:
                logger.warning(
                    "Catalog tier differs from stored tier, keeping stored",
                    extra={"tier_id": existing.id, "product_id": tier.product_id},
                )
            return existing, False
        return self.create(tier), True

    def commit(self) -> None:
        """Commit current transaction."""
        self.db.commit()
