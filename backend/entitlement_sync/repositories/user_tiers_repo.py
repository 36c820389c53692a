"""
User-Tier relation repository.

Encapsulates the single-row-per-context invariant: a user holds at most one
tier per billing context and a change replaces tier_id in place.
"""

import logging
from typing import Iterator, List, Optional, Tuple

from sqlalchemy.orm import Session

from entitlement_sync.entitlements.models import BillingContext, Tier
from entitlement_sync.models.tier import TierRecord
from entitlement_sync.models.user_tier import UserTier

logger = logging.getLogger(__name__)


class UserTiersRepository:
    """Repository for user-tier assignments."""

    def __init__(self, db_session: Session):
        """
        Initialize repository with database session.

        Args:
            db_session: SQLAlchemy database session
        """
        self.db = db_session

    def get_tiers_for_user(self, user_id: str) -> List[Tier]:
        """
        All tiers currently assigned to a user, individual context first.

        Args:
            user_id: Local user id

        Returns:
            List of domain tiers (empty when the user has none)
        """
        rows = self.db.query(TierRecord).join(
            UserTier, UserTier.tier_id == TierRecord.id
        ).filter(
            UserTier.user_id == user_id
        ).order_by(UserTier.billing_context.desc()).all()
        return [row.to_domain() for row in rows]

    def find_for_context(self, user_id: str, context: BillingContext) -> Optional[UserTier]:
        return self.db.query(UserTier).filter(
            UserTier.user_id == user_id,
            UserTier.billing_context == context.value,
        ).first()

    def find_tier_for_context(self, user_id: str, context: BillingContext) -> Optional[Tier]:
        row = self.db.query(TierRecord).join(
            UserTier, UserTier.tier_id == TierRecord.id
        ).filter(
            UserTier.user_id == user_id,
            UserTier.billing_context == context.value,
        ).first()
        return row.to_domain() if row else None

    def replace(self, user_id: str, context: BillingContext, tier_id: str) -> Tuple[Optional[str], bool]:
        """
        Point the user's relation for a context at a tier.

        Inserts when there is no relation, updates tier_id in place when it
        differs and does not write when it is already the same tier.

        Returns:
            (previous tier id or None, whether a write happened)
        """
        relation = self.find_for_context(user_id, context)

        if relation is None:
            self.db.add(UserTier(user_id=user_id, tier_id=tier_id, billing_context=context.value))
            self.db.flush()
            logger.info(
                "User tier inserted",
                extra={"user_id": user_id, "tier_id": tier_id, "context": context.value},
            )
            return None, True

        previous = relation.tier_id
        if previous == tier_id:
            return previous, False

        relation.tier_id = tier_id
        self.db.flush()
        logger.info(
            "User tier replaced",
            extra={
                "user_id": user_id,
                "old_tier_id": previous,
                "tier_id": tier_id,
                "context": context.value,
            },
        )
        return previous, True

    def delete_for_context(self, user_id: str, context: BillingContext) -> bool:
        """
        Drop the relation for a context.

        Returns:
            True if a row was deleted
        """
        deleted = self.db.query(UserTier).filter(
            UserTier.user_id == user_id,
            UserTier.billing_context == context.value,
        ).delete(synchronize_session=False)
        self.db.flush()
        return deleted > 0

    def iter_batches(
        self,
        context: Optional[BillingContext] = None,
        batch_size: int = 500,
    ) -> Iterator[List[UserTier]]:
        """
        Yield relations ordered by user, in batches.

        Used by the batch sync job.

        Args:
            context: Only relations of this billing context (all when None)
            batch_size: Rows per batch
        """
        query = self.db.query(UserTier)
        if context is not None:
            query = query.filter(UserTier.billing_context == context.value)
        query = query.order_by(UserTier.user_id, UserTier.billing_context)

        offset = 0
        while True:
            batch = query.offset(offset).limit(batch_size).all()
            if not batch:
                return
            yield batch
            offset += len(batch)

    def commit(self) -> None:
        """Commit current transaction."""
        self.db.commit()
