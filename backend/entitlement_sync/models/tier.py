"""
Tier model: persisted catalog entries.

Tiers are GLOBAL - they define product offerings, not user data.
The feature schema is stored as JSON so new per-service attributes never
require a migration.
"""

from sqlalchemy import Column, String, JSON, UniqueConstraint

from entitlement_sync.entitlements.models import BillingType, FeaturesPerService, Tier
from entitlement_sync.models.base import Base, TimestampMixin, generate_uuid


class TierRecord(Base, TimestampMixin):
    """
    Row backing an immutable Tier.

    product_id is unique per billing type: the same provider product can be
    sold as a subscription and as a lifetime purchase.
    """

    __tablename__ = "tiers"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )
    product_id = Column(
        String(255),
        nullable=False,
        index=True,
        comment="Payment provider product identifier"
    )
    billing_type = Column(
        String(20),
        nullable=False,
        default=BillingType.SUBSCRIPTION.value,
        comment="subscription | lifetime | none"
    )
    label = Column(
        String(255),
        nullable=False,
        default="",
        comment="Human readable tier label"
    )
    features_per_service = Column(
        JSON,
        nullable=False,
        default=dict,
        comment="Feature attributes keyed by service"
    )

    __table_args__ = (
        UniqueConstraint("product_id", "billing_type", name="uq_tiers_product_billing_type"),
    )

    def to_domain(self) -> Tier:
        return Tier(
            id=self.id,
            product_id=self.product_id,
            billing_type=BillingType(self.billing_type),
            label=self.label or "",
            features_per_service=FeaturesPerService.from_dict(self.features_per_service or {}),
        )

    def __repr__(self) -> str:
        return f"<TierRecord(id={self.id}, product_id={self.product_id}, billing_type={self.billing_type})>"
