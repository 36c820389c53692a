"""
User-Tier relation.

One row per (user_id, billing_context). Reconciliation replaces tier_id in
place so the user never holds two tiers in the same context.
"""

from sqlalchemy import Column, String, ForeignKey, UniqueConstraint

from entitlement_sync.models.base import Base, TimestampMixin, generate_uuid


class UserTier(Base, TimestampMixin):

    __tablename__ = "user_tiers"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )
    user_id = Column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    tier_id = Column(
        String(36),
        ForeignKey("tiers.id"),
        nullable=False,
        index=True
    )
    billing_context = Column(
        String(20),
        nullable=False,
        comment="individual | business"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "billing_context", name="uq_user_tiers_user_context"),
    )

    def __repr__(self) -> str:
        return f"<UserTier(user_id={self.user_id}, tier_id={self.tier_id}, context={self.billing_context})>"
