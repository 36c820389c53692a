"""
Coupon and UserCoupon models.

Only coupons listed in the coupons table are tracked; a UserCoupon row
records that a user paid an invoice with one of them.
"""

from sqlalchemy import Column, String, ForeignKey, UniqueConstraint

from entitlement_sync.models.base import Base, TimestampMixin, generate_uuid


class Coupon(Base, TimestampMixin):

    __tablename__ = "coupons"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )
    code = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Payment provider coupon identifier"
    )


class UserCoupon(Base, TimestampMixin):

    __tablename__ = "user_coupons"

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
    coupon_id = Column(
        String(36),
        ForeignKey("coupons.id", ondelete="CASCADE"),
        nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "coupon_id", name="uq_user_coupons_user_coupon"),
    )
