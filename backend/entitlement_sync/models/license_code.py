"""
LicenseCode model for prepaid codes redeemed through a reseller.
"""

from sqlalchemy import Column, String, Boolean, UniqueConstraint

from entitlement_sync.models.base import Base, TimestampMixin, generate_uuid


class LicenseCode(Base, TimestampMixin):

    __tablename__ = "license_codes"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )
    code = Column(
        String(255),
        nullable=False,
        index=True
    )
    provider = Column(
        String(100),
        nullable=False,
        comment="Reseller that issued the code"
    )
    price_id = Column(
        String(255),
        nullable=False,
        comment="Payment provider price the code subscribes to"
    )
    redeemed = Column(
        Boolean,
        nullable=False,
        default=False
    )

    __table_args__ = (
        UniqueConstraint("code", "provider", name="uq_license_codes_code_provider"),
    )

    def __repr__(self) -> str:
        return f"<LicenseCode(code={self.code}, provider={self.provider}, redeemed={self.redeemed})>"
