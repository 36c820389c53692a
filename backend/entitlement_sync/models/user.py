"""
User model.

A user is identified by uuid across every gateway and by customer_id at the
payment provider.
"""

from sqlalchemy import BigInteger, Boolean, Column, String

from entitlement_sync.models.base import Base, TimestampMixin, generate_uuid


class User(Base, TimestampMixin):

    __tablename__ = "users"

    id = Column(
        String(36),
        primary_key=True,
        default=generate_uuid
    )
    uuid = Column(
        String(36),
        nullable=False,
        unique=True,
        index=True,
        comment="Identity used by the feature gateways"
    )
    customer_id = Column(
        String(255),
        nullable=True,
        unique=True,
        index=True,
        comment="Payment provider customer identifier"
    )
    lifetime = Column(
        Boolean,
        nullable=False,
        default=False,
        comment="Holds a one-time (lifetime) individual purchase"
    )
    lifetime_space_bytes = Column(
        BigInteger,
        nullable=True,
        comment="Drive space stacked from every standing lifetime purchase"
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, uuid={self.uuid}, customer_id={self.customer_id}, lifetime={self.lifetime})>"
