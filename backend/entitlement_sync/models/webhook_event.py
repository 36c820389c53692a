"""
WebhookEvent model for tracking processed billing events.

Used for idempotency - ensures provider events are processed exactly once.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, Index

from entitlement_sync.db_base import Base


class WebhookEvent(Base):
    """
    Tracks processed payment provider events for deduplication.

    Providers deliver events at least once. A row is written only after the
    event was handled successfully, so failed events are redelivered.
    """

    __tablename__ = "webhook_events"

    id = Column(
        String(255),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        comment="Primary key (UUID)"
    )

    event_id = Column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Provider event identifier"
    )

    event_type = Column(
        String(255),
        nullable=False,
        index=True,
        comment="Event type (e.g., invoice.paid)"
    )

    payload_hash = Column(
        String(64),
        nullable=True,
        comment="SHA-256 hash of payload for debugging"
    )

    processed_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        comment="When the event was processed"
    )

    __table_args__ = (
        Index("idx_webhook_events_processed", "processed_at"),
    )

    def __repr__(self) -> str:
        return f"<WebhookEvent(id={self.id}, event_id={self.event_id}, type={self.event_type})>"
