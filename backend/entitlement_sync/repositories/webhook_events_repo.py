"""
Webhook event repository for idempotent event processing.
"""

import hashlib
import json
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from entitlement_sync.models.webhook_event import WebhookEvent

logger = logging.getLogger(__name__)


def hash_payload(payload: Dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON payload."""
    canonical = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class WebhookEventsRepository:

    def __init__(self, db_session: Session):
        self.db = db_session

    def is_processed(self, event_id: str) -> bool:
        return self.db.query(WebhookEvent).filter(
            WebhookEvent.event_id == event_id
        ).first() is not None

    def record(self, event_id: str, event_type: str, payload: Optional[Dict[str, Any]] = None) -> WebhookEvent:
        event = WebhookEvent(
            event_id=event_id,
            event_type=event_type,
            payload_hash=hash_payload(payload) if payload is not None else None,
        )
        self.db.add(event)
        self.db.flush()
        return event

    def commit(self) -> None:
        """Commit current transaction."""
        self.db.commit()
