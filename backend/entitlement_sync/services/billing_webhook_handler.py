"""
Billing webhook handler with idempotency support.

Processes payment provider events with:
- Event deduplication using the provider event ID
- Dispatch to the reconciliation engine by event type
- Structured logging of every outcome

An event is recorded as processed only after its handler succeeded, so a
failed event is redelivered by the provider.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Type, TypeVar

from sqlalchemy.orm import Session

from entitlement_sync.entitlements.errors import EntitlementSyncError, ErrorKind, InvalidMetadataError
from entitlement_sync.integrations.payments.models import Charge, Dispute, Invoice, Subscription
from entitlement_sync.repositories.webhook_events_repo import WebhookEventsRepository
from entitlement_sync.services.license_codes import LicenseCodeService
from entitlement_sync.services.reconciliation import ReconciliationEngine, ReconciliationResult

logger = logging.getLogger(__name__)

INVOICE_PAID = "invoice.paid"
SUBSCRIPTION_CANCELED = "subscription.canceled"
CHARGE_REFUNDED = "charge.refunded"
DISPUTE_CLOSED = "charge.dispute.closed"
LICENSE_REDEEMED = "license.redeemed"

T = TypeVar("T")


@dataclass
class WebhookProcessingResult:
    """Result of webhook processing."""
    processed: bool
    message: str
    action: Optional[str] = None
    user_uuid: Optional[str] = None
    skipped_reason: Optional[str] = None


@dataclass
class LicenseRedemptionRequest:
    code: str
    provider: str
    user_uuid: str
    email: str
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LicenseRedemptionRequest":
        return cls(
            code=data["code"],
            provider=data["provider"],
            user_uuid=data["user_uuid"],
            email=data["email"],
            name=data.get("name"),
        )


def parse_payload(model: Type[T], payload: Any, event_type: str) -> T:
    """
    Build a typed provider object from an event payload.

    Raises:
        InvalidMetadataError: If the payload is not an object or lacks a
            required field
    """
    if not isinstance(payload, dict):
        raise InvalidMetadataError(
            "Webhook payload is not an object",
            event_type=event_type,
            payload_type=type(payload).__name__,
        )
    try:
        return model.from_dict(payload)
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise InvalidMetadataError(
            "Malformed webhook payload",
            event_type=event_type,
            field=e.args[0] if isinstance(e, KeyError) else None,
            error=str(e),
        ) from e


class BillingWebhookHandler:
    """
    Handler for payment provider events with idempotency.

    Inbound events are {event_id, event_type, payload}. The payload is the
    provider object (invoice, subscription, charge, dispute) or, for
    license.redeemed, the redemption request. A payload missing a required
    field is rejected with InvalidMetadataError.
    """

    def __init__(
        self,
        db_session: Session,
        engine: ReconciliationEngine,
        license_codes: LicenseCodeService,
    ):
        """
        Initialize webhook handler.

        Args:
            db_session: Database session
            engine: Reconciliation engine
            license_codes: License code redemption service
        """
        self.db = db_session
        self.events_repo = WebhookEventsRepository(db_session)
        self.engine = engine
        self.license_codes = license_codes

    async def handle_event(
        self,
        event_id: str,
        event_type: str,
        payload: Dict[str, Any],
    ) -> WebhookProcessingResult:
        """
        Process one provider event.

        Raises:
            EntitlementSyncError: Propagated so the caller can reject the
                delivery and the provider retries it
        """
        if self.events_repo.is_processed(event_id):
            logger.info("Duplicate webhook skipped", extra={
                "event_id": event_id,
                "event_type": event_type,
            })
            return WebhookProcessingResult(
                processed=False,
                message="Duplicate webhook - already processed",
                skipped_reason="duplicate",
            )

        try:
            if event_type == INVOICE_PAID:
                outcome = await self.engine.handle_invoice_paid(parse_payload(Invoice, payload, event_type))
            elif event_type == SUBSCRIPTION_CANCELED:
                outcome = await self.engine.handle_subscription_canceled(
                    parse_payload(Subscription, payload, event_type)
                )
            elif event_type == CHARGE_REFUNDED:
                outcome = await self.engine.handle_charge_refunded(parse_payload(Charge, payload, event_type))
            elif event_type == DISPUTE_CLOSED:
                outcome = await self.engine.handle_dispute_closed(parse_payload(Dispute, payload, event_type))
            elif event_type == LICENSE_REDEEMED:
                request = parse_payload(LicenseRedemptionRequest, payload, event_type)
                redemption = await self.license_codes.redeem(
                    code=request.code,
                    provider=request.provider,
                    user_uuid=request.user_uuid,
                    email=request.email,
                    name=request.name,
                )
                outcome = ReconciliationResult(action="license_redeemed", user_uuid=redemption.user_uuid)
            else:
                logger.info("Unhandled webhook type skipped", extra={
                    "event_id": event_id,
                    "event_type": event_type,
                })
                return WebhookProcessingResult(
                    processed=False,
                    message=f"Unhandled event type: {event_type}",
                    skipped_reason="unhandled_type",
                )
            action, user_uuid = outcome.action, outcome.user_uuid
        except EntitlementSyncError as e:
            level = logging.INFO if e.kind == ErrorKind.EXPECTED_MISS else logging.ERROR
            logger.log(level, "Error processing webhook", extra={
                "event_id": event_id,
                "event_type": event_type,
                "error": e.to_dict(),
            })
            self.db.rollback()
            raise

        # Record successful processing
        self.events_repo.record(event_id, event_type, payload)
        self.events_repo.commit()

        logger.info("Webhook processed successfully", extra={
            "event_id": event_id,
            "event_type": event_type,
            "action": action,
            "user_uuid": user_uuid,
        })
        return WebhookProcessingResult(
            processed=True,
            message="Webhook processed",
            action=action,
            user_uuid=user_uuid,
        )
