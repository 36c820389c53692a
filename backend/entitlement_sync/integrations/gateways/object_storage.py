"""
Object storage gateway client.

Object storage accounts are keyed by provider customer id, not user uuid.
Revoking suspends the account; data is kept by the gateway.
"""

import logging
from typing import Optional

from entitlement_sync.entitlements.errors import GatewayError
from entitlement_sync.entitlements.models import Tier
from entitlement_sync.integrations.gateways.base import (
    ENTITLEMENT_PATH,
    GatewayClient,
    GatewayTarget,
)

logger = logging.getLogger(__name__)


class ObjectStorageGatewayClient(GatewayClient):

    name = "object_storage"

    def _require_customer(self, target: GatewayTarget) -> str:
        if not target.customer_id:
            raise GatewayError(
                "Object storage calls need a customer id",
                gateway=self.name,
                user_uuid=target.uuid,
            )
        return target.customer_id

    async def apply(self, target: GatewayTarget, tier: Optional[Tier] = None, seats: int = 1) -> None:
        customer_id = self._require_customer(target)
        body = {"customerId": customer_id, "email": target.email}
        if target.uuid:
            body["uuid"] = target.uuid
        await self._request("POST", ENTITLEMENT_PATH, json=body, ok_statuses=(409,))
        logger.info("Object storage account provisioned", extra={"customer_id": customer_id})

    async def revoke(self, target: GatewayTarget, tier: Optional[Tier] = None) -> None:
        customer_id = self._require_customer(target)
        await self._request("DELETE", f"{ENTITLEMENT_PATH}/{customer_id}", ok_statuses=(404,))
        logger.info("Object storage account suspended", extra={"customer_id": customer_id})
