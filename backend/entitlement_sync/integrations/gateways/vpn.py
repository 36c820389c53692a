"""
VPN gateway client.
"""

import logging
from typing import Optional

from entitlement_sync.entitlements.models import Service, Tier
from entitlement_sync.integrations.gateways.base import (
    ENTITLEMENT_PATH,
    GatewayClient,
    GatewayTarget,
)

logger = logging.getLogger(__name__)


class VpnGatewayClient(GatewayClient):

    name = "vpn"
    service = Service.VPN

    async def apply(self, target: GatewayTarget, tier: Tier, seats: int = 1) -> None:
        body = {
            "uuid": target.uuid,
            "tierId": tier.id,
            "featureId": tier.features_per_service.vpn.feature_id,
        }
        await self._request("POST", ENTITLEMENT_PATH, json=body, ok_statuses=(409,))
        logger.info("VPN entitlement applied", extra={"user_uuid": target.uuid, "tier_id": tier.id})

    async def revoke(self, target: GatewayTarget, tier: Optional[Tier] = None) -> None:
        await self._request("DELETE", f"{ENTITLEMENT_PATH}/{target.uuid}", ok_statuses=(404,))
        logger.info("VPN entitlement revoked", extra={"user_uuid": target.uuid})
