"""
Drive (storage) gateway client.

Applies storage quotas and workspace seats, tears down workspaces, and looks
up drive users by email for invoices whose customer is not yet linked.

Individual entitlements and business workspaces live on separate resources:
a user can hold both, and applying one never touches the other.
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

WORKSPACES_PATH = "/gateway/workspaces"


class DriveGatewayClient(GatewayClient):

    name = "drive"
    service = Service.DRIVE

    async def apply(self, target: GatewayTarget, tier: Tier, seats: Optional[int] = 1) -> None:
        """
        Set the user's drive entitlement to the tier.

        Workspace tiers go to the owner's workspace with per-seat bytes and,
        unless seats is None, the seat count. None leaves the workspace size
        as the gateway has it.
        """
        if tier.is_workspace_tier:
            await self._apply_workspace(target, tier, seats)
            return

        body = {"uuid": target.uuid, "tierId": tier.id, "maxSpaceBytes": tier.drive.max_space_bytes}
        await self._request("POST", ENTITLEMENT_PATH, json=body, ok_statuses=(409,))
        logger.info(
            "Drive entitlement applied",
            extra={"user_uuid": target.uuid, "tier_id": tier.id},
        )

    async def _apply_workspace(self, target: GatewayTarget, tier: Tier, seats: Optional[int]) -> None:
        body = {
            "ownerId": target.uuid,
            "tierId": tier.id,
            "maxSpaceBytesPerSeat": tier.drive.workspaces.max_space_bytes_per_seat,
        }
        if seats is not None:
            body["seats"] = seats

        await self._request("PUT", f"{WORKSPACES_PATH}/{target.uuid}", json=body)
        logger.info(
            "Workspace entitlement applied",
            extra={"owner_uuid": target.uuid, "tier_id": tier.id, "seats": seats},
        )

    async def revoke(self, target: GatewayTarget, tier: Optional[Tier] = None) -> None:
        if tier is not None and tier.is_workspace_tier:
            await self.destroy_workspace(target.uuid)
            return
        await self._request("DELETE", f"{ENTITLEMENT_PATH}/{target.uuid}", ok_statuses=(404,))
        logger.info("Drive entitlement revoked", extra={"user_uuid": target.uuid})

    async def destroy_workspace(self, owner_uuid: str) -> None:
        await self._request("DELETE", f"{WORKSPACES_PATH}/{owner_uuid}", ok_statuses=(404,))
        logger.info("Workspace destroyed", extra={"owner_uuid": owner_uuid})

    async def find_user_by_email(self, email: str) -> Optional[GatewayTarget]:
        """
        Look up a drive user by email.

        Returns:
            GatewayTarget with the user's uuid, or None if no such user
        """
        response = await self._request("GET", "/gateway/users", params={"email": email}, ok_statuses=(404,))
        if response.status_code == 404:
            return None
        data = response.json()
        return GatewayTarget(uuid=data["uuid"], email=data.get("email", email))
