"""
Gateway appliers: fan a tier change out to every feature gateway.

For each gateway-backed service:
- new tier enables it -> apply
- only the old tier enabled it -> revoke
- neither -> skip

Calls are sequential and there is no rollback across gateways. Every
gateway treats a repeated apply/revoke as a no-op, so replaying a change is
safe.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from entitlement_sync.entitlements.errors import GatewayError
from entitlement_sync.entitlements.models import Tier
from entitlement_sync.integrations.gateways.base import GatewayClient, GatewayTarget
from entitlement_sync.integrations.gateways.object_storage import ObjectStorageGatewayClient

logger = logging.getLogger(__name__)


@dataclass
class ApplyReport:
    """Outcome of one fan-out."""
    applied: List[str] = field(default_factory=list)
    revoked: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict:
        return {
            "applied": list(self.applied),
            "revoked": list(self.revoked),
            "skipped": list(self.skipped),
            "failed": list(self.failed),
        }


class GatewayAppliers:
    """
    Applies tier changes through the tier-driven gateways (drive, VPN) and
    provisions/suspends object storage accounts.
    """

    def __init__(
        self,
        gateways: Sequence[GatewayClient],
        object_storage: Optional[ObjectStorageGatewayClient] = None,
    ):
        """
        Args:
            gateways: Gateways with a `service` attribute, called in order
            object_storage: Object storage gateway (not tier-driven)
        """
        self.gateways = list(gateways)
        self.object_storage = object_storage

    async def apply_tier_change(
        self,
        target: GatewayTarget,
        old_tier: Optional[Tier],
        new_tier: Tier,
        seats: int = 1,
        strict: bool = False,
    ) -> ApplyReport:
        """
        Move a user from old_tier to new_tier on every gateway.

        Args:
            target: User identity
            old_tier: Tier previously in effect (None for a first assignment)
            new_tier: Tier to apply
            seats: Workspace seats for business tiers
            strict: Raise the first gateway failure instead of continuing

        Returns:
            ApplyReport

        Raises:
            GatewayError: Only in strict mode
        """
        report = ApplyReport()

        for gateway in self.gateways:
            service = gateway.service
            enable = new_tier.enables(service)
            was_enabled = old_tier is not None and old_tier.enables(service)

            if not enable and not was_enabled:
                report.skipped.append(gateway.name)
                continue

            try:
                if enable:
                    await gateway.apply(target, new_tier, seats)
                    report.applied.append(gateway.name)
                else:
                    await gateway.revoke(target, old_tier)
                    report.revoked.append(gateway.name)
            except GatewayError as e:
                report.failed.append(gateway.name)
                logger.error(
                    "Gateway apply failed",
                    extra={
                        "user_uuid": target.uuid,
                        "tier_id": new_tier.id,
                        "old_tier_id": old_tier.id if old_tier else None,
                        "gateway": gateway.name,
                        "action": "apply" if enable else "revoke",
                        "error": e.to_dict(),
                    },
                )
                if strict:
                    raise

        return report

    async def provision_object_storage(self, target: GatewayTarget) -> ApplyReport:
        """
        Provision the customer's object storage account.

        A gateway failure is logged and reported, not raised, so the caller
        still invalidates the cache and acknowledges the event.

        Raises:
            GatewayError: If no object storage gateway is configured
        """
        return await self._call_object_storage("provision", target)

    async def suspend_object_storage(self, target: GatewayTarget) -> ApplyReport:
        """Suspend the customer's object storage account; failures as for provisioning."""
        return await self._call_object_storage("suspend", target)

    async def _call_object_storage(self, action: str, target: GatewayTarget) -> ApplyReport:
        if self.object_storage is None:
            raise GatewayError("Object storage gateway not configured", gateway="object_storage")

        report = ApplyReport()
        gateway = self.object_storage
        try:
            if action == "provision":
                await gateway.apply(target)
                report.applied.append(gateway.name)
            else:
                await gateway.revoke(target)
                report.revoked.append(gateway.name)
        except GatewayError as e:
            report.failed.append(gateway.name)
            logger.error(
                "Object storage gateway call failed",
                extra={
                    "user_uuid": target.uuid,
                    "customer_id": target.customer_id,
                    "gateway": gateway.name,
                    "action": action,
                    "error": e.to_dict(),
                },
            )
        return report
