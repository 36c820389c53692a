"""
Entitlement merge engine.

Combines every tier applicable to a user into one MergedEntitlement.
Pure and synchronous: no I/O, no logging side effects.

Rules:
- Drive is taken whole from one tier. Business (workspace) tiers always beat
  individual tiers; within a group the largest quota wins and the first tier
  wins ties.
- Scalar features take the maximum over enabled tiers. Strict comparison so
  the earlier tier keeps a tie.
- Boolean features are enabled if any tier enables them; the first enabling
  tier is the source.
- VPN takes the feature_id of the first enabling tier.
"""

from typing import Iterable, List, Optional

from entitlement_sync.entitlements.errors import TierNotFoundError
from entitlement_sync.entitlements.models import (
    DriveGrant,
    FeatureGrant,
    MailGrant,
    MeetGrant,
    MergedEntitlement,
    Tier,
    VpnGrant,
)


def select_drive_tier(tiers: Iterable[Tier]) -> Tier:
    """
    Pick the tier that supplies drive.

    Raises:
        TierNotFoundError: If there are no tiers at all
    """
    business: Optional[Tier] = None
    individual: Optional[Tier] = None

    for tier in tiers:
        drive = tier.drive
        if tier.is_workspace_tier:
            if business is None or (
                drive.workspaces.max_space_bytes_per_seat
                > business.drive.workspaces.max_space_bytes_per_seat
            ):
                business = tier
        elif individual is None or drive.max_space_bytes > individual.drive.max_space_bytes:
            individual = tier

    if business is not None:
        return business
    if individual is not None:
        return individual
    raise TierNotFoundError("No tiers to merge")


def merge(tiers: Iterable[Tier]) -> MergedEntitlement:
    """
    Merge tiers into the effective entitlement.

    Args:
        tiers: Tiers in priority order (earlier wins ties)

    Returns:
        MergedEntitlement

    Raises:
        TierNotFoundError: If tiers is empty
    """
    ordered: List[Tier] = list(tiers)
    drive_tier = select_drive_tier(ordered)

    mail = MailGrant()
    meet = MeetGrant()
    vpn = VpnGrant()
    antivirus = FeatureGrant()
    backups = FeatureGrant()

    for tier in ordered:
        features = tier.features_per_service

        if features.mail.enabled and (
            not mail.enabled or features.mail.addresses_per_user > mail.addresses_per_user
        ):
            mail = MailGrant(
                enabled=True,
                source_tier_id=tier.id,
                addresses_per_user=features.mail.addresses_per_user,
            )

        if features.meet.enabled and (
            not meet.enabled or features.meet.pax_per_call > meet.pax_per_call
        ):
            meet = MeetGrant(
                enabled=True,
                source_tier_id=tier.id,
                pax_per_call=features.meet.pax_per_call,
            )

        if features.vpn.enabled and not vpn.enabled:
            vpn = VpnGrant(enabled=True, source_tier_id=tier.id, feature_id=features.vpn.feature_id)

        if features.antivirus.enabled and not antivirus.enabled:
            antivirus = FeatureGrant(enabled=True, source_tier_id=tier.id)

        if features.backups.enabled and not backups.enabled:
            backups = FeatureGrant(enabled=True, source_tier_id=tier.id)

    return MergedEntitlement(
        drive=DriveGrant(tier=drive_tier),
        mail=mail,
        meet=meet,
        vpn=vpn,
        antivirus=antivirus,
        backups=backups,
    )
