"""
Entitlement models: canonical types for tiers and merged entitlements.

Provides:
- Service / BillingType / BillingContext / ProductType: canonical enums
- DriveFeatures, MailFeatures, ...: per-service feature blocks of a tier
- Tier: immutable catalog entry keyed by billing product
- FeatureGrant and friends: one merged service with source tracking
- MergedEntitlement: the effective feature set for a user

CRITICAL: Tiers are never mutated after creation. A change of entitlement is a
different Tier plus a new User-Tier relation.
"""

import json
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional


# ---------------------------------------------------------------------------
# Canonical enums
# ---------------------------------------------------------------------------

class Service(str, Enum):
    """Feature domains a tier can grant."""
    DRIVE = "drive"
    MAIL = "mail"
    MEET = "meet"
    VPN = "vpn"
    ANTIVIRUS = "antivirus"
    BACKUPS = "backups"


class BillingType(str, Enum):
    SUBSCRIPTION = "subscription"
    LIFETIME = "lifetime"
    NONE = "none"


class BillingContext(str, Enum):
    """A user holds at most one active tier per billing context."""
    INDIVIDUAL = "individual"
    BUSINESS = "business"


class ProductType(str, Enum):
    """Value of the `type` key in provider product metadata."""
    INDIVIDUAL = "individual"
    BUSINESS = "business"
    OBJECT_STORAGE = "object-storage"


# ---------------------------------------------------------------------------
# Feature blocks (frozen dataclasses)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class WorkspaceFeatures:
    enabled: bool = False
    minimum_seats: int = 0
    maximum_seats: int = 0
    max_space_bytes_per_seat: int = 0


@dataclass(frozen=True)
class DriveFeatures:
    enabled: bool = False
    max_space_bytes: int = 0
    workspaces: WorkspaceFeatures = field(default_factory=WorkspaceFeatures)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DriveFeatures":
        return cls(
            enabled=bool(data.get("enabled", False)),
            max_space_bytes=int(data.get("max_space_bytes", 0)),
            workspaces=WorkspaceFeatures(**(data.get("workspaces") or {})),
        )


@dataclass(frozen=True)
class MailFeatures:
    enabled: bool = False
    addresses_per_user: int = 0


@dataclass(frozen=True)
class MeetFeatures:
    enabled: bool = False
    pax_per_call: int = 0


@dataclass(frozen=True)
class VpnFeatures:
    enabled: bool = False
    feature_id: str = ""


@dataclass(frozen=True)
class ToggleFeatures:
    """Services that are either on or off (antivirus, backups)."""
    enabled: bool = False


@dataclass(frozen=True)
class FeaturesPerService:
    drive: DriveFeatures = field(default_factory=DriveFeatures)
    mail: MailFeatures = field(default_factory=MailFeatures)
    meet: MeetFeatures = field(default_factory=MeetFeatures)
    vpn: VpnFeatures = field(default_factory=VpnFeatures)
    antivirus: ToggleFeatures = field(default_factory=ToggleFeatures)
    backups: ToggleFeatures = field(default_factory=ToggleFeatures)

    def for_service(self, service: Service):
        return getattr(self, service.value)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeaturesPerService":
        data = data or {}
        return cls(
            drive=DriveFeatures.from_dict(data.get(Service.DRIVE.value) or {}),
            mail=MailFeatures(**(data.get(Service.MAIL.value) or {})),
            meet=MeetFeatures(**(data.get(Service.MEET.value) or {})),
            vpn=VpnFeatures(**(data.get(Service.VPN.value) or {})),
            antivirus=ToggleFeatures(**(data.get(Service.ANTIVIRUS.value) or {})),
            backups=ToggleFeatures(**(data.get(Service.BACKUPS.value) or {})),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Tier:
    """
    Immutable catalog entry describing a bundle of feature entitlements.

    product_id is the payment provider's identifier for this tier; it is
    unique per billing type, not globally.
    """
    id: str
    product_id: str
    billing_type: BillingType
    label: str
    features_per_service: FeaturesPerService = field(default_factory=FeaturesPerService)

    @property
    def drive(self) -> DriveFeatures:
        return self.features_per_service.drive

    @property
    def is_workspace_tier(self) -> bool:
        """Business tiers are the only ones that extend benefits to workspace members."""
        return self.features_per_service.drive.workspaces.enabled

    @property
    def billing_context(self) -> BillingContext:
        return BillingContext.BUSINESS if self.is_workspace_tier else BillingContext.INDIVIDUAL

    def enables(self, service: Service) -> bool:
        return self.features_per_service.for_service(service).enabled

    def with_drive_space(self, max_space_bytes: int) -> "Tier":
        """Copy of this tier granting a different individual drive quota."""
        drive = replace(self.drive, max_space_bytes=max_space_bytes)
        return replace(self, features_per_service=replace(self.features_per_service, drive=drive))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "billing_type": self.billing_type.value,
            "label": self.label,
            "features_per_service": self.features_per_service.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tier":
        return cls(
            id=data["id"],
            product_id=data["product_id"],
            billing_type=BillingType(data.get("billing_type", BillingType.SUBSCRIPTION.value)),
            label=data.get("label", ""),
            features_per_service=FeaturesPerService.from_dict(data.get("features_per_service") or {}),
        )


def with_lifetime_space(tier: Optional[Tier], space_bytes: Optional[int]) -> Optional[Tier]:
    """
    The tier as applied to a user whose lifetime purchases stack to space_bytes.

    Only individual lifetime tiers carry stacked space; anything else is
    returned unchanged.
    """
    if tier is None or not space_bytes:
        return tier
    if tier.billing_type != BillingType.LIFETIME or tier.is_workspace_tier:
        return tier
    return tier.with_drive_space(space_bytes)


# ---------------------------------------------------------------------------
# Merged entitlement (ephemeral, never persisted)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FeatureGrant:
    """A single merged service with provenance."""
    enabled: bool = False
    source_tier_id: Optional[str] = None


@dataclass(frozen=True)
class MailGrant(FeatureGrant):
    addresses_per_user: int = 0


@dataclass(frozen=True)
class MeetGrant(FeatureGrant):
    pax_per_call: int = 0


@dataclass(frozen=True)
class VpnGrant(FeatureGrant):
    feature_id: str = ""


@dataclass(frozen=True)
class DriveGrant:
    """Drive is always taken whole from exactly one tier."""
    tier: Tier

    @property
    def features(self) -> DriveFeatures:
        return self.tier.drive

    @property
    def enabled(self) -> bool:
        return self.features.enabled

    @property
    def max_space_bytes(self) -> int:
        return self.features.max_space_bytes

    @property
    def workspaces(self) -> WorkspaceFeatures:
        return self.features.workspaces

    @property
    def source_tier_id(self) -> str:
        return self.tier.id


@dataclass(frozen=True)
class MergedEntitlement:
    """
    Effective entitlement for a user across every applicable tier.

    Immutable: safe to cache, serialise and return from read APIs.
    """
    drive: DriveGrant
    mail: MailGrant = MailGrant()
    meet: MeetGrant = MeetGrant()
    vpn: VpnGrant = VpnGrant()
    antivirus: FeatureGrant = FeatureGrant()
    backups: FeatureGrant = FeatureGrant()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "drive": {
                "tier": self.drive.tier.to_dict(),
                "source_tier_id": self.drive.source_tier_id,
            },
            "mail": asdict(self.mail),
            "meet": asdict(self.meet),
            "vpn": asdict(self.vpn),
            "antivirus": asdict(self.antivirus),
            "backups": asdict(self.backups),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MergedEntitlement":
        return cls(
            drive=DriveGrant(tier=Tier.from_dict(data["drive"]["tier"])),
            mail=MailGrant(**data.get("mail", {})),
            meet=MeetGrant(**data.get("meet", {})),
            vpn=VpnGrant(**data.get("vpn", {})),
            antivirus=FeatureGrant(**data.get("antivirus", {})),
            backups=FeatureGrant(**data.get("backups", {})),
        )

    @classmethod
    def from_json(cls, raw: str) -> "MergedEntitlement":
        return cls.from_dict(json.loads(raw))
