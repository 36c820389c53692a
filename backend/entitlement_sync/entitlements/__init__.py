"""
Entitlement domain: tiers, merge engine and error taxonomy.
"""

from entitlement_sync.entitlements.errors import EntitlementSyncError, ErrorKind
from entitlement_sync.entitlements.models import (
    BillingContext,
    BillingType,
    MergedEntitlement,
    Service,
    Tier,
)
from entitlement_sync.entitlements.merge import merge

__all__ = [
    "EntitlementSyncError",
    "ErrorKind",
    "BillingContext",
    "BillingType",
    "MergedEntitlement",
    "Service",
    "Tier",
    "merge",
]
