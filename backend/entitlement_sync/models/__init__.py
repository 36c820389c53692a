"""
Database models for tiers, users and billing bookkeeping.
"""

from entitlement_sync.models.base import TimestampMixin
from entitlement_sync.models.tier import TierRecord
from entitlement_sync.models.user import User
from entitlement_sync.models.user_tier import UserTier
from entitlement_sync.models.license_code import LicenseCode
from entitlement_sync.models.coupon import Coupon, UserCoupon
from entitlement_sync.models.webhook_event import WebhookEvent

__all__ = [
    "TimestampMixin",
    "TierRecord",
    "User",
    "UserTier",
    "LicenseCode",
    "Coupon",
    "UserCoupon",
    "WebhookEvent",
]
