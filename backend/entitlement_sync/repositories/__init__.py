"""
Repositories: data access for tiers, users and billing bookkeeping.
"""

from entitlement_sync.repositories.tiers_repo import TiersRepository
from entitlement_sync.repositories.users_repo import UsersRepository
from entitlement_sync.repositories.user_tiers_repo import UserTiersRepository
from entitlement_sync.repositories.license_codes_repo import LicenseCodesRepository
from entitlement_sync.repositories.coupons_repo import CouponsRepository
from entitlement_sync.repositories.webhook_events_repo import WebhookEventsRepository

__all__ = [
    "TiersRepository",
    "UsersRepository",
    "UserTiersRepository",
    "LicenseCodesRepository",
    "CouponsRepository",
    "WebhookEventsRepository",
]
