"""
Availability collector.

Gathers every tier that applies to a user: their own assignments, with any
stacked lifetime space, plus the business tiers of the workspaces they
belong to.
"""

import logging
from typing import List, Sequence

from entitlement_sync.entitlements.errors import TierNotFoundError, UserNotFoundError
from entitlement_sync.entitlements.models import Tier, with_lifetime_space
from entitlement_sync.repositories.user_tiers_repo import UserTiersRepository
from entitlement_sync.repositories.users_repo import UsersRepository

logger = logging.getLogger(__name__)


class AvailabilityCollector:
    """Collects the ordered, de-duplicated tier list for a user."""

    def __init__(self, users_repo: UsersRepository, user_tiers_repo: UserTiersRepository):
        self.users_repo = users_repo
        self.user_tiers_repo = user_tiers_repo

    def collect_tiers(self, user_uuid: str, owner_uuids: Sequence[str] = ()) -> List[Tier]:
        """
        Collect tiers for a user and the owners of their workspaces.

        Args:
            user_uuid: The user whose entitlement is being resolved
            owner_uuids: Workspace owners, in priority order

        Returns:
            User's own tiers first, then owners' workspace tiers, unique by id

        Raises:
            UserNotFoundError: If the user itself does not exist
            TierNotFoundError: If no tier applies
        """
        user = self.users_repo.get_by_uuid(user_uuid)
        collected: List[Tier] = [
            with_lifetime_space(tier, user.lifetime_space_bytes)
            for tier in self.user_tiers_repo.get_tiers_for_user(user.id)
        ]

        for owner_uuid in owner_uuids:
            try:
                owner = self.users_repo.get_by_uuid(owner_uuid)
            except UserNotFoundError:
                logger.info(
                    "Workspace owner not found, skipping",
                    extra={"user_uuid": user_uuid, "owner_uuid": owner_uuid},
                )
                continue

            owner_tiers = self.user_tiers_repo.get_tiers_for_user(owner.id)
            collected.extend(tier for tier in owner_tiers if tier.is_workspace_tier)

        seen = set()
        unique: List[Tier] = []
        for tier in collected:
            if tier.id in seen:
                continue
            seen.add(tier.id)
            unique.append(tier)

        if not unique:
            raise TierNotFoundError("No tiers available for user", user_uuid=user_uuid)

        return unique
