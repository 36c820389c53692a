"""
Tests for the availability collector against the database.
"""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from entitlement_sync.entitlements.collector import AvailabilityCollector
from entitlement_sync.entitlements.errors import TierNotFoundError, UserNotFoundError
from entitlement_sync.entitlements.merge import merge
from entitlement_sync.entitlements.models import BillingType
from entitlement_sync.tests.factories import GB, TB


@pytest.fixture
def collector(users_repo, user_tiers_repo):
    return AvailabilityCollector(users_repo, user_tiers_repo)


class TestCollectTiers:

    def test_user_tiers_come_first(self, collector, seed_tier, seed_user):
        own = seed_tier(max_space_bytes=TB)
        owner_business = seed_tier(workspace_bytes_per_seat=GB)
        user = seed_user(individual=own)
        owner = seed_user(business=owner_business)

        tiers = collector.collect_tiers(user.uuid, [owner.uuid])

        assert [t.id for t in tiers] == [own.id, owner_business.id]

    def test_owner_individual_tiers_are_ignored(self, collector, seed_tier, seed_user):
        own = seed_tier(max_space_bytes=GB)
        owner_individual = seed_tier(max_space_bytes=10 * TB)
        user = seed_user(individual=own)
        owner = seed_user(individual=owner_individual)

        tiers = collector.collect_tiers(user.uuid, [owner.uuid])

        assert [t.id for t in tiers] == [own.id]

    def test_missing_owner_is_skipped(self, collector, seed_tier, seed_user):
        own = seed_tier(max_space_bytes=GB)
        user = seed_user(individual=own)

        tiers = collector.collect_tiers(user.uuid, ["no-such-owner"])

        assert [t.id for t in tiers] == [own.id]

    def test_owner_lookup_failure_propagates(self, users_repo, user_tiers_repo, seed_tier, seed_user):
        own = seed_tier(max_space_bytes=GB)
        user = seed_user(individual=own)
        real_get = users_repo.get_by_uuid

        def get_by_uuid(uuid):
            if uuid == "owner-1":
                raise OperationalError("SELECT users", {}, Exception("connection lost"))
            return real_get(uuid)

        with patch.object(users_repo, "get_by_uuid", side_effect=get_by_uuid):
            with pytest.raises(OperationalError):
                AvailabilityCollector(users_repo, user_tiers_repo).collect_tiers(user.uuid, ["owner-1"])

    def test_stacked_lifetime_space_replaces_tier_quota(self, collector, seed_tier, seed_user, users_repo):
        lifetime = seed_tier(billing_type=BillingType.LIFETIME, max_space_bytes=TB)
        user = seed_user(lifetime=True, individual=lifetime)
        users_repo.set_lifetime_space(user, 3 * TB)
        users_repo.commit()

        tiers = collector.collect_tiers(user.uuid, [])

        assert [t.id for t in tiers] == [lifetime.id]
        assert tiers[0].drive.max_space_bytes == 3 * TB

    def test_stacked_space_ignores_subscription_tiers(self, collector, seed_tier, seed_user, users_repo):
        subscription = seed_tier(max_space_bytes=TB)
        user = seed_user(individual=subscription)
        users_repo.set_lifetime_space(user, 3 * TB)
        users_repo.commit()

        tiers = collector.collect_tiers(user.uuid, [])

        assert tiers[0].drive.max_space_bytes == TB

    def test_shared_tier_is_deduplicated(self, collector, seed_tier, seed_user):
        business = seed_tier(workspace_bytes_per_seat=TB)
        user = seed_user(business=business)
        owner_a = seed_user(business=business)
        owner_b = seed_user(business=business)

        tiers = collector.collect_tiers(user.uuid, [owner_a.uuid, owner_b.uuid])

        assert [t.id for t in tiers] == [business.id]

    def test_no_tiers_raises(self, collector, seed_user):
        user = seed_user()

        with pytest.raises(TierNotFoundError):
            collector.collect_tiers(user.uuid, [])

    def test_unknown_user_raises(self, collector):
        with pytest.raises(UserNotFoundError):
            collector.collect_tiers("unknown-user", [])

    def test_member_gets_owner_workspace_drive(self, collector, seed_tier, seed_user):
        own = seed_tier(max_space_bytes=2 * TB, vpn="vpn-own")
        owner_business = seed_tier(workspace_bytes_per_seat=TB, mail=5)
        user = seed_user(individual=own)
        owner = seed_user(business=owner_business)

        merged = merge(collector.collect_tiers(user.uuid, [owner.uuid]))

        assert merged.drive.source_tier_id == owner_business.id
        assert merged.vpn.feature_id == "vpn-own"
        assert merged.mail.addresses_per_user == 5
