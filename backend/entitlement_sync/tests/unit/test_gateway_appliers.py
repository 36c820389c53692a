"""
Unit tests for GatewayAppliers.

Tests cover:
- apply / revoke / skip decisions per gateway
- non-strict mode continues past a failed gateway
- strict mode raises the first failure
- object storage provisioning and failure reporting
"""

import pytest

from entitlement_sync.entitlements.errors import GatewayError
from entitlement_sync.integrations.gateways.base import GatewayTarget
from entitlement_sync.services.gateway_appliers import GatewayAppliers
from entitlement_sync.tests.factories import GB, TB, make_tier

TARGET = GatewayTarget(uuid="user-1", customer_id="cus_1")


class TestTierChange:

    @pytest.mark.asyncio
    async def test_first_assignment_applies_enabled_services(self, appliers, drive_gateway, vpn_gateway):
        tier = make_tier(max_space_bytes=TB, vpn="vpn-basic")

        report = await appliers.apply_tier_change(TARGET, None, tier)

        drive_gateway.apply.assert_awaited_once_with(TARGET, tier, 1)
        vpn_gateway.apply.assert_awaited_once_with(TARGET, tier, 1)
        assert report.applied == ["drive", "vpn"]
        assert report.ok

    @pytest.mark.asyncio
    async def test_downgrade_revokes_dropped_service(self, appliers, drive_gateway, vpn_gateway):
        old = make_tier(max_space_bytes=TB, vpn="vpn-basic")
        new = make_tier(max_space_bytes=GB)

        report = await appliers.apply_tier_change(TARGET, old, new)

        drive_gateway.apply.assert_awaited_once_with(TARGET, new, 1)
        vpn_gateway.revoke.assert_awaited_once_with(TARGET, old)
        vpn_gateway.apply.assert_not_awaited()
        assert report.revoked == ["vpn"]

    @pytest.mark.asyncio
    async def test_service_off_on_both_sides_is_skipped(self, appliers, vpn_gateway):
        report = await appliers.apply_tier_change(TARGET, make_tier(max_space_bytes=GB), make_tier(max_space_bytes=TB))

        vpn_gateway.apply.assert_not_awaited()
        vpn_gateway.revoke.assert_not_awaited()
        assert report.skipped == ["vpn"]

    @pytest.mark.asyncio
    async def test_seats_are_forwarded(self, appliers, drive_gateway):
        tier = make_tier(workspace_bytes_per_seat=TB)

        await appliers.apply_tier_change(TARGET, None, tier, seats=12)

        drive_gateway.apply.assert_awaited_once_with(TARGET, tier, 12)


class TestFailureModes:

    @pytest.mark.asyncio
    async def test_non_strict_continues_after_failure(self, appliers, drive_gateway, vpn_gateway):
        drive_gateway.apply.side_effect = GatewayError("boom", gateway="drive", status_code=500)
        tier = make_tier(max_space_bytes=TB, vpn="vpn-basic")

        report = await appliers.apply_tier_change(TARGET, None, tier)

        vpn_gateway.apply.assert_awaited_once()
        assert report.failed == ["drive"]
        assert report.applied == ["vpn"]
        assert not report.ok

    @pytest.mark.asyncio
    async def test_strict_raises_first_failure(self, appliers, drive_gateway, vpn_gateway):
        drive_gateway.apply.side_effect = GatewayError("boom", gateway="drive", status_code=500)

        with pytest.raises(GatewayError):
            await appliers.apply_tier_change(TARGET, None, make_tier(vpn="vpn-basic"), strict=True)

        vpn_gateway.apply.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_is_logged_with_context(self, appliers, drive_gateway, caplog):
        drive_gateway.apply.side_effect = GatewayError("boom", gateway="drive")
        tier = make_tier(max_space_bytes=TB)

        await appliers.apply_tier_change(TARGET, None, tier)

        record = next(r for r in caplog.records if r.getMessage() == "Gateway apply failed")
        assert record.user_uuid == "user-1"
        assert record.tier_id == tier.id
        assert record.gateway == "drive"


class TestObjectStorage:

    @pytest.mark.asyncio
    async def test_provision_and_suspend(self, appliers, object_storage_gateway):
        provisioned = await appliers.provision_object_storage(TARGET)
        suspended = await appliers.suspend_object_storage(TARGET)

        object_storage_gateway.apply.assert_awaited_once_with(TARGET)
        object_storage_gateway.revoke.assert_awaited_once_with(TARGET)
        assert provisioned.applied == ["object_storage"]
        assert suspended.revoked == ["object_storage"]

    @pytest.mark.asyncio
    async def test_unconfigured_gateway_raises(self):
        with pytest.raises(GatewayError):
            await GatewayAppliers([]).provision_object_storage(TARGET)

    @pytest.mark.asyncio
    async def test_provision_failure_is_reported_and_logged(self, appliers, object_storage_gateway, caplog):
        object_storage_gateway.apply.side_effect = GatewayError("boom", gateway="object_storage", status_code=503)

        report = await appliers.provision_object_storage(TARGET)

        assert report.failed == ["object_storage"]
        assert not report.ok
        record = next(r for r in caplog.records if r.getMessage() == "Object storage gateway call failed")
        assert record.customer_id == "cus_1"
        assert record.action == "provision"
        assert record.error["context"]["status_code"] == 503

    @pytest.mark.asyncio
    async def test_suspend_failure_is_reported(self, appliers, object_storage_gateway):
        object_storage_gateway.revoke.side_effect = GatewayError("boom", gateway="object_storage")

        report = await appliers.suspend_object_storage(TARGET)

        assert report.failed == ["object_storage"]
