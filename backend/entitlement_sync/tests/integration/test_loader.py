"""
Tests for the tier catalog loader and seeder.
"""

import json

import pytest

from entitlement_sync.entitlements.errors import InvalidMetadataError, TierNotFoundError
from entitlement_sync.entitlements.loader import TierCatalogLoader, TierCatalogSeeder
from entitlement_sync.entitlements.models import BillingType, Service


class TestTierCatalogLoader:

    def test_packaged_catalog(self):
        loader = TierCatalogLoader()

        free = loader.get_by_product("free")

        assert free.billing_type == BillingType.NONE
        assert free.enables(Service.DRIVE)
        assert any(tier.is_workspace_tier for tier in loader.tiers)

    def test_unknown_product(self):
        with pytest.raises(TierNotFoundError):
            TierCatalogLoader().get_by_product("prod_missing")

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            TierCatalogLoader(str(tmp_path / "absent.json"))

    def test_malformed_entry(self, tmp_path):
        path = tmp_path / "tiers.json"
        path.write_text(json.dumps({"tiers": [{"product_id": "no-id"}]}))

        with pytest.raises(InvalidMetadataError):
            TierCatalogLoader(str(path))

    def test_reload_picks_up_changes(self, tmp_path):
        path = tmp_path / "tiers.json"
        path.write_text(json.dumps({"tiers": [{"id": "t1", "product_id": "p1", "billing_type": "subscription"}]}))
        loader = TierCatalogLoader(str(path))

        path.write_text(json.dumps({"tiers": [{"id": "t2", "product_id": "p2", "billing_type": "subscription"}]}))
        loader.reload()

        assert [tier.id for tier in loader.tiers] == ["t2"]


def write_catalog(path, max_space_bytes, label="Essential"):
    path.write_text(json.dumps({"tiers": [{
        "id": "t1",
        "product_id": "prod_essential",
        "billing_type": "subscription",
        "label": label,
        "features_per_service": {"drive": {"enabled": True, "max_space_bytes": max_space_bytes}},
    }]}))


class TestTierCatalogSeeder:

    def test_seed_is_idempotent(self, tiers_repo):
        loader = TierCatalogLoader()
        seeder = TierCatalogSeeder(tiers_repo, loader)

        first = seeder.seed()
        second = seeder.seed()

        assert first == len(loader.tiers)
        assert second == 0
        assert len(tiers_repo.list_all()) == len(loader.tiers)
        assert tiers_repo.find_by_product("free", BillingType.NONE) is not None

    def test_reseed_with_changed_features_keeps_stored_tier(self, tiers_repo, tmp_path):
        path = tmp_path / "tiers.json"
        write_catalog(path, max_space_bytes=100)
        loader = TierCatalogLoader(str(path))
        seeder = TierCatalogSeeder(tiers_repo, loader)
        seeder.seed()

        write_catalog(path, max_space_bytes=999, label="Essential v2")
        loader.reload()
        inserted = seeder.seed()

        stored = tiers_repo.find_by_product("prod_essential", BillingType.SUBSCRIPTION)
        assert inserted == 0
        assert stored.drive.max_space_bytes == 100
        assert stored.label == "Essential"

    def test_reseed_inserts_new_catalog_entries(self, tiers_repo, tmp_path):
        path = tmp_path / "tiers.json"
        write_catalog(path, max_space_bytes=100)
        loader = TierCatalogLoader(str(path))
        seeder = TierCatalogSeeder(tiers_repo, loader)
        seeder.seed()

        catalog = json.loads(path.read_text())
        catalog["tiers"].append({"id": "t2", "product_id": "prod_pro", "billing_type": "lifetime"})
        path.write_text(json.dumps(catalog))
        loader.reload()

        assert seeder.seed() == 1
        assert tiers_repo.find_by_product("prod_pro", BillingType.LIFETIME).id == "t2"
