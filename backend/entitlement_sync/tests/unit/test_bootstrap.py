"""
Unit tests for component wiring and database helpers.
"""

import pytest

from entitlement_sync.bootstrap import build_components
from entitlement_sync.config.settings import Settings
from entitlement_sync.database.session import normalize_database_url, session_scope


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite:///:memory:",
        payment_provider_api_key="sk_test_123",
        drive_gateway_url="https://drive.test",
        drive_gateway_secret="drive-secret-that-is-long-enough-for-hs256",
        vpn_gateway_url="https://vpn.test",
        vpn_gateway_secret="vpn-secret-that-is-long-enough-for-hs256",
        object_storage_gateway_url="https://storage.test",
        object_storage_gateway_secret="storage-secret-that-is-long-enough-for-hs256",
        gateway_token_algorithm="HS256",
        free_tier_product_id="prod_free",
    )


class TestBuildComponents:

    @pytest.mark.asyncio
    async def test_wiring_shares_collaborators(self, settings, db_session):
        components = build_components(settings, db_session)

        assert components.engine.drive_gateway is components.drive
        assert components.engine.free_tier_product_id == "prod_free"
        assert components.license_codes.engine is components.engine
        assert components.webhooks.engine is components.engine
        assert [g.name for g in components.appliers.gateways] == ["drive", "vpn"]
        assert components.appliers.object_storage is components.object_storage
        assert not components.cache.uses_redis

        await components.aclose()

    @pytest.mark.asyncio
    async def test_redis_url_enables_redis_cache(self, settings, db_session):
        settings.redis_url = "redis://localhost:6379/0"

        components = build_components(settings, db_session)

        assert components.cache.uses_redis
        assert components.redis is not None
        await components.aclose()


class TestDatabaseHelpers:

    def test_postgres_scheme_normalized(self):
        assert normalize_database_url("postgres://u:p@db/app") == "postgresql://u:p@db/app"

    def test_empty_url_rejected(self):
        with pytest.raises(ValueError):
            normalize_database_url("")

    def test_session_scope_yields_working_session(self):
        from sqlalchemy import text

        with session_scope("sqlite:///:memory:") as session:
            assert session.execute(text("SELECT 1")).scalar() == 1
