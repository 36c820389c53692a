"""
Root test configuration and fixtures.

Provides:
- db_engine / db_session: SQLite in-memory database, fresh per test
- seed_tier / seed_user: persisted catalog and user factories
- mock gateways and payment provider built from unittest.mock
"""

import uuid
from typing import Generator, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from entitlement_sync.db_base import Base
import entitlement_sync.models  # noqa: F401 - registers all tables
from entitlement_sync.entitlements.cache import EntitlementCache, EntitlementCacheInvalidator
from entitlement_sync.entitlements.models import BillingContext, BillingType, Service, Tier
from entitlement_sync.repositories.coupons_repo import CouponsRepository
from entitlement_sync.repositories.license_codes_repo import LicenseCodesRepository
from entitlement_sync.repositories.tiers_repo import TiersRepository
from entitlement_sync.repositories.user_tiers_repo import UserTiersRepository
from entitlement_sync.repositories.users_repo import UsersRepository
from entitlement_sync.services.gateway_appliers import GatewayAppliers
from entitlement_sync.tests.factories import GB, make_gateway_mock, make_tier

# =============================================================================
# Database
# =============================================================================

@pytest.fixture
def db_engine():
    """
    SQLite in-memory engine with every table created.

    A fresh engine per test keeps commits made by the code under test from
    leaking between tests.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(db_engine) -> Generator[Session, None, None]:
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def users_repo(db_session):
    return UsersRepository(db_session)


@pytest.fixture
def tiers_repo(db_session):
    return TiersRepository(db_session)


@pytest.fixture
def user_tiers_repo(db_session):
    return UserTiersRepository(db_session)


@pytest.fixture
def coupons_repo(db_session):
    return CouponsRepository(db_session)


@pytest.fixture
def license_codes_repo(db_session):
    return LicenseCodesRepository(db_session)


# =============================================================================
# Factories
# =============================================================================

@pytest.fixture
def seed_tier(tiers_repo):
    """Create a tier in the database and return it."""
    def _seed(**kwargs) -> Tier:
        tier = tiers_repo.create(make_tier(**kwargs))
        tiers_repo.commit()
        return tier
    return _seed


@pytest.fixture
def free_tier(seed_tier):
    return seed_tier(product_id="free", billing_type=BillingType.NONE, max_space_bytes=GB, label="Free")


@pytest.fixture
def seed_user(users_repo, user_tiers_repo):
    """Create a user, optionally assigned to tiers per billing context."""
    def _seed(
        customer_id: Optional[str] = None,
        lifetime: bool = False,
        individual: Optional[Tier] = None,
        business: Optional[Tier] = None,
        user_uuid: Optional[str] = None,
    ):
        user = users_repo.upsert(user_uuid or str(uuid.uuid4()), customer_id=customer_id, lifetime=lifetime)
        if individual is not None:
            user_tiers_repo.replace(user.id, BillingContext.INDIVIDUAL, individual.id)
        if business is not None:
            user_tiers_repo.replace(user.id, BillingContext.BUSINESS, business.id)
        users_repo.commit()
        return user
    return _seed


# =============================================================================
# Collaborator mocks
# =============================================================================

@pytest.fixture
def drive_gateway():
    gateway = make_gateway_mock("drive", Service.DRIVE)
    gateway.destroy_workspace = AsyncMock()
    gateway.find_user_by_email = AsyncMock(return_value=None)
    return gateway


@pytest.fixture
def vpn_gateway():
    return make_gateway_mock("vpn", Service.VPN)


@pytest.fixture
def object_storage_gateway():
    return make_gateway_mock("object_storage")


@pytest.fixture
def appliers(drive_gateway, vpn_gateway, object_storage_gateway):
    return GatewayAppliers([drive_gateway, vpn_gateway], object_storage=object_storage_gateway)


@pytest.fixture
def cache():
    return EntitlementCache(ttl_seconds=300)


@pytest.fixture
def cache_invalidator(cache):
    invalidator = EntitlementCacheInvalidator(cache)
    invalidator.invalidate = AsyncMock(wraps=invalidator.invalidate)
    return invalidator


@pytest.fixture
def provider():
    """Payment provider client mock; tests set return values per call."""
    client = MagicMock()
    client.get_customer = AsyncMock()
    client.get_price = AsyncMock()
    client.get_product = AsyncMock()
    client.get_or_create_customer = AsyncMock()
    client.subscribe = AsyncMock()
    client.get_invoice = AsyncMock()
    client.get_charge = AsyncMock()
    client.cancel_subscription = AsyncMock()
    client.list_customers_by_email = AsyncMock(return_value=[])
    client.list_paid_invoices = AsyncMock(return_value=[])
    return client


@pytest.fixture
def reconciliation_engine(
    provider,
    users_repo,
    tiers_repo,
    user_tiers_repo,
    coupons_repo,
    appliers,
    drive_gateway,
    cache_invalidator,
):
    from entitlement_sync.services.reconciliation import ReconciliationEngine

    return ReconciliationEngine(
        provider=provider,
        users_repo=users_repo,
        tiers_repo=tiers_repo,
        user_tiers_repo=user_tiers_repo,
        coupons_repo=coupons_repo,
        appliers=appliers,
        drive_gateway=drive_gateway,
        cache_invalidator=cache_invalidator,
    )


@pytest.fixture
def license_service(
    provider,
    license_codes_repo,
    users_repo,
    user_tiers_repo,
    reconciliation_engine,
    appliers,
    cache_invalidator,
):
    from entitlement_sync.services.license_codes import LicenseCodeService

    return LicenseCodeService(
        provider=provider,
        license_codes_repo=license_codes_repo,
        users_repo=users_repo,
        user_tiers_repo=user_tiers_repo,
        engine=reconciliation_engine,
        appliers=appliers,
        cache_invalidator=cache_invalidator,
    )
