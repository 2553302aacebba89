"""
E2E test fixtures for the Tourbook pricing API.

Provides:
- An in-process FastAPI app with all pricing routes registered
- httpx AsyncClient wired via ASGI transport (no network needed)
- An async in-memory SQLite database, recreated for every test
- Seed data: the default tier catalog, two vendors, their services and a
  pending booking
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tourbook.api.deps import get_db
from tourbook.main import app
from tourbook.models import (
    Base,
    Booking,
    BookingStatus,
    CommissionType,
    PricingTier,
    Service,
    ServiceStatus,
    Vendor,
    VendorStatus,
)

# ---------------------------------------------------------------------------
# Test IDs (stable across tests so cross-references work)
# ---------------------------------------------------------------------------

PLATINUM_TIER_ID = uuid.UUID("10000000-0000-0000-0000-000000000001")
GOLD_TIER_ID = uuid.UUID("10000000-0000-0000-0000-000000000002")
SILVER_TIER_ID = uuid.UUID("10000000-0000-0000-0000-000000000003")
BRONZE_TIER_ID = uuid.UUID("10000000-0000-0000-0000-000000000004")

NEW_VENDOR_ID = uuid.UUID("20000000-0000-0000-0000-000000000001")
GOLD_VENDOR_ID = uuid.UUID("20000000-0000-0000-0000-000000000002")

NEW_VENDOR_SERVICE_ID = uuid.UUID("30000000-0000-0000-0000-000000000001")
GOLD_VENDOR_SERVICE_ID = uuid.UUID("30000000-0000-0000-0000-000000000002")

PENDING_BOOKING_ID = uuid.UUID("40000000-0000-0000-0000-000000000001")

TIERS_EFFECTIVE_FROM = datetime(2024, 1, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Async engine + session factory (in-memory SQLite)
# ---------------------------------------------------------------------------

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def _test_engine():
    """One in-memory database per test, shared by all its connections."""
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # SQLite does not enforce foreign keys by default
    @event.listens_for(engine.sync_engine, "connect")
    def _enable_fk(dbapi_conn, _):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(_test_engine) -> async_sessionmaker[AsyncSession]:
    factory = async_sessionmaker(bind=_test_engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        await _seed_data(session)
        await session.commit()
    return factory


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------

def _tier(tier_id, name, priority, value, bookings, rating) -> PricingTier:
    return PricingTier(
        id=tier_id,
        name=name,
        commission_type=CommissionType.PERCENTAGE,
        commission_value=Decimal(value),
        min_monthly_bookings=bookings,
        min_rating=Decimal(rating) if rating is not None else None,
        priority_order=priority,
        is_active=True,
        effective_from=TIERS_EFFECTIVE_FROM,
        created_by="seed",
    )


async def _seed_data(db: AsyncSession) -> None:
    """Insert the default catalog and two vendors with one service each."""
    db.add_all([
        _tier(PLATINUM_TIER_ID, "Platinum", 1, "8", 50, "4.8"),
        _tier(GOLD_TIER_ID, "Gold", 2, "10", 25, "4.5"),
        _tier(SILVER_TIER_ID, "Silver", 3, "12", 10, "4.0"),
        _tier(BRONZE_TIER_ID, "Bronze", 4, "15", 0, None),
    ])
    await db.flush()

    db.add_all([
        Vendor(
            id=NEW_VENDOR_ID,
            business_name="Jinja Rafting Co",
            status=VendorStatus.APPROVED,
            monthly_booking_count=2,
            average_rating=Decimal("4.1"),
            current_tier_id=BRONZE_TIER_ID,
            current_commission_rate=Decimal("15"),
        ),
        Vendor(
            id=GOLD_VENDOR_ID,
            business_name="Bwindi Gorilla Treks",
            status=VendorStatus.APPROVED,
            monthly_booking_count=25,
            average_rating=Decimal("4.5"),
            current_tier_id=GOLD_TIER_ID,
            current_commission_rate=Decimal("10"),
        ),
    ])
    await db.flush()

    db.add_all([
        Service(
            id=NEW_VENDOR_SERVICE_ID,
            vendor_id=NEW_VENDOR_ID,
            title="Nile white water rafting",
            price=Decimal("100000"),
            status=ServiceStatus.APPROVED,
        ),
        Service(
            id=GOLD_VENDOR_SERVICE_ID,
            vendor_id=GOLD_VENDOR_ID,
            title="Gorilla trekking day trip",
            price=Decimal("2500000"),
            status=ServiceStatus.APPROVED,
        ),
    ])
    await db.flush()

    db.add(Booking(
        id=PENDING_BOOKING_ID,
        service_id=NEW_VENDOR_SERVICE_ID,
        vendor_id=NEW_VENDOR_ID,
        status=BookingStatus.PENDING,
        gross_amount=Decimal("250000"),
        currency="UGX",
    ))
    await db.flush()


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient against the app with ``get_db`` bound to the test database."""

    async def _get_test_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_test_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
