"""
Shared pytest fixtures for Tourbook pricing unit tests.

Provides mock database sessions and sample domain objects that mirror
production ORM models without requiring a live database connection.
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from tourbook.models import (
    CommissionType,
    FeePayer,
    PricingTier,
    ServicePricingOverride,
    Vendor,
    VendorStatus,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def make_tier(
    name: str,
    priority_order: int,
    commission_value: str,
    min_monthly_bookings: int = 0,
    min_rating: Optional[str] = None,
    commission_type: CommissionType = CommissionType.PERCENTAGE,
    is_active: bool = True,
) -> PricingTier:
    tier = MagicMock(spec=PricingTier)
    tier.id = uuid.uuid4()
    tier.name = name
    tier.commission_type = commission_type
    tier.commission_value = Decimal(commission_value)
    tier.min_monthly_bookings = min_monthly_bookings
    tier.min_rating = Decimal(min_rating) if min_rating is not None else None
    tier.priority_order = priority_order
    tier.is_active = is_active
    tier.effective_from = datetime(2024, 1, 1, tzinfo=timezone.utc)
    tier.effective_until = None
    return tier


def make_vendor(
    monthly_booking_count: int = 0,
    average_rating: Optional[str] = None,
    manual_tier_id: Optional[uuid.UUID] = None,
    manual_tier_expires_at: Optional[datetime] = None,
) -> Vendor:
    vendor = MagicMock(spec=Vendor)
    vendor.id = uuid.uuid4()
    vendor.business_name = "Kampala Safaris"
    vendor.status = VendorStatus.APPROVED
    vendor.monthly_booking_count = monthly_booking_count
    vendor.average_rating = Decimal(average_rating) if average_rating is not None else None
    vendor.current_tier_id = None
    vendor.current_commission_rate = None
    vendor.manual_tier_id = manual_tier_id
    vendor.manual_tier_expires_at = manual_tier_expires_at
    vendor.last_tier_evaluated_at = None
    return vendor


def make_override(
    service_id: uuid.UUID,
    effective_from: datetime,
    override_value: str = "20",
    fee_payer: FeePayer = FeePayer.VENDOR,
    override_type: CommissionType = CommissionType.PERCENTAGE,
    tourist_percentage: Optional[str] = None,
    vendor_percentage: Optional[str] = None,
    effective_until: Optional[datetime] = None,
    override_enabled: bool = True,
    override_id: Optional[uuid.UUID] = None,
) -> ServicePricingOverride:
    override = MagicMock(spec=ServicePricingOverride)
    override.id = override_id or uuid.uuid4()
    override.service_id = service_id
    override.override_enabled = override_enabled
    override.override_type = override_type
    override.override_value = Decimal(override_value)
    override.fee_payer = fee_payer
    override.tourist_percentage = (
        Decimal(tourist_percentage) if tourist_percentage is not None else None
    )
    override.vendor_percentage = (
        Decimal(vendor_percentage) if vendor_percentage is not None else None
    )
    override.effective_from = effective_from
    override.effective_until = effective_until
    override.created_by = "admin@tourbook.test"
    return override


def scalars_result(rows: list) -> MagicMock:
    """A mock ``Result`` whose ``scalars().all()`` returns ``rows``."""
    result = MagicMock()
    result.scalars.return_value.all.return_value = rows
    result.scalars.return_value.first.return_value = rows[0] if rows else None
    result.scalar_one_or_none.return_value = rows[0] if rows else None
    return result


# ---------------------------------------------------------------------------
# Database session mock
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_db() -> AsyncMock:
    """Async mock of ``AsyncSession``.

    Supports ``execute``, ``add``, ``flush``, ``commit``, ``rollback`` and
    ``begin_nested`` (as an async context manager that does not swallow
    exceptions).  Tests configure ``mock_db.execute.return_value``.
    """
    session = AsyncMock()
    session.add = MagicMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.delete = AsyncMock()

    nested = MagicMock()
    nested.__aenter__ = AsyncMock(return_value=None)
    nested.__aexit__ = AsyncMock(return_value=False)
    session.begin_nested = MagicMock(return_value=nested)
    return session


# ---------------------------------------------------------------------------
# Tier catalog
# ---------------------------------------------------------------------------


@pytest.fixture
def platinum() -> PricingTier:
    return make_tier("Platinum", 1, "8", min_monthly_bookings=50, min_rating="4.8")


@pytest.fixture
def gold() -> PricingTier:
    return make_tier("Gold", 2, "10", min_monthly_bookings=25, min_rating="4.5")


@pytest.fixture
def silver() -> PricingTier:
    return make_tier("Silver", 3, "12", min_monthly_bookings=10, min_rating="4.0")


@pytest.fixture
def bronze() -> PricingTier:
    return make_tier("Bronze", 4, "15")


@pytest.fixture
def tier_catalog(platinum, gold, silver, bronze) -> list[PricingTier]:
    """Default catalog, deliberately not in priority order."""
    return [bronze, gold, platinum, silver]


# ---------------------------------------------------------------------------
# Vendors and services
# ---------------------------------------------------------------------------


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def service_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def new_vendor() -> Vendor:
    """A vendor with no bookings or rating yet."""
    return make_vendor()


@pytest.fixture
def gold_vendor() -> Vendor:
    """A vendor exactly meeting Gold's thresholds."""
    return make_vendor(monthly_booking_count=25, average_rating="4.5")


@pytest.fixture
def manual_gold_vendor(gold) -> Vendor:
    """A Bronze-level vendor pinned to Gold until tomorrow."""
    return make_vendor(
        monthly_booking_count=2,
        average_rating="3.9",
        manual_tier_id=gold.id,
        manual_tier_expires_at=NOW + timedelta(days=1),
    )
