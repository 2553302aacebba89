"""
Unit tests for the Tier Catalog.

Tests ordering, effective window filtering, commission type parsing and
tier administration validation.
"""

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tests.conftest import NOW, make_tier, scalars_result
from tourbook.core.exceptions import InvalidPricingRule, RecordNotFound
from tourbook.models import CommissionType
from tourbook.services.tierCatalog import (
    count_vendors_by_tier,
    create_tier,
    deactivate_tier,
    filter_active_tiers,
    get_tier,
    list_active_tiers,
    order_tiers,
    parse_commission_type,
    update_tier,
    validate_tier_fields,
)


def _valid_fields(**overrides):
    fields = dict(
        name="Gold",
        commission_type=CommissionType.PERCENTAGE,
        commission_value=Decimal("10"),
        min_monthly_bookings=25,
        min_rating=Decimal("4.5"),
        priority_order=2,
        effective_from=NOW,
        effective_until=None,
    )
    fields.update(overrides)
    return fields


# ---------------------------------------------------------------------------
# Ordering and filtering
# ---------------------------------------------------------------------------


class TestOrderTiers:

    def test_sorts_by_priority_ascending(self, tier_catalog):
        names = [t.name for t in order_tiers(tier_catalog)]
        assert names == ["Platinum", "Gold", "Silver", "Bronze"]

    def test_equal_priorities_are_ordered_by_id(self):
        a = make_tier("A", 1, "10")
        b = make_tier("B", 1, "10")
        a.id = uuid.UUID("00000000-0000-0000-0000-000000000002")
        b.id = uuid.UUID("00000000-0000-0000-0000-000000000001")
        assert order_tiers([a, b]) == [b, a]


class TestFilterActiveTiers:

    def test_drops_inactive_tiers(self, tier_catalog):
        retired = make_tier("Legacy", 0, "5", is_active=False)
        result = filter_active_tiers(tier_catalog + [retired])
        assert retired not in result
        assert len(result) == 4

    def test_respects_effective_window(self, gold, silver):
        gold.effective_from = NOW + timedelta(days=1)
        silver.effective_until = NOW - timedelta(seconds=1)
        assert filter_active_tiers([gold, silver], at=NOW) == []
        assert filter_active_tiers([gold], at=NOW + timedelta(days=2)) == [gold]

    def test_window_end_is_inclusive(self, gold):
        gold.effective_until = NOW
        assert filter_active_tiers([gold], at=NOW) == [gold]

    def test_naive_datetimes_are_treated_as_utc(self, gold):
        gold.effective_from = datetime(2026, 3, 10, 13, 0)
        assert filter_active_tiers([gold], at=NOW) == []


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestParseCommissionType:

    @pytest.mark.parametrize("raw, expected", [
        ("percentage", CommissionType.PERCENTAGE),
        (" Percent ", CommissionType.PERCENTAGE),
        ("fixed", CommissionType.FIXED),
        ("FLAT", CommissionType.FIXED),
        (CommissionType.FIXED, CommissionType.FIXED),
    ])
    def test_accepted_spellings(self, raw, expected):
        assert parse_commission_type(raw) == expected

    def test_rejects_unknown_type(self):
        with pytest.raises(InvalidPricingRule):
            parse_commission_type("tiered")


class TestValidateTierFields:

    def test_valid_definition_passes(self):
        validate_tier_fields(**_valid_fields())

    @pytest.mark.parametrize("overrides", [
        {"name": "  "},
        {"commission_value": Decimal("-1")},
        {"commission_value": Decimal("100.5")},
        {"min_monthly_bookings": -1},
        {"min_rating": Decimal("5.5")},
        {"priority_order": -3},
        {"effective_until": NOW - timedelta(days=1)},
    ])
    def test_rejects_invalid_definitions(self, overrides):
        with pytest.raises(InvalidPricingRule):
            validate_tier_fields(**_valid_fields(**overrides))

    def test_fixed_commission_may_exceed_100(self):
        validate_tier_fields(**_valid_fields(
            commission_type=CommissionType.FIXED, commission_value=Decimal("5000"),
        ))


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestQueries:

    @pytest.mark.asyncio
    async def test_list_active_tiers_returns_catalog_order(self, mock_db, tier_catalog):
        mock_db.execute.return_value = scalars_result(tier_catalog)
        result = await list_active_tiers(mock_db, at=NOW)
        assert [t.name for t in result] == ["Platinum", "Gold", "Silver", "Bronze"]

    @pytest.mark.asyncio
    async def test_get_tier_raises_when_missing(self, mock_db):
        mock_db.execute.return_value = scalars_result([])
        with pytest.raises(RecordNotFound):
            await get_tier(mock_db, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_count_vendors_by_tier(self, mock_db, gold, bronze):
        result = MagicMock()
        result.all.return_value = [(gold.id, 3), (bronze.id, 12)]
        mock_db.execute.return_value = result
        counts = await count_vendors_by_tier(mock_db)
        assert counts == {gold.id: 3, bronze.id: 12}


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------


class TestCreateTier:

    @pytest.mark.asyncio
    async def test_creates_active_tier(self, mock_db):
        mock_db.execute.return_value = scalars_result([])
        tier = await create_tier(
            mock_db,
            name=" Gold ",
            commission_type="flat",
            commission_value=Decimal("5000"),
            priority_order=2,
            min_monthly_bookings=25,
            created_by="ops@tourbook.test",
        )

        assert tier.name == "Gold"
        assert tier.commission_type == CommissionType.FIXED
        assert tier.is_active is True
        assert tier.effective_from is not None
        mock_db.add.assert_called_once_with(tier)
        mock_db.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rejects_taken_priority_slot(self, mock_db, gold):
        mock_db.execute.return_value = scalars_result([gold.id])
        with pytest.raises(InvalidPricingRule, match="already used"):
            await create_tier(
                mock_db,
                name="Gold II",
                commission_type="percentage",
                commission_value=Decimal("9"),
                priority_order=2,
            )
        mock_db.add.assert_not_called()


class TestUpdateTier:

    @pytest.mark.asyncio
    async def test_partial_update_is_revalidated(self, mock_db, gold):
        with patch("tourbook.services.tierCatalog.get_tier", AsyncMock(return_value=gold)):
            with pytest.raises(InvalidPricingRule):
                await update_tier(mock_db, gold.id, {"commission_value": Decimal("150")})

    @pytest.mark.asyncio
    async def test_applies_update(self, mock_db, gold):
        with patch("tourbook.services.tierCatalog.get_tier", AsyncMock(return_value=gold)):
            tier = await update_tier(mock_db, gold.id, {"commission_value": Decimal("9.5")})
        assert tier.commission_value == Decimal("9.5")
        mock_db.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_rejects_unknown_fields(self, mock_db, gold):
        with pytest.raises(InvalidPricingRule, match="is_active"):
            await update_tier(mock_db, gold.id, {"is_active": False})


class TestDeactivateTier:

    @pytest.mark.asyncio
    async def test_deactivates_without_deleting(self, mock_db, gold):
        with patch("tourbook.services.tierCatalog.get_tier", AsyncMock(return_value=gold)):
            tier = await deactivate_tier(mock_db, gold.id)
        assert tier.is_active is False
        mock_db.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_already_inactive_is_a_no_op(self, mock_db):
        retired = make_tier("Legacy", 9, "5", is_active=False)
        with patch("tourbook.services.tierCatalog.get_tier", AsyncMock(return_value=retired)):
            await deactivate_tier(mock_db, retired.id)
        mock_db.flush.assert_not_awaited()
