"""
Unit tests for the monthly tier evaluation job.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tests.conftest import NOW, make_vendor
from tourbook.core.exceptions import NoTiersConfigured
from tourbook.jobs.tierEvaluation import (
    calculate_vendor_metrics,
    evaluate_vendor_tiers,
    start_of_month,
)
from tourbook.services.tierResolver import VendorMetrics


class TestStartOfMonth:

    def test_truncates_to_first_of_month(self):
        assert start_of_month(NOW) == datetime(2026, 3, 1, tzinfo=timezone.utc)

    def test_converts_to_utc_first(self):
        eat = timezone(timedelta(hours=3))
        # 1 April 01:00 in Kampala is still 31 March in UTC
        assert start_of_month(datetime(2026, 4, 1, 1, 0, tzinfo=eat)) == \
            datetime(2026, 3, 1, tzinfo=timezone.utc)


class TestCalculateVendorMetrics:

    @pytest.mark.asyncio
    async def test_counts_completed_bookings(self, mock_db):
        vendor = make_vendor(average_rating="4.6")
        result = MagicMock()
        result.scalar_one.return_value = 27
        mock_db.execute.return_value = result

        metrics = await calculate_vendor_metrics(mock_db, vendor, NOW)

        assert metrics == VendorMetrics(monthly_booking_count=27, average_rating=Decimal("4.6"))


def _patch_job(vendors, tiers, metrics_by_vendor):
    async def _metrics(db, vendor, now):
        return metrics_by_vendor[vendor.id]

    return (
        patch("tourbook.jobs.tierEvaluation._get_vendors_for_evaluation",
              AsyncMock(return_value=vendors)),
        patch("tourbook.jobs.tierEvaluation.list_active_tiers", AsyncMock(return_value=tiers)),
        patch("tourbook.jobs.tierEvaluation.calculate_vendor_metrics", _metrics),
        patch("tourbook.jobs.tierEvaluation.services_with_active_overrides",
              AsyncMock(return_value=[])),
    )


class TestEvaluateVendorTiers:

    @pytest.mark.asyncio
    async def test_promotes_vendor_and_stamps_evaluation(self, mock_db, tier_catalog, gold,
                                                         bronze):
        vendor = make_vendor(monthly_booking_count=3, average_rating="4.7")
        vendor.current_tier_id = bronze.id
        metrics = {vendor.id: VendorMetrics(30, Decimal("4.7"))}

        p1, p2, p3, p4 = _patch_job([vendor], tier_catalog, metrics)
        with p1, p2, p3, p4:
            results = await evaluate_vendor_tiers(mock_db, now=NOW)

        assert len(results) == 1
        assert results[0].tier_changed is True
        assert results[0].previous_tier_id == bronze.id
        assert results[0].new_tier_id == gold.id
        assert vendor.monthly_booking_count == 30
        assert vendor.current_tier_id == gold.id
        assert vendor.last_tier_evaluated_at == NOW

    @pytest.mark.asyncio
    async def test_unchanged_tier(self, mock_db, tier_catalog, bronze):
        vendor = make_vendor()
        vendor.current_tier_id = bronze.id
        vendor.current_commission_rate = bronze.commission_value
        metrics = {vendor.id: VendorMetrics(1, None)}

        p1, p2, p3, p4 = _patch_job([vendor], tier_catalog, metrics)
        with p1, p2, p3, p4:
            results = await evaluate_vendor_tiers(mock_db, now=NOW)

        assert results[0].tier_changed is False

    @pytest.mark.asyncio
    async def test_skips_vendors_on_live_manual_tier(self, mock_db, tier_catalog,
                                                     manual_gold_vendor, gold):
        p1, p2, p3, p4 = _patch_job([manual_gold_vendor], tier_catalog, {})
        with p1, p2, p3, p4:
            results = await evaluate_vendor_tiers(mock_db, now=NOW)

        assert results == []
        assert manual_gold_vendor.manual_tier_id == gold.id

    @pytest.mark.asyncio
    async def test_empty_catalog_is_fatal(self, mock_db):
        with patch("tourbook.jobs.tierEvaluation.list_active_tiers", AsyncMock(return_value=[])):
            with pytest.raises(NoTiersConfigured):
                await evaluate_vendor_tiers(mock_db, now=NOW)
