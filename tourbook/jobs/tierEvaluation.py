"""
Monthly Tier Evaluation -- Scheduled Job.

Recomputes every approved vendor's automatic tier from this month's
activity:

1. Count the vendor's completed bookings since the first of the month
   (UTC) and store it as ``monthly_booking_count``.
2. Resolve the automatic tier and re-memoise it when it changed.
3. Stamp ``last_tier_evaluated_at``.

Vendors on a live manual tier are skipped; their pin wins until the expiry
sweep clears it.  When a vendor changes tier, services that keep override
pricing are logged since the new tier does not affect them.

Usage with a simple cron runner::

    python -m tourbook.jobs.tierEvaluation
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import and_, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.core.clock import as_utc, utcnow
from tourbook.core.exceptions import NoTiersConfigured, PricingEngineError
from tourbook.models import Booking, BookingStatus, Vendor, VendorStatus
from tourbook.services.overrideService import services_with_active_overrides
from tourbook.services.tierCatalog import list_active_tiers
from tourbook.services.tierResolver import (
    VendorMetrics,
    manual_tier_is_active,
    memoise_tier,
    resolve_automatic_tier,
)

logger = logging.getLogger(__name__)


@dataclass
class TierEvaluationResult:
    """Evaluation outcome for one vendor."""
    vendor_id: uuid.UUID
    previous_tier_id: Optional[uuid.UUID]
    new_tier_id: uuid.UUID
    monthly_bookings: int
    average_rating: Optional[Decimal]
    tier_changed: bool
    services_with_overrides: list[uuid.UUID] = field(default_factory=list)


def start_of_month(now: datetime) -> datetime:
    """Midnight UTC on the first day of ``now``'s month."""
    return as_utc(now).replace(day=1, hour=0, minute=0, second=0, microsecond=0)


async def calculate_vendor_metrics(
    db: AsyncSession,
    vendor: Vendor,
    now: datetime,
) -> VendorMetrics:
    """Completed bookings this month plus the vendor's stored rating."""
    stmt = select(func.count(Booking.id)).where(
        and_(
            Booking.vendor_id == vendor.id,
            Booking.status == BookingStatus.COMPLETED,
            Booking.created_at >= start_of_month(now),
        )
    )
    result = await db.execute(stmt)
    count = result.scalar_one() or 0

    rating = vendor.average_rating
    return VendorMetrics(
        monthly_booking_count=count,
        average_rating=Decimal(str(rating)) if rating is not None else None,
    )


async def _get_vendors_for_evaluation(db: AsyncSession) -> list[Vendor]:
    result = await db.execute(
        select(Vendor).where(Vendor.status == VendorStatus.APPROVED).order_by(Vendor.id)
    )
    return list(result.scalars().all())


async def evaluate_vendor_tiers(
    db: AsyncSession,
    now: Optional[datetime] = None,
) -> list[TierEvaluationResult]:
    """Re-evaluate the automatic tier of every approved vendor.

    Raises:
        NoTiersConfigured: If the catalog is empty; nothing can be evaluated.
    """
    now = as_utc(now) or utcnow()
    tiers = await list_active_tiers(db, at=now)
    if not tiers:
        raise NoTiersConfigured()

    vendors = await _get_vendors_for_evaluation(db)
    results: list[TierEvaluationResult] = []
    skipped = 0

    logger.info("Starting tier evaluation at %s for %d vendors", now.isoformat(), len(vendors))

    for vendor in vendors:
        if manual_tier_is_active(vendor, now):
            skipped += 1
            logger.debug("Vendor %s is on a manual tier; skipping", vendor.id)
            continue

        previous_tier_id = vendor.current_tier_id
        try:
            async with db.begin_nested():
                metrics = await calculate_vendor_metrics(db, vendor, now)
                tier = resolve_automatic_tier(metrics, tiers)
                vendor.monthly_booking_count = metrics.monthly_booking_count
                changed = memoise_tier(vendor, tier)
                vendor.last_tier_evaluated_at = now
                await db.flush()
                overridden: list[uuid.UUID] = []
                if changed:
                    overridden = await services_with_active_overrides(db, vendor.id, now)
        except (PricingEngineError, SQLAlchemyError):
            logger.exception("Tier evaluation failed for vendor %s", vendor.id)
            continue

        if changed:
            logger.info(
                "Vendor %s moved to tier %s (%d bookings, rating %s); "
                "%d services keep override pricing",
                vendor.id,
                tier.name,
                metrics.monthly_booking_count,
                metrics.average_rating,
                len(overridden),
            )

        results.append(TierEvaluationResult(
            vendor_id=vendor.id,
            previous_tier_id=previous_tier_id,
            new_tier_id=tier.id,
            monthly_bookings=metrics.monthly_booking_count,
            average_rating=metrics.average_rating,
            tier_changed=changed,
            services_with_overrides=overridden,
        ))

    logger.info(
        "Tier evaluation completed: evaluated=%d, changed=%d, skipped manual=%d",
        len(results),
        sum(1 for r in results if r.tier_changed),
        skipped,
    )
    return results


# ---------------------------------------------------------------------------
# CLI entry point (for manual runs / simple cron)
# ---------------------------------------------------------------------------

async def _cli_main() -> None:
    from tourbook.api.deps import async_session_factory

    async with async_session_factory() as session:
        try:
            results = await evaluate_vendor_tiers(session)
            await session.commit()
        except Exception:
            await session.rollback()
            logger.exception("Tier evaluation failed")
            raise

    changed = sum(1 for r in results if r.tier_changed)
    print(f"Tier evaluation completed: evaluated={len(results)}, changed={changed}")  # noqa: T201


if __name__ == "__main__":
    from tourbook.core.config import settings

    logging.basicConfig(level=settings.log_level)
    asyncio.run(_cli_main())
