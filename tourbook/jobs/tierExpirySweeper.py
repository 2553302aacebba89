"""
Manual Tier Expiry Sweep -- Scheduled Job.

Clears manual tiers whose ``manual_tier_expires_at`` has passed and puts the
vendor back on the tier its metrics earn:

1. Select vendors with ``manual_tier_id`` set and ``manual_tier_expires_at <= now``
   (row locked, ``SKIP LOCKED`` so concurrent sweeps do not block each other).
2. For each vendor, inside its own savepoint: resolve the automatic tier,
   re-memoise ``current_tier_id`` / ``current_commission_rate`` and clear the
   manual fields.
3. Collect per-vendor failures; one vendor never blocks the others.

The sweep is idempotent: a second run with no new expiries clears nothing.

Usage with a simple cron runner::

    python -m tourbook.jobs.tierExpirySweeper

The process exits with status 1 when any vendor failed.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.core.clock import as_utc, utcnow
from tourbook.core.exceptions import PricingEngineError
from tourbook.models import Vendor
from tourbook.services.tierCatalog import list_active_tiers
from tourbook.services.tierResolver import (
    VendorMetrics,
    memoise_tier,
    resolve_automatic_tier,
)

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """Outcome of one sweep run."""
    cleared_count: int = 0
    errors: list[str] = field(default_factory=list)


async def _get_vendors_with_expired_manual_tier(
    db: AsyncSession,
    now: datetime,
) -> list[Vendor]:
    stmt = (
        select(Vendor)
        .where(
            and_(
                Vendor.manual_tier_id.isnot(None),
                Vendor.manual_tier_expires_at.isnot(None),
                Vendor.manual_tier_expires_at <= now,
            )
        )
        .order_by(Vendor.manual_tier_expires_at.asc())
        .with_for_update(skip_locked=True)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def sweep_expired_manual_tiers(
    db: AsyncSession,
    now: Optional[datetime] = None,
) -> SweepResult:
    """Clear expired manual tiers and re-memoise the automatic tier.

    Args:
        db: Async database session.  The caller commits.
        now: Reference instant (defaults to now).

    Returns:
        SweepResult with the number of vendors cleared and per-vendor errors.
    """
    now = as_utc(now) or utcnow()
    result = SweepResult()

    vendors = await _get_vendors_with_expired_manual_tier(db, now)
    if not vendors:
        logger.info("Tier expiry sweep at %s: nothing to clear", now.isoformat())
        return result

    tiers = await list_active_tiers(db, at=now)

    for vendor in vendors:
        expired_tier_id = vendor.manual_tier_id
        try:
            async with db.begin_nested():
                tier = resolve_automatic_tier(VendorMetrics.from_vendor(vendor), tiers)
                vendor.manual_tier_id = None
                vendor.manual_tier_expires_at = None
                memoise_tier(vendor, tier)
                await db.flush()
        except (PricingEngineError, SQLAlchemyError) as exc:
            logger.error("Failed to clear expired manual tier of vendor %s: %s", vendor.id, exc)
            result.errors.append(f"vendor {vendor.id}: {exc}")
            continue

        result.cleared_count += 1
        logger.info(
            "Manual tier expired: vendor=%s, manual tier=%s, now on %s (%s)",
            vendor.id,
            expired_tier_id,
            tier.name,
            tier.id,
        )

    logger.info(
        "Tier expiry sweep at %s: cleared=%d, errors=%d",
        now.isoformat(),
        result.cleared_count,
        len(result.errors),
    )
    return result


# ---------------------------------------------------------------------------
# CLI entry point (for manual runs / simple cron)
# ---------------------------------------------------------------------------

async def _cli_main() -> int:
    """Run one sweep with its own session; return the process exit status."""
    from tourbook.api.deps import async_session_factory

    async with async_session_factory() as session:
        try:
            result = await sweep_expired_manual_tiers(session)
            await session.commit()
        except Exception:
            await session.rollback()
            logger.exception("Tier expiry sweep failed")
            raise

    print(f"Tier expiry sweep completed: cleared={result.cleared_count}, "  # noqa: T201
          f"errors={len(result.errors)}")
    for error in result.errors:
        print(f"  {error}")  # noqa: T201
    return 1 if result.errors else 0


if __name__ == "__main__":
    from tourbook.core.config import settings

    logging.basicConfig(level=settings.log_level)
    sys.exit(asyncio.run(_cli_main()))
