"""
Tier Resolver and Manual Tier Overrides for Tourbook.

Automatic tier:
    Walk the catalog in ascending ``priority_order`` and return the first tier
    whose thresholds the vendor meets:

        monthly_booking_count >= tier.min_monthly_bookings
        and (tier.min_rating is None or (average_rating or 0) >= tier.min_rating)

    If nothing qualifies, fall back to the tier named "Bronze" (configurable),
    else to the tier with the lowest ``priority_order``.

Manual tier:
    An operator can pin a vendor to a tier until ``manual_tier_expires_at``
    (NULL means indefinitely).  While the pin is live it beats the automatic
    computation.  Once it expires the pin is ignored here and cleared by the
    expiry sweep (see ``tourbook.jobs.tierExpirySweeper``).

The vendor row's ``current_tier_id`` / ``current_commission_rate`` are a
memoised copy of the effective tier.  The functions in this module are pure;
the async helpers at the bottom are the write paths that re-memoise.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.core.clock import as_utc, utcnow
from tourbook.core.config import settings
from tourbook.core.exceptions import (
    InvalidPricingRule,
    ManualTierNotFound,
    NoTiersConfigured,
    RecordNotFound,
)
from tourbook.models import PricingSource, PricingTier, Vendor
from tourbook.services.tierCatalog import get_tier, list_active_tiers, order_tiers

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


# ---------------------------------------------------------------------------
# DTOs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VendorMetrics:
    """Rolling metrics a vendor is judged on."""
    monthly_booking_count: int
    average_rating: Optional[Decimal] = None

    @classmethod
    def from_vendor(cls, vendor: Any) -> "VendorMetrics":
        rating = vendor.average_rating
        return cls(
            monthly_booking_count=vendor.monthly_booking_count or 0,
            average_rating=Decimal(str(rating)) if rating is not None else None,
        )


@dataclass(frozen=True)
class TierResolution:
    """The tier that prices a vendor's bookings and how it was chosen."""
    tier: PricingTier
    source: PricingSource


@dataclass
class NextTierInfo:
    """Progress of a vendor towards the next more preferred tier."""
    current_tier: PricingTier
    next_tier: Optional[PricingTier]
    progress_percentage: Decimal
    requirements: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Automatic tier
# ---------------------------------------------------------------------------

def is_eligible_for_tier(metrics: VendorMetrics, tier: PricingTier) -> bool:
    """Check the booking-count and rating thresholds of a single tier."""
    if metrics.monthly_booking_count < tier.min_monthly_bookings:
        return False
    if tier.min_rating is not None:
        rating = metrics.average_rating or Decimal("0")
        if rating < Decimal(str(tier.min_rating)):
            return False
    return True


def resolve_automatic_tier(
    metrics: VendorMetrics,
    tiers: Sequence[PricingTier],
    fallback_name: Optional[str] = None,
) -> PricingTier:
    """Return the most preferred tier the vendor qualifies for.

    Args:
        metrics: The vendor's rolling metrics.
        tiers: Active tiers.  Re-sorted by priority_order here.
        fallback_name: Name of the tier used when nothing qualifies
            (defaults to ``settings.default_tier_name``).

    Raises:
        NoTiersConfigured: If ``tiers`` is empty.
    """
    ordered = order_tiers(tiers)
    if not ordered:
        raise NoTiersConfigured()

    for tier in ordered:
        if is_eligible_for_tier(metrics, tier):
            return tier

    wanted = fallback_name or settings.default_tier_name
    for tier in ordered:
        if tier.name == wanted:
            return tier
    return ordered[0]


# ---------------------------------------------------------------------------
# Manual tier
# ---------------------------------------------------------------------------

def manual_tier_is_active(vendor: Any, now: datetime) -> bool:
    """A manual tier is live when set and its expiry is NULL or in the future."""
    if vendor.manual_tier_id is None:
        return False
    expires_at = as_utc(vendor.manual_tier_expires_at)
    return expires_at is None or expires_at > as_utc(now)


def manual_tier_has_expired(vendor: Any, now: datetime) -> bool:
    """Predicate used by the expiry sweep: both fields set and expiry <= now."""
    expires_at = as_utc(vendor.manual_tier_expires_at)
    return (
        vendor.manual_tier_id is not None
        and expires_at is not None
        and expires_at <= as_utc(now)
    )


def resolve_effective_tier(
    vendor: Any,
    now: datetime,
    tiers: Sequence[PricingTier],
) -> TierResolution:
    """Pick the manual tier when it is live, the automatic tier otherwise.

    Raises:
        ManualTierNotFound: If the live manual tier is not among ``tiers``.
        NoTiersConfigured: If the automatic path is taken with no tiers.
    """
    if manual_tier_is_active(vendor, now):
        for tier in tiers:
            if tier.id == vendor.manual_tier_id:
                return TierResolution(tier=tier, source=PricingSource.MANUAL_TIER)
        raise ManualTierNotFound(vendor.id, vendor.manual_tier_id)

    tier = resolve_automatic_tier(VendorMetrics.from_vendor(vendor), tiers)
    return TierResolution(tier=tier, source=PricingSource.AUTOMATIC_TIER)


def effective_tier(
    vendor: Any,
    now: datetime,
    tiers: Sequence[PricingTier],
) -> PricingTier:
    """The tier that applies to ``vendor`` at ``now``."""
    return resolve_effective_tier(vendor, now, tiers).tier


def resolve_effective_tier_or_automatic(
    vendor: Any,
    now: datetime,
    tiers: Sequence[PricingTier],
) -> TierResolution:
    """Like ``resolve_effective_tier`` but a dangling manual tier falls
    through to the automatic tier with a warning."""
    try:
        return resolve_effective_tier(vendor, now, tiers)
    except ManualTierNotFound as exc:
        logger.warning("%s; falling back to automatic tier", exc)
        tier = resolve_automatic_tier(VendorMetrics.from_vendor(vendor), tiers)
        return TierResolution(tier=tier, source=PricingSource.AUTOMATIC_TIER)


def memoise_tier(vendor: Any, tier: PricingTier) -> bool:
    """Copy ``tier`` into the vendor's cached tier columns.

    Returns:
        True if the cached values changed.
    """
    changed = (
        vendor.current_tier_id != tier.id
        or vendor.current_commission_rate != tier.commission_value
    )
    vendor.current_tier_id = tier.id
    vendor.current_commission_rate = tier.commission_value
    return changed


# ---------------------------------------------------------------------------
# Next tier progress
# ---------------------------------------------------------------------------

def _progress(value: Decimal, target: Decimal) -> Decimal:
    if target <= 0:
        return HUNDRED
    return min(value / target * HUNDRED, HUNDRED)


def next_tier_progress(
    current_tier: PricingTier,
    metrics: VendorMetrics,
    tiers: Sequence[PricingTier],
) -> NextTierInfo:
    """Describe how far the vendor is from the next more preferred tier.

    The next tier is the closest tier with a lower ``priority_order`` than the
    current one.  Progress is the weaker of booking and rating progress,
    capped at 100; a vendor already on the top tier is at 100.
    """
    better = [t for t in order_tiers(tiers) if t.priority_order < current_tier.priority_order]
    if not better:
        return NextTierInfo(
            current_tier=current_tier,
            next_tier=None,
            progress_percentage=HUNDRED,
        )

    next_tier = better[-1]
    rating = metrics.average_rating or Decimal("0")

    booking_progress = _progress(
        Decimal(metrics.monthly_booking_count), Decimal(next_tier.min_monthly_bookings)
    )
    rating_progress = HUNDRED
    requirements = [
        f"{next_tier.min_monthly_bookings} monthly bookings "
        f"({metrics.monthly_booking_count} current)"
    ]
    if next_tier.min_rating is not None:
        rating_progress = _progress(rating, Decimal(str(next_tier.min_rating)))
        current_rating = (
            f"{metrics.average_rating:.1f}" if metrics.average_rating is not None else "N/A"
        )
        requirements.append(
            f"{next_tier.min_rating} average rating ({current_rating} current)"
        )

    progress = min(booking_progress, rating_progress).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP
    )
    return NextTierInfo(
        current_tier=current_tier,
        next_tier=next_tier,
        progress_percentage=progress,
        requirements=requirements,
    )


# ---------------------------------------------------------------------------
# Vendor write paths
# ---------------------------------------------------------------------------

async def get_vendor(db: AsyncSession, vendor_id: uuid.UUID) -> Vendor:
    """Fetch a vendor by ID or raise RecordNotFound."""
    result = await db.execute(select(Vendor).where(Vendor.id == vendor_id))
    vendor = result.scalar_one_or_none()
    if vendor is None:
        raise RecordNotFound(f"Vendor not found: {vendor_id}")
    return vendor


async def assign_manual_tier(
    db: AsyncSession,
    vendor_id: uuid.UUID,
    tier_id: uuid.UUID,
    expires_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Vendor:
    """Pin a vendor to ``tier_id`` until ``expires_at`` (NULL = indefinitely).

    Raises:
        RecordNotFound: If the vendor or tier does not exist.
        InvalidPricingRule: If the tier is inactive or the expiry is not in
            the future.
    """
    now = as_utc(now) or utcnow()
    vendor = await get_vendor(db, vendor_id)
    tier = await get_tier(db, tier_id)

    if not tier.is_active:
        raise InvalidPricingRule(f"Cannot assign inactive tier {tier.name} ({tier.id})")
    expires_at = as_utc(expires_at)
    if expires_at is not None and expires_at <= now:
        raise InvalidPricingRule("Manual tier expiry must be in the future")

    vendor.manual_tier_id = tier.id
    vendor.manual_tier_expires_at = expires_at
    memoise_tier(vendor, tier)
    await db.flush()

    logger.info(
        "Manual tier assigned: vendor=%s, tier=%s (%s), expires_at=%s",
        vendor.id,
        tier.name,
        tier.id,
        expires_at.isoformat() if expires_at else "never",
    )
    return vendor


async def clear_manual_tier(
    db: AsyncSession,
    vendor_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> Vendor:
    """Remove a vendor's manual tier and re-memoise the automatic tier."""
    now = as_utc(now) or utcnow()
    vendor = await get_vendor(db, vendor_id)
    tiers = await list_active_tiers(db, at=now)

    tier = resolve_automatic_tier(VendorMetrics.from_vendor(vendor), tiers)
    vendor.manual_tier_id = None
    vendor.manual_tier_expires_at = None
    memoise_tier(vendor, tier)
    await db.flush()

    logger.info(
        "Manual tier cleared: vendor=%s, automatic tier=%s (%s)",
        vendor.id,
        tier.name,
        tier.id,
    )
    return vendor


async def refresh_vendor_tier(
    db: AsyncSession,
    vendor: Vendor,
    now: Optional[datetime] = None,
    tiers: Optional[Sequence[PricingTier]] = None,
) -> TierResolution:
    """Recompute and persist the memoised tier after a metrics change."""
    now = as_utc(now) or utcnow()
    if tiers is None:
        tiers = await list_active_tiers(db, at=now)

    resolution = resolve_effective_tier_or_automatic(vendor, now, tiers)
    if memoise_tier(vendor, resolution.tier):
        await db.flush()
        logger.info(
            "Vendor tier re-memoised: vendor=%s, tier=%s, source=%s",
            vendor.id,
            resolution.tier.name,
            resolution.source.value,
        )
    return resolution


@dataclass
class VendorTierStatus:
    """Read model of a vendor's tier for the admin interface."""
    vendor: Vendor
    resolution: TierResolution
    next_tier: NextTierInfo


async def get_vendor_tier_status(
    db: AsyncSession,
    vendor_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> VendorTierStatus:
    """Effective tier of a vendor and its progress towards the next one.

    Read-only: the memoised columns are not touched.
    """
    now = as_utc(now) or utcnow()
    vendor = await get_vendor(db, vendor_id)
    tiers = await list_active_tiers(db, at=now)

    resolution = resolve_effective_tier_or_automatic(vendor, now, tiers)
    progress = next_tier_progress(resolution.tier, VendorMetrics.from_vendor(vendor), tiers)
    return VendorTierStatus(vendor=vendor, resolution=resolution, next_tier=progress)
