"""
Tier Catalog for Tourbook.

Holds the ordered set of commission tiers (Bronze, Silver, Gold, Platinum).
Each tier carries eligibility thresholds (monthly bookings, minimum rating)
and a commission that is either a percentage of the gross amount or a fixed
amount.

Ordering: ``priority_order`` ascending.  A lower number is the more
preferred ("higher") tier, so the resolver walks the catalog from the best
tier down and stops at the first one the vendor qualifies for.

Tiers are never hard-deleted.  Deactivating a tier keeps the row so past
bookings that reference it stay auditable.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.core.clock import as_utc, utcnow
from tourbook.core.exceptions import InvalidPricingRule, RecordNotFound
from tourbook.models import CommissionType, PricingTier, Vendor

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MAX_RATING = Decimal("5")
MAX_PERCENTAGE = Decimal("100")

# Accepted spellings for commission / override types
_COMMISSION_TYPE_ALIASES: dict[str, CommissionType] = {
    "percentage": CommissionType.PERCENTAGE,
    "percent": CommissionType.PERCENTAGE,
    "fixed": CommissionType.FIXED,
    "flat": CommissionType.FIXED,
}

_UPDATABLE_TIER_FIELDS = frozenset({
    "name",
    "commission_type",
    "commission_value",
    "min_monthly_bookings",
    "min_rating",
    "priority_order",
    "effective_from",
    "effective_until",
})


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def parse_commission_type(raw: Any) -> CommissionType:
    """Normalise a commission type, accepting the legacy ``flat`` spelling."""
    if isinstance(raw, CommissionType):
        return raw
    key = str(raw).strip().lower() if raw is not None else ""
    try:
        return _COMMISSION_TYPE_ALIASES[key]
    except KeyError:
        raise InvalidPricingRule(
            f"Invalid commission type: {raw!r}. Must be one of percentage, fixed"
        ) from None


def order_tiers(tiers: Sequence[PricingTier]) -> list[PricingTier]:
    """Sort tiers by priority_order ascending (most preferred first).

    Equal priorities should not exist among active tiers; if they do, the tier
    id breaks the tie so the order stays deterministic.
    """
    return sorted(tiers, key=lambda t: (t.priority_order, str(t.id)))


def tier_is_effective(tier: PricingTier, at: datetime) -> bool:
    """Whether the tier is active and its effective window contains ``at``."""
    if not tier.is_active:
        return False
    effective_from = as_utc(tier.effective_from)
    effective_until = as_utc(tier.effective_until)
    if effective_from is not None and effective_from > at:
        return False
    if effective_until is not None and effective_until < at:
        return False
    return True


def filter_active_tiers(
    tiers: Sequence[PricingTier],
    at: Optional[datetime] = None,
) -> list[PricingTier]:
    """Keep active tiers (effective at ``at`` when given) in catalog order."""
    if at is None:
        return order_tiers([t for t in tiers if t.is_active])
    moment = as_utc(at)
    return order_tiers([t for t in tiers if tier_is_effective(t, moment)])


def validate_tier_fields(
    *,
    name: str,
    commission_type: CommissionType,
    commission_value: Decimal,
    min_monthly_bookings: int,
    min_rating: Optional[Decimal],
    priority_order: int,
    effective_from: Optional[datetime],
    effective_until: Optional[datetime],
) -> None:
    """Reject tier definitions that cannot price a booking sensibly.

    Raises:
        InvalidPricingRule: On the first violated constraint.
    """
    if not name or not name.strip():
        raise InvalidPricingRule("Tier name must not be empty")
    if commission_value < 0:
        raise InvalidPricingRule(
            f"Tier commission value must not be negative, got {commission_value}"
        )
    if commission_type == CommissionType.PERCENTAGE and commission_value > MAX_PERCENTAGE:
        raise InvalidPricingRule(
            f"Percentage commission must be at most 100, got {commission_value}"
        )
    if min_monthly_bookings < 0:
        raise InvalidPricingRule(
            f"min_monthly_bookings must not be negative, got {min_monthly_bookings}"
        )
    if min_rating is not None and not (Decimal("0") <= min_rating <= MAX_RATING):
        raise InvalidPricingRule(f"min_rating must be between 0 and 5, got {min_rating}")
    if priority_order < 0:
        raise InvalidPricingRule(f"priority_order must not be negative, got {priority_order}")
    if effective_from is not None and effective_until is not None:
        if as_utc(effective_until) <= as_utc(effective_from):
            raise InvalidPricingRule("effective_until must be later than effective_from")


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def list_active_tiers(
    db: AsyncSession,
    at: Optional[datetime] = None,
) -> list[PricingTier]:
    """Return active tiers ordered by priority_order ascending.

    Args:
        db: Async database session.
        at: When given, only tiers whose effective window contains this
            instant are returned.

    Returns:
        Tiers in catalog order; empty when nothing is configured.
    """
    conditions = [PricingTier.is_active == True]  # noqa: E712
    if at is not None:
        moment = as_utc(at)
        conditions.append(PricingTier.effective_from <= moment)
        conditions.append(
            PricingTier.effective_until.is_(None) | (PricingTier.effective_until >= moment)
        )

    stmt = (
        select(PricingTier)
        .where(and_(*conditions))
        .order_by(PricingTier.priority_order.asc())
    )
    result = await db.execute(stmt)
    return order_tiers(result.scalars().all())


async def list_all_tiers(db: AsyncSession) -> list[PricingTier]:
    """Return every tier, deactivated ones included, in catalog order."""
    result = await db.execute(select(PricingTier).order_by(PricingTier.priority_order.asc()))
    return order_tiers(result.scalars().all())


async def get_tier(db: AsyncSession, tier_id: uuid.UUID) -> PricingTier:
    """Fetch a tier by ID or raise RecordNotFound."""
    result = await db.execute(select(PricingTier).where(PricingTier.id == tier_id))
    tier = result.scalar_one_or_none()
    if tier is None:
        raise RecordNotFound(f"Pricing tier not found: {tier_id}")
    return tier


async def count_vendors_by_tier(db: AsyncSession) -> dict[uuid.UUID, int]:
    """Number of vendors currently memoised on each tier."""
    stmt = (
        select(Vendor.current_tier_id, func.count(Vendor.id))
        .where(Vendor.current_tier_id.isnot(None))
        .group_by(Vendor.current_tier_id)
    )
    result = await db.execute(stmt)
    return {tier_id: count for tier_id, count in result.all()}


async def _ensure_priority_free(
    db: AsyncSession,
    priority_order: int,
    exclude_id: Optional[uuid.UUID] = None,
) -> None:
    stmt = select(PricingTier.id).where(
        and_(
            PricingTier.is_active == True,  # noqa: E712
            PricingTier.priority_order == priority_order,
        )
    )
    if exclude_id is not None:
        stmt = stmt.where(PricingTier.id != exclude_id)
    result = await db.execute(stmt)
    clash = result.scalars().first()
    if clash is not None:
        raise InvalidPricingRule(
            f"priority_order {priority_order} is already used by active tier {clash}"
        )


# ---------------------------------------------------------------------------
# Administrative mutations
# ---------------------------------------------------------------------------

async def create_tier(
    db: AsyncSession,
    *,
    name: str,
    commission_type: Any,
    commission_value: Decimal,
    priority_order: int,
    min_monthly_bookings: int = 0,
    min_rating: Optional[Decimal] = None,
    effective_from: Optional[datetime] = None,
    effective_until: Optional[datetime] = None,
    created_by: Optional[str] = None,
) -> PricingTier:
    """Create a new active pricing tier.

    Raises:
        InvalidPricingRule: If the definition is invalid or the priority slot
            is already taken by another active tier.
    """
    ctype = parse_commission_type(commission_type)
    effective_from = as_utc(effective_from) or utcnow()
    effective_until = as_utc(effective_until)
    validate_tier_fields(
        name=name,
        commission_type=ctype,
        commission_value=commission_value,
        min_monthly_bookings=min_monthly_bookings,
        min_rating=min_rating,
        priority_order=priority_order,
        effective_from=effective_from,
        effective_until=effective_until,
    )
    await _ensure_priority_free(db, priority_order)

    tier = PricingTier(
        name=name.strip(),
        commission_type=ctype,
        commission_value=commission_value,
        min_monthly_bookings=min_monthly_bookings,
        min_rating=min_rating,
        priority_order=priority_order,
        is_active=True,
        effective_from=effective_from,
        effective_until=effective_until,
        created_by=created_by,
    )
    db.add(tier)
    await db.flush()

    logger.info(
        "Pricing tier created: id=%s, name=%s, %s=%s, priority=%d",
        tier.id,
        tier.name,
        ctype.value,
        commission_value,
        priority_order,
    )
    return tier


async def update_tier(
    db: AsyncSession,
    tier_id: uuid.UUID,
    updates: dict[str, Any],
) -> PricingTier:
    """Apply a partial update to a tier and re-validate the result.

    Unknown keys and ``None`` for required fields are rejected.
    """
    unknown = set(updates) - _UPDATABLE_TIER_FIELDS
    if unknown:
        raise InvalidPricingRule(f"Cannot update tier fields: {', '.join(sorted(unknown))}")

    tier = await get_tier(db, tier_id)

    merged = {
        "name": tier.name,
        "commission_type": tier.commission_type,
        "commission_value": tier.commission_value,
        "min_monthly_bookings": tier.min_monthly_bookings,
        "min_rating": tier.min_rating,
        "priority_order": tier.priority_order,
        "effective_from": as_utc(tier.effective_from),
        "effective_until": as_utc(tier.effective_until),
    }
    merged.update(updates)
    merged["commission_type"] = parse_commission_type(merged["commission_type"])
    for required in ("name", "commission_value", "min_monthly_bookings", "priority_order",
                     "effective_from"):
        if merged[required] is None:
            raise InvalidPricingRule(f"Tier field {required} cannot be null")
    merged["effective_from"] = as_utc(merged["effective_from"])
    merged["effective_until"] = as_utc(merged["effective_until"])

    validate_tier_fields(**merged)
    if tier.is_active and merged["priority_order"] != tier.priority_order:
        await _ensure_priority_free(db, merged["priority_order"], exclude_id=tier.id)

    for key, value in merged.items():
        setattr(tier, key, value)
    await db.flush()

    logger.info("Pricing tier updated: id=%s, fields=%s", tier.id, sorted(updates))
    return tier


async def deactivate_tier(db: AsyncSession, tier_id: uuid.UUID) -> PricingTier:
    """Deactivate a tier.  The row is kept for the booking audit trail."""
    tier = await get_tier(db, tier_id)
    if not tier.is_active:
        return tier

    tier.is_active = False
    await db.flush()

    logger.info("Pricing tier deactivated: id=%s, name=%s", tier.id, tier.name)
    return tier
