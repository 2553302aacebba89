"""
Service Pricing Overrides for Tourbook.

An override replaces the vendor's tier commission for one service during a
time window and decides who bears the fee:

- ``platform`` / ``vendor``: fee comes out of the vendor payout
- ``tourist``: fee is added on top of the tourist's price
- ``shared``: fee is split by ``tourist_percentage`` / ``vendor_percentage``
  (which must sum to 100)

Selection rule for "the" active override of a service at an instant:

    enabled, effective_from <= now, effective_until is NULL or >= now,
    latest effective_from wins.

Rows tying on ``effective_from`` are broken by the highest id (string
order) and reported with a warning, since a tie means two admins entered
competing overrides.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Sequence

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.core.clock import as_utc, utcnow
from tourbook.core.config import settings
from tourbook.core.exceptions import (
    InvalidPricingRule,
    MisconfiguredSharedSplit,
    OverrideAmbiguous,
    RecordNotFound,
)
from tourbook.models import (
    CommissionType,
    FeePayer,
    Service,
    ServicePricingOverride,
    ServiceStatus,
)
from tourbook.services.tierCatalog import MAX_PERCENTAGE, parse_commission_type

logger = logging.getLogger(__name__)

_UPDATABLE_OVERRIDE_FIELDS = frozenset({
    "override_enabled",
    "override_type",
    "override_value",
    "fee_payer",
    "tourist_percentage",
    "vendor_percentage",
    "effective_from",
    "effective_until",
})


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def parse_fee_payer(raw: Any) -> FeePayer:
    """Trim and lower-case a fee payer before checking it."""
    if isinstance(raw, FeePayer):
        return raw
    normalised = str(raw).strip().lower() if raw is not None else ""
    try:
        return FeePayer(normalised)
    except ValueError:
        valid = ", ".join(p.value for p in FeePayer)
        raise InvalidPricingRule(
            f"Invalid fee_payer value: {raw!r}. Must be one of {valid}"
        ) from None


def shared_split_is_valid(
    tourist_percentage: Optional[Decimal],
    vendor_percentage: Optional[Decimal],
    tolerance: Optional[Decimal] = None,
) -> bool:
    """Whether the two shares add up to 100 within ``tolerance``."""
    if tourist_percentage is None or vendor_percentage is None:
        return False
    if tolerance is None:
        tolerance = settings.shared_split_tolerance
    total = Decimal(str(tourist_percentage)) + Decimal(str(vendor_percentage))
    return abs(total - MAX_PERCENTAGE) <= tolerance


def validate_override_fields(
    *,
    override_type: CommissionType,
    override_value: Decimal,
    fee_payer: FeePayer,
    tourist_percentage: Optional[Decimal],
    vendor_percentage: Optional[Decimal],
    effective_from: Optional[datetime],
    effective_until: Optional[datetime],
) -> None:
    """Reject override definitions that cannot price a booking.

    Raises:
        InvalidPricingRule: On a bad value, percentage or window.
        MisconfiguredSharedSplit: If a shared split does not sum to 100.
    """
    if override_value is None or override_value < 0:
        raise InvalidPricingRule(
            f"Override value must not be negative, got {override_value}"
        )
    if override_type == CommissionType.PERCENTAGE and override_value > MAX_PERCENTAGE:
        raise InvalidPricingRule(
            f"Percentage override must be at most 100, got {override_value}"
        )
    for label, pct in (("tourist", tourist_percentage), ("vendor", vendor_percentage)):
        if pct is not None and not (Decimal("0") <= pct <= MAX_PERCENTAGE):
            raise InvalidPricingRule(f"{label}_percentage must be between 0 and 100, got {pct}")
    if fee_payer == FeePayer.SHARED and not shared_split_is_valid(
        tourist_percentage, vendor_percentage
    ):
        raise MisconfiguredSharedSplit(tourist_percentage, vendor_percentage)
    if effective_from is not None and effective_until is not None:
        if as_utc(effective_until) <= as_utc(effective_from):
            raise InvalidPricingRule("effective_until must be later than effective_from")


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def override_is_effective(override: ServicePricingOverride, now: datetime) -> bool:
    """Enabled and ``now`` inside [effective_from, effective_until]."""
    if not override.override_enabled:
        return False
    moment = as_utc(now)
    effective_from = as_utc(override.effective_from)
    effective_until = as_utc(override.effective_until)
    if effective_from is None or effective_from > moment:
        return False
    return effective_until is None or effective_until >= moment


def select_active_override(
    overrides: Sequence[ServicePricingOverride],
    now: datetime,
    service_id: Optional[uuid.UUID] = None,
) -> Optional[ServicePricingOverride]:
    """Apply the selection rule to an in-memory list of overrides."""
    candidates = [
        o for o in overrides
        if override_is_effective(o, now) and (service_id is None or o.service_id == service_id)
    ]
    if not candidates:
        return None

    latest = max(as_utc(o.effective_from) for o in candidates)
    tied = [o for o in candidates if as_utc(o.effective_from) == latest]
    chosen = max(tied, key=lambda o: str(o.id))

    if len(tied) > 1:
        ambiguity = OverrideAmbiguous(chosen.service_id, [o.id for o in tied])
        logger.warning("%s; using override %s", ambiguity, chosen.id)

    return chosen


async def active_override_for(
    db: AsyncSession,
    service_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> Optional[ServicePricingOverride]:
    """Return the override pricing ``service_id`` at ``now``, if any."""
    moment = as_utc(now) or utcnow()
    stmt = (
        select(ServicePricingOverride)
        .where(
            and_(
                ServicePricingOverride.service_id == service_id,
                ServicePricingOverride.override_enabled == True,  # noqa: E712
                ServicePricingOverride.effective_from <= moment,
                (
                    ServicePricingOverride.effective_until.is_(None)
                    | (ServicePricingOverride.effective_until >= moment)
                ),
            )
        )
        .order_by(ServicePricingOverride.effective_from.desc())
    )
    result = await db.execute(stmt)
    return select_active_override(result.scalars().all(), moment, service_id)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def get_override(db: AsyncSession, override_id: uuid.UUID) -> ServicePricingOverride:
    """Fetch an override by ID or raise RecordNotFound."""
    result = await db.execute(
        select(ServicePricingOverride).where(ServicePricingOverride.id == override_id)
    )
    override = result.scalar_one_or_none()
    if override is None:
        raise RecordNotFound(f"Service pricing override not found: {override_id}")
    return override


async def list_overrides_for_service(
    db: AsyncSession,
    service_id: uuid.UUID,
) -> list[ServicePricingOverride]:
    """All overrides of a service, newest window first."""
    stmt = (
        select(ServicePricingOverride)
        .where(ServicePricingOverride.service_id == service_id)
        .order_by(ServicePricingOverride.effective_from.desc())
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def services_with_active_overrides(
    db: AsyncSession,
    vendor_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> list[uuid.UUID]:
    """IDs of a vendor's approved services that keep override pricing.

    Used to report the impact of a tier change: these services are not
    affected by the vendor's new tier.
    """
    moment = as_utc(now) or utcnow()
    stmt = (
        select(ServicePricingOverride)
        .join(Service, Service.id == ServicePricingOverride.service_id)
        .where(
            and_(
                Service.vendor_id == vendor_id,
                Service.status == ServiceStatus.APPROVED,
                ServicePricingOverride.override_enabled == True,  # noqa: E712
            )
        )
    )
    result = await db.execute(stmt)
    overrides = result.scalars().all()

    service_ids: list[uuid.UUID] = []
    for override in overrides:
        if override.service_id not in service_ids and override_is_effective(override, moment):
            service_ids.append(override.service_id)
    return service_ids


# ---------------------------------------------------------------------------
# Administrative mutations
# ---------------------------------------------------------------------------

async def create_override(
    db: AsyncSession,
    *,
    service_id: uuid.UUID,
    override_type: Any,
    override_value: Decimal,
    fee_payer: Any,
    created_by: str,
    tourist_percentage: Optional[Decimal] = None,
    vendor_percentage: Optional[Decimal] = None,
    effective_from: Optional[datetime] = None,
    effective_until: Optional[datetime] = None,
    override_enabled: bool = True,
) -> ServicePricingOverride:
    """Create a pricing override for a service.

    Raises:
        RecordNotFound: If the service does not exist.
        InvalidPricingRule / MisconfiguredSharedSplit: On invalid fields.
    """
    result = await db.execute(select(Service.id).where(Service.id == service_id))
    if result.scalar_one_or_none() is None:
        raise RecordNotFound(f"Service not found: {service_id}")

    otype = parse_commission_type(override_type)
    payer = parse_fee_payer(fee_payer)
    effective_from = as_utc(effective_from) or utcnow()
    effective_until = as_utc(effective_until)
    validate_override_fields(
        override_type=otype,
        override_value=override_value,
        fee_payer=payer,
        tourist_percentage=tourist_percentage,
        vendor_percentage=vendor_percentage,
        effective_from=effective_from,
        effective_until=effective_until,
    )

    override = ServicePricingOverride(
        service_id=service_id,
        override_enabled=override_enabled,
        override_type=otype,
        override_value=override_value,
        fee_payer=payer,
        tourist_percentage=tourist_percentage,
        vendor_percentage=vendor_percentage,
        effective_from=effective_from,
        effective_until=effective_until,
        created_by=created_by,
    )
    db.add(override)
    await db.flush()

    logger.info(
        "Pricing override created: id=%s, service=%s, %s=%s, payer=%s, by=%s",
        override.id,
        service_id,
        otype.value,
        override_value,
        payer.value,
        created_by,
    )
    return override


async def update_override(
    db: AsyncSession,
    override_id: uuid.UUID,
    updates: dict[str, Any],
) -> ServicePricingOverride:
    """Apply a partial update to an override and re-validate the result."""
    unknown = set(updates) - _UPDATABLE_OVERRIDE_FIELDS
    if unknown:
        raise InvalidPricingRule(
            f"Cannot update override fields: {', '.join(sorted(unknown))}"
        )

    override = await get_override(db, override_id)

    merged = {
        "override_enabled": override.override_enabled,
        "override_type": override.override_type,
        "override_value": override.override_value,
        "fee_payer": override.fee_payer,
        "tourist_percentage": override.tourist_percentage,
        "vendor_percentage": override.vendor_percentage,
        "effective_from": as_utc(override.effective_from),
        "effective_until": as_utc(override.effective_until),
    }
    merged.update(updates)
    merged["override_type"] = parse_commission_type(merged["override_type"])
    merged["fee_payer"] = parse_fee_payer(merged["fee_payer"])
    if merged["effective_from"] is None:
        raise InvalidPricingRule("Override field effective_from cannot be null")
    if merged["override_enabled"] is None:
        raise InvalidPricingRule("Override field override_enabled cannot be null")
    merged["effective_from"] = as_utc(merged["effective_from"])
    merged["effective_until"] = as_utc(merged["effective_until"])

    validate_override_fields(
        override_type=merged["override_type"],
        override_value=merged["override_value"],
        fee_payer=merged["fee_payer"],
        tourist_percentage=merged["tourist_percentage"],
        vendor_percentage=merged["vendor_percentage"],
        effective_from=merged["effective_from"],
        effective_until=merged["effective_until"],
    )

    for key, value in merged.items():
        setattr(override, key, value)
    await db.flush()

    logger.info("Pricing override updated: id=%s, fields=%s", override.id, sorted(updates))
    return override


async def delete_override(db: AsyncSession, override_id: uuid.UUID) -> None:
    """Delete an override.  Bookings keep their frozen breakdown."""
    override = await get_override(db, override_id)
    await db.delete(override)
    await db.flush()

    logger.info("Pricing override deleted: id=%s, service=%s", override_id, override.service_id)
