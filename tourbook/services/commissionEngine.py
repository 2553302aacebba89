"""
Commission Calculator for Tourbook bookings.

Precedence (highest first), dispatched on ``PricingSource``:

1. SERVICE_OVERRIDE -- an active override of the booked service
2. MANUAL_TIER      -- the vendor's live manual tier
3. AUTOMATIC_TIER   -- the tier earned from the vendor's metrics

Fee distribution for overrides:

    payer      tourist pays          vendor payout
    platform   gross                 gross - fee
    vendor     gross                 gross - fee
    tourist    gross + fee           gross
    shared     gross + fee * t%      gross - fee * v%

Tier commissions always come out of the vendor payout.

Money is rounded half-up to the currency's minor unit, once per final
amount.  For tier pricing the vendor payout is derived by subtraction, so
``vendor_payout_amount + commission_amount == gross_amount`` holds exactly.
A gross amount finer than the currency's minor unit is rejected.

``compute_payment`` is pure; ``calculate_booking_payment`` loads one
snapshot of the rows it needs and ``price_booking`` freezes the result onto
the booking.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Callable, Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.core.clock import as_utc, utcnow
from tourbook.core.config import settings
from tourbook.core.exceptions import (
    InvalidGrossAmount,
    MisconfiguredSharedSplit,
    PaymentAlreadyRecorded,
    RecordNotFound,
)
from tourbook.models import (
    Booking,
    CommissionType,
    FeePayer,
    PricingSource,
    PricingTier,
    Service,
    ServicePricingOverride,
)
from tourbook.services.overrideService import (
    active_override_for,
    select_active_override,
    shared_split_is_valid,
)
from tourbook.services.tierCatalog import list_active_tiers
from tourbook.services.tierResolver import (
    get_vendor,
    resolve_effective_tier_or_automatic,
)

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
ZERO = Decimal("0")
RATE_PRECISION = Decimal("0.0001")


# ---------------------------------------------------------------------------
# Response DTOs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PaymentBreakdown:
    """Payment breakdown of one booking, frozen at booking time."""
    gross_amount: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    vendor_payout_amount: Decimal
    tourist_fee_share: Decimal
    vendor_fee_share: Decimal
    total_amount: Decimal

    source: PricingSource
    fee_payer: FeePayer
    pricing_reference_id: uuid.UUID
    tier_name: Optional[str] = None

    currency: str = "UGX"
    calculated_at: datetime = field(default_factory=utcnow)


@dataclass
class PricingPreview:
    """What a booking of a service would cost, with the rule that applies."""
    service_id: uuid.UUID
    vendor_id: uuid.UUID
    breakdown: PaymentBreakdown
    applied_rule: str


# ---------------------------------------------------------------------------
# Money helpers
# ---------------------------------------------------------------------------

def minor_units_for(currency: str) -> int:
    return settings.currency_minor_units.get(currency.upper(), 2)


def round_money(amount: Decimal, currency: Optional[str] = None) -> Decimal:
    """Round half-up to the minor unit of ``currency`` (default currency if omitted)."""
    places = minor_units_for(currency or settings.currency)
    exponent = Decimal(1).scaleb(-places)
    return amount.quantize(exponent, rounding=ROUND_HALF_UP)


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidGrossAmount(value) from None


def _raw_fee(rule_type: CommissionType, value: Decimal, gross: Decimal) -> Decimal:
    """Unrounded fee of a percentage or fixed rule."""
    value = Decimal(str(value))
    if rule_type == CommissionType.FIXED:
        return value
    return gross * value / HUNDRED


def _effective_rate(commission: Decimal, gross: Decimal) -> Decimal:
    return (commission / gross).quantize(RATE_PRECISION, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Fee payer dispatch
# ---------------------------------------------------------------------------

# Each splitter returns (total_amount, vendor_payout_amount).
FeeSplitter = Callable[
    [Decimal, Decimal, Decimal, ServicePricingOverride, str], tuple[Decimal, Decimal]
]


def _vendor_pays(gross: Decimal, fee: Decimal, raw_fee: Decimal,
                 override: ServicePricingOverride, currency: str) -> tuple[Decimal, Decimal]:
    return gross, gross - fee


def _tourist_pays(gross: Decimal, fee: Decimal, raw_fee: Decimal,
                  override: ServicePricingOverride, currency: str) -> tuple[Decimal, Decimal]:
    return gross + fee, gross


def _shared(gross: Decimal, fee: Decimal, raw_fee: Decimal,
            override: ServicePricingOverride, currency: str) -> tuple[Decimal, Decimal]:
    if not shared_split_is_valid(override.tourist_percentage, override.vendor_percentage):
        raise MisconfiguredSharedSplit(override.tourist_percentage, override.vendor_percentage)
    tourist_pct = Decimal(str(override.tourist_percentage))
    vendor_pct = Decimal(str(override.vendor_percentage))
    # Both sides are rounded from the unrounded fee, so the shares can differ
    # from the rounded fee by one minor unit.
    total = round_money(gross + raw_fee * tourist_pct / HUNDRED, currency)
    payout = round_money(gross - raw_fee * vendor_pct / HUNDRED, currency)
    return total, payout


# PLATFORM is charged against the vendor payout like VENDOR (see DESIGN.md)
_FEE_SPLITTERS: dict[FeePayer, FeeSplitter] = {
    FeePayer.PLATFORM: _vendor_pays,
    FeePayer.VENDOR: _vendor_pays,
    FeePayer.TOURIST: _tourist_pays,
    FeePayer.SHARED: _shared,
}


# ---------------------------------------------------------------------------
# Pure calculation
# ---------------------------------------------------------------------------

def _price_with_override(
    gross: Decimal,
    override: ServicePricingOverride,
    currency: str,
    now: datetime,
) -> PaymentBreakdown:
    raw_fee = _raw_fee(override.override_type, override.override_value, gross)
    fee = round_money(raw_fee, currency)
    payer = FeePayer(override.fee_payer)
    total, payout = _FEE_SPLITTERS[payer](gross, fee, raw_fee, override, currency)

    return PaymentBreakdown(
        gross_amount=gross,
        commission_rate=_effective_rate(fee, gross),
        commission_amount=fee,
        vendor_payout_amount=payout,
        tourist_fee_share=total - gross,
        vendor_fee_share=gross - payout,
        total_amount=total,
        source=PricingSource.SERVICE_OVERRIDE,
        fee_payer=payer,
        pricing_reference_id=override.id,
        currency=currency,
        calculated_at=now,
    )


def _price_with_tier(
    gross: Decimal,
    tier: PricingTier,
    source: PricingSource,
    currency: str,
    now: datetime,
) -> PaymentBreakdown:
    commission = round_money(_raw_fee(tier.commission_type, tier.commission_value, gross), currency)

    return PaymentBreakdown(
        gross_amount=gross,
        commission_rate=_effective_rate(commission, gross),
        commission_amount=commission,
        vendor_payout_amount=gross - commission,
        tourist_fee_share=ZERO,
        vendor_fee_share=commission,
        total_amount=gross,
        source=source,
        fee_payer=FeePayer.VENDOR,
        pricing_reference_id=tier.id,
        tier_name=tier.name,
        currency=currency,
        calculated_at=now,
    )


def compute_payment(
    gross_amount: Any,
    service_id: uuid.UUID,
    vendor: Any,
    now: datetime,
    tiers: Sequence[PricingTier],
    overrides: Sequence[ServicePricingOverride] = (),
    currency: Optional[str] = None,
) -> PaymentBreakdown:
    """Compute the payment breakdown of one booking.

    Args:
        gross_amount: Price of the booked service, in major units.
        service_id: The booked service; only its overrides are considered.
        vendor: The vendor row (metrics and manual tier fields).
        now: Pricing instant.
        tiers: Active tier catalog.
        overrides: Candidate overrides (filtered here by service and window).
        currency: ISO currency code; defaults to ``settings.currency``.

    Raises:
        InvalidGrossAmount: If gross_amount is not a positive number or has
            more decimal places than the currency's minor unit.
        MisconfiguredSharedSplit: If the active override splits the fee
            with percentages that do not sum to 100.
        NoTiersConfigured: If no override applies and the catalog is empty.
    """
    gross = _to_decimal(gross_amount)
    if not gross.is_finite() or gross <= 0:
        raise InvalidGrossAmount(gross_amount)

    currency = (currency or settings.currency).upper()
    if round_money(gross, currency) != gross:
        raise InvalidGrossAmount(gross_amount)
    moment = as_utc(now)

    override = select_active_override(overrides, moment, service_id)
    if override is not None:
        return _price_with_override(gross, override, currency, moment)

    resolution = resolve_effective_tier_or_automatic(vendor, moment, tiers)
    return _price_with_tier(gross, resolution.tier, resolution.source, currency, moment)


def _format_value(rule_type: CommissionType, value: Decimal, currency: str) -> str:
    value = Decimal(str(value)).normalize()
    if rule_type == CommissionType.PERCENTAGE:
        return f"{value:f}%"
    return f"{value:f} {currency} fixed"


def describe_applied_rule(
    breakdown: PaymentBreakdown,
    rule: Union[ServicePricingOverride, PricingTier],
) -> str:
    """Human readable description of the rule that priced ``breakdown``."""
    if breakdown.source == PricingSource.SERVICE_OVERRIDE:
        value = _format_value(rule.override_type, rule.override_value, breakdown.currency)
        if breakdown.fee_payer == FeePayer.SHARED:
            payer = (
                f"shared (tourist {Decimal(str(rule.tourist_percentage)).normalize():f}%, "
                f"vendor {Decimal(str(rule.vendor_percentage)).normalize():f}%)"
            )
        else:
            payer = f"paid by {breakdown.fee_payer.value}"
        return f"Service override: {value} fee, {payer}"

    value = _format_value(rule.commission_type, rule.commission_value, breakdown.currency)
    if breakdown.source == PricingSource.MANUAL_TIER:
        return f"Manual tier {rule.name}: {value} commission"
    return f"{rule.name} tier: {value} commission"


# ---------------------------------------------------------------------------
# Snapshot loading
# ---------------------------------------------------------------------------

async def _get_service(db: AsyncSession, service_id: uuid.UUID) -> Service:
    result = await db.execute(select(Service).where(Service.id == service_id))
    service = result.scalar_one_or_none()
    if service is None:
        raise RecordNotFound(f"Service not found: {service_id}")
    return service


async def _load_snapshot(
    db: AsyncSession,
    service_id: uuid.UUID,
    now: datetime,
) -> tuple[Service, Any, Optional[ServicePricingOverride], list[PricingTier]]:
    service = await _get_service(db, service_id)
    vendor = await get_vendor(db, service.vendor_id)
    override = await active_override_for(db, service_id, now)
    # The catalog is not consulted while an override applies
    tiers = [] if override is not None else await list_active_tiers(db, at=now)
    return service, vendor, override, tiers


async def calculate_booking_payment(
    db: AsyncSession,
    service_id: uuid.UUID,
    gross_amount: Optional[Decimal] = None,
    now: Optional[datetime] = None,
    currency: Optional[str] = None,
) -> PaymentBreakdown:
    """Compute the breakdown for a booking of ``service_id``.

    Args:
        db: Async database session.
        service_id: The booked service.
        gross_amount: Booking amount; defaults to the service's list price.
        now: Pricing instant (defaults to now).
        currency: ISO currency code (defaults to the configured currency).

    Raises:
        RecordNotFound: If the service or its vendor does not exist.
    """
    moment = as_utc(now) or utcnow()
    service, vendor, override, tiers = await _load_snapshot(db, service_id, moment)
    gross = gross_amount if gross_amount is not None else service.price

    return compute_payment(
        gross,
        service_id,
        vendor,
        moment,
        tiers,
        [override] if override is not None else [],
        currency,
    )


async def get_pricing_preview(
    db: AsyncSession,
    service_id: uuid.UUID,
    gross_amount: Optional[Decimal] = None,
    now: Optional[datetime] = None,
) -> PricingPreview:
    """Price a hypothetical booking and describe the rule that applied."""
    moment = as_utc(now) or utcnow()
    service, vendor, override, tiers = await _load_snapshot(db, service_id, moment)
    gross = gross_amount if gross_amount is not None else service.price

    breakdown = compute_payment(
        gross,
        service_id,
        vendor,
        moment,
        tiers,
        [override] if override is not None else [],
    )

    if override is not None:
        rule: Union[ServicePricingOverride, PricingTier] = override
    else:
        rule = next(t for t in tiers if t.id == breakdown.pricing_reference_id)

    return PricingPreview(
        service_id=service_id,
        vendor_id=vendor.id,
        breakdown=breakdown,
        applied_rule=describe_applied_rule(breakdown, rule),
    )


# ---------------------------------------------------------------------------
# Booking persistence
# ---------------------------------------------------------------------------

def apply_payment_to_booking(booking: Booking, breakdown: PaymentBreakdown) -> Booking:
    """Freeze ``breakdown`` onto ``booking``.

    Raises:
        PaymentAlreadyRecorded: If the booking was priced before.
    """
    if booking.priced_at is not None or booking.commission_amount is not None:
        raise PaymentAlreadyRecorded(booking.id)

    booking.gross_amount = breakdown.gross_amount
    booking.currency = breakdown.currency
    booking.commission_rate_at_booking = breakdown.commission_rate
    booking.commission_amount = breakdown.commission_amount
    booking.vendor_payout_amount = breakdown.vendor_payout_amount
    booking.tourist_fee_amount = breakdown.tourist_fee_share
    booking.vendor_fee_amount = breakdown.vendor_fee_share
    booking.total_amount = breakdown.total_amount
    booking.pricing_source = breakdown.source
    booking.pricing_reference_id = breakdown.pricing_reference_id
    booking.priced_at = breakdown.calculated_at
    return booking


async def get_booking(db: AsyncSession, booking_id: uuid.UUID) -> Booking:
    """Fetch a booking by ID or raise RecordNotFound."""
    result = await db.execute(select(Booking).where(Booking.id == booking_id))
    booking = result.scalar_one_or_none()
    if booking is None:
        raise RecordNotFound(f"Booking not found: {booking_id}")
    return booking


async def price_booking(
    db: AsyncSession,
    booking_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> PaymentBreakdown:
    """Compute and freeze the payment breakdown of an existing booking.

    Raises:
        RecordNotFound: If the booking, its service or vendor is missing.
        PaymentAlreadyRecorded: If the booking already has a breakdown.
    """
    booking = await get_booking(db, booking_id)
    if booking.priced_at is not None or booking.commission_amount is not None:
        raise PaymentAlreadyRecorded(booking.id)

    breakdown = await calculate_booking_payment(
        db,
        booking.service_id,
        gross_amount=booking.gross_amount,
        now=now,
        currency=booking.currency,
    )
    apply_payment_to_booking(booking, breakdown)
    await db.flush()

    logger.info(
        "Booking priced: booking=%s, source=%s, gross=%s, commission=%s, payout=%s, total=%s %s",
        booking.id,
        breakdown.source.value,
        breakdown.gross_amount,
        breakdown.commission_amount,
        breakdown.vendor_payout_amount,
        breakdown.total_amount,
        breakdown.currency,
    )
    return breakdown
