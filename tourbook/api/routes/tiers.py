"""
Pricing tier API routes
=======================

Tier catalog administration, vendor tier status and manual tiers.

  GET    /api/v1/pricing/tiers                           -- List tiers with vendor counts
  POST   /api/v1/pricing/tiers                           -- Create a tier
  PATCH  /api/v1/pricing/tiers/{tier_id}                 -- Update a tier
  POST   /api/v1/pricing/tiers/{tier_id}/deactivate      -- Deactivate a tier
  POST   /api/v1/pricing/tiers/sweep-expired             -- Clear expired manual tiers
  GET    /api/v1/pricing/vendors/{vendor_id}/tier        -- Effective tier + progress
  PUT    /api/v1/pricing/vendors/{vendor_id}/manual-tier -- Assign a manual tier
  DELETE /api/v1/pricing/vendors/{vendor_id}/manual-tier -- Clear the manual tier
"""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Query, status

from tourbook.api.deps import DBSession
from tourbook.api.errors import to_http_exception
from tourbook.api.schemas.tier import (
    ManualTierAssignRequest,
    NextTierOut,
    SweepResultOut,
    TierCreateRequest,
    TierOut,
    TierUpdateRequest,
    TierWithVendorCountOut,
    VendorManualTierOut,
    VendorTierOut,
)
from tourbook.core.exceptions import PricingEngineError
from tourbook.jobs.tierExpirySweeper import sweep_expired_manual_tiers
from tourbook.services.tierCatalog import (
    count_vendors_by_tier,
    create_tier,
    deactivate_tier,
    list_active_tiers,
    list_all_tiers,
    update_tier,
)
from tourbook.services.tierResolver import (
    assign_manual_tier,
    clear_manual_tier,
    get_vendor_tier_status,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pricing", tags=["Pricing Tiers"])


# ---------------------------------------------------------------------------
# Tier catalog
# ---------------------------------------------------------------------------

@router.get(
    "/tiers",
    response_model=list[TierWithVendorCountOut],
    summary="List pricing tiers",
)
async def list_tiers(
    db: DBSession,
    include_inactive: bool = Query(default=False, description="Include deactivated tiers"),
) -> list[TierWithVendorCountOut]:
    tiers = await list_all_tiers(db) if include_inactive else await list_active_tiers(db)
    counts = await count_vendors_by_tier(db)
    return [
        TierWithVendorCountOut.model_validate(tier).model_copy(
            update={"vendor_count": counts.get(tier.id, 0)}
        )
        for tier in tiers
    ]


@router.post(
    "/tiers",
    response_model=TierOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a pricing tier",
)
async def create_pricing_tier(body: TierCreateRequest, db: DBSession) -> TierOut:
    try:
        tier = await create_tier(db, **body.model_dump())
    except PricingEngineError as exc:
        raise to_http_exception(exc)
    return TierOut.model_validate(tier)


@router.patch(
    "/tiers/{tier_id}",
    response_model=TierOut,
    summary="Update a pricing tier",
)
async def update_pricing_tier(
    tier_id: uuid.UUID,
    body: TierUpdateRequest,
    db: DBSession,
) -> TierOut:
    try:
        tier = await update_tier(db, tier_id, body.model_dump(exclude_unset=True))
    except PricingEngineError as exc:
        raise to_http_exception(exc)
    return TierOut.model_validate(tier)


@router.post(
    "/tiers/{tier_id}/deactivate",
    response_model=TierOut,
    summary="Deactivate a pricing tier",
    description="Tiers are never deleted so historical bookings keep their reference.",
)
async def deactivate_pricing_tier(tier_id: uuid.UUID, db: DBSession) -> TierOut:
    try:
        tier = await deactivate_tier(db, tier_id)
    except PricingEngineError as exc:
        raise to_http_exception(exc)
    return TierOut.model_validate(tier)


@router.post(
    "/tiers/sweep-expired",
    response_model=SweepResultOut,
    summary="Clear expired manual tiers",
    description=(
        "Puts every vendor whose manual tier has expired back on its "
        "automatic tier.  Per-vendor failures are reported, not raised."
    ),
)
async def sweep_expired(db: DBSession) -> SweepResultOut:
    result = await sweep_expired_manual_tiers(db)
    return SweepResultOut.model_validate(result)


# ---------------------------------------------------------------------------
# Vendor tiers
# ---------------------------------------------------------------------------

@router.get(
    "/vendors/{vendor_id}/tier",
    response_model=VendorTierOut,
    summary="Get a vendor's effective tier",
)
async def get_vendor_tier(vendor_id: uuid.UUID, db: DBSession) -> VendorTierOut:
    try:
        tier_status = await get_vendor_tier_status(db, vendor_id)
    except PricingEngineError as exc:
        raise to_http_exception(exc)

    vendor = tier_status.vendor
    progress = tier_status.next_tier
    return VendorTierOut(
        vendor_id=vendor.id,
        tier=TierOut.model_validate(tier_status.resolution.tier),
        source=tier_status.resolution.source,
        current_tier_id=vendor.current_tier_id,
        current_commission_rate=vendor.current_commission_rate,
        manual_tier_id=vendor.manual_tier_id,
        manual_tier_expires_at=vendor.manual_tier_expires_at,
        monthly_booking_count=vendor.monthly_booking_count,
        average_rating=vendor.average_rating,
        next_tier=NextTierOut(
            next_tier=TierOut.model_validate(progress.next_tier) if progress.next_tier else None,
            progress_percentage=progress.progress_percentage,
            requirements=progress.requirements,
        ),
    )


@router.put(
    "/vendors/{vendor_id}/manual-tier",
    response_model=VendorManualTierOut,
    summary="Assign a manual tier to a vendor",
)
async def put_manual_tier(
    vendor_id: uuid.UUID,
    body: ManualTierAssignRequest,
    db: DBSession,
) -> VendorManualTierOut:
    try:
        vendor = await assign_manual_tier(db, vendor_id, body.tier_id, body.expires_at)
    except PricingEngineError as exc:
        raise to_http_exception(exc)
    return VendorManualTierOut.model_validate(vendor)


@router.delete(
    "/vendors/{vendor_id}/manual-tier",
    response_model=VendorManualTierOut,
    summary="Clear a vendor's manual tier",
)
async def delete_manual_tier(vendor_id: uuid.UUID, db: DBSession) -> VendorManualTierOut:
    try:
        vendor = await clear_manual_tier(db, vendor_id)
    except PricingEngineError as exc:
        raise to_http_exception(exc)
    return VendorManualTierOut.model_validate(vendor)
