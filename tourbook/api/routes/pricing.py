"""
Booking pricing API routes
==========================

  GET  /api/v1/pricing/preview                            -- Price a hypothetical booking
  POST /api/v1/pricing/bookings/{booking_id}/commission   -- Freeze breakdown on a booking
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Query

from tourbook.api.deps import DBSession
from tourbook.api.errors import to_http_exception
from tourbook.api.schemas.pricing import PaymentBreakdownOut, PricingPreviewOut
from tourbook.core.exceptions import PricingEngineError
from tourbook.services.commissionEngine import get_pricing_preview, price_booking

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pricing", tags=["Pricing"])


# ---------------------------------------------------------------------------
# GET /api/v1/pricing/preview
# ---------------------------------------------------------------------------

@router.get(
    "/preview",
    response_model=PricingPreviewOut,
    summary="Preview the payment breakdown of a booking",
    description=(
        "Applies the pricing precedence (service override, manual tier, "
        "automatic tier) to a booking of the service and describes the rule "
        "that applied.  Nothing is persisted."
    ),
)
async def preview_pricing(
    db: DBSession,
    service_id: uuid.UUID = Query(description="UUID of the booked service"),
    amount: Optional[Decimal] = Query(
        default=None,
        description="Gross amount; defaults to the service's list price",
    ),
) -> PricingPreviewOut:
    try:
        preview = await get_pricing_preview(db, service_id, gross_amount=amount)
    except PricingEngineError as exc:
        raise to_http_exception(exc)

    return PricingPreviewOut.model_validate(preview)


# ---------------------------------------------------------------------------
# POST /api/v1/pricing/bookings/{booking_id}/commission
# ---------------------------------------------------------------------------

@router.post(
    "/bookings/{booking_id}/commission",
    response_model=PaymentBreakdownOut,
    summary="Compute and freeze the commission of a booking",
    description=(
        "Computes the payment breakdown of the booking from the current "
        "pricing snapshot and stores it on the booking.  A booking can only "
        "be priced once; later tier or override changes never alter it."
    ),
)
async def record_booking_commission(
    booking_id: uuid.UUID,
    db: DBSession,
) -> PaymentBreakdownOut:
    try:
        breakdown = await price_booking(db, booking_id)
    except PricingEngineError as exc:
        raise to_http_exception(exc)

    return PaymentBreakdownOut.model_validate(breakdown)
