"""
Service pricing override API routes
===================================

  GET    /api/v1/pricing/services/{service_id}/overrides  -- List a service's overrides
  POST   /api/v1/pricing/overrides                        -- Create an override
  PATCH  /api/v1/pricing/overrides/{override_id}          -- Update an override
  DELETE /api/v1/pricing/overrides/{override_id}          -- Delete an override
"""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Response, status

from tourbook.api.deps import DBSession
from tourbook.api.errors import to_http_exception
from tourbook.api.schemas.pricing import (
    OverrideCreateRequest,
    OverrideOut,
    OverrideUpdateRequest,
)
from tourbook.core.exceptions import PricingEngineError
from tourbook.services.overrideService import (
    create_override,
    delete_override,
    list_overrides_for_service,
    update_override,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pricing", tags=["Pricing Overrides"])


@router.get(
    "/services/{service_id}/overrides",
    response_model=list[OverrideOut],
    summary="List a service's pricing overrides",
)
async def list_service_overrides(service_id: uuid.UUID, db: DBSession) -> list[OverrideOut]:
    overrides = await list_overrides_for_service(db, service_id)
    return [OverrideOut.model_validate(o) for o in overrides]


@router.post(
    "/overrides",
    response_model=OverrideOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create a service pricing override",
    description=(
        "The newest enabled override whose window contains the booking time "
        "replaces the vendor's tier commission for that service."
    ),
)
async def create_service_override(body: OverrideCreateRequest, db: DBSession) -> OverrideOut:
    try:
        override = await create_override(db, **body.model_dump())
    except PricingEngineError as exc:
        raise to_http_exception(exc)
    return OverrideOut.model_validate(override)


@router.patch(
    "/overrides/{override_id}",
    response_model=OverrideOut,
    summary="Update a service pricing override",
)
async def update_service_override(
    override_id: uuid.UUID,
    body: OverrideUpdateRequest,
    db: DBSession,
) -> OverrideOut:
    try:
        override = await update_override(db, override_id, body.model_dump(exclude_unset=True))
    except PricingEngineError as exc:
        raise to_http_exception(exc)
    return OverrideOut.model_validate(override)


@router.delete(
    "/overrides/{override_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a service pricing override",
)
async def delete_service_override(override_id: uuid.UUID, db: DBSession) -> Response:
    try:
        await delete_override(db, override_id)
    except PricingEngineError as exc:
        raise to_http_exception(exc)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
