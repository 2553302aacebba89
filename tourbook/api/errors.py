"""Translation of pricing engine errors into HTTP errors."""

from __future__ import annotations

from fastapi import HTTPException, status

from tourbook.core.exceptions import (
    NoTiersConfigured,
    PaymentAlreadyRecorded,
    PricingEngineError,
    RecordNotFound,
)

_STATUS_BY_ERROR: list[tuple[type[PricingEngineError], int]] = [
    (RecordNotFound, status.HTTP_404_NOT_FOUND),
    (PaymentAlreadyRecorded, status.HTTP_409_CONFLICT),
    (NoTiersConfigured, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def to_http_exception(exc: PricingEngineError) -> HTTPException:
    """Map an engine error to an HTTPException; validation errors become 422."""
    for error_cls, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=422, detail=str(exc))
