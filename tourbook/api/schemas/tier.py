"""
Pydantic v2 schemas for the pricing tier API.

Covers:
- Tier catalog administration (create / update / list)
- Vendor tier status and next tier progress
- Manual tier assignment
- Expiry sweep results
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from tourbook.models import CommissionType, PricingSource


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class TierCreateRequest(BaseModel):
    """Body for creating a pricing tier."""

    name: str = Field(min_length=1, max_length=100)
    commission_type: str = Field(
        default="percentage",
        description="percentage (of gross) or fixed; 'flat' is accepted as fixed",
    )
    commission_value: Decimal = Field(
        description="Percentage (15 = 15%) or fixed amount in major units",
    )
    min_monthly_bookings: int = Field(default=0)
    min_rating: Optional[Decimal] = Field(default=None)
    priority_order: int = Field(description="Lower is the more preferred tier")
    effective_from: Optional[datetime] = Field(
        default=None,
        description="Defaults to now",
    )
    effective_until: Optional[datetime] = None
    created_by: Optional[str] = None


class TierUpdateRequest(BaseModel):
    """Partial update of a pricing tier.  Only supplied fields change."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    commission_type: Optional[str] = None
    commission_value: Optional[Decimal] = None
    min_monthly_bookings: Optional[int] = None
    min_rating: Optional[Decimal] = None
    priority_order: Optional[int] = None
    effective_from: Optional[datetime] = None
    effective_until: Optional[datetime] = None


class ManualTierAssignRequest(BaseModel):
    """Pin a vendor to a tier; no expiry means indefinitely."""

    tier_id: uuid.UUID
    expires_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class TierOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    commission_type: CommissionType
    commission_value: Decimal
    min_monthly_bookings: int
    min_rating: Optional[Decimal] = None
    priority_order: int
    is_active: bool
    effective_from: datetime
    effective_until: Optional[datetime] = None
    created_by: Optional[str] = None


class TierWithVendorCountOut(TierOut):
    vendor_count: int = 0


class NextTierOut(BaseModel):
    """Progress towards the next more preferred tier."""

    next_tier: Optional[TierOut] = None
    progress_percentage: Decimal
    requirements: list[str] = Field(default_factory=list)


class VendorTierOut(BaseModel):
    """Effective tier of a vendor and the memoised values on its row."""

    vendor_id: uuid.UUID
    tier: TierOut
    source: PricingSource
    current_tier_id: Optional[uuid.UUID] = None
    current_commission_rate: Optional[Decimal] = None
    manual_tier_id: Optional[uuid.UUID] = None
    manual_tier_expires_at: Optional[datetime] = None
    monthly_booking_count: int
    average_rating: Optional[Decimal] = None
    next_tier: NextTierOut


class VendorManualTierOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    current_tier_id: Optional[uuid.UUID] = None
    current_commission_rate: Optional[Decimal] = None
    manual_tier_id: Optional[uuid.UUID] = None
    manual_tier_expires_at: Optional[datetime] = None


class SweepResultOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    cleared_count: int
    errors: list[str]
