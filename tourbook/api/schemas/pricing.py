"""
Pydantic v2 schemas for booking pricing and service pricing overrides.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from tourbook.models import CommissionType, FeePayer, PricingSource


# ---------------------------------------------------------------------------
# Payment breakdown
# ---------------------------------------------------------------------------

class PaymentBreakdownOut(BaseModel):
    """Payment breakdown of a booking."""

    model_config = ConfigDict(from_attributes=True)

    gross_amount: Decimal
    commission_rate: Decimal = Field(description="Commission as a fraction of gross")
    commission_amount: Decimal
    vendor_payout_amount: Decimal
    tourist_fee_share: Decimal
    vendor_fee_share: Decimal
    total_amount: Decimal = Field(description="What the tourist pays")
    source: PricingSource
    fee_payer: FeePayer
    pricing_reference_id: uuid.UUID = Field(
        description="Override or tier that priced the booking",
    )
    tier_name: Optional[str] = None
    currency: str
    calculated_at: datetime


class PricingPreviewOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    service_id: uuid.UUID
    vendor_id: uuid.UUID
    breakdown: PaymentBreakdownOut
    applied_rule: str


# ---------------------------------------------------------------------------
# Service pricing overrides
# ---------------------------------------------------------------------------

class OverrideCreateRequest(BaseModel):
    """Body for creating a service pricing override."""

    service_id: uuid.UUID
    override_type: str = Field(default="percentage", description="percentage or fixed")
    override_value: Decimal
    fee_payer: str = Field(description="platform, tourist, vendor or shared")
    tourist_percentage: Optional[Decimal] = None
    vendor_percentage: Optional[Decimal] = None
    effective_from: Optional[datetime] = Field(default=None, description="Defaults to now")
    effective_until: Optional[datetime] = None
    override_enabled: bool = True
    created_by: str = Field(min_length=1)


class OverrideUpdateRequest(BaseModel):
    """Partial update of an override.  Only supplied fields change."""

    override_enabled: Optional[bool] = None
    override_type: Optional[str] = None
    override_value: Optional[Decimal] = None
    fee_payer: Optional[str] = None
    tourist_percentage: Optional[Decimal] = None
    vendor_percentage: Optional[Decimal] = None
    effective_from: Optional[datetime] = None
    effective_until: Optional[datetime] = None


class OverrideOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    service_id: uuid.UUID
    override_enabled: bool
    override_type: CommissionType
    override_value: Decimal
    fee_payer: FeePayer
    tourist_percentage: Optional[Decimal] = None
    vendor_percentage: Optional[Decimal] = None
    effective_from: datetime
    effective_until: Optional[datetime] = None
    created_by: str
