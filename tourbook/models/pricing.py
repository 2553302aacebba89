"""
SQLAlchemy models for pricing_tiers and service_pricing_overrides.
Corresponds to alembic revision 0001_create_pricing_tables.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class CommissionType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class FeePayer(str, enum.Enum):
    PLATFORM = "platform"
    TOURIST = "tourist"
    VENDOR = "vendor"
    SHARED = "shared"


class PricingSource(str, enum.Enum):
    """Which rule priced a booking, highest precedence first."""
    SERVICE_OVERRIDE = "service_override"
    MANUAL_TIER = "manual_tier"
    AUTOMATIC_TIER = "automatic_tier"


class PricingTier(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """
    A commission tier (Bronze, Silver, Gold, ...).
    Never hard-deleted; deactivated with is_active = false so historical
    bookings keep a valid reference.
    """
    __tablename__ = "pricing_tiers"

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Commission: percentage of gross (15 = 15%) or fixed amount in major units
    commission_type: Mapped[CommissionType] = mapped_column(
        Enum(CommissionType, name="commission_type", values_callable=_enum_values),
        nullable=False,
        default=CommissionType.PERCENTAGE,
    )
    commission_value: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)

    # Eligibility thresholds
    min_monthly_bookings: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default="0"
    )
    min_rating: Mapped[Optional[Decimal]] = mapped_column(Numeric(3, 2), nullable=True)

    # Lower wins when several tiers are eligible
    priority_order: Mapped[int] = mapped_column(Integer, nullable=False)

    # Activation
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    effective_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    effective_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<PricingTier(id={self.id}, name={self.name}, "
            f"priority={self.priority_order}, active={self.is_active})>"
        )


class ServicePricingOverride(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A time-windowed fee override for one service. Beats any vendor tier."""
    __tablename__ = "service_pricing_overrides"

    service_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("services.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    override_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    override_type: Mapped[CommissionType] = mapped_column(
        Enum(CommissionType, name="commission_type", values_callable=_enum_values),
        nullable=False,
    )
    override_value: Mapped[Decimal] = mapped_column(Numeric(12, 4), nullable=False)

    # Who bears the fee
    fee_payer: Mapped[FeePayer] = mapped_column(
        Enum(FeePayer, name="fee_payer", values_callable=_enum_values),
        nullable=False,
        default=FeePayer.VENDOR,
    )
    tourist_percentage: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(7, 4), nullable=True
    )
    vendor_percentage: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(7, 4), nullable=True
    )

    # Activation window [effective_from, effective_until]
    effective_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    effective_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_by: Mapped[str] = mapped_column(String(100), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ServicePricingOverride(id={self.id}, service={self.service_id}, "
            f"type={self.override_type}, payer={self.fee_payer})>"
        )
