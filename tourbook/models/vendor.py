"""
SQLAlchemy models for vendors and their services.

Only the columns the pricing engine reads or writes are mapped; profile,
payout account and media columns live with the marketplace application.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from .pricing import _enum_values


class VendorStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUSPENDED = "suspended"


class ServiceStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    INACTIVE = "inactive"


class Vendor(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "vendors"

    business_name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[VendorStatus] = mapped_column(
        Enum(VendorStatus, name="vendor_status", values_callable=_enum_values),
        nullable=False,
        default=VendorStatus.PENDING,
    )

    # Rolling metrics used for tier eligibility
    monthly_booking_count: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default="0", default=0
    )
    average_rating: Mapped[Optional[Decimal]] = mapped_column(Numeric(3, 2), nullable=True)

    # Memoised result of the tier resolver (see services.tierResolver)
    current_tier_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("pricing_tiers.id", ondelete="SET NULL"),
        nullable=True,
    )
    current_commission_rate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 4), nullable=True
    )

    # Operator pinned tier; NULL expiry means indefinite
    manual_tier_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("pricing_tiers.id", ondelete="SET NULL"),
        nullable=True,
    )
    manual_tier_expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )

    last_tier_evaluated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return (
            f"<Vendor(id={self.id}, name={self.business_name}, "
            f"tier={self.current_tier_id}, manual={self.manual_tier_id})>"
        )


class Service(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A bookable tour, stay, transfer or activity offered by a vendor."""
    __tablename__ = "services"

    vendor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("vendors.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    status: Mapped[ServiceStatus] = mapped_column(
        Enum(ServiceStatus, name="service_status", values_callable=_enum_values),
        nullable=False,
        default=ServiceStatus.PENDING,
    )

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, title={self.title}, vendor={self.vendor_id})>"
