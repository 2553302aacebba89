"""
Tourbook SQLAlchemy Models
==========================

Central import point for all ORM models. Import ``Base`` from here for
Alembic auto-generation and for the ``create_all`` convenience in tests.

Usage::

    from tourbook.models import Base, PricingTier, Vendor, Booking
"""

# -- Base & Mixins --
from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin

# -- Pricing --
from .pricing import (
    CommissionType,
    FeePayer,
    PricingSource,
    PricingTier,
    ServicePricingOverride,
)

# -- Vendors & Services --
from .vendor import Service, ServiceStatus, Vendor, VendorStatus

# -- Bookings --
from .booking import Booking, BookingStatus

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    # Pricing
    "CommissionType",
    "FeePayer",
    "PricingSource",
    "PricingTier",
    "ServicePricingOverride",
    # Vendors
    "Vendor",
    "VendorStatus",
    "Service",
    "ServiceStatus",
    # Bookings
    "Booking",
    "BookingStatus",
]
