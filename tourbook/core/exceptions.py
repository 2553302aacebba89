"""
Error kinds raised by the commission and tier pricing engine.

Every error derives from ``ValueError`` so callers that only care about
"bad pricing input" can keep catching ``ValueError``; the API layer maps the
concrete classes to HTTP status codes.
"""

from __future__ import annotations


class PricingEngineError(ValueError):
    """Base class for all pricing engine errors."""


class RecordNotFound(PricingEngineError):
    """A tier, override, vendor, service or booking does not exist."""


class NoTiersConfigured(PricingEngineError):
    """The tier catalog is empty. Bookings cannot be priced."""

    def __init__(self, message: str = "No active pricing tiers are configured") -> None:
        super().__init__(message)


class ManualTierNotFound(PricingEngineError):
    """A vendor's manual tier references a tier that is inactive or deleted."""

    def __init__(self, vendor_id: object, tier_id: object) -> None:
        self.vendor_id = vendor_id
        self.tier_id = tier_id
        super().__init__(
            f"Manual tier {tier_id} assigned to vendor {vendor_id} is not an active tier"
        )


class InvalidGrossAmount(PricingEngineError):
    """The booking gross amount is not a positive amount in the currency's minor unit."""

    def __init__(self, gross_amount: object) -> None:
        self.gross_amount = gross_amount
        super().__init__(
            f"Gross amount must be a positive amount in the currency's minor unit, "
            f"got {gross_amount}"
        )


class MisconfiguredSharedSplit(PricingEngineError):
    """A shared fee split whose tourist/vendor percentages do not sum to 100."""

    def __init__(self, tourist_percentage: object, vendor_percentage: object) -> None:
        self.tourist_percentage = tourist_percentage
        self.vendor_percentage = vendor_percentage
        super().__init__(
            "Shared fee split must sum to 100 "
            f"(tourist={tourist_percentage}, vendor={vendor_percentage})"
        )


class InvalidPricingRule(PricingEngineError):
    """A tier or override definition fails validation."""


class OverrideAmbiguous(PricingEngineError):
    """Several overrides for one service share the latest effective_from.

    Never raised out of the engine; used to format the warning that is
    logged when the deterministic tie-break is applied.
    """

    def __init__(self, service_id: object, override_ids: list[object]) -> None:
        self.service_id = service_id
        self.override_ids = override_ids
        super().__init__(
            f"{len(override_ids)} overrides for service {service_id} share the same "
            f"effective_from: {', '.join(str(i) for i in override_ids)}"
        )


class PaymentAlreadyRecorded(PricingEngineError):
    """A booking already carries a frozen payment breakdown."""

    def __init__(self, booking_id: object) -> None:
        self.booking_id = booking_id
        super().__init__(f"Booking {booking_id} already has a payment breakdown recorded")
