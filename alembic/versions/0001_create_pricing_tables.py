"""Create pricing tables.

Revision ID: 0001_create_pricing_tables
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "0001_create_pricing_tables"
down_revision = None
branch_labels = None
depends_on = None


commission_type = postgresql.ENUM("percentage", "fixed", name="commission_type", create_type=False)
fee_payer = postgresql.ENUM(
    "platform", "tourist", "vendor", "shared", name="fee_payer", create_type=False
)
pricing_source = postgresql.ENUM(
    "service_override", "manual_tier", "automatic_tier", name="pricing_source", create_type=False
)
vendor_status = postgresql.ENUM(
    "pending", "approved", "rejected", "suspended", name="vendor_status", create_type=False
)
service_status = postgresql.ENUM(
    "pending", "approved", "rejected", "inactive", name="service_status", create_type=False
)
booking_status = postgresql.ENUM(
    "pending", "confirmed", "completed", "cancelled", name="booking_status", create_type=False
)

_ENUMS = (commission_type, fee_payer, pricing_source, vendor_status, service_status, booking_status)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(),
                  nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(),
                  nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in _ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "pricing_tiers",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("commission_type", commission_type, nullable=False),
        sa.Column("commission_value", sa.Numeric(12, 4), nullable=False),
        sa.Column("min_monthly_bookings", sa.Integer(), server_default="0", nullable=False),
        sa.Column("min_rating", sa.Numeric(3, 2), nullable=True),
        sa.Column("priority_order", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("effective_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("effective_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(100), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("commission_value >= 0", name="ck_pricing_tiers_commission_value"),
        sa.CheckConstraint(
            "min_rating IS NULL OR (min_rating >= 0 AND min_rating <= 5)",
            name="ck_pricing_tiers_min_rating",
        ),
    )
    # One active tier per priority slot
    op.create_index(
        "uq_pricing_tiers_active_priority",
        "pricing_tiers",
        ["priority_order"],
        unique=True,
        postgresql_where=sa.text("is_active"),
    )

    op.create_table(
        "vendors",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("business_name", sa.String(200), nullable=False),
        sa.Column("status", vendor_status, nullable=False),
        sa.Column("monthly_booking_count", sa.Integer(), server_default="0", nullable=False),
        sa.Column("average_rating", sa.Numeric(3, 2), nullable=True),
        sa.Column(
            "current_tier_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("pricing_tiers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("current_commission_rate", sa.Numeric(12, 4), nullable=True),
        sa.Column(
            "manual_tier_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("pricing_tiers.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("manual_tier_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_tier_evaluated_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_vendors_manual_tier_expires_at", "vendors", ["manual_tier_expires_at"]
    )

    op.create_table(
        "services",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "vendor_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("vendors.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("price", sa.Numeric(14, 2), nullable=False),
        sa.Column("status", service_status, nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_services_vendor_id", "services", ["vendor_id"])

    op.create_table(
        "service_pricing_overrides",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "service_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("services.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("override_enabled", sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column("override_type", commission_type, nullable=False),
        sa.Column("override_value", sa.Numeric(12, 4), nullable=False),
        sa.Column("fee_payer", fee_payer, nullable=False),
        sa.Column("tourist_percentage", sa.Numeric(7, 4), nullable=True),
        sa.Column("vendor_percentage", sa.Numeric(7, 4), nullable=True),
        sa.Column("effective_from", sa.DateTime(timezone=True), nullable=False),
        sa.Column("effective_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(100), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "fee_payer <> 'shared' OR "
            "abs(tourist_percentage + vendor_percentage - 100) <= 0.001",
            name="ck_service_pricing_overrides_shared_split",
        ),
    )
    op.create_index(
        "ix_service_pricing_overrides_service_window",
        "service_pricing_overrides",
        ["service_id", "effective_from"],
    )

    op.create_table(
        "bookings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "service_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("services.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "vendor_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("vendors.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("status", booking_status, nullable=False),
        sa.Column("gross_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("commission_rate_at_booking", sa.Numeric(7, 4), nullable=True),
        sa.Column("commission_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("vendor_payout_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("tourist_fee_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("vendor_fee_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("pricing_source", pricing_source, nullable=True),
        sa.Column("pricing_reference_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("priced_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_bookings_vendor_id", "bookings", ["vendor_id"])


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("service_pricing_overrides")
    op.drop_table("services")
    op.drop_table("vendors")
    op.drop_table("pricing_tiers")

    bind = op.get_bind()
    for enum_type in reversed(_ENUMS):
        enum_type.drop(bind, checkfirst=True)
