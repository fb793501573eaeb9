"""Initial schema: bookings, ride offers, counters, drivers, operator settings
and credit accounts.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── drivers ───────────────────────────────────────────────────────
    op.create_table(
        "drivers",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("status", sa.String(32), nullable=False, server_default="Active"),
        sa.Column("operator_code", sa.String(32), nullable=True),
        sa.Column("location_lat", sa.Float, nullable=True),
        sa.Column("location_lng", sa.Float, nullable=True),
        sa.Column("location_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("vehicle_category", sa.String(48), nullable=True),
        sa.Column("vehicle_make", sa.String(64), nullable=True),
        sa.Column("vehicle_model", sa.String(64), nullable=True),
        sa.Column("vehicle_color", sa.String(32), nullable=True),
        sa.Column("vehicle_registration", sa.String(16), nullable=True),
    )
    op.create_index(
        "idx_drivers_status_operator", "drivers", ["status", "operator_code"]
    )

    # ── bookings ──────────────────────────────────────────────────────
    op.create_table(
        "bookings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("display_booking_id", sa.String(64), unique=True, nullable=True),
        sa.Column("version", sa.Integer, nullable=False),
        sa.Column("passenger_id", sa.String(64), nullable=False),
        sa.Column("passenger_name", sa.String(120), nullable=False),
        sa.Column("passenger_phone", sa.String(32), nullable=True),
        sa.Column(
            "driver_id", sa.String(64), sa.ForeignKey("drivers.id"), nullable=True
        ),
        sa.Column("driver_name", sa.String(120), nullable=True),
        sa.Column("driver_vehicle_details", sa.JSON, nullable=True),
        sa.Column("pickup_location", sa.JSON, nullable=False),
        sa.Column("dropoff_location", sa.JSON, nullable=False),
        sa.Column("stops", sa.JSON, nullable=False),
        sa.Column("fare_estimate", sa.Float, nullable=False, server_default="0"),
        sa.Column("final_calculated_fare", sa.Float, nullable=True),
        sa.Column("payment_method", sa.String(48), nullable=False),
        sa.Column("account_job_pin", sa.String(4), nullable=True),
        sa.Column(
            "is_priority_pickup", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        sa.Column("priority_fee_amount", sa.Float, nullable=True),
        sa.Column(
            "wait_and_return", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        sa.Column("estimated_additional_wait_time_minutes", sa.Integer, nullable=True),
        sa.Column("waiting_charge_at_pickup", sa.Float, nullable=True),
        sa.Column(
            "no_show_fee_applicable",
            sa.Boolean,
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column(
            "status",
            sa.String(48),
            nullable=False,
            server_default="pending_assignment",
        ),
        sa.Column(
            "driver_current_leg_index", sa.Integer, nullable=False, server_default="0"
        ),
        sa.Column("current_leg_entry_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_stop_wait_charges", sa.JSON, nullable=False),
        sa.Column(
            "booked_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("scheduled_pickup_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "notified_passenger_arrival_at", sa.DateTime(timezone=True), nullable=True
        ),
        sa.Column(
            "passenger_acknowledged_arrival_at",
            sa.DateTime(timezone=True),
            nullable=True,
        ),
        sa.Column("ride_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text, nullable=True),
        sa.Column("timeout_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("originating_operator_id", sa.String(32), nullable=False),
        sa.Column("required_operator_id", sa.String(32), nullable=True),
        sa.Column("dispatch_method", sa.String(48), nullable=True),
        sa.Column("vehicle_type", sa.String(48), nullable=True),
        sa.Column("passenger_count", sa.Integer, nullable=False, server_default="1"),
        sa.Column("driver_notes", sa.Text, nullable=True),
        sa.Column("distance_miles", sa.Float, nullable=True),
        sa.Column("last_updated_by", sa.String(64), nullable=True),
        sa.Column("last_updated_role", sa.String(32), nullable=True),
        sa.Column("update_channel", sa.String(32), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_bookings_status", "bookings", ["status"])
    op.create_index("idx_bookings_passenger", "bookings", ["passenger_id"])
    op.create_index("idx_bookings_driver", "bookings", ["driver_id"])
    op.create_index("idx_bookings_timeout", "bookings", ["timeout_at"])

    # ── ride_offers ───────────────────────────────────────────────────
    op.create_table(
        "ride_offers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "booking_id", sa.String(36), sa.ForeignKey("bookings.id"), nullable=False
        ),
        sa.Column(
            "driver_id", sa.String(64), sa.ForeignKey("drivers.id"), nullable=False
        ),
        sa.Column("snapshot", sa.JSON, nullable=False),
        sa.Column("status", sa.String(48), nullable=False, server_default="pending"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "idx_offers_booking_status", "ride_offers", ["booking_id", "status"]
    )
    op.create_index("idx_offers_driver_status", "ride_offers", ["driver_id", "status"])
    op.create_index("idx_offers_expires", "ride_offers", ["expires_at"])

    # ── counters ──────────────────────────────────────────────────────
    op.create_table(
        "counters",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("current_id", sa.Integer, nullable=True),
    )

    # ── operator_settings ─────────────────────────────────────────────
    op.create_table(
        "operator_settings",
        sa.Column("operator_id", sa.String(32), primary_key=True),
        sa.Column("dispatch_mode", sa.String(48), nullable=False, server_default="auto"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    # ── credit_accounts ───────────────────────────────────────────────
    op.create_table(
        "credit_accounts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("passenger_id", sa.String(64), unique=True, nullable=False),
        sa.Column("account_holder", sa.String(120), nullable=True),
        sa.Column("balance", sa.Float, nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("credit_accounts")
    op.drop_table("operator_settings")
    op.drop_table("counters")
    op.drop_table("ride_offers")
    op.drop_table("bookings")
    op.drop_table("drivers")
