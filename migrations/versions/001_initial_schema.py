"""Initial schema: profiles, drivers, driver locations, rides and messages.

Revision ID: 001
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── profiles ──────────────────────────────────────────────────────
    op.create_table(
        "profiles",
        sa.Column("user_id", sa.String(36), primary_key=True),
        sa.Column("full_name", sa.String(120), nullable=True),
        sa.Column("loyalty_points", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "first_ride_used", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── drivers ───────────────────────────────────────────────────────
    op.create_table(
        "drivers",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(36), unique=True, nullable=False),
        sa.Column("vehicle_model", sa.String(120), nullable=True),
        sa.Column("vehicle_plate", sa.String(20), nullable=True),
        sa.Column("is_online", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("rating", sa.Float, server_default="5.0"),
        sa.Column("total_rides", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_drivers_online", "drivers", ["is_online"])

    # ── driver_locations ──────────────────────────────────────────────
    op.create_table(
        "driver_locations",
        sa.Column(
            "driver_id",
            sa.String(36),
            sa.ForeignKey("drivers.id"),
            primary_key=True,
        ),
        sa.Column("latitude", sa.Float, nullable=False),
        sa.Column("longitude", sa.Float, nullable=False),
        sa.Column("speed", sa.Float, server_default="0"),
        sa.Column("heading", sa.Float, server_default="0"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("customer_id", sa.String(36), nullable=False),
        sa.Column(
            "driver_id", sa.String(36), sa.ForeignKey("drivers.id"), nullable=True
        ),
        sa.Column("pickup_lat", sa.Float, nullable=False),
        sa.Column("pickup_lng", sa.Float, nullable=False),
        sa.Column("pickup_address", sa.Text, nullable=True),
        sa.Column("dropoff_lat", sa.Float, nullable=False),
        sa.Column("dropoff_lng", sa.Float, nullable=False),
        sa.Column("dropoff_address", sa.Text, nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "pending",
                "accepted",
                "arriving",
                "in_progress",
                "completed",
                "cancelled",
                name="ridestatus",
            ),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("price", sa.Float, nullable=False),
        sa.Column("distance_km", sa.Float, nullable=True),
        sa.Column("duration_minutes", sa.Integer, nullable=True),
        sa.Column("promo_discount", sa.Float, nullable=False, server_default="0"),
        sa.Column("promo_type", sa.String(20), nullable=True),
        sa.Column(
            "first_ride_discount", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "loyalty_points_earned", sa.Integer, nullable=False, server_default="0"
        ),
        sa.Column("cancellation_fee", sa.Float, nullable=True),
        sa.Column("distance_at_cancel_km", sa.Float, nullable=True),
        sa.Column("idempotency_key", sa.String(64), unique=True, nullable=True),
        sa.Column("scheduled_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        # driver assigned exactly when the ride has left the pool
        sa.CheckConstraint(
            "(status = 'pending' AND driver_id IS NULL) "
            "OR (status = 'cancelled') "
            "OR (status <> 'pending' AND driver_id IS NOT NULL)",
            name="ck_rides_driver_matches_status",
        ),
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_customer", "rides", ["customer_id"])
    op.create_index("idx_rides_driver", "rides", ["driver_id"])
    op.create_index(
        "uq_rides_one_active_per_driver",
        "rides",
        ["driver_id"],
        unique=True,
        postgresql_where=sa.text(
            "status IN ('accepted', 'arriving', 'in_progress')"
        ),
    )

    # ── messages ──────────────────────────────────────────────────────
    op.create_table(
        "messages",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "ride_id", sa.String(36), sa.ForeignKey("rides.id"), nullable=False
        ),
        sa.Column("sender_id", sa.String(36), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_messages_ride", "messages", ["ride_id"])


def downgrade() -> None:
    op.drop_table("messages")
    op.drop_table("rides")
    op.drop_table("driver_locations")
    op.drop_table("drivers")
    op.drop_table("profiles")
    op.execute("DROP TYPE IF EXISTS ridestatus")
