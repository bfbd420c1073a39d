"""Initial schema: users, driver profiles, pricing, rides, ride events, ratings.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


RIDE_STATUS = (
    "requested",
    "scheduled",
    "driver_assigned",
    "driver_arriving",
    "in_progress",
    "completed",
    "cancelled_by_rider",
    "cancelled_by_driver",
)

EVENT_TYPES = (
    "ride_requested",
    "driver_assigned",
    "driver_arriving",
    "ride_started",
    "ride_completed",
    "ride_cancelled",
    "driver_location",
    "sos",
)


def upgrade() -> None:
    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("full_name", sa.String(120), nullable=False),
        sa.Column(
            "role",
            sa.Enum("rider", "driver", "admin", name="user_role"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )

    # ── driver_profiles ───────────────────────────────────────────────
    op.create_table(
        "driver_profiles",
        sa.Column(
            "id", sa.String(36), sa.ForeignKey("users.id"), primary_key=True
        ),
        sa.Column(
            "status",
            sa.Enum(
                "pending", "approved", "rejected",
                name="driver_approval_status",
            ),
            nullable=False,
        ),
        sa.Column("online", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "background_check_status",
            sa.Enum(
                "clear", "pending", "failed",
                name="background_check_status",
            ),
            nullable=False,
        ),
        sa.Column("current_lat", sa.Float, nullable=True),
        sa.Column("current_lng", sa.Float, nullable=True),
        sa.Column("h3_cell", sa.String(20), nullable=True),
        sa.Column("last_gps_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rating_avg", sa.Float, nullable=False, server_default="5.0"),
        sa.Column("rating_count", sa.Integer, nullable=False, server_default="0"),
    )
    op.create_index(
        "idx_driver_profiles_eligible",
        "driver_profiles",
        ["online", "status", "background_check_status"],
    )
    op.create_index("idx_driver_profiles_cell", "driver_profiles", ["h3_cell"])

    # ── pricing_rules ─────────────────────────────────────────────────
    op.create_table(
        "pricing_rules",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("base_fare_cents", sa.Integer, nullable=False),
        sa.Column("per_mi_cents", sa.Integer, nullable=False),
        sa.Column("per_min_cents", sa.Integer, nullable=False),
        sa.Column("surge_multiplier", sa.Float, nullable=False, server_default="1.0"),
        sa.Column("active", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_pricing_rules_active", "pricing_rules", ["active"])

    # ── rides ─────────────────────────────────────────────────────────
    op.create_table(
        "rides",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "rider_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "driver_id", sa.String(36), sa.ForeignKey("users.id"), nullable=True
        ),
        sa.Column("pickup_address", sa.String(255), nullable=False),
        sa.Column("pickup_lat", sa.Float, nullable=False),
        sa.Column("pickup_lng", sa.Float, nullable=False),
        sa.Column("dropoff_address", sa.String(255), nullable=False),
        sa.Column("dropoff_lat", sa.Float, nullable=False),
        sa.Column("dropoff_lng", sa.Float, nullable=False),
        sa.Column(
            "status",
            sa.Enum(*RIDE_STATUS, name="ride_status"),
            nullable=False,
        ),
        sa.Column("quoted_price_cents", sa.Integer, nullable=False),
        sa.Column("surge_multiplier", sa.Float, nullable=False, server_default="1.0"),
        sa.Column("distance_mi", sa.Float, nullable=False),
        sa.Column("duration_min", sa.Float, nullable=False),
        sa.Column("scheduled_for", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "quoted_price_cents >= 0", name="ck_rides_price_positive"
        ),
    )
    op.create_index("idx_rides_status", "rides", ["status"])
    op.create_index("idx_rides_rider", "rides", ["rider_id"])
    op.create_index("idx_rides_driver_status", "rides", ["driver_id", "status"])

    # ── ride_events ───────────────────────────────────────────────────
    op.create_table(
        "ride_events",
        sa.Column("position", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("id", sa.String(36), unique=True, nullable=False),
        sa.Column(
            "ride_id", sa.String(36), sa.ForeignKey("rides.id"), nullable=False
        ),
        sa.Column(
            "type",
            sa.Enum(*EVENT_TYPES, name="ride_event_type"),
            nullable=False,
        ),
        sa.Column("meta", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "idx_ride_events_ride_order",
        "ride_events",
        ["ride_id", "created_at", "position"],
    )
    op.create_index("idx_ride_events_ride_type", "ride_events", ["ride_id", "type"])

    # ── ratings ───────────────────────────────────────────────────────
    op.create_table(
        "ratings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "ride_id",
            sa.String(36),
            sa.ForeignKey("rides.id"),
            unique=True,
            nullable=False,
        ),
        sa.Column(
            "rider_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column(
            "driver_id", sa.String(36), sa.ForeignKey("users.id"), nullable=False
        ),
        sa.Column("stars", sa.Integer, nullable=False),
        sa.Column("comment", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("stars BETWEEN 1 AND 5", name="ck_ratings_stars"),
    )
    op.create_index("idx_ratings_driver", "ratings", ["driver_id"])


def downgrade() -> None:
    op.drop_table("ratings")
    op.drop_table("ride_events")
    op.drop_table("rides")
    op.drop_table("pricing_rules")
    op.drop_table("driver_profiles")
    op.drop_table("users")
    op.execute("DROP TYPE IF EXISTS ride_event_type")
    op.execute("DROP TYPE IF EXISTS ride_status")
    op.execute("DROP TYPE IF EXISTS background_check_status")
    op.execute("DROP TYPE IF EXISTS driver_approval_status")
    op.execute("DROP TYPE IF EXISTS user_role")
