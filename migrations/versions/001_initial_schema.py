"""Initial schema: service requests and the provider directory.

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
    # ── service_requests ──────────────────────────────────────────────
    op.create_table(
        "service_requests",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("service_type", sa.String(20), nullable=False),
        sa.Column("requester_id", sa.String(64), nullable=False),
        sa.Column("origin_lat", sa.Float, nullable=True),
        sa.Column("origin_lng", sa.Float, nullable=True),
        sa.Column("origin_address", sa.String(255), nullable=True),
        sa.Column("destination_lat", sa.Float, nullable=True),
        sa.Column("destination_lng", sa.Float, nullable=True),
        sa.Column("destination_address", sa.String(255), nullable=True),
        sa.Column("scheduled_date", sa.Date, nullable=True),
        sa.Column("scheduled_time", sa.Time, nullable=True),
        sa.Column("details", sa.JSON, nullable=False),
        sa.Column("state", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("provider_id", sa.String(64), nullable=True),
        sa.Column("price_breakdown", sa.JSON, nullable=True),
        sa.Column("tracking_code", sa.String(32), unique=True, nullable=False),
        sa.Column("idempotency_key", sa.String(64), unique=True, nullable=True),
        sa.Column("payment", sa.JSON, nullable=True),
        sa.Column("settlement", sa.JSON, nullable=True),
        sa.Column("cancellation", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_requests_state", "service_requests", ["state"])
    op.create_index("idx_requests_requester", "service_requests", ["requester_id"])
    op.create_index("idx_requests_service_type", "service_requests", ["service_type"])
    op.create_index("idx_requests_provider", "service_requests", ["provider_id"])
    op.create_index("idx_requests_idempotency", "service_requests", ["idempotency_key"])

    # ── providers ─────────────────────────────────────────────────────
    op.create_table(
        "providers",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("service_type", sa.String(20), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("latitude", sa.Float, nullable=True),
        sa.Column("longitude", sa.Float, nullable=True),
        sa.Column("h3_cell", sa.String(20), nullable=True),
        sa.Column("rating", sa.Float, nullable=False, server_default="5.0"),
        sa.Column("capacity", sa.Integer, nullable=False, server_default="1"),
        sa.Column("vehicle_type", sa.String(32), nullable=True),
        sa.Column("is_available", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("attributes", sa.JSON, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "idx_providers_type_cell", "providers", ["service_type", "h3_cell"]
    )
    op.create_index(
        "idx_providers_type_latlng",
        "providers",
        ["service_type", "latitude", "longitude"],
    )
    op.create_index("idx_providers_available", "providers", ["is_available"])


def downgrade() -> None:
    op.drop_table("providers")
    op.drop_table("service_requests")
