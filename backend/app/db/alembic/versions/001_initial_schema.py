"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-17

Creates the trip and activity_reaction tables.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    """Create all tables."""
    # trip table
    op.create_table(
        "trip",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("organizer_id", sa.Uuid(), nullable=True),
        sa.Column("organizer_name", sa.Text(), nullable=False),
        sa.Column("destination_city", sa.Text(), nullable=False),
        sa.Column("destination_country", sa.Text(), nullable=False, server_default=""),
        sa.Column("destination_iata", sa.Text(), nullable=False),
        sa.Column("departure_date", sa.Date(), nullable=False),
        sa.Column("return_date", sa.Date(), nullable=False),
        sa.Column("accommodation_type", sa.Text(), nullable=False, server_default="hotel"),
        sa.Column("travelers", JSONType, nullable=False),
        sa.Column("flights", JSONType, nullable=False),
        sa.Column("accommodation", JSONType, nullable=True),
        sa.Column("cost_breakdown", JSONType, nullable=False),
        sa.Column("total_per_person", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("trip_total", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("itinerary", JSONType, nullable=True),
        sa.Column("itinerary_status", sa.Text(), nullable=False, server_default="pending"),
        sa.Column("share_code", sa.Text(), nullable=False),
        sa.Column("share_image_url", sa.Text(), nullable=True),
        sa.Column("paid_travelers", JSONType, nullable=False),
        sa.Column("link_created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("link_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("share_code", name="uq_trip_share_code"),
        sa.CheckConstraint(
            "itinerary_status IN ('pending', 'generating', 'complete', 'failed')",
            name="ck_trip_itinerary_status",
        ),
    )
    op.create_index("idx_trip_organizer", "trip", ["organizer_id"])

    # activity_reaction table
    op.create_table(
        "activity_reaction",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("trip_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("day_number", sa.Integer(), nullable=False),
        sa.Column("activity_index", sa.Integer(), nullable=False),
        sa.Column("reaction", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["trip_id"], ["trip.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "trip_id", "user_id", "day_number", "activity_index", name="uq_reaction_identity"
        ),
        sa.CheckConstraint(
            "reaction IN ('thumbs_up', 'thumbs_down')", name="ck_reaction_kind"
        ),
    )
    op.create_index("idx_reaction_trip", "activity_reaction", ["trip_id"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index("idx_reaction_trip", table_name="activity_reaction")
    op.drop_table("activity_reaction")
    op.drop_index("idx_trip_organizer", table_name="trip")
    op.drop_table("trip")
