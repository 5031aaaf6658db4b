"""SQLAlchemy ORM models for trips and activity reactions."""

import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# JSONB on postgres, plain JSON elsewhere (sqlite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Trip(Base):
    """Trip table - one shared trip document per row."""

    __tablename__ = "trip"
    __table_args__ = (
        UniqueConstraint("share_code", name="uq_trip_share_code"),
        CheckConstraint(
            "itinerary_status IN ('pending', 'generating', 'complete', 'failed')",
            name="ck_trip_itinerary_status",
        ),
        Index("idx_trip_organizer", "organizer_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    organizer_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    organizer_name: Mapped[str] = mapped_column(Text, nullable=False)
    destination_city: Mapped[str] = mapped_column(Text, nullable=False)
    destination_country: Mapped[str] = mapped_column(Text, nullable=False, default="")
    destination_iata: Mapped[str] = mapped_column(Text, nullable=False)
    departure_date: Mapped[date] = mapped_column(Date, nullable=False)
    return_date: Mapped[date] = mapped_column(Date, nullable=False)
    accommodation_type: Mapped[str] = mapped_column(Text, nullable=False, default="hotel")
    travelers: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    flights: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    accommodation: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    cost_breakdown: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    total_per_person: Mapped[float] = mapped_column(
        Numeric(12, 2, asdecimal=False), nullable=False, default=0
    )
    trip_total: Mapped[float] = mapped_column(
        Numeric(12, 2, asdecimal=False), nullable=False, default=0
    )
    itinerary: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    itinerary_status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")
    share_code: Mapped[str] = mapped_column(Text, nullable=False)
    share_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    paid_travelers: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    link_created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    link_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    reactions: Mapped[list["ActivityReaction"]] = relationship(
        "ActivityReaction", back_populates="trip", cascade="all, delete-orphan"
    )


class ActivityReaction(Base):
    """Activity reaction table - at most one row per (trip, user, day, index)."""

    __tablename__ = "activity_reaction"
    __table_args__ = (
        UniqueConstraint(
            "trip_id",
            "user_id",
            "day_number",
            "activity_index",
            name="uq_reaction_identity",
        ),
        CheckConstraint("reaction IN ('thumbs_up', 'thumbs_down')", name="ck_reaction_kind"),
        Index("idx_reaction_trip", "trip_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    trip_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("trip.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    day_number: Mapped[int] = mapped_column(Integer, nullable=False)
    activity_index: Mapped[int] = mapped_column(Integer, nullable=False)
    reaction: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Relationships
    trip: Mapped["Trip"] = relationship("Trip", back_populates="reactions")
