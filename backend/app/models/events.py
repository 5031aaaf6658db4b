"""Change-feed event models - what subscribers receive when a row changes."""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field

FeedTable = Literal["trip", "activity_reaction"]

FeedEventType = Literal["INSERT", "UPDATE", "DELETE"]


def trip_topic(trip_id: UUID) -> str:
    """Feed topic carrying trip row updates."""
    return f"trip:{trip_id}"


def reactions_topic(trip_id: UUID) -> str:
    """Feed topic carrying reaction row inserts/updates/deletes for a trip."""
    return f"reactions:{trip_id}"


class ChangeEvent(BaseModel):
    """Row-level change notification.

    ``record`` is the full row after the change (None on DELETE);
    ``old_record`` is the row before the change where known.
    """

    table: FeedTable
    event: FeedEventType
    trip_id: UUID
    record: dict[str, Any] | None = None
    old_record: dict[str, Any] | None = None
    committed_at: datetime = Field(..., description="Store commit time")

    @property
    def topic(self) -> str:
        if self.table == "trip":
            return trip_topic(self.trip_id)
        return reactions_topic(self.trip_id)


class SSEChangeEvent(BaseModel):
    """Lightweight SSE payload derived from a ChangeEvent."""

    table: FeedTable
    event: FeedEventType
    trip_id: str
    committed_at: str  # ISO8601
    record: dict[str, Any] | None = None

    @classmethod
    def from_change_event(cls, event: ChangeEvent) -> "SSEChangeEvent":
        """Convert ChangeEvent to SSE format."""
        return cls(
            table=event.table,
            event=event.event,
            trip_id=str(event.trip_id),
            committed_at=event.committed_at.isoformat(),
            record=event.record,
        )
