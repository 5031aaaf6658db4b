"""Build change-feed events from store rows."""

from datetime import datetime, timezone

from backend.app.models.events import ChangeEvent, FeedEventType
from backend.app.models.reactions import ActivityReaction
from backend.app.models.trip import Trip


def trip_event(trip: Trip, event: FeedEventType = "UPDATE") -> ChangeEvent:
    """Full-row event for a trip write."""
    return ChangeEvent(
        table="trip",
        event=event,
        trip_id=trip.id,
        record=trip.model_dump(mode="json"),
        committed_at=datetime.now(timezone.utc),
    )


def reaction_event(
    event: FeedEventType,
    *,
    new: ActivityReaction | None = None,
    old: ActivityReaction | None = None,
) -> ChangeEvent:
    """Row event for a reaction insert/update/delete."""
    row = new or old
    if row is None:
        raise ValueError("reaction event needs a new or old row")

    return ChangeEvent(
        table="activity_reaction",
        event=event,
        trip_id=row.trip_id,
        record=new.model_dump(mode="json") if new else None,
        old_record=old.model_dump(mode="json") if old else None,
        committed_at=datetime.now(timezone.utc),
    )
