"""Reaction models - per-viewer thumbs up/down on itinerary activities."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field


class ReactionKind(str, Enum):
    """The two opposing reaction kinds."""

    thumbs_up = "thumbs_up"
    thumbs_down = "thumbs_down"


class ActivityReaction(BaseModel):
    """One live reaction row.

    Identity is (trip_id, day_number, activity_index, user_id).
    """

    id: UUID
    trip_id: UUID
    user_id: UUID
    day_number: int = Field(..., ge=1)
    activity_index: int = Field(..., ge=0)
    reaction: ReactionKind
    created_at: datetime


class ReactionCounts(BaseModel):
    """Aggregate for one activity as seen by one viewer."""

    thumbs_up: int = 0
    thumbs_down: int = 0
    user_reaction: ReactionKind | None = None
