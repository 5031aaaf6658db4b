"""Reaction aggregation and toggle semantics."""

import logging
from collections.abc import Iterable
from enum import Enum
from uuid import UUID

from backend.app.db.repositories import ReactionStore, StoreError, TripStore
from backend.app.models.common import ActivityKey
from backend.app.models.reactions import ActivityReaction, ReactionCounts, ReactionKind
from backend.app.models.results import ErrorKind, Result
from backend.app.utils.logging import StructuredSyncLogger

logger = logging.getLogger(__name__)

ReactionMap = dict[ActivityKey, ReactionCounts]


class ToggleAction(str, Enum):
    """Store write implied by a react request."""

    remove = "remove"
    upsert = "upsert"


def resolve_toggle(current: ReactionKind | None, requested: ReactionKind) -> ToggleAction:
    """Same kind un-reacts; anything else replaces."""
    if current == requested:
        return ToggleAction.remove
    return ToggleAction.upsert


def aggregate_reactions(rows: Iterable[ActivityReaction], viewer_id: UUID | None) -> ReactionMap:
    """Fold raw rows into per-activity counts plus the viewer's own reaction.

    Args:
        rows: Every reaction row of one trip
        viewer_id: Current viewer (None for anonymous viewers)

    Returns:
        Counts keyed by (day_number, activity_index); activities without
        reactions are absent
    """
    counts: ReactionMap = {}

    for row in rows:
        key = (row.day_number, row.activity_index)
        entry = counts.setdefault(key, ReactionCounts())

        if row.reaction == ReactionKind.thumbs_up:
            entry.thumbs_up += 1
        else:
            entry.thumbs_down += 1

        if viewer_id is not None and row.user_id == viewer_id:
            entry.user_reaction = row.reaction

    return counts


class ReactionService:
    """Load aggregates and apply toggle writes against the reaction store."""

    def __init__(
        self,
        reactions: ReactionStore,
        trips: TripStore | None = None,
        sync_logger: StructuredSyncLogger | None = None,
    ) -> None:
        """Initialize service.

        Args:
            reactions: Reaction store
            trips: Optional trip store used to reject addresses that do not
                resolve to an activity
            sync_logger: Structured logger for write outcomes
        """
        self._reactions = reactions
        self._trips = trips
        self._log = sync_logger or StructuredSyncLogger()

    async def load(self, trip_id: UUID, viewer_id: UUID | None) -> Result[ReactionMap]:
        """Full recompute of the aggregate from raw rows."""
        try:
            rows = await self._reactions.list_reactions(trip_id)
        except StoreError as exc:
            logger.warning("Failed to load reactions for %s: %s", trip_id, exc)
            return Result.fail(ErrorKind.transient, "Could not load reactions, try again")

        return Result.ok(aggregate_reactions(rows, viewer_id))

    async def react(
        self,
        trip_id: UUID,
        day_number: int,
        activity_index: int,
        kind: ReactionKind,
        viewer_id: UUID | None,
    ) -> Result[ReactionKind | None]:
        """Toggle the viewer's reaction on one activity.

        Returns:
            The viewer's reaction after the write (None when un-reacted)
        """
        if viewer_id is None:
            return Result.fail(ErrorKind.sign_in_required, "Sign in to react to activities")

        if self._trips is not None:
            trip = await self._trips.get_trip(trip_id)
            if trip is None:
                return Result.fail(ErrorKind.not_found, "Trip not found")
            if trip.itinerary is None or trip.itinerary.activity_at(day_number, activity_index) is None:
                return Result.fail(
                    ErrorKind.invalid, f"No activity at day {day_number}, index {activity_index}"
                )

        try:
            current = await self._reactions.get_reaction(trip_id, day_number, activity_index, viewer_id)
            action = resolve_toggle(current.reaction if current else None, kind)

            if action == ToggleAction.remove:
                await self._reactions.delete_reaction(trip_id, day_number, activity_index, viewer_id)
                after: ReactionKind | None = None
            else:
                await self._reactions.upsert_reaction(
                    trip_id, day_number, activity_index, viewer_id, kind
                )
                after = kind
        except StoreError as exc:
            self._log.log_write("react", trip_id, "error", error_reason=str(exc))
            return Result.fail(ErrorKind.transient, "Could not save your reaction, try again")

        self._log.log_write(
            "react",
            trip_id,
            "success",
            day_number=day_number,
            activity_index=activity_index,
            toggle=action.value,
        )
        return Result.ok(after)
