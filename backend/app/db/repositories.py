"""Repository protocol interfaces for data access."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol
from uuid import UUID

from backend.app.models.common import ItineraryStatus
from backend.app.models.itinerary import Itinerary
from backend.app.models.reactions import ActivityReaction, ReactionKind
from backend.app.models.trip import Trip, TripPatch


class StoreError(Exception):
    """Store read/write failed (connection loss, constraint error, ...)."""

    pass


class PermissionDeniedError(StoreError):
    """Actor is not allowed to perform an organizer-only write."""

    pass


class DuplicateShareCodeError(StoreError):
    """Share code already belongs to another trip."""

    pass


@dataclass
class ItineraryUpdate:
    """Outcome of an itinerary mutation."""

    previous: Itinerary
    trip: Trip


ItineraryMutation = Callable[[Itinerary], Itinerary]


class TripStore(Protocol):
    """Repository for trip records.

    Every successful write publishes the full updated row on the change feed.
    Writes are last-write-wins; there are no version tokens.
    """

    async def create_trip(self, trip: Trip) -> Trip:
        """Insert a new trip.

        Args:
            trip: Fully populated trip (id and share code already allocated)

        Returns:
            Stored trip

        Raises:
            DuplicateShareCodeError: If the share code is already taken
        """
        ...

    async def get_trip(self, trip_id: UUID) -> Trip | None:
        """Get trip by ID.

        Returns:
            Trip or None if not found
        """
        ...

    async def get_trip_id_by_share_code(self, share_code: str) -> UUID | None:
        """Resolve a share code (case-insensitive) to a trip ID."""
        ...

    async def update_trip(
        self, trip_id: UUID, patch: TripPatch, *, actor_id: UUID | None = None
    ) -> Trip | None:
        """Apply every set field of ``patch`` in one atomic write.

        Args:
            trip_id: Trip ID
            patch: Fields to write
            actor_id: When given, the write is refused unless the actor is
                the organizer (raises PermissionDeniedError)

        Returns:
            Updated trip or None if not found
        """
        ...

    async def transition_status(
        self,
        trip_id: UUID,
        target: ItineraryStatus,
        *,
        itinerary: Itinerary | None = None,
        precondition: Callable[[Trip], bool] | None = None,
    ) -> Trip | None:
        """Conditionally advance itinerary status.

        Applied only if the current status can reach ``target`` and, when
        given, ``precondition`` holds for the current record. Both are
        checked in the same write. When ``itinerary`` is given it is written
        in the same update.

        Returns:
            Updated trip, or None if not found or the transition is illegal
        """
        ...

    async def append_paid_traveler(self, trip_id: UUID, traveler_name: str) -> Trip | None:
        """Add a name to paid_travelers unless already present.

        Returns:
            Updated trip or None if not found
        """
        ...

    async def update_itinerary(
        self,
        trip_id: UUID,
        mutate: ItineraryMutation,
        *,
        actor_id: UUID | None = None,
    ) -> ItineraryUpdate | None:
        """Read-modify-write the itinerary atomically.

        Returns:
            Previous itinerary plus updated trip, or None if the trip is
            missing or has no itinerary
        """
        ...


class ReactionStore(Protocol):
    """Repository for activity reactions.

    Every write publishes an event on the trip's reactions topic.
    """

    async def list_reactions(self, trip_id: UUID) -> list[ActivityReaction]:
        """List all reaction rows for a trip."""
        ...

    async def get_reaction(
        self, trip_id: UUID, day_number: int, activity_index: int, user_id: UUID
    ) -> ActivityReaction | None:
        """Get the live reaction for one identity."""
        ...

    async def upsert_reaction(
        self,
        trip_id: UUID,
        day_number: int,
        activity_index: int,
        user_id: UUID,
        reaction: ReactionKind,
    ) -> ActivityReaction:
        """Insert or replace the reaction for one identity."""
        ...

    async def delete_reaction(
        self, trip_id: UUID, day_number: int, activity_index: int, user_id: UUID
    ) -> bool:
        """Delete the reaction for one identity.

        Returns:
            True if a row was deleted
        """
        ...

    async def reindex_day(
        self, trip_id: UUID, day_number: int, mapping: dict[int, int | None]
    ) -> None:
        """Move reactions of a day to new activity indices.

        Rows whose index maps to None are deleted; indices missing from the
        mapping are left untouched.
        """
        ...

    async def clear_reactions(self, trip_id: UUID) -> int:
        """Delete every reaction of a trip (its itinerary was discarded).

        Returns:
            Number of rows deleted
        """
        ...
