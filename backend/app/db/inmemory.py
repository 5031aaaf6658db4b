"""In-memory implementations of repository interfaces."""

import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from backend.app.db.publishing import reaction_event, trip_event
from backend.app.db.repositories import (
    DuplicateShareCodeError,
    ItineraryMutation,
    ItineraryUpdate,
    PermissionDeniedError,
)
from backend.app.feed.base import ChangeFeed
from backend.app.models.common import ItineraryStatus
from backend.app.models.itinerary import Itinerary
from backend.app.models.reactions import ActivityReaction, ReactionKind
from backend.app.models.trip import Trip, TripPatch
from backend.app.sync.status import can_transition

ReactionIdentity = tuple[uuid.UUID, int, int, uuid.UUID]


class InMemoryTripStore:
    """In-memory implementation of TripStore."""

    def __init__(self, feed: ChangeFeed | None = None) -> None:
        self._trips: dict[uuid.UUID, Trip] = {}
        self._feed = feed

    async def _commit(self, trip: Trip, event: str = "UPDATE") -> Trip:
        self._trips[trip.id] = trip
        if self._feed is not None:
            await self._feed.publish(trip_event(trip, event))  # type: ignore[arg-type]
        return trip

    async def create_trip(self, trip: Trip) -> Trip:
        """Insert a new trip."""
        if trip.id in self._trips:
            raise ValueError(f"trip {trip.id} already exists")
        if any(t.share_code == trip.share_code for t in self._trips.values()):
            raise DuplicateShareCodeError(f"share code {trip.share_code} is taken")
        return await self._commit(trip, "INSERT")

    async def get_trip(self, trip_id: uuid.UUID) -> Trip | None:
        """Get trip by ID."""
        return self._trips.get(trip_id)

    async def get_trip_id_by_share_code(self, share_code: str) -> uuid.UUID | None:
        """Resolve a share code to a trip ID."""
        code = share_code.upper()
        for trip in self._trips.values():
            if trip.share_code == code:
                return trip.id
        return None

    async def update_trip(
        self, trip_id: uuid.UUID, patch: TripPatch, *, actor_id: uuid.UUID | None = None
    ) -> Trip | None:
        """Apply a patch in one write."""
        trip = self._trips.get(trip_id)
        if trip is None:
            return None

        # Enforce organizer ownership
        if actor_id is not None and trip.organizer_id != actor_id:
            raise PermissionDeniedError(f"user {actor_id} is not the organizer of {trip_id}")

        changes = {name: getattr(patch, name) for name in patch.model_fields_set}
        changes["updated_at"] = datetime.now(timezone.utc)
        return await self._commit(trip.model_copy(update=changes))

    async def transition_status(
        self,
        trip_id: uuid.UUID,
        target: ItineraryStatus,
        *,
        itinerary: Itinerary | None = None,
        precondition: Callable[[Trip], bool] | None = None,
    ) -> Trip | None:
        """Conditionally advance itinerary status."""
        trip = self._trips.get(trip_id)
        if trip is None or not can_transition(trip.itinerary_status, target):
            return None
        if precondition is not None and not precondition(trip):
            return None

        changes: dict[str, object] = {
            "itinerary_status": target,
            "updated_at": datetime.now(timezone.utc),
        }
        if itinerary is not None:
            changes["itinerary"] = itinerary

        return await self._commit(trip.model_copy(update=changes))

    async def append_paid_traveler(self, trip_id: uuid.UUID, traveler_name: str) -> Trip | None:
        """Add a name to paid_travelers unless present."""
        trip = self._trips.get(trip_id)
        if trip is None:
            return None

        if traveler_name in trip.paid_travelers:
            return trip

        updated = trip.model_copy(
            update={
                "paid_travelers": [*trip.paid_travelers, traveler_name],
                "updated_at": datetime.now(timezone.utc),
            }
        )
        return await self._commit(updated)

    async def update_itinerary(
        self,
        trip_id: uuid.UUID,
        mutate: ItineraryMutation,
        *,
        actor_id: uuid.UUID | None = None,
    ) -> ItineraryUpdate | None:
        """Read-modify-write the itinerary."""
        trip = self._trips.get(trip_id)
        if trip is None or trip.itinerary is None:
            return None

        if actor_id is not None and trip.organizer_id != actor_id:
            raise PermissionDeniedError(f"user {actor_id} is not the organizer of {trip_id}")

        previous = trip.itinerary
        updated = trip.model_copy(
            update={
                "itinerary": mutate(previous.model_copy(deep=True)),
                "updated_at": datetime.now(timezone.utc),
            }
        )
        return ItineraryUpdate(previous=previous, trip=await self._commit(updated))


class InMemoryReactionStore:
    """In-memory implementation of ReactionStore."""

    def __init__(self, feed: ChangeFeed | None = None) -> None:
        self._rows: dict[ReactionIdentity, ActivityReaction] = {}
        self._feed = feed

    async def _publish(
        self,
        event: str,
        *,
        new: ActivityReaction | None = None,
        old: ActivityReaction | None = None,
    ) -> None:
        if self._feed is not None:
            await self._feed.publish(reaction_event(event, new=new, old=old))  # type: ignore[arg-type]

    async def list_reactions(self, trip_id: uuid.UUID) -> list[ActivityReaction]:
        """List all reaction rows for a trip."""
        rows = [row for row in self._rows.values() if row.trip_id == trip_id]
        rows.sort(key=lambda r: (r.day_number, r.activity_index, r.created_at))
        return rows

    async def get_reaction(
        self, trip_id: uuid.UUID, day_number: int, activity_index: int, user_id: uuid.UUID
    ) -> ActivityReaction | None:
        """Get the live reaction for one identity."""
        return self._rows.get((trip_id, day_number, activity_index, user_id))

    async def upsert_reaction(
        self,
        trip_id: uuid.UUID,
        day_number: int,
        activity_index: int,
        user_id: uuid.UUID,
        reaction: ReactionKind,
    ) -> ActivityReaction:
        """Insert or replace a reaction."""
        key = (trip_id, day_number, activity_index, user_id)
        existing = self._rows.get(key)

        if existing is not None:
            row = existing.model_copy(update={"reaction": reaction})
            self._rows[key] = row
            await self._publish("UPDATE", new=row, old=existing)
            return row

        row = ActivityReaction(
            id=uuid.uuid4(),
            trip_id=trip_id,
            user_id=user_id,
            day_number=day_number,
            activity_index=activity_index,
            reaction=reaction,
            created_at=datetime.now(timezone.utc),
        )
        self._rows[key] = row
        await self._publish("INSERT", new=row)
        return row

    async def delete_reaction(
        self, trip_id: uuid.UUID, day_number: int, activity_index: int, user_id: uuid.UUID
    ) -> bool:
        """Delete a reaction."""
        existing = self._rows.pop((trip_id, day_number, activity_index, user_id), None)
        if existing is None:
            return False

        await self._publish("DELETE", old=existing)
        return True

    async def reindex_day(
        self, trip_id: uuid.UUID, day_number: int, mapping: dict[int, int | None]
    ) -> None:
        """Move reactions of a day to new activity indices."""
        affected = [
            row
            for row in self._rows.values()
            if row.trip_id == trip_id
            and row.day_number == day_number
            and row.activity_index in mapping
            and mapping[row.activity_index] != row.activity_index
        ]

        # Remove all affected rows first so moved rows never collide
        for row in affected:
            del self._rows[(row.trip_id, row.day_number, row.activity_index, row.user_id)]

        for row in affected:
            new_index = mapping[row.activity_index]
            if new_index is None:
                await self._publish("DELETE", old=row)
                continue

            moved = row.model_copy(update={"activity_index": new_index})
            self._rows[(moved.trip_id, moved.day_number, new_index, moved.user_id)] = moved
            await self._publish("UPDATE", new=moved, old=row)

    async def clear_reactions(self, trip_id: uuid.UUID) -> int:
        """Delete every reaction of a trip."""
        doomed = [key for key, row in self._rows.items() if row.trip_id == trip_id]
        for key in doomed:
            await self._publish("DELETE", old=self._rows.pop(key))
        return len(doomed)
