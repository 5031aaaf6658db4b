"""SQL implementations of repository interfaces."""

import uuid
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.db.models import ActivityReaction as ReactionDB
from backend.app.db.models import Trip as TripDB
from backend.app.db.publishing import reaction_event, trip_event
from backend.app.db.repositories import (
    DuplicateShareCodeError,
    ItineraryMutation,
    ItineraryUpdate,
    PermissionDeniedError,
    StoreError,
)
from backend.app.feed.base import ChangeFeed
from backend.app.models.common import ItineraryStatus
from backend.app.models.events import ChangeEvent
from backend.app.models.itinerary import Itinerary
from backend.app.models.reactions import ActivityReaction, ReactionKind
from backend.app.models.trip import Trip, TripPatch
from backend.app.sync.status import can_transition

_JSON_COLUMNS = frozenset(
    {"travelers", "flights", "accommodation", "cost_breakdown", "itinerary", "paid_travelers"}
)
_TIMESTAMP_COLUMNS = ("link_created_at", "link_expires_at", "created_at", "updated_at")


def _as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _column_values(model: BaseModel, fields: Iterable[str]) -> dict[str, Any]:
    """Convert model fields to column values (JSON columns get JSON-mode dumps)."""
    names = set(fields)
    dumped = model.model_dump(mode="json", include=names)
    values: dict[str, Any] = {}

    for name in names:
        if name in _JSON_COLUMNS:
            values[name] = dumped[name]
            continue
        value = getattr(model, name)
        values[name] = value.value if isinstance(value, Enum) else value

    return values


def _to_trip(row: TripDB) -> Trip:
    data = {column.key: getattr(row, column.key) for column in TripDB.__table__.columns}
    for key in _TIMESTAMP_COLUMNS:
        data[key] = _as_utc(data[key])
    return Trip.model_validate(data)


def _to_reaction(row: ReactionDB) -> ActivityReaction:
    return ActivityReaction(
        id=row.id,
        trip_id=row.trip_id,
        user_id=row.user_id,
        day_number=row.day_number,
        activity_index=row.activity_index,
        reaction=ReactionKind(row.reaction),
        created_at=_as_utc(row.created_at),
    )


class _SqlStore:
    """Shared session and publish plumbing."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        feed: ChangeFeed | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._feed = feed

    async def _publish(self, events: Iterable[ChangeEvent]) -> None:
        if self._feed is None:
            return
        for event in events:
            await self._feed.publish(event)


class SqlTripStore(_SqlStore):
    """SQL implementation of TripStore.

    Read-modify-write operations lock the row (``SELECT ... FOR UPDATE``) and
    publish only after the transaction commits.
    """

    async def _locked(self, session: AsyncSession, trip_id: uuid.UUID) -> TripDB | None:
        result = await session.execute(
            select(TripDB).where(TripDB.id == trip_id).with_for_update()
        )
        return result.scalar_one_or_none()

    async def create_trip(self, trip: Trip) -> Trip:
        """Insert a new trip."""
        row = TripDB(**_column_values(trip, Trip.model_fields))

        try:
            async with self._session_factory() as session, session.begin():
                session.add(row)
        except IntegrityError as exc:
            raise DuplicateShareCodeError(f"share code {trip.share_code} is taken") from exc
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to create trip {trip.id}") from exc

        await self._publish([trip_event(trip, "INSERT")])
        return trip

    async def get_trip(self, trip_id: uuid.UUID) -> Trip | None:
        """Get trip by ID."""
        try:
            async with self._session_factory() as session:
                row = await session.get(TripDB, trip_id)
                return _to_trip(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to load trip {trip_id}") from exc

    async def get_trip_id_by_share_code(self, share_code: str) -> uuid.UUID | None:
        """Resolve a share code to a trip ID."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(TripDB.id).where(TripDB.share_code == share_code.upper())
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to resolve share code {share_code}") from exc

    async def update_trip(
        self, trip_id: uuid.UUID, patch: TripPatch, *, actor_id: uuid.UUID | None = None
    ) -> Trip | None:
        """Apply a patch in one write."""
        try:
            async with self._session_factory() as session, session.begin():
                row = await self._locked(session, trip_id)
                if row is None:
                    return None

                if actor_id is not None and row.organizer_id != actor_id:
                    raise PermissionDeniedError(
                        f"user {actor_id} is not the organizer of {trip_id}"
                    )

                for name, value in _column_values(patch, patch.model_fields_set).items():
                    setattr(row, name, value)
                row.updated_at = datetime.now(timezone.utc)
                trip = _to_trip(row)
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to update trip {trip_id}") from exc

        await self._publish([trip_event(trip)])
        return trip

    async def transition_status(
        self,
        trip_id: uuid.UUID,
        target: ItineraryStatus,
        *,
        itinerary: Itinerary | None = None,
        precondition: Callable[[Trip], bool] | None = None,
    ) -> Trip | None:
        """Conditionally advance itinerary status."""
        try:
            async with self._session_factory() as session, session.begin():
                row = await self._locked(session, trip_id)
                if row is None or not can_transition(ItineraryStatus(row.itinerary_status), target):
                    return None
                if precondition is not None and not precondition(_to_trip(row)):
                    return None

                row.itinerary_status = target.value
                if itinerary is not None:
                    row.itinerary = itinerary.model_dump(mode="json")
                row.updated_at = datetime.now(timezone.utc)
                trip = _to_trip(row)
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to move trip {trip_id} to {target.value}") from exc

        await self._publish([trip_event(trip)])
        return trip

    async def append_paid_traveler(self, trip_id: uuid.UUID, traveler_name: str) -> Trip | None:
        """Add a name to paid_travelers unless present."""
        try:
            async with self._session_factory() as session, session.begin():
                row = await self._locked(session, trip_id)
                if row is None:
                    return None

                if traveler_name in row.paid_travelers:
                    return _to_trip(row)

                # Reassign so the JSON column is flagged dirty
                row.paid_travelers = [*row.paid_travelers, traveler_name]
                row.updated_at = datetime.now(timezone.utc)
                trip = _to_trip(row)
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to record payment on trip {trip_id}") from exc

        await self._publish([trip_event(trip)])
        return trip

    async def update_itinerary(
        self,
        trip_id: uuid.UUID,
        mutate: ItineraryMutation,
        *,
        actor_id: uuid.UUID | None = None,
    ) -> ItineraryUpdate | None:
        """Read-modify-write the itinerary under a row lock."""
        try:
            async with self._session_factory() as session, session.begin():
                row = await self._locked(session, trip_id)
                if row is None or row.itinerary is None:
                    return None

                if actor_id is not None and row.organizer_id != actor_id:
                    raise PermissionDeniedError(
                        f"user {actor_id} is not the organizer of {trip_id}"
                    )

                previous = Itinerary.model_validate(row.itinerary)
                updated = mutate(previous.model_copy(deep=True))
                row.itinerary = updated.model_dump(mode="json")
                row.updated_at = datetime.now(timezone.utc)
                trip = _to_trip(row)
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to update itinerary of trip {trip_id}") from exc

        await self._publish([trip_event(trip)])
        return ItineraryUpdate(previous=previous, trip=trip)


class SqlReactionStore(_SqlStore):
    """SQL implementation of ReactionStore."""

    @staticmethod
    def _identity(
        trip_id: uuid.UUID, day_number: int, activity_index: int, user_id: uuid.UUID
    ) -> Any:
        return select(ReactionDB).where(
            ReactionDB.trip_id == trip_id,
            ReactionDB.day_number == day_number,
            ReactionDB.activity_index == activity_index,
            ReactionDB.user_id == user_id,
        )

    async def list_reactions(self, trip_id: uuid.UUID) -> list[ActivityReaction]:
        """List all reaction rows for a trip."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ReactionDB)
                    .where(ReactionDB.trip_id == trip_id)
                    .order_by(
                        ReactionDB.day_number,
                        ReactionDB.activity_index,
                        ReactionDB.created_at,
                    )
                )
                return [_to_reaction(row) for row in result.scalars()]
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to list reactions for trip {trip_id}") from exc

    async def get_reaction(
        self, trip_id: uuid.UUID, day_number: int, activity_index: int, user_id: uuid.UUID
    ) -> ActivityReaction | None:
        """Get the live reaction for one identity."""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    self._identity(trip_id, day_number, activity_index, user_id)
                )
                row = result.scalar_one_or_none()
                return _to_reaction(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to load reaction on trip {trip_id}") from exc

    async def upsert_reaction(
        self,
        trip_id: uuid.UUID,
        day_number: int,
        activity_index: int,
        user_id: uuid.UUID,
        reaction: ReactionKind,
    ) -> ActivityReaction:
        """Insert or replace a reaction."""
        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(
                    self._identity(trip_id, day_number, activity_index, user_id).with_for_update()
                )
                row = result.scalar_one_or_none()

                if row is not None:
                    old = _to_reaction(row)
                    row.reaction = reaction.value
                    new = _to_reaction(row)
                    event = reaction_event("UPDATE", new=new, old=old)
                else:
                    row = ReactionDB(
                        id=uuid.uuid4(),
                        trip_id=trip_id,
                        user_id=user_id,
                        day_number=day_number,
                        activity_index=activity_index,
                        reaction=reaction.value,
                        created_at=datetime.now(timezone.utc),
                    )
                    session.add(row)
                    new = _to_reaction(row)
                    event = reaction_event("INSERT", new=new)
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to save reaction on trip {trip_id}") from exc

        await self._publish([event])
        return new

    async def delete_reaction(
        self, trip_id: uuid.UUID, day_number: int, activity_index: int, user_id: uuid.UUID
    ) -> bool:
        """Delete a reaction."""
        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(
                    self._identity(trip_id, day_number, activity_index, user_id)
                )
                row = result.scalar_one_or_none()
                if row is None:
                    return False

                old = _to_reaction(row)
                await session.delete(row)
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to delete reaction on trip {trip_id}") from exc

        await self._publish([reaction_event("DELETE", old=old)])
        return True

    async def reindex_day(
        self, trip_id: uuid.UUID, day_number: int, mapping: dict[int, int | None]
    ) -> None:
        """Move reactions of a day to new activity indices."""
        moves = {old: new for old, new in mapping.items() if old != new}
        if not moves:
            return

        events: list[ChangeEvent] = []
        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(
                    select(ReactionDB)
                    .where(
                        ReactionDB.trip_id == trip_id,
                        ReactionDB.day_number == day_number,
                        ReactionDB.activity_index.in_(list(moves)),
                    )
                    .with_for_update()
                )
                rows = list(result.scalars())
                moved: list[tuple[ReactionDB, ActivityReaction, int]] = []

                for row in rows:
                    old = _to_reaction(row)
                    new_index = moves[row.activity_index]
                    if new_index is None:
                        await session.delete(row)
                        events.append(reaction_event("DELETE", old=old))
                        continue
                    # Park on a negative index so moves never hit the unique key
                    row.activity_index = -1 - new_index
                    moved.append((row, old, new_index))

                await session.flush()

                for row, old, new_index in moved:
                    row.activity_index = new_index
                    events.append(reaction_event("UPDATE", new=_to_reaction(row), old=old))
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to reindex reactions on trip {trip_id}") from exc

        await self._publish(events)

    async def clear_reactions(self, trip_id: uuid.UUID) -> int:
        """Delete every reaction of a trip."""
        try:
            async with self._session_factory() as session, session.begin():
                result = await session.execute(
                    select(ReactionDB).where(ReactionDB.trip_id == trip_id)
                )
                rows = list(result.scalars())
                events = [reaction_event("DELETE", old=_to_reaction(row)) for row in rows]
                for row in rows:
                    await session.delete(row)
        except SQLAlchemyError as exc:
            raise StoreError(f"failed to clear reactions on trip {trip_id}") from exc

        await self._publish(events)
        return len(events)
