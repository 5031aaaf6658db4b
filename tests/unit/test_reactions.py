"""Unit tests for reaction toggling and aggregation."""

import uuid
from collections.abc import Callable
from datetime import datetime, timezone

import pytest
import pytest_asyncio

from backend.app.db.inmemory import InMemoryReactionStore, InMemoryTripStore
from backend.app.db.repositories import StoreError
from backend.app.models.reactions import ActivityReaction, ReactionKind
from backend.app.models.results import ErrorKind
from backend.app.models.trip import Trip
from backend.app.sync.reactions import (
    ReactionService,
    ToggleAction,
    aggregate_reactions,
    resolve_toggle,
)

UP = ReactionKind.thumbs_up
DOWN = ReactionKind.thumbs_down


def _row(
    trip_id: uuid.UUID, user_id: uuid.UUID, day: int, index: int, kind: ReactionKind
) -> ActivityReaction:
    return ActivityReaction(
        id=uuid.uuid4(),
        trip_id=trip_id,
        user_id=user_id,
        day_number=day,
        activity_index=index,
        reaction=kind,
        created_at=datetime.now(timezone.utc),
    )


class TestResolveToggle:
    def test_same_kind_removes(self) -> None:
        assert resolve_toggle(UP, UP) == ToggleAction.remove

    def test_opposite_kind_replaces(self) -> None:
        assert resolve_toggle(UP, DOWN) == ToggleAction.upsert

    def test_no_reaction_inserts(self) -> None:
        assert resolve_toggle(None, DOWN) == ToggleAction.upsert


class TestAggregate:
    def test_counts_and_viewer_reaction(self) -> None:
        trip_id = uuid.uuid4()
        viewer = uuid.uuid4()
        other = uuid.uuid4()
        rows = [
            _row(trip_id, viewer, 2, 0, UP),
            _row(trip_id, other, 2, 0, DOWN),
            _row(trip_id, other, 1, 1, UP),
        ]

        aggregate = aggregate_reactions(rows, viewer)

        assert aggregate[(2, 0)].thumbs_up == 1
        assert aggregate[(2, 0)].thumbs_down == 1
        assert aggregate[(2, 0)].user_reaction == UP
        assert aggregate[(1, 1)].user_reaction is None
        assert (1, 0) not in aggregate

    def test_anonymous_viewer_has_no_own_reaction(self) -> None:
        trip_id = uuid.uuid4()
        aggregate = aggregate_reactions([_row(trip_id, uuid.uuid4(), 1, 0, UP)], None)

        assert aggregate[(1, 0)].user_reaction is None


class TestReactionService:
    """Toggle writes against the in-memory stores."""

    @pytest_asyncio.fixture
    async def trip(
        self, trip_store: InMemoryTripStore, ready_trip_factory: Callable[..., Trip]
    ) -> Trip:
        return await trip_store.create_trip(ready_trip_factory())

    @pytest.fixture
    def service(
        self, reaction_store: InMemoryReactionStore, trip_store: InMemoryTripStore
    ) -> ReactionService:
        return ReactionService(reaction_store, trip_store)

    @pytest.mark.asyncio
    async def test_toggle_scenario(self, service: ReactionService, trip: Trip) -> None:
        """Up, then down by the same viewer, then up by another viewer."""
        viewer_a = uuid.uuid4()
        viewer_b = uuid.uuid4()

        result = await service.react(trip.id, 2, 0, UP, viewer_a)
        assert result.success and result.value == UP
        counts = (await service.load(trip.id, viewer_a)).value[(2, 0)]  # type: ignore[index]
        assert (counts.thumbs_up, counts.thumbs_down, counts.user_reaction) == (1, 0, UP)

        result = await service.react(trip.id, 2, 0, DOWN, viewer_a)
        assert result.value == DOWN
        counts = (await service.load(trip.id, viewer_a)).value[(2, 0)]  # type: ignore[index]
        assert (counts.thumbs_up, counts.thumbs_down, counts.user_reaction) == (0, 1, DOWN)

        await service.react(trip.id, 2, 0, UP, viewer_b)
        counts = (await service.load(trip.id, viewer_a)).value[(2, 0)]  # type: ignore[index]
        assert (counts.thumbs_up, counts.thumbs_down) == (1, 1)

    @pytest.mark.asyncio
    async def test_same_kind_twice_removes_the_row(
        self, service: ReactionService, reaction_store: InMemoryReactionStore, trip: Trip
    ) -> None:
        viewer = uuid.uuid4()

        await service.react(trip.id, 1, 0, UP, viewer)
        result = await service.react(trip.id, 1, 0, UP, viewer)

        assert result.success
        assert result.value is None
        assert await reaction_store.list_reactions(trip.id) == []

    @pytest.mark.asyncio
    async def test_at_most_one_row_per_viewer_and_activity(
        self, service: ReactionService, reaction_store: InMemoryReactionStore, trip: Trip
    ) -> None:
        viewer = uuid.uuid4()

        for kind in (UP, DOWN, UP, DOWN):
            await service.react(trip.id, 1, 1, kind, viewer)

        rows = await reaction_store.list_reactions(trip.id)
        assert len(rows) == 1
        assert rows[0].reaction == DOWN

    @pytest.mark.asyncio
    async def test_anonymous_viewer_must_sign_in(self, service: ReactionService, trip: Trip) -> None:
        result = await service.react(trip.id, 1, 0, UP, None)

        assert not result.success
        assert result.kind == ErrorKind.sign_in_required

    @pytest.mark.asyncio
    async def test_unknown_activity_is_invalid(self, service: ReactionService, trip: Trip) -> None:
        result = await service.react(trip.id, 1, 7, UP, uuid.uuid4())

        assert result.kind == ErrorKind.invalid

    @pytest.mark.asyncio
    async def test_unknown_trip_is_not_found(self, service: ReactionService) -> None:
        result = await service.react(uuid.uuid4(), 1, 0, UP, uuid.uuid4())

        assert result.kind == ErrorKind.not_found

    @pytest.mark.asyncio
    async def test_store_failure_is_transient(self, trip: Trip) -> None:
        class BrokenStore(InMemoryReactionStore):
            async def list_reactions(self, trip_id: uuid.UUID) -> list[ActivityReaction]:
                raise StoreError("connection reset")

        result = await ReactionService(BrokenStore()).load(trip.id, None)

        assert not result.success
        assert result.kind == ErrorKind.transient
