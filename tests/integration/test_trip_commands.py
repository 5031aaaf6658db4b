"""Integration tests for trip commands over in-memory stores."""

import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import pytest

from backend.app.adapters.pricing import FixturePricingClient
from backend.app.db.inmemory import InMemoryReactionStore, InMemoryTripStore
from backend.app.models.common import Airport, ItineraryStatus
from backend.app.models.itinerary import Activity
from backend.app.models.reactions import ReactionKind
from backend.app.models.results import ErrorKind, UpstreamError
from backend.app.models.trip import Trip, TripDraft, TripEdit
from backend.app.orchestration.trip_commands import TripCommands
from backend.app.sync.background import drain

UP = ReactionKind.thumbs_up


def _draft(trip: Trip, organizer_id: uuid.UUID | None = None) -> TripDraft:
    return TripDraft(
        organizer_name="Alice",
        organizer_id=organizer_id,
        destination=trip.destination,
        travelers=trip.travelers,
        departure_date=trip.departure_date,
        return_date=trip.return_date,
    )


class TestCreateTrip:
    @pytest.mark.asyncio
    async def test_creates_priced_pending_trip(
        self,
        commands: TripCommands,
        trip_store: InMemoryTripStore,
        trip_factory: Callable[..., Trip],
        alice_id: uuid.UUID,
    ) -> None:
        result = await commands.create_trip(_draft(trip_factory(), alice_id))

        assert result.success
        trip = result.value
        assert trip is not None
        assert trip.itinerary_status == ItineraryStatus.pending
        assert trip.organizer_id == alice_id
        assert trip.trip_total == sum(e.subtotal for e in trip.cost_breakdown)
        assert len(trip.share_code) == 6
        assert await trip_store.get_trip_id_by_share_code(trip.share_code.lower()) == trip.id

    @pytest.mark.asyncio
    async def test_pricing_failure_creates_nothing(
        self,
        commands: TripCommands,
        pricing: FixturePricingClient,
        trip_factory: Callable[..., Trip],
    ) -> None:
        pricing.fail_with = UpstreamError("Rate limit exceeded", ErrorKind.rate_limited)

        result = await commands.create_trip(_draft(trip_factory()))

        assert not result.success
        assert result.kind == ErrorKind.rate_limited

    @pytest.mark.asyncio
    async def test_share_code_collision_draws_again(
        self,
        commands: TripCommands,
        trip_store: InMemoryTripStore,
        trip_factory: Callable[..., Trip],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        await trip_store.create_trip(trip_factory(share_code="TAKEN2"))
        codes = iter(["TAKEN2", "FRESH3"])
        monkeypatch.setattr(
            "backend.app.orchestration.trip_commands.generate_share_code", lambda: next(codes)
        )

        result = await commands.create_trip(_draft(trip_factory()))

        assert result.value is not None
        assert result.value.share_code == "FRESH3"

    @pytest.mark.asyncio
    async def test_share_code_attempts_exhausted(
        self,
        commands: TripCommands,
        trip_store: InMemoryTripStore,
        trip_factory: Callable[..., Trip],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        await trip_store.create_trip(trip_factory(share_code="TAKEN2"))
        monkeypatch.setattr(
            "backend.app.orchestration.trip_commands.generate_share_code", lambda: "TAKEN2"
        )

        result = await commands.create_trip(_draft(trip_factory()))

        assert result.kind == ErrorKind.transient


class TestClaimAndPay:
    @pytest.mark.asyncio
    async def test_claim_opens_link_window(
        self,
        commands: TripCommands,
        trip_store: InMemoryTripStore,
        trip_factory: Callable[..., Trip],
        alice_id: uuid.UUID,
    ) -> None:
        trip = await trip_store.create_trip(trip_factory())

        result = await commands.claim(trip.id, alice_id)

        claimed = result.value
        assert claimed is not None
        assert claimed.organizer_id == alice_id
        assert claimed.link_created_at is not None
        assert claimed.link_expires_at == claimed.link_created_at + timedelta(hours=24)

    @pytest.mark.asyncio
    async def test_claim_requires_sign_in(
        self,
        commands: TripCommands,
        trip_store: InMemoryTripStore,
        trip_factory: Callable[..., Trip],
    ) -> None:
        trip = await trip_store.create_trip(trip_factory())

        assert (await commands.claim(trip.id, None)).kind == ErrorKind.sign_in_required

    @pytest.mark.asyncio
    async def test_second_claimer_rejected_first_keeps_window(
        self,
        commands: TripCommands,
        trip_store: InMemoryTripStore,
        trip_factory: Callable[..., Trip],
        alice_id: uuid.UUID,
        bob_id: uuid.UUID,
    ) -> None:
        trip = await trip_store.create_trip(trip_factory())
        first = await commands.claim(trip.id, alice_id)

        assert (await commands.claim(trip.id, bob_id)).kind == ErrorKind.unauthorized
        again = await commands.claim(trip.id, alice_id)
        assert again.value is not None
        assert first.value is not None
        assert again.value.link_expires_at == first.value.link_expires_at

    @pytest.mark.asyncio
    async def test_mark_paid_is_idempotent(
        self,
        commands: TripCommands,
        trip_store: InMemoryTripStore,
        trip_factory: Callable[..., Trip],
        alice_id: uuid.UUID,
    ) -> None:
        trip = await trip_store.create_trip(trip_factory())
        await commands.claim(trip.id, alice_id)

        await commands.mark_paid(trip.id, "Bob")
        result = await commands.mark_paid(trip.id, "Bob")

        assert result.value is not None
        assert result.value.paid_travelers == ["Bob"]

    @pytest.mark.asyncio
    async def test_mark_paid_unknown_name(
        self,
        commands: TripCommands,
        trip_store: InMemoryTripStore,
        trip_factory: Callable[..., Trip],
    ) -> None:
        trip = await trip_store.create_trip(trip_factory())

        assert (await commands.mark_paid(trip.id, "Mallory")).kind == ErrorKind.invalid

    @pytest.mark.asyncio
    async def test_mark_paid_after_expiry_rejected(
        self,
        commands: TripCommands,
        trip_store: InMemoryTripStore,
        trip_factory: Callable[..., Trip],
        alice_id: uuid.UUID,
    ) -> None:
        trip = await trip_store.create_trip(trip_factory())
        await commands.claim(trip.id, alice_id)
        commands.clock = lambda: datetime.now(timezone.utc) + timedelta(hours=25)

        result = await commands.mark_paid(trip.id, "Carol")

        assert result.kind == ErrorKind.link_expired
        stored = await trip_store.get_trip(trip.id)
        assert stored is not None
        assert stored.paid_travelers == []


class TestEditTrip:
    @pytest.mark.asyncio
    async def test_edit_reprices_and_resets(
        self,
        commands: TripCommands,
        trip_store: InMemoryTripStore,
        reaction_store: InMemoryReactionStore,
        ready_trip_factory: Callable[..., Trip],
        alice_id: uuid.UUID,
        bob_id: uuid.UUID,
    ) -> None:
        trip = await trip_store.create_trip(ready_trip_factory())
        await reaction_store.upsert_reaction(trip.id, 1, 0, bob_id, UP)
        new_return = trip.return_date + timedelta(days=2)

        result = await commands.edit_trip(
            trip.id,
            TripEdit(
                return_date=new_return,
                organizer_origin=Airport(iata="BOS", city="Boston", country="USA"),
            ),
            alice_id,
        )

        edited = result.value
        assert edited is not None
        assert edited.return_date == new_return
        assert edited.itinerary is None
        assert edited.itinerary_status == ItineraryStatus.pending
        assert edited.travelers[0].origin.iata == "BOS"
        assert edited.trip_total == sum(e.subtotal for e in edited.cost_breakdown)
        assert edited.accommodation is not None
        assert edited.accommodation.total_nights == 3
        assert await reaction_store.list_reactions(trip.id) == []

        # generation runs detached and lands on the store
        await drain(timeout=5)
        regenerated = await trip_store.get_trip(trip.id)
        assert regenerated is not None
        assert regenerated.itinerary_status == ItineraryStatus.complete
        assert regenerated.itinerary is not None
        assert len(regenerated.itinerary.days) == 4

    @pytest.mark.asyncio
    async def test_pricing_failure_leaves_trip_untouched(
        self,
        commands: TripCommands,
        trip_store: InMemoryTripStore,
        pricing: FixturePricingClient,
        ready_trip_factory: Callable[..., Trip],
        alice_id: uuid.UUID,
    ) -> None:
        trip = await trip_store.create_trip(ready_trip_factory())
        pricing.fail_with = UpstreamError("Payment required", ErrorKind.quota_exceeded)

        result = await commands.edit_trip(
            trip.id, TripEdit(return_date=trip.return_date + timedelta(days=1)), alice_id
        )

        assert result.kind == ErrorKind.quota_exceeded
        assert await trip_store.get_trip(trip.id) == trip

    @pytest.mark.asyncio
    async def test_only_organizer_may_edit(
        self,
        commands: TripCommands,
        trip_store: InMemoryTripStore,
        ready_trip_factory: Callable[..., Trip],
        bob_id: uuid.UUID,
    ) -> None:
        trip = await trip_store.create_trip(ready_trip_factory())

        assert (await commands.edit_trip(trip.id, TripEdit(), bob_id)).kind == ErrorKind.unauthorized
        assert (await commands.edit_trip(trip.id, TripEdit(), None)).kind == ErrorKind.sign_in_required

    @pytest.mark.asyncio
    async def test_return_before_departure_rejected(
        self,
        commands: TripCommands,
        trip_store: InMemoryTripStore,
        ready_trip_factory: Callable[..., Trip],
        alice_id: uuid.UUID,
    ) -> None:
        trip = await trip_store.create_trip(ready_trip_factory())

        result = await commands.edit_trip(
            trip.id, TripEdit(return_date=trip.departure_date - timedelta(days=1)), alice_id
        )

        assert result.kind == ErrorKind.invalid


class TestActivityEdits:
    @pytest.mark.asyncio
    async def test_insert_moves_reactions_with_their_activity(
        self,
        commands: TripCommands,
        trip_store: InMemoryTripStore,
        reaction_store: InMemoryReactionStore,
        ready_trip_factory: Callable[..., Trip],
        alice_id: uuid.UUID,
        bob_id: uuid.UUID,
    ) -> None:
        trip = await trip_store.create_trip(ready_trip_factory())
        await reaction_store.upsert_reaction(trip.id, 1, 1, bob_id, UP)

        result = await commands.add_activity(
            trip.id,
            1,
            Activity(time="8:00 AM", title="Coffee", type="restaurant", estimated_cost=5),
            alice_id,
            position=0,
        )

        assert result.value is not None
        day = result.value.itinerary.days[0]  # type: ignore[union-attr]
        assert [a.title for a in day.activities] == ["Coffee", "Food tour", "Museum", "River walk"]
        rows = await reaction_store.list_reactions(trip.id)
        assert [(r.day_number, r.activity_index) for r in rows] == [(1, 2)]

    @pytest.mark.asyncio
    async def test_add_appends_by_default(
        self,
        commands: TripCommands,
        trip_store: InMemoryTripStore,
        ready_trip_factory: Callable[..., Trip],
        alice_id: uuid.UUID,
    ) -> None:
        trip = await trip_store.create_trip(ready_trip_factory())

        result = await commands.add_activity(
            trip.id, 2, Activity(time="9:00 PM", title="Fado", type="event"), alice_id
        )

        assert result.value is not None
        assert result.value.itinerary.days[1].activities[-1].title == "Fado"  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_readding_existing_activity_gets_its_own_id(
        self,
        commands: TripCommands,
        trip_store: InMemoryTripStore,
        ready_trip_factory: Callable[..., Trip],
        alice_id: uuid.UUID,
    ) -> None:
        trip = await trip_store.create_trip(ready_trip_factory())
        food_tour = trip.itinerary.days[0].activities[0]  # type: ignore[union-attr]

        added = await commands.add_activity(trip.id, 2, food_tour, alice_id)

        assert added.value is not None
        itinerary = added.value.itinerary
        assert itinerary is not None
        ids = [a.activity_id for day in itinerary.days for a in day.activities]
        assert len(ids) == len(set(ids))
        assert itinerary.days[1].activities[2].title == "Food tour"

        removed = await commands.remove_activity(trip.id, 2, 2, alice_id)

        assert removed.value is not None
        days = removed.value.itinerary.days  # type: ignore[union-attr]
        assert [a.title for a in days[0].activities] == ["Food tour", "Museum", "River walk"]
        assert [a.title for a in days[1].activities] == ["Castle", "Viewpoint"]

    @pytest.mark.asyncio
    async def test_remove_drops_reactions_and_shifts_later_ones(
        self,
        commands: TripCommands,
        trip_store: InMemoryTripStore,
        reaction_store: InMemoryReactionStore,
        ready_trip_factory: Callable[..., Trip],
        alice_id: uuid.UUID,
        bob_id: uuid.UUID,
    ) -> None:
        trip = await trip_store.create_trip(ready_trip_factory())
        await reaction_store.upsert_reaction(trip.id, 1, 0, bob_id, UP)
        await reaction_store.upsert_reaction(trip.id, 1, 2, bob_id, UP)

        result = await commands.remove_activity(trip.id, 1, 0, alice_id)

        assert result.success
        rows = await reaction_store.list_reactions(trip.id)
        assert [(r.day_number, r.activity_index) for r in rows] == [(1, 1)]

    @pytest.mark.asyncio
    async def test_remove_by_stale_id_is_not_found(
        self,
        commands: TripCommands,
        trip_store: InMemoryTripStore,
        ready_trip_factory: Callable[..., Trip],
        alice_id: uuid.UUID,
    ) -> None:
        trip = await trip_store.create_trip(ready_trip_factory())

        result = await commands.remove_activity(trip.id, 1, 0, alice_id, activity_id="gone")

        assert result.kind == ErrorKind.not_found

    @pytest.mark.asyncio
    async def test_remove_by_id_after_shift_hits_intended_activity(
        self,
        commands: TripCommands,
        trip_store: InMemoryTripStore,
        ready_trip_factory: Callable[..., Trip],
        alice_id: uuid.UUID,
    ) -> None:
        trip = await trip_store.create_trip(ready_trip_factory())
        museum_id = trip.itinerary.days[0].activities[1].activity_id  # type: ignore[union-attr]
        await commands.add_activity(
            trip.id, 1, Activity(time="8:00 AM", title="Coffee", type="restaurant"), alice_id, 0
        )

        # Viewer still shows the museum at index 1
        result = await commands.remove_activity(trip.id, 1, 1, alice_id, activity_id=museum_id)

        assert result.value is not None
        titles = [a.title for a in result.value.itinerary.days[0].activities]  # type: ignore[union-attr]
        assert titles == ["Coffee", "Food tour", "River walk"]

    @pytest.mark.asyncio
    async def test_replace_with_cheaper_alternative(
        self,
        commands: TripCommands,
        trip_store: InMemoryTripStore,
        reaction_store: InMemoryReactionStore,
        ready_trip_factory: Callable[..., Trip],
        alice_id: uuid.UUID,
        bob_id: uuid.UUID,
    ) -> None:
        trip = await trip_store.create_trip(ready_trip_factory())
        await reaction_store.upsert_reaction(trip.id, 1, 1, bob_id, UP)

        result = await commands.replace_activity_with_alternative(
            trip.id, 1, 1, "cheaper", alice_id
        )

        assert result.value is not None
        replaced = result.value.itinerary.days[0].activities[1]  # type: ignore[union-attr]
        assert replaced.cost == 30
        assert replaced.time == "1:00 PM"
        assert await reaction_store.list_reactions(trip.id) == []

    @pytest.mark.asyncio
    async def test_edits_need_everyone_paid(
        self,
        commands: TripCommands,
        trip_store: InMemoryTripStore,
        ready_trip_factory: Callable[..., Trip],
        alice_id: uuid.UUID,
    ) -> None:
        trip = await trip_store.create_trip(ready_trip_factory(paid_travelers=["Alice"]))

        result = await commands.remove_activity(trip.id, 1, 0, alice_id)

        assert result.kind == ErrorKind.invalid

    @pytest.mark.asyncio
    async def test_edits_are_organizer_only(
        self,
        commands: TripCommands,
        trip_store: InMemoryTripStore,
        ready_trip_factory: Callable[..., Trip],
        bob_id: uuid.UUID,
    ) -> None:
        trip = await trip_store.create_trip(ready_trip_factory())

        result = await commands.add_activity(
            trip.id, 1, Activity(time="8:00 AM", title="Coffee", type="restaurant"), bob_id
        )

        assert result.kind == ErrorKind.unauthorized

    @pytest.mark.asyncio
    async def test_position_outside_day_rejected(
        self,
        commands: TripCommands,
        trip_store: InMemoryTripStore,
        ready_trip_factory: Callable[..., Trip],
        alice_id: uuid.UUID,
    ) -> None:
        trip = await trip_store.create_trip(ready_trip_factory())

        result = await commands.add_activity(
            trip.id, 1, Activity(time="8:00 AM", title="Coffee", type="restaurant"), alice_id, 9
        )

        assert result.kind == ErrorKind.invalid
