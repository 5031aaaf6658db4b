"""Per-view trip session: snapshot, change-feed subscriptions and write intents."""

import logging
from datetime import datetime, timedelta, timezone
from types import TracebackType
from uuid import UUID

from pydantic import ValidationError

from backend.app.feed.base import ChangeFeed, Subscription
from backend.app.llm.client import PriceDirection
from backend.app.models.common import ActivityKey, ItineraryStatus
from backend.app.models.costs import AdjustedCosts
from backend.app.models.events import ChangeEvent, reactions_topic, trip_topic
from backend.app.models.itinerary import Activity
from backend.app.models.reactions import ReactionKind
from backend.app.models.results import ErrorKind, Result
from backend.app.models.trip import Trip, TripEdit
from backend.app.orchestration.trip_commands import TripCommands
from backend.app.sync import costs
from backend.app.sync.reactions import ReactionMap, ReactionService
from backend.app.sync.state import TripViewState
from backend.app.utils.metrics import PrometheusSyncMetrics

logger = logging.getLogger(__name__)


class TripSession:
    """State and intents of one viewer looking at one trip.

    A session is built per view and torn down with it; nothing is cached
    process-wide. ``load`` subscribes to the trip and reaction topics and
    ``close`` releases both. Writes that resolve after ``close`` leave the
    released state alone.

    Usage::

        async with TripSession(trip_id, viewer_id, commands, reactions, feed) as session:
            await session.load()
            await session.mark_paid("Alice")
    """

    def __init__(
        self,
        trip_id: UUID,
        viewer_id: UUID | None,
        commands: TripCommands,
        reactions: ReactionService,
        feed: ChangeFeed,
        metrics: PrometheusSyncMetrics | None = None,
    ) -> None:
        self.trip_id = trip_id
        self.viewer_id = viewer_id
        self._commands = commands
        self._reactions = reactions
        self._feed = feed
        self._metrics = metrics or PrometheusSyncMetrics()
        self._subscriptions: list[Subscription] = []
        self._state: TripViewState | None = None
        self._closed = False

    # Lifecycle

    async def __aenter__(self) -> "TripSession":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def state(self) -> TripViewState:
        if self._state is None:
            raise RuntimeError("session is not loaded")
        return self._state

    @property
    def trip(self) -> Trip:
        return self.state.authoritative

    async def load(self) -> Result[Trip]:
        """Load the snapshot and reactions, subscribe, and kick off generation.

        Generation is started (detached) when the trip is still pending.
        Several viewers may do this at once; the generator tolerates it.
        """
        if self._closed:
            return Result.fail(ErrorKind.invalid, "Session is closed")

        loaded = await self._commands.get_trip(self.trip_id)
        if not loaded.success or loaded.value is None:
            return loaded

        if self._state is None:
            self._state = TripViewState(loaded.value)
        else:
            self._state.apply_snapshot(loaded.value)

        await self.reload_reactions()

        if not self._subscriptions:
            self._subscriptions.append(
                await self._feed.subscribe(trip_topic(self.trip_id), self._on_trip_event)
            )
            self._subscriptions.append(
                await self._feed.subscribe(reactions_topic(self.trip_id), self._on_reaction_event)
            )

        if self._state.status == ItineraryStatus.pending:
            self._commands.trigger_generation(self.trip_id)

        return Result.ok(self._state.authoritative)

    async def close(self) -> None:
        """Release every subscription. Safe to call repeatedly."""
        self._closed = True
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            await subscription.unsubscribe()

    # Feed handlers

    async def _on_trip_event(self, event: ChangeEvent) -> None:
        if self._closed or self._state is None or event.record is None:
            return
        try:
            snapshot = Trip.model_validate(event.record)
        except ValidationError:
            logger.warning("Ignoring malformed trip snapshot for %s", self.trip_id)
            return
        self._state.apply_snapshot(snapshot)

    async def _on_reaction_event(self, event: ChangeEvent) -> None:
        if self._closed:
            return
        await self.reload_reactions()

    async def reload_reactions(self) -> Result[ReactionMap]:
        """Recompute the reaction aggregate from raw rows."""
        result = await self._reactions.load(self.trip_id, self.viewer_id)
        if result.success and result.value is not None and not self._closed and self._state:
            self._state.reactions = result.value
        return result

    def _adopt(self, trip: Trip | None) -> None:
        """Take a write result unless a newer snapshot already arrived."""
        if trip is None or self._closed or self._state is None:
            return
        if trip.updated_at >= self._state.authoritative.updated_at:
            self._state.apply_snapshot(trip)

    def _not_ready(self) -> Result[Trip] | None:
        if self._closed:
            return Result.fail(ErrorKind.invalid, "Session is closed")
        if self._state is None:
            return Result.fail(ErrorKind.invalid, "Trip is not loaded")
        return None

    def _require_organizer(self) -> Result[Trip] | None:
        if self.viewer_id is None:
            return Result.fail(ErrorKind.sign_in_required, "Sign in to edit this trip")
        if not self.trip.is_organizer(self.viewer_id):
            return Result.fail(ErrorKind.unauthorized, "Only the organizer can edit this trip")
        return None

    # Write intents

    async def mark_paid(self, traveler_name: str, now: datetime | None = None) -> Result[Trip]:
        """Optimistically mark a traveler paid.

        The name shows as paid immediately; a failed write rolls it back.
        """
        blocked = self._not_ready()
        if blocked is not None:
            return blocked

        state = self.state
        if traveler_name not in state.authoritative.traveler_names:
            return Result.fail(ErrorKind.invalid, f"{traveler_name} is not on this trip")
        if state.authoritative.is_link_expired(now or datetime.now(timezone.utc)):
            return Result.fail(ErrorKind.link_expired, "This trip link has expired")
        if traveler_name in state.paid_travelers:
            return Result.ok(state.authoritative)

        state.pending_paid.add(traveler_name)
        result = await self._commands.mark_paid(self.trip_id, traveler_name)

        if self._closed:
            return result

        state.pending_paid.discard(traveler_name)
        if not result.success:
            self._metrics.inc_rollback("pay")
            logger.info("Rolled back optimistic payment for %s on %s", traveler_name, self.trip_id)
            return result

        self._adopt(result.value)
        return result

    async def react(
        self, day_number: int, activity_index: int, kind: ReactionKind
    ) -> Result[ReactionKind | None]:
        """Toggle the viewer's reaction and refresh the aggregate."""
        if self._closed:
            return Result.fail(ErrorKind.invalid, "Session is closed")

        result = await self._reactions.react(
            self.trip_id, day_number, activity_index, kind, self.viewer_id
        )
        if result.success and not self._closed:
            await self.reload_reactions()
        return result

    async def claim(self) -> Result[Trip]:
        blocked = self._not_ready()
        if blocked is not None:
            return blocked

        result = await self._commands.claim(self.trip_id, self.viewer_id)
        self._adopt(result.value)
        return result

    async def edit_trip(self, edit: TripEdit) -> Result[Trip]:
        """Re-price with edited parameters (organizer only)."""
        blocked = self._not_ready() or self._require_organizer()
        if blocked is not None:
            return blocked

        result = await self._commands.edit_trip(self.trip_id, edit, self.viewer_id)
        self._adopt(result.value)
        return result

    async def add_activity(
        self, day_number: int, activity: Activity, position: int | None = None
    ) -> Result[Trip]:
        blocked = self._not_ready() or self._require_organizer()
        if blocked is not None:
            return blocked

        result = await self._commands.add_activity(
            self.trip_id, day_number, activity, self.viewer_id, position
        )
        self._adopt(result.value)
        return result

    async def remove_activity(self, day_number: int, activity_index: int) -> Result[Trip]:
        """Remove the activity this view shows at (day, index)."""
        blocked = self._not_ready() or self._require_organizer()
        if blocked is not None:
            return blocked

        result = await self._commands.remove_activity(
            self.trip_id,
            day_number,
            activity_index,
            self.viewer_id,
            activity_id=self._activity_id_at(day_number, activity_index),
        )
        self._adopt(result.value)
        return result

    async def replace_activity_with_alternative(
        self, day_number: int, activity_index: int, direction: PriceDirection
    ) -> Result[Trip]:
        """Swap an activity for a cheaper or pricier alternative."""
        blocked = self._not_ready() or self._require_organizer()
        if blocked is not None:
            return blocked

        result = await self._commands.replace_activity_with_alternative(
            self.trip_id,
            day_number,
            activity_index,
            direction,
            self.viewer_id,
            activity_id=self._activity_id_at(day_number, activity_index),
        )
        self._adopt(result.value)
        return result

    def _activity_id_at(self, day_number: int, activity_index: int) -> str | None:
        itinerary = self.trip.itinerary
        activity = itinerary.activity_at(day_number, activity_index) if itinerary else None
        return activity.activity_id if activity is not None else None

    # Selection (client-local, never written)

    @property
    def selection(self) -> costs.SelectionSet:
        return self.state.selection

    def toggle_activity(self, key: ActivityKey) -> None:
        self.state.selection = costs.toggle_activity(self.state.selection, key)

    def add_all_activities(self) -> None:
        self.state.selection = costs.add_all_activities(self.trip.itinerary)

    def add_day_activities(self, day_number: int) -> None:
        self.state.selection = costs.add_day_activities(
            self.state.selection, self.trip.itinerary, day_number
        )

    def remove_day_activities(self, day_number: int) -> None:
        self.state.selection = costs.remove_day_activities(self.state.selection, day_number)

    def clear_selection(self) -> None:
        self.state.selection = costs.EMPTY_SELECTION

    @property
    def all_selected(self) -> bool:
        return costs.all_selected(self.state.selection, self.trip.itinerary)

    def all_day_selected(self, day_number: int) -> bool:
        return costs.all_day_selected(self.state.selection, self.trip.itinerary, day_number)

    # Derived view data

    def adjusted_costs(self) -> AdjustedCosts:
        return self.state.adjusted_costs()

    @property
    def reactions(self) -> ReactionMap:
        return self.state.reactions

    @property
    def paid_travelers(self) -> frozenset[str]:
        return self.state.paid_travelers

    def countdown(self, now: datetime | None = None) -> timedelta | None:
        return self.state.countdown(now or datetime.now(timezone.utc))
