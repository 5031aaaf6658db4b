"""Trip write operations: create, claim, pay, edit-and-reprice, activity edits.

Every operation returns a ``Result``; store and upstream failures are
converted at this boundary and never raised to callers.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from backend.app.adapters.pricing import PricingClient, PricingRequest, PricingResult
from backend.app.adapters.share_image import ShareImageClient
from backend.app.db.repositories import (
    DuplicateShareCodeError,
    PermissionDeniedError,
    ReactionStore,
    StoreError,
    TripStore,
)
from backend.app.llm.client import AlternativeRequest, ItineraryLLMClient, PriceDirection
from backend.app.models.common import ItineraryStatus
from backend.app.models.itinerary import Activity, Itinerary, new_activity_id, reindex_map
from backend.app.models.results import ConfigurationError, ErrorKind, Result, UpstreamError
from backend.app.models.trip import Traveler, Trip, TripDraft, TripEdit, TripPatch
from backend.app.orchestration.generation import ItineraryGenerationService
from backend.app.sync.background import spawn_detached
from backend.app.utils.logging import StructuredSyncLogger
from backend.app.utils.share_code import generate_share_code

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActivityMissingError(Exception):
    """Addressed activity no longer exists in the stored itinerary."""

    pass


def _upstream_failure(exc: UpstreamError | ConfigurationError) -> Result[Trip]:
    if isinstance(exc, ConfigurationError):
        return Result.fail(ErrorKind.configuration, str(exc))
    return Result.fail(exc.kind, str(exc))


class TripCommands:
    """Server-side write path shared by the HTTP API and trip sessions."""

    def __init__(
        self,
        trips: TripStore,
        reactions: ReactionStore,
        pricing: PricingClient,
        llm: ItineraryLLMClient,
        generation: ItineraryGenerationService,
        share_image: ShareImageClient,
        *,
        link_ttl: timedelta = timedelta(hours=24),
        share_code_max_attempts: int = 10,
        clock: Clock = utcnow,
        sync_logger: StructuredSyncLogger | None = None,
    ) -> None:
        self.trips = trips
        self.reactions = reactions
        self.pricing = pricing
        self.llm = llm
        self.generation = generation
        self.share_image = share_image
        self.link_ttl = link_ttl
        self.share_code_max_attempts = share_code_max_attempts
        self.clock = clock
        self._log = sync_logger or StructuredSyncLogger()

    async def get_trip(self, trip_id: uuid.UUID) -> Result[Trip]:
        """Load a trip snapshot."""
        try:
            trip = await self.trips.get_trip(trip_id)
        except StoreError as exc:
            logger.warning("Failed to load trip %s: %s", trip_id, exc)
            return Result.fail(ErrorKind.transient, "Could not load trip, try again")

        if trip is None:
            return Result.fail(ErrorKind.not_found, "Trip not found")
        return Result.ok(trip)

    async def resolve_share_code(self, share_code: str) -> Result[uuid.UUID]:
        """Resolve a share code (case-insensitive) to a trip id."""
        try:
            trip_id = await self.trips.get_trip_id_by_share_code(share_code.strip())
        except StoreError as exc:
            logger.warning("Failed to resolve share code: %s", exc)
            return Result.fail(ErrorKind.transient, "Could not look up trip, try again")

        if trip_id is None:
            return Result.fail(ErrorKind.not_found, "Trip not found")
        return Result.ok(trip_id)

    async def create_trip(self, draft: TripDraft) -> Result[Trip]:
        """Price the group and persist a new pending trip.

        The share code is drawn at random and checked against existing trips;
        a collision at insert time (concurrent create) draws again.
        """
        request = PricingRequest(
            destination=draft.destination,
            travelers=draft.travelers,
            departure_date=draft.departure_date,
            return_date=draft.return_date,
            accommodation_type=draft.accommodation_type,
        )
        try:
            priced = await self.pricing.search(request)
        except (UpstreamError, ConfigurationError) as exc:
            logger.warning("Pricing search failed for new trip: %s", exc)
            return _upstream_failure(exc)

        now = self.clock()
        for _ in range(self.share_code_max_attempts):
            code = generate_share_code()
            try:
                if await self.trips.get_trip_id_by_share_code(code) is not None:
                    continue

                trip = Trip(
                    id=uuid.uuid4(),
                    organizer_id=draft.organizer_id,
                    organizer_name=draft.organizer_name,
                    destination_city=draft.destination.city,
                    destination_country=draft.destination.country,
                    destination_iata=draft.destination.iata,
                    departure_date=draft.departure_date,
                    return_date=draft.return_date,
                    accommodation_type=draft.accommodation_type,
                    travelers=draft.travelers,
                    flights=priced.flights,
                    accommodation=priced.accommodation,
                    cost_breakdown=priced.cost_breakdown,
                    total_per_person=priced.total_per_person,
                    trip_total=priced.trip_total,
                    share_code=code,
                    created_at=now,
                    updated_at=now,
                )
                created = await self.trips.create_trip(trip)
            except DuplicateShareCodeError:
                continue
            except StoreError as exc:
                logger.warning("Failed to save new trip: %s", exc)
                return Result.fail(ErrorKind.transient, "Could not save trip, try again")

            self._log.log_write("create", created.id, "success", share_code=code)
            return Result.ok(created)

        logger.error("No free share code after %d attempts", self.share_code_max_attempts)
        return Result.fail(ErrorKind.transient, "Could not allocate a share code, try again")

    async def claim(self, trip_id: uuid.UUID, user_id: uuid.UUID | None) -> Result[Trip]:
        """Make the user organizer and start the share link window.

        Re-claiming by the current organizer keeps the existing window.
        """
        if user_id is None:
            return Result.fail(ErrorKind.sign_in_required, "Sign in to claim this trip")

        loaded = await self.get_trip(trip_id)
        if not loaded.success or loaded.value is None:
            return loaded
        trip = loaded.value

        if trip.organizer_id is not None and trip.organizer_id != user_id:
            return Result.fail(ErrorKind.unauthorized, "Trip already has an organizer")

        if trip.organizer_id == user_id and trip.link_expires_at is not None:
            return Result.ok(trip)

        now = self.clock()
        patch = TripPatch(
            organizer_id=user_id,
            link_created_at=now,
            link_expires_at=now + self.link_ttl,
        )
        try:
            claimed = await self.trips.update_trip(trip_id, patch)
        except StoreError as exc:
            self._log.log_write("claim", trip_id, "error", error_reason=str(exc))
            return Result.fail(ErrorKind.transient, "Could not claim trip, try again")

        if claimed is None:
            return Result.fail(ErrorKind.not_found, "Trip not found")

        self._log.log_write("claim", trip_id, "success")
        return Result.ok(claimed)

    async def mark_paid(self, trip_id: uuid.UUID, traveler_name: str) -> Result[Trip]:
        """Record a (simulated) payment for a roster member.

        Refused once the share link has expired. Paying twice is a no-op.
        """
        loaded = await self.get_trip(trip_id)
        if not loaded.success or loaded.value is None:
            return loaded
        trip = loaded.value

        if traveler_name not in trip.traveler_names:
            return Result.fail(ErrorKind.invalid, f"{traveler_name} is not on this trip")

        if trip.is_link_expired(self.clock()):
            return Result.fail(ErrorKind.link_expired, "This trip link has expired")

        try:
            updated = await self.trips.append_paid_traveler(trip_id, traveler_name)
        except StoreError as exc:
            self._log.log_write("pay", trip_id, "error", error_reason=str(exc))
            return Result.fail(ErrorKind.transient, "Payment could not be recorded, try again")

        if updated is None:
            return Result.fail(ErrorKind.not_found, "Trip not found")

        self._log.log_write("pay", trip_id, "success", traveler=traveler_name)
        return Result.ok(updated)

    async def edit_trip(
        self, trip_id: uuid.UUID, edit: TripEdit, actor_id: uuid.UUID | None
    ) -> Result[Trip]:
        """Re-price with edited parameters and reset the itinerary.

        Pricing runs first; a pricing failure leaves the trip untouched. The
        new pricing, cleared itinerary, pending status and fresh link window
        are written in one update. Generation and the share image then run
        detached.
        """
        if actor_id is None:
            return Result.fail(ErrorKind.sign_in_required, "Sign in to edit this trip")

        loaded = await self.get_trip(trip_id)
        if not loaded.success or loaded.value is None:
            return loaded
        trip = loaded.value

        if not trip.is_organizer(actor_id):
            return Result.fail(ErrorKind.unauthorized, "Only the organizer can edit this trip")

        destination = edit.destination or trip.destination
        departure = edit.departure_date or trip.departure_date
        return_date = edit.return_date or trip.return_date
        if return_date < departure:
            return Result.fail(ErrorKind.invalid, "Return date must be on or after departure")

        travelers = self._edited_roster(trip, edit)
        accommodation_type = edit.accommodation_type or trip.accommodation_type

        try:
            priced = await self.pricing.search(
                PricingRequest(
                    destination=destination,
                    travelers=travelers,
                    departure_date=departure,
                    return_date=return_date,
                    accommodation_type=accommodation_type,
                )
            )
        except (UpstreamError, ConfigurationError) as exc:
            self._log.log_write("edit", trip_id, "error", error_reason=str(exc))
            return _upstream_failure(exc)

        now = self.clock()
        patch = self._reprice_patch(
            priced,
            destination_city=destination.city,
            destination_country=destination.country,
            destination_iata=destination.iata,
            departure_date=departure,
            return_date=return_date,
            accommodation_type=accommodation_type,
            travelers=travelers,
            link_created_at=now,
            link_expires_at=now + self.link_ttl,
        )

        try:
            updated = await self.trips.update_trip(trip_id, patch, actor_id=actor_id)
        except PermissionDeniedError:
            return Result.fail(ErrorKind.unauthorized, "Only the organizer can edit this trip")
        except StoreError as exc:
            self._log.log_write("edit", trip_id, "error", error_reason=str(exc))
            return Result.fail(ErrorKind.transient, "Could not save trip changes, try again")

        if updated is None:
            return Result.fail(ErrorKind.not_found, "Trip not found")

        self._log.log_write("edit", trip_id, "success", trip_total=updated.trip_total)

        # The itinerary these reactions addressed is gone
        try:
            await self.reactions.clear_reactions(trip_id)
        except StoreError as exc:
            logger.warning("Failed to clear reactions of edited trip %s: %s", trip_id, exc)

        self.trigger_generation(trip_id)
        spawn_detached(self.regenerate_share_image(trip_id), name=f"share-image:{trip_id}")
        return Result.ok(updated)

    @staticmethod
    def _edited_roster(trip: Trip, edit: TripEdit) -> list[Traveler]:
        travelers = list(edit.travelers) if edit.travelers is not None else list(trip.travelers)
        if edit.organizer_origin is None:
            return travelers

        return [
            t.model_copy(update={"origin": edit.organizer_origin}) if t.is_organizer else t
            for t in travelers
        ]

    @staticmethod
    def _reprice_patch(priced: PricingResult, **fields: object) -> TripPatch:
        return TripPatch(
            **fields,
            flights=priced.flights,
            accommodation=priced.accommodation,
            cost_breakdown=priced.cost_breakdown,
            total_per_person=priced.total_per_person,
            trip_total=priced.trip_total,
            itinerary=None,
            itinerary_status=ItineraryStatus.pending,
        )

    def trigger_generation(self, trip_id: uuid.UUID) -> None:
        """Fire-and-forget generation; the result arrives on the change feed."""
        spawn_detached(self.generation.generate(trip_id), name=f"generate:{trip_id}")

    async def regenerate_share_image(self, trip_id: uuid.UUID) -> None:
        """Regenerate the cosmetic group image and store its URL."""
        trip = await self.trips.get_trip(trip_id)
        if trip is None:
            return

        try:
            image_url = await self.share_image.generate(trip, regenerate=True)
        except UpstreamError as exc:
            logger.warning("Share image regeneration failed for trip %s: %s", trip_id, exc)
            return

        if image_url:
            await self.trips.update_trip(trip_id, TripPatch(share_image_url=image_url))

    # Activity edits

    def _check_activity_edit(self, trip: Trip, actor_id: uuid.UUID | None) -> Result[Trip] | None:
        if actor_id is None:
            return Result.fail(ErrorKind.sign_in_required, "Sign in to edit activities")
        if not trip.is_organizer(actor_id):
            return Result.fail(ErrorKind.unauthorized, "Only the organizer can edit activities")
        if trip.itinerary_status != ItineraryStatus.complete or trip.itinerary is None:
            return Result.fail(ErrorKind.invalid, "The itinerary is not ready yet")
        if not trip.all_paid():
            return Result.fail(
                ErrorKind.invalid, "Activities can be edited once every traveler has paid"
            )
        return None

    async def _load_for_activity_edit(
        self, trip_id: uuid.UUID, actor_id: uuid.UUID | None
    ) -> Result[Trip]:
        loaded = await self.get_trip(trip_id)
        if not loaded.success or loaded.value is None:
            return loaded
        return self._check_activity_edit(loaded.value, actor_id) or loaded

    async def _apply_day_edit(
        self,
        action: str,
        trip_id: uuid.UUID,
        day_number: int,
        mutate: Callable[[Itinerary], Itinerary],
        actor_id: uuid.UUID,
    ) -> Result[Trip]:
        """Write an itinerary change and move that day's reactions along with it."""
        try:
            update = await self.trips.update_itinerary(trip_id, mutate, actor_id=actor_id)
        except ActivityMissingError as exc:
            return Result.fail(ErrorKind.not_found, str(exc))
        except PermissionDeniedError:
            return Result.fail(ErrorKind.unauthorized, "Only the organizer can edit activities")
        except StoreError as exc:
            self._log.log_write(action, trip_id, "error", error_reason=str(exc))
            return Result.fail(ErrorKind.transient, "Could not save the itinerary, try again")

        if update is None or update.trip.itinerary is None:
            return Result.fail(ErrorKind.not_found, "Trip not found")

        before = update.previous.find_day(day_number)
        after = update.trip.itinerary.find_day(day_number)
        if before is not None and after is not None:
            try:
                await self.reactions.reindex_day(trip_id, day_number, reindex_map(before, after))
            except StoreError as exc:
                # Itinerary is saved; reactions on this day may now be misaligned
                logger.error("Failed to reindex reactions on trip %s: %s", trip_id, exc)

        self._log.log_write(action, trip_id, "success", day_number=day_number)
        return Result.ok(update.trip)

    async def add_activity(
        self,
        trip_id: uuid.UUID,
        day_number: int,
        activity: Activity,
        actor_id: uuid.UUID | None,
        position: int | None = None,
    ) -> Result[Trip]:
        """Insert an activity into a day (appended unless ``position`` is given).

        The inserted activity always gets a fresh ``activity_id``; any id the
        caller supplied is ignored.
        """
        checked = await self._load_for_activity_edit(trip_id, actor_id)
        if not checked.success or checked.value is None or actor_id is None:
            return checked

        itinerary = checked.value.itinerary
        target_day = itinerary.find_day(day_number) if itinerary is not None else None
        if target_day is None:
            return Result.fail(ErrorKind.invalid, f"Day {day_number} is not in the itinerary")
        if position is not None and not 0 <= position <= len(target_day.activities):
            return Result.fail(ErrorKind.invalid, f"Position {position} is outside day {day_number}")

        def mutate(current: Itinerary) -> Itinerary:
            day = current.find_day(day_number)
            if day is None:
                raise ActivityMissingError(f"Day {day_number} is not in the itinerary")
            index = len(day.activities) if position is None else min(position, len(day.activities))
            fresh = activity.model_copy(update={"activity_id": new_activity_id()})
            day.activities.insert(index, fresh)
            return current

        return await self._apply_day_edit("add_activity", trip_id, day_number, mutate, actor_id)

    async def remove_activity(
        self,
        trip_id: uuid.UUID,
        day_number: int,
        activity_index: int,
        actor_id: uuid.UUID | None,
        activity_id: str | None = None,
    ) -> Result[Trip]:
        """Remove an activity.

        When ``activity_id`` is given it wins over the index, so a removal
        still hits the intended activity after concurrent edits shifted it.
        """
        checked = await self._load_for_activity_edit(trip_id, actor_id)
        if not checked.success or checked.value is None or actor_id is None:
            return checked

        target_id = activity_id or self._activity_id_at(checked.value, day_number, activity_index)
        if target_id is None:
            return Result.fail(
                ErrorKind.not_found, f"No activity at day {day_number}, index {activity_index}"
            )

        def mutate(current: Itinerary) -> Itinerary:
            address = current.locate(target_id)
            if address is None or address[0] != day_number:
                raise ActivityMissingError("Activity no longer exists")
            del current.days[day_number - 1].activities[address[1]]
            return current

        return await self._apply_day_edit("remove_activity", trip_id, day_number, mutate, actor_id)

    async def replace_activity_with_alternative(
        self,
        trip_id: uuid.UUID,
        day_number: int,
        activity_index: int,
        direction: PriceDirection,
        actor_id: uuid.UUID | None,
        activity_id: str | None = None,
    ) -> Result[Trip]:
        """Swap an activity for a cheaper or pricier one in the same time slot."""
        checked = await self._load_for_activity_edit(trip_id, actor_id)
        if not checked.success or checked.value is None or actor_id is None:
            return checked
        trip = checked.value

        target_id = activity_id or self._activity_id_at(trip, day_number, activity_index)
        address = trip.itinerary.locate(target_id) if trip.itinerary and target_id else None
        if target_id is None or address is None or trip.itinerary is None:
            return Result.fail(
                ErrorKind.not_found, f"No activity at day {day_number}, index {activity_index}"
            )

        day = trip.itinerary.days[address[0] - 1]
        current = day.activities[address[1]]
        try:
            alternative = await self.llm.find_alternative(
                AlternativeRequest(
                    current=current,
                    direction=direction,
                    destination_city=trip.destination_city,
                    destination_country=trip.destination_country,
                    date=day.date,
                )
            )
        except (UpstreamError, ConfigurationError) as exc:
            self._log.log_write("replace_activity", trip_id, "error", error_reason=str(exc))
            return _upstream_failure(exc)

        def mutate(itinerary: Itinerary) -> Itinerary:
            found = itinerary.locate(target_id)
            if found is None:
                raise ActivityMissingError("Activity no longer exists")
            itinerary.days[found[0] - 1].activities[found[1]] = alternative
            return itinerary

        return await self._apply_day_edit(
            "replace_activity", trip_id, address[0], mutate, actor_id
        )

    @staticmethod
    def _activity_id_at(trip: Trip, day_number: int, activity_index: int) -> str | None:
        if trip.itinerary is None:
            return None
        activity = trip.itinerary.activity_at(day_number, activity_index)
        return activity.activity_id if activity is not None else None
