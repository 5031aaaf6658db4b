"""Itinerary generation job - owns the pending -> generating -> complete|failed path."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from backend.app.db.repositories import StoreError, TripStore
from backend.app.llm.client import ItineraryLLMClient, ItineraryRequest
from backend.app.models.common import ItineraryStatus
from backend.app.models.itinerary import Itinerary
from backend.app.models.results import ConfigurationError, ErrorKind, Result, UpstreamError
from backend.app.models.trip import Trip
from backend.app.utils.metrics import PrometheusSyncMetrics

logger = logging.getLogger(__name__)


class GenerationStatus(str, Enum):
    """What a generate call ended up doing."""

    generated = "generated"
    skipped = "skipped"  # already complete
    in_progress = "in_progress"  # another invocation holds the generating state
    discarded = "discarded"  # trip was edited mid-generation


@dataclass(frozen=True)
class GenerationOutcome:
    status: GenerationStatus
    itinerary: Itinerary | None = None


def itinerary_request_for(trip: Trip) -> ItineraryRequest:
    """Generation inputs derived from the trip record."""
    return ItineraryRequest(
        trip_id=trip.id,
        destination_city=trip.destination_city,
        destination_country=trip.destination_country,
        departure_date=trip.departure_date,
        return_date=trip.return_date,
        traveler_count=max(trip.traveler_count, 1),
        accommodation_name=trip.accommodation.name if trip.accommodation else None,
    )


class ItineraryGenerationService:
    """Generates an itinerary and writes it onto the trip.

    Duplicate invocations are tolerated: the pending -> generating move is a
    conditional store write, so only one caller proceeds and the others
    report in-progress. The final write is also conditional: it applies only
    while the trip is still generating from the inputs this run started
    with, so a result that outlives an edit is a no-op even when the edit
    has already started a newer run.
    """

    def __init__(
        self,
        trips: TripStore,
        llm: ItineraryLLMClient,
        metrics: PrometheusSyncMetrics | None = None,
    ) -> None:
        self._trips = trips
        self._llm = llm
        self._metrics = metrics or PrometheusSyncMetrics()

    async def generate(self, trip_id: UUID) -> Result[GenerationOutcome]:
        """Run generation for one trip.

        Returns:
            Result carrying the outcome; failures carry the upstream kind
            (rate_limited, quota_exceeded, upstream) or configuration
        """
        try:
            trip = await self._trips.get_trip(trip_id)
        except StoreError as exc:
            logger.warning("Failed to load trip %s for generation: %s", trip_id, exc)
            return Result.fail(ErrorKind.transient, "Could not load trip, try again")

        if trip is None:
            return Result.fail(ErrorKind.not_found, "Trip not found")

        if trip.itinerary_status == ItineraryStatus.complete:
            logger.info("Itinerary already complete for trip %s", trip_id)
            return Result.ok(GenerationOutcome(GenerationStatus.skipped, trip.itinerary))

        if trip.itinerary_status == ItineraryStatus.generating:
            logger.info("Itinerary generation already in progress for trip %s", trip_id)
            return Result.ok(GenerationOutcome(GenerationStatus.in_progress))

        if trip.itinerary_status == ItineraryStatus.failed:
            return Result.fail(
                ErrorKind.invalid, "Itinerary unavailable; edit the trip to generate again"
            )

        try:
            claimed = await self._trips.transition_status(trip_id, ItineraryStatus.generating)
        except StoreError as exc:
            logger.warning("Failed to start generation for trip %s: %s", trip_id, exc)
            return Result.fail(ErrorKind.transient, "Could not start generation, try again")

        if claimed is None:
            # Lost the race to another invocation
            return Result.ok(GenerationOutcome(GenerationStatus.in_progress))
        self._metrics.inc_transition(ItineraryStatus.generating.value)

        request = itinerary_request_for(claimed)

        def inputs_unchanged(current: Trip) -> bool:
            # An edit may have started another run on different inputs
            return itinerary_request_for(current) == request

        try:
            itinerary = await self._llm.create_itinerary(request)
        except UpstreamError as exc:
            await self._mark_failed(trip_id, inputs_unchanged)
            return Result.fail(exc.kind, str(exc))
        except ConfigurationError as exc:
            logger.error("Itinerary generation misconfigured: %s", exc)
            await self._mark_failed(trip_id, inputs_unchanged)
            return Result.fail(ErrorKind.configuration, str(exc))

        try:
            completed = await self._trips.transition_status(
                trip_id,
                ItineraryStatus.complete,
                itinerary=itinerary,
                precondition=inputs_unchanged,
            )
        except StoreError as exc:
            logger.warning("Failed to save itinerary for trip %s: %s", trip_id, exc)
            await self._mark_failed(trip_id, inputs_unchanged)
            return Result.fail(ErrorKind.transient, "Could not save itinerary")

        if completed is None:
            logger.info("Discarding stale itinerary for trip %s", trip_id)
            return Result.ok(GenerationOutcome(GenerationStatus.discarded))

        self._metrics.inc_transition(ItineraryStatus.complete.value)
        logger.info(
            "Itinerary saved for trip %s",
            trip_id,
            extra={"structured": {"trip_id": str(trip_id), "days": len(itinerary.days)}},
        )
        return Result.ok(GenerationOutcome(GenerationStatus.generated, itinerary))

    async def _mark_failed(self, trip_id: UUID, precondition: Callable[[Trip], bool]) -> None:
        """Move generating -> failed. A no-op if an edit already reset the trip."""
        try:
            failed = await self._trips.transition_status(
                trip_id, ItineraryStatus.failed, precondition=precondition
            )
        except StoreError:
            logger.exception("Could not mark trip %s as failed", trip_id)
            return

        if failed is not None:
            self._metrics.inc_transition(ItineraryStatus.failed.value)
