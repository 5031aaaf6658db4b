"""Trip endpoints - create, share-code lookup, claim, pay, edit, activities and SSE."""

import asyncio
import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from backend.app.api.auth import get_viewer
from backend.app.api.deps import Services, get_services
from backend.app.api.errors import unwrap
from backend.app.feed.base import ChangeFeed
from backend.app.llm.client import PriceDirection
from backend.app.models.costs import AdjustedCosts
from backend.app.models.events import ChangeEvent, SSEChangeEvent, reactions_topic, trip_topic
from backend.app.models.itinerary import Activity, Itinerary
from backend.app.models.trip import Trip, TripDraft, TripEdit
from backend.app.orchestration.generation import GenerationStatus
from backend.app.sync import costs
from backend.app.sync.state import countdown

router = APIRouter(prefix="/trips", tags=["trips"])

Viewer = Annotated[uuid.UUID | None, Depends(get_viewer)]
ServicesDep = Annotated[Services, Depends(get_services)]


class TripView(BaseModel):
    """Trip snapshot plus values derived at read time."""

    trip: Trip
    all_paid: bool
    link_expired: bool
    seconds_remaining: int | None = None


class ShareCodeResponse(BaseModel):
    trip_id: uuid.UUID


class PayRequest(BaseModel):
    traveler_name: str = Field(..., min_length=1)


class GenerateResponse(BaseModel):
    status: GenerationStatus
    itinerary: Itinerary | None = None


class AddActivityRequest(BaseModel):
    activity: Activity
    position: int | None = Field(default=None, ge=0, description="Insert index; append if unset")


class AlternativeRequestBody(BaseModel):
    direction: PriceDirection
    activity_id: str | None = None


class SelectionRequest(BaseModel):
    """Viewer's selected optional activities as (day_number, activity_index) pairs."""

    selected: list[tuple[int, int]] = Field(default_factory=list)


class CostsResponse(BaseModel):
    costs: AdjustedCosts
    all_selected: bool


def to_view(trip: Trip, now: datetime | None = None) -> TripView:
    """Attach read-time derived fields to a trip snapshot."""
    now = now or datetime.now(timezone.utc)
    remaining = countdown(trip.link_expires_at, now)
    return TripView(
        trip=trip,
        all_paid=trip.all_paid(),
        link_expired=trip.is_link_expired(now),
        seconds_remaining=int(remaining.total_seconds()) if remaining is not None else None,
    )


@router.post("", response_model=TripView, status_code=status.HTTP_201_CREATED)
async def create_trip(draft: TripDraft, viewer: Viewer, services: ServicesDep) -> TripView:
    """Price the group and create a pending trip.

    A signed-in creator becomes the organizer unless the draft names one.
    """
    if draft.organizer_id is None and viewer is not None:
        draft = draft.model_copy(update={"organizer_id": viewer})

    trip = unwrap(await services.commands.create_trip(draft))
    return to_view(trip)


@router.get("/by-code/{share_code}", response_model=ShareCodeResponse)
async def resolve_share_code(share_code: str, services: ServicesDep) -> ShareCodeResponse:
    trip_id = unwrap(await services.commands.resolve_share_code(share_code))
    return ShareCodeResponse(trip_id=trip_id)


@router.get("/{trip_id}", response_model=TripView)
async def get_trip(trip_id: uuid.UUID, services: ServicesDep) -> TripView:
    return to_view(unwrap(await services.commands.get_trip(trip_id)))


@router.post("/{trip_id}/claim", response_model=TripView)
async def claim_trip(trip_id: uuid.UUID, viewer: Viewer, services: ServicesDep) -> TripView:
    """Become organizer and open the share link window."""
    return to_view(unwrap(await services.commands.claim(trip_id, viewer)))


@router.post("/{trip_id}/pay", response_model=TripView)
async def mark_paid(trip_id: uuid.UUID, body: PayRequest, services: ServicesDep) -> TripView:
    """Record a simulated payment. Anonymous viewers may pay for a roster name."""
    return to_view(unwrap(await services.commands.mark_paid(trip_id, body.traveler_name)))


@router.post("/{trip_id}/edit", response_model=TripView)
async def edit_trip(
    trip_id: uuid.UUID, edit: TripEdit, viewer: Viewer, services: ServicesDep
) -> TripView:
    """Re-price the trip with edited parameters (organizer only).

    Args:
        trip_id: Trip to edit
        edit: Fields to change; unset fields keep their current value
        viewer: Signed-in viewer
        services: Process services

    Returns:
        The re-priced trip with its itinerary reset to pending
    """
    return to_view(unwrap(await services.commands.edit_trip(trip_id, edit, viewer)))


@router.post("/{trip_id}/generate", response_model=GenerateResponse)
async def generate_itinerary(trip_id: uuid.UUID, services: ServicesDep) -> GenerateResponse:
    """Run itinerary generation in the request and report what happened."""
    outcome = unwrap(await services.generation.generate(trip_id))
    return GenerateResponse(status=outcome.status, itinerary=outcome.itinerary)


@router.post("/{trip_id}/days/{day_number}/activities", response_model=TripView)
async def add_activity(
    trip_id: uuid.UUID,
    day_number: int,
    body: AddActivityRequest,
    viewer: Viewer,
    services: ServicesDep,
) -> TripView:
    result = await services.commands.add_activity(
        trip_id, day_number, body.activity, viewer, body.position
    )
    return to_view(unwrap(result))


@router.delete("/{trip_id}/days/{day_number}/activities/{activity_index}", response_model=TripView)
async def remove_activity(
    trip_id: uuid.UUID,
    day_number: int,
    activity_index: int,
    viewer: Viewer,
    services: ServicesDep,
    activity_id: Annotated[str | None, Query()] = None,
) -> TripView:
    """Remove an activity; ``activity_id`` pins the target if indices shifted."""
    result = await services.commands.remove_activity(
        trip_id, day_number, activity_index, viewer, activity_id=activity_id
    )
    return to_view(unwrap(result))


@router.post(
    "/{trip_id}/days/{day_number}/activities/{activity_index}/alternative",
    response_model=TripView,
)
async def replace_activity(
    trip_id: uuid.UUID,
    day_number: int,
    activity_index: int,
    body: AlternativeRequestBody,
    viewer: Viewer,
    services: ServicesDep,
) -> TripView:
    """Swap an activity for a cheaper or pricier one in the same slot."""
    result = await services.commands.replace_activity_with_alternative(
        trip_id,
        day_number,
        activity_index,
        body.direction,
        viewer,
        activity_id=body.activity_id,
    )
    return to_view(unwrap(result))


@router.post("/{trip_id}/costs", response_model=CostsResponse)
async def adjusted_costs(
    trip_id: uuid.UUID, body: SelectionRequest, services: ServicesDep
) -> CostsResponse:
    """Totals with the viewer's selected optional activities folded in.

    The selection is never stored; clients send it with every request.
    """
    trip = unwrap(await services.commands.get_trip(trip_id))
    selection: costs.SelectionSet = frozenset(body.selected)
    return CostsResponse(
        costs=costs.compute_adjusted_costs(
            trip.cost_basis(), trip.itinerary, selection, trip.traveler_count
        ),
        all_selected=costs.all_selected(selection, trip.itinerary),
    )


def _format_sse(event: ChangeEvent) -> str:
    payload = SSEChangeEvent.from_change_event(event)
    return f"event: {event.table}\ndata: {payload.model_dump_json()}\n\n"


async def feed_event_stream(
    feed: ChangeFeed,
    trip_id: uuid.UUID,
    heartbeat_seconds: float,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
) -> AsyncGenerator[str, None]:
    """Relay trip and reaction changes as SSE frames.

    Both subscriptions are released when the generator is closed, which
    Starlette does when the client goes away.

    Args:
        feed: Change feed to subscribe to
        trip_id: Trip whose topics are relayed
        heartbeat_seconds: Idle interval before a heartbeat frame
        is_disconnected: Optional check polled between frames

    Yields:
        SSE frames
    """
    queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()

    async def enqueue(event: ChangeEvent) -> None:
        queue.put_nowait(event)

    subscriptions = [
        await feed.subscribe(trip_topic(trip_id), enqueue),
        await feed.subscribe(reactions_topic(trip_id), enqueue),
    ]
    try:
        while True:
            if is_disconnected is not None and await is_disconnected():
                break
            try:
                event = await asyncio.wait_for(queue.get(), timeout=heartbeat_seconds)
            except asyncio.TimeoutError:
                yield "event: heartbeat\n"
                yield f'data: {{"ts": "{datetime.now(timezone.utc).isoformat()}"}}\n\n'
                continue
            yield _format_sse(event)
    finally:
        for subscription in subscriptions:
            await subscription.unsubscribe()


@router.get("/{trip_id}/events/stream")
async def stream_trip_events(
    trip_id: uuid.UUID, request: Request, services: ServicesDep
) -> StreamingResponse:
    """Stream trip and reaction changes via SSE."""
    unwrap(await services.commands.get_trip(trip_id))

    return StreamingResponse(
        feed_event_stream(
            services.feed,
            trip_id,
            services.settings.stream_heartbeat_seconds,
            request.is_disconnected,
        ),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )

