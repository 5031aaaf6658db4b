"""Reaction endpoints - aggregate counts and toggle."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from backend.app.api.auth import get_viewer
from backend.app.api.deps import Services, get_services
from backend.app.api.errors import unwrap
from backend.app.models.reactions import ReactionCounts, ReactionKind
from backend.app.sync.reactions import ReactionMap

router = APIRouter(prefix="/trips/{trip_id}/reactions", tags=["reactions"])


class ActivityReactionCounts(ReactionCounts):
    """Counts for one activity, addressed by position."""

    day_number: int
    activity_index: int


class ReactRequest(BaseModel):
    day_number: int = Field(..., ge=1)
    activity_index: int = Field(..., ge=0)
    reaction: ReactionKind


class ReactResponse(BaseModel):
    user_reaction: ReactionKind | None
    counts: ActivityReactionCounts


def _flatten(reactions: ReactionMap) -> list[ActivityReactionCounts]:
    return [
        ActivityReactionCounts(day_number=day, activity_index=index, **counts.model_dump())
        for (day, index), counts in sorted(reactions.items())
    ]


@router.get("", response_model=list[ActivityReactionCounts])
async def list_reactions(
    trip_id: uuid.UUID,
    viewer: Annotated[uuid.UUID | None, Depends(get_viewer)],
    services: Annotated[Services, Depends(get_services)],
) -> list[ActivityReactionCounts]:
    """Per-activity counts, with the viewer's own reaction where signed in."""
    unwrap(await services.commands.get_trip(trip_id))
    return _flatten(unwrap(await services.reaction_service.load(trip_id, viewer)))


@router.post("", response_model=ReactResponse)
async def react(
    trip_id: uuid.UUID,
    body: ReactRequest,
    viewer: Annotated[uuid.UUID | None, Depends(get_viewer)],
    services: Annotated[Services, Depends(get_services)],
) -> ReactResponse:
    """Toggle the viewer's reaction: same kind removes it, the other kind replaces it."""
    user_reaction = unwrap(
        await services.reaction_service.react(
            trip_id, body.day_number, body.activity_index, body.reaction, viewer
        )
    )

    reactions = unwrap(await services.reaction_service.load(trip_id, viewer))
    counts = reactions.get((body.day_number, body.activity_index), ReactionCounts())
    return ReactResponse(
        user_reaction=user_reaction,
        counts=ActivityReactionCounts(
            day_number=body.day_number,
            activity_index=body.activity_index,
            **counts.model_dump(),
        ),
    )
