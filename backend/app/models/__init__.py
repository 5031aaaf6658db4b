"""Models package - re-exports for convenience."""

from backend.app.models.common import (
    AccommodationType,
    ActivityKey,
    Airport,
    ItineraryStatus,
    round_half_up,
)
from backend.app.models.costs import AdjustedCosts, AdjustedTravelerCost
from backend.app.models.events import ChangeEvent, SSEChangeEvent, reactions_topic, trip_topic
from backend.app.models.itinerary import Activity, ActivityType, DayPlan, Itinerary
from backend.app.models.reactions import ActivityReaction, ReactionCounts, ReactionKind
from backend.app.models.results import (
    ConfigurationError,
    ErrorKind,
    Result,
    UpstreamError,
)
from backend.app.models.trip import (
    AccommodationOption,
    CostBreakdown,
    FlightOption,
    Traveler,
    TravelerCost,
    Trip,
    TripDraft,
    TripEdit,
    TripPatch,
)

__all__ = [
    # Common
    "AccommodationType",
    "ActivityKey",
    "Airport",
    "ItineraryStatus",
    "round_half_up",
    # Trip
    "Trip",
    "Traveler",
    "TravelerCost",
    "FlightOption",
    "AccommodationOption",
    "CostBreakdown",
    "TripDraft",
    "TripEdit",
    "TripPatch",
    # Itinerary
    "Itinerary",
    "DayPlan",
    "Activity",
    "ActivityType",
    # Reactions
    "ActivityReaction",
    "ReactionCounts",
    "ReactionKind",
    # Costs
    "AdjustedCosts",
    "AdjustedTravelerCost",
    # Events
    "ChangeEvent",
    "SSEChangeEvent",
    "trip_topic",
    "reactions_topic",
    # Results
    "Result",
    "ErrorKind",
    "UpstreamError",
    "ConfigurationError",
]
