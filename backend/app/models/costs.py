"""Adjusted-cost view models."""

from pydantic import BaseModel, ConfigDict


class AdjustedTravelerCost(BaseModel):
    """Traveler subtotal with selected optional activities added."""

    model_config = ConfigDict(frozen=True)

    traveler_name: str
    base_subtotal: float
    adjusted_subtotal: float


class AdjustedCosts(BaseModel):
    """Trip and per-person totals including the viewer's selected activities."""

    model_config = ConfigDict(frozen=True)

    per_traveler: tuple[AdjustedTravelerCost, ...]
    selected_activities_cost: float
    adjusted_trip_total: float
    adjusted_per_person: float
