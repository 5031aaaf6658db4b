"""Common types shared across trip, itinerary and reaction models."""

import math
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, field_validator

# (day_number, activity_index) - positional address of an activity
ActivityKey = tuple[int, int]

AccommodationType = Literal["hotel", "airbnb"]


class Airport(BaseModel):
    """Airport used as trip destination or traveler origin."""

    iata: str = Field(..., min_length=3, max_length=4)
    city: str
    country: str = ""

    @field_validator("iata")
    @classmethod
    def normalize_iata(cls, v: str) -> str:
        """IATA codes are stored upper-case."""
        return v.upper()


class ItineraryStatus(str, Enum):
    """Itinerary generation progress."""

    pending = "pending"
    generating = "generating"
    complete = "complete"
    failed = "failed"


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))
