"""Itinerary models - the generated day-by-day activity plan."""

import uuid
from datetime import date
from typing import Literal

from pydantic import BaseModel, Field, model_validator

ActivityType = Literal["attraction", "restaurant", "event", "travel", "free_time"]


def new_activity_id() -> str:
    """Allocate a stable activity identifier."""
    return uuid.uuid4().hex


class Activity(BaseModel):
    """Single activity within a day."""

    activity_id: str = Field(default_factory=new_activity_id)
    time: str = Field(..., description="Display label, e.g. '10:00 AM'")
    title: str = Field(..., min_length=1)
    description: str = ""
    type: ActivityType
    is_live_event: bool | None = None
    estimated_cost: float | None = Field(default=None, ge=0, description="USD per person")
    tip: str | None = None

    @property
    def cost(self) -> float:
        """Per-person cost, absent treated as free."""
        return self.estimated_cost or 0


class DayPlan(BaseModel):
    """Plan for one trip day."""

    day_number: int = Field(..., ge=1)
    date: date
    theme: str = ""
    activities: list[Activity] = Field(default_factory=list)


class Itinerary(BaseModel):
    """Complete generated itinerary."""

    overview: str = ""
    highlights: list[str] = Field(default_factory=list)
    days: list[DayPlan] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_dense_day_numbers(self) -> "Itinerary":
        """Day numbers are 1-based, ordered and gap free."""
        numbers = [day.day_number for day in self.days]
        if numbers != list(range(1, len(numbers) + 1)):
            raise ValueError(f"day numbers must be 1..{len(numbers)} in order, got {numbers}")
        return self

    def find_day(self, day_number: int) -> DayPlan | None:
        """Return the day with the given number, if any."""
        if 1 <= day_number <= len(self.days):
            return self.days[day_number - 1]
        return None

    def activity_at(self, day_number: int, activity_index: int) -> Activity | None:
        """Resolve a positional address to an activity."""
        day = self.find_day(day_number)
        if day is None or not 0 <= activity_index < len(day.activities):
            return None
        return day.activities[activity_index]

    def locate(self, activity_id: str) -> tuple[int, int] | None:
        """Find the current positional address of an activity id."""
        for day in self.days:
            for index, activity in enumerate(day.activities):
                if activity.activity_id == activity_id:
                    return (day.day_number, index)
        return None


def reindex_map(previous: DayPlan, current: DayPlan) -> dict[int, int | None]:
    """Map each old activity index to its new index (None when removed).

    Activities are matched by ``activity_id``, so an index survives inserts and
    removals of other activities in the same day.
    """
    positions = {a.activity_id: i for i, a in enumerate(current.activities)}
    return {
        index: positions.get(activity.activity_id)
        for index, activity in enumerate(previous.activities)
    }
