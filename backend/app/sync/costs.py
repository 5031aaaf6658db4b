"""Adjusted-cost computation and selection-set algebra.

Everything here is pure: the same inputs always give the same outputs, so
views recompute on every change instead of caching.
"""

from collections.abc import Iterable

from backend.app.models.common import ActivityKey
from backend.app.models.costs import AdjustedCosts, AdjustedTravelerCost
from backend.app.models.itinerary import DayPlan, Itinerary
from backend.app.models.trip import CostBreakdown

# Client-local activities the viewer is previewing as added to the total
SelectionSet = frozenset[ActivityKey]

EMPTY_SELECTION: SelectionSet = frozenset()


def day_cost(day: DayPlan) -> float:
    """Per-person cost of every activity in a day."""
    return sum(activity.cost for activity in day.activities)


def itinerary_cost(itinerary: Itinerary | None) -> float:
    """Per-person cost of every activity in the itinerary."""
    if itinerary is None:
        return 0
    return sum(day_cost(day) for day in itinerary.days)


def costed_keys(itinerary: Itinerary | None, day_number: int | None = None) -> SelectionSet:
    """Addresses of activities with a nonzero cost, optionally for one day."""
    if itinerary is None:
        return EMPTY_SELECTION

    return frozenset(
        (day.day_number, index)
        for day in itinerary.days
        if day_number is None or day.day_number == day_number
        for index, activity in enumerate(day.activities)
        if activity.cost > 0
    )


def selected_activities_cost(itinerary: Itinerary | None, selection: Iterable[ActivityKey]) -> float:
    """Sum of per-person costs over the selected addresses.

    Addresses that no longer resolve (the itinerary changed underneath the
    selection) contribute nothing.
    """
    if itinerary is None:
        return 0

    total: float = 0
    for day_number, index in sorted(set(selection)):
        activity = itinerary.activity_at(day_number, index)
        if activity is not None:
            total += activity.cost
    return total


def compute_adjusted_costs(
    cost_breakdown: CostBreakdown,
    itinerary: Itinerary | None,
    selection: Iterable[ActivityKey],
    traveler_count: int,
) -> AdjustedCosts:
    """Fold selected optional activities into trip and per-person totals.

    Optional activities are priced per person and apply to every traveler.

    Args:
        cost_breakdown: Base pricing as of the last re-price
        itinerary: Current itinerary (None means nothing to select)
        selection: Selected (day_number, activity_index) pairs
        traveler_count: Travelers the activity cost is multiplied by

    Returns:
        Adjusted per-traveler subtotals and totals
    """
    selected = selected_activities_cost(itinerary, selection)

    per_traveler = tuple(
        AdjustedTravelerCost(
            traveler_name=entry.traveler_name,
            base_subtotal=entry.subtotal,
            adjusted_subtotal=entry.subtotal + selected,
        )
        for entry in cost_breakdown.entries
    )

    return AdjustedCosts(
        per_traveler=per_traveler,
        selected_activities_cost=selected,
        adjusted_trip_total=cost_breakdown.trip_total + selected * traveler_count,
        adjusted_per_person=cost_breakdown.total_per_person + selected,
    )


def toggle_activity(selection: SelectionSet, key: ActivityKey) -> SelectionSet:
    """Add the address if absent, remove it if present."""
    if key in selection:
        return selection - {key}
    return selection | {key}


def add_all_activities(itinerary: Itinerary | None) -> SelectionSet:
    """Selection holding every costed activity of the itinerary."""
    return costed_keys(itinerary)


def add_day_activities(
    selection: SelectionSet, itinerary: Itinerary | None, day_number: int
) -> SelectionSet:
    return selection | costed_keys(itinerary, day_number)


def remove_day_activities(selection: SelectionSet, day_number: int) -> SelectionSet:
    """Drop every selected address of a day, costed or not."""
    return frozenset(key for key in selection if key[0] != day_number)


def all_selected(selection: SelectionSet, itinerary: Itinerary | None) -> bool:
    """Whether every costed activity is selected (False if none are costed)."""
    keys = costed_keys(itinerary)
    return bool(keys) and keys <= selection


def all_day_selected(selection: SelectionSet, itinerary: Itinerary | None, day_number: int) -> bool:
    keys = costed_keys(itinerary, day_number)
    return bool(keys) and keys <= selection


def remap_selection(
    selection: SelectionSet, previous: Itinerary | None, current: Itinerary | None
) -> SelectionSet:
    """Carry a selection across itinerary snapshots.

    Each selected address is resolved to its activity in ``previous`` and
    moved to wherever that activity now sits in ``current``. Activities that
    disappeared are dropped. Without a previous snapshot the selection is
    kept only where addresses still resolve.
    """
    if current is None:
        return EMPTY_SELECTION

    if previous is None:
        return frozenset(key for key in selection if current.activity_at(*key) is not None)

    remapped: set[ActivityKey] = set()
    for key in selection:
        activity = previous.activity_at(*key)
        if activity is None:
            continue
        address = current.locate(activity.activity_id)
        if address is not None:
            remapped.add(address)
    return frozenset(remapped)
