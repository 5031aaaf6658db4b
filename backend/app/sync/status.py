"""Itinerary status state machine.

pending -> generating -> complete | failed. Only an edit returns a trip to
pending, and it may do so from any state.
"""

from backend.app.models.common import ItineraryStatus

_TRANSITIONS: dict[ItineraryStatus, frozenset[ItineraryStatus]] = {
    ItineraryStatus.pending: frozenset({ItineraryStatus.generating}),
    ItineraryStatus.generating: frozenset({ItineraryStatus.complete, ItineraryStatus.failed}),
    ItineraryStatus.complete: frozenset(),
    ItineraryStatus.failed: frozenset(),
}


def can_transition(current: ItineraryStatus, target: ItineraryStatus) -> bool:
    """Whether the generator may move a trip from ``current`` to ``target``."""
    return target in _TRANSITIONS[current]


def is_legal_observation(previous: ItineraryStatus, observed: ItineraryStatus) -> bool:
    """Whether a viewer may see ``observed`` right after ``previous``.

    Repeated snapshots (at-least-once delivery) and edit resets are allowed
    alongside regular generation edges.
    """
    return (
        observed == previous
        or observed == ItineraryStatus.pending
        or can_transition(previous, observed)
    )
