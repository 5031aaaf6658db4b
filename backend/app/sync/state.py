"""Two-layer view state: authoritative snapshot plus local pending overlay."""

import logging
from datetime import datetime, timedelta

from backend.app.models.common import ItineraryStatus
from backend.app.models.costs import AdjustedCosts
from backend.app.models.trip import Trip
from backend.app.sync.costs import EMPTY_SELECTION, SelectionSet, compute_adjusted_costs, remap_selection
from backend.app.sync.reactions import ReactionMap
from backend.app.sync.status import is_legal_observation

logger = logging.getLogger(__name__)


def countdown(link_expires_at: datetime | None, now: datetime) -> timedelta | None:
    """Time left on the share link, clamped at zero. None if never claimed."""
    if link_expires_at is None:
        return None
    return max(link_expires_at - now, timedelta(0))


class TripViewState:
    """Local state of one trip view.

    ``authoritative`` is replaced wholesale by every pushed snapshot. The
    pending overlay (optimistic paid names) and the selection survive
    replacement; the selection is carried across itinerary changes by
    activity id.
    """

    def __init__(self, trip: Trip) -> None:
        self.authoritative = trip
        self.pending_paid: set[str] = set()
        self.selection: SelectionSet = EMPTY_SELECTION
        self.reactions: ReactionMap = {}

    @property
    def status(self) -> ItineraryStatus:
        return self.authoritative.itinerary_status

    def apply_snapshot(self, trip: Trip) -> None:
        """Replace the authoritative layer with a pushed snapshot."""
        previous = self.authoritative
        self.selection = remap_selection(self.selection, previous.itinerary, trip.itinerary)

        if not is_legal_observation(previous.itinerary_status, trip.itinerary_status):
            # Out-of-order delivery; still show the latest snapshot
            logger.warning(
                "Observed %s after %s on trip %s",
                trip.itinerary_status.value,
                previous.itinerary_status.value,
                trip.id,
            )

        self.authoritative = trip

    @property
    def paid_travelers(self) -> frozenset[str]:
        """Persisted paid names plus optimistic ones not yet confirmed."""
        return frozenset(self.authoritative.paid_travelers) | self.pending_paid

    def is_paid(self, traveler_name: str) -> bool:
        return traveler_name in self.paid_travelers

    @property
    def all_paid(self) -> bool:
        return self.authoritative.all_paid(self.paid_travelers)

    def adjusted_costs(self) -> AdjustedCosts:
        """Costs with the current selection folded in."""
        trip = self.authoritative
        return compute_adjusted_costs(
            trip.cost_basis(), trip.itinerary, self.selection, trip.traveler_count
        )

    def countdown(self, now: datetime) -> timedelta | None:
        return countdown(self.authoritative.link_expires_at, now)
