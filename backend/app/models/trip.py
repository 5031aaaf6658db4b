"""Trip record models - the shared document every viewer synchronizes on."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from backend.app.models.common import AccommodationType, Airport, ItineraryStatus
from backend.app.models.itinerary import Itinerary

SHARE_CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"


class Traveler(BaseModel):
    """Member of the trip roster."""

    name: str = Field(..., min_length=1)
    origin: Airport
    is_organizer: bool = False
    user_id: UUID | None = None
    avatar_url: str | None = None


class FlightOption(BaseModel):
    """Priced round trip for one traveler."""

    traveler_name: str
    origin: str
    destination: str
    outbound_price: float = Field(..., ge=0)
    return_price: float = Field(..., ge=0)
    airline: str
    departure_time: str | None = None
    arrival_time: str | None = None


class AccommodationOption(BaseModel):
    """Shared accommodation for the whole group."""

    name: str
    price_per_night: float = Field(..., ge=0)
    total_nights: int = Field(..., ge=0)
    rating: float | None = None
    total_price: float = Field(..., ge=0)


class TravelerCost(BaseModel):
    """Per-traveler row of the cost breakdown."""

    traveler_name: str
    origin: str
    destination: str
    flight_cost: float
    accommodation_share: float
    subtotal: float
    user_id: UUID | None = None
    avatar_url: str | None = None


class CostBreakdown(BaseModel):
    """Base pricing of a trip as of its last re-price."""

    entries: list[TravelerCost]
    trip_total: float
    total_per_person: float


class Trip(BaseModel):
    """Persisted trip document."""

    id: UUID
    organizer_id: UUID | None = None
    organizer_name: str
    destination_city: str
    destination_country: str
    destination_iata: str
    departure_date: date
    return_date: date
    accommodation_type: AccommodationType = "hotel"
    travelers: list[Traveler] = Field(default_factory=list)
    flights: list[FlightOption] = Field(default_factory=list)
    accommodation: AccommodationOption | None = None
    cost_breakdown: list[TravelerCost] = Field(default_factory=list)
    total_per_person: float = 0
    trip_total: float = 0
    itinerary: Itinerary | None = None
    itinerary_status: ItineraryStatus = ItineraryStatus.pending
    share_code: str = Field(..., min_length=6, max_length=6)
    share_image_url: str | None = None
    paid_travelers: list[str] = Field(default_factory=list)
    link_created_at: datetime | None = None
    link_expires_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @field_validator("share_code")
    @classmethod
    def validate_share_code(cls, v: str) -> str:
        """Share codes only use the unambiguous alphabet."""
        v = v.upper()
        if any(ch not in SHARE_CODE_ALPHABET for ch in v):
            raise ValueError(f"share code {v!r} contains characters outside the alphabet")
        return v

    @property
    def traveler_count(self) -> int:
        """Number of travelers costed on the trip."""
        return len(self.travelers) or len(self.cost_breakdown)

    @property
    def traveler_names(self) -> list[str]:
        if self.travelers:
            return [t.name for t in self.travelers]
        return [entry.traveler_name for entry in self.cost_breakdown]

    @property
    def destination(self) -> Airport:
        return Airport(
            iata=self.destination_iata,
            city=self.destination_city,
            country=self.destination_country,
        )

    def cost_basis(self) -> CostBreakdown:
        """Base cost inputs for adjusted-cost computation."""
        return CostBreakdown(
            entries=self.cost_breakdown,
            trip_total=self.trip_total,
            total_per_person=self.total_per_person,
        )

    def is_link_expired(self, now: datetime) -> bool:
        """Whether the payment window has closed."""
        return self.link_expires_at is not None and now >= self.link_expires_at

    def all_paid(self, paid: set[str] | frozenset[str] | None = None) -> bool:
        """Whether every traveler is in the paid set."""
        names = self.traveler_names
        paid_set = set(self.paid_travelers) if paid is None else paid
        return bool(names) and all(name in paid_set for name in names)

    def is_organizer(self, user_id: UUID | None) -> bool:
        return user_id is not None and self.organizer_id == user_id


class TripPatch(BaseModel):
    """Partial update applied to a trip as one atomic write.

    Only fields explicitly set are written (``model_dump(exclude_unset=True)``),
    so ``itinerary=None`` clears the itinerary.
    """

    organizer_id: UUID | None = None
    destination_city: str | None = None
    destination_country: str | None = None
    destination_iata: str | None = None
    departure_date: date | None = None
    return_date: date | None = None
    accommodation_type: AccommodationType | None = None
    travelers: list[Traveler] | None = None
    flights: list[FlightOption] | None = None
    accommodation: AccommodationOption | None = None
    cost_breakdown: list[TravelerCost] | None = None
    total_per_person: float | None = None
    trip_total: float | None = None
    itinerary: Itinerary | None = None
    itinerary_status: ItineraryStatus | None = None
    share_image_url: str | None = None
    link_created_at: datetime | None = None
    link_expires_at: datetime | None = None

    @field_validator("itinerary_status")
    @classmethod
    def only_reset_to_pending(cls, v: ItineraryStatus | None) -> ItineraryStatus | None:
        """Patches may only reset status; generation moves it forward."""
        if v is not None and v != ItineraryStatus.pending:
            raise ValueError("status can only be reset to pending by a patch")
        return v


class TripDraft(BaseModel):
    """Input for creating a trip after a successful pricing search."""

    organizer_name: str = Field(..., min_length=1)
    organizer_id: UUID | None = None
    destination: Airport
    travelers: list[Traveler] = Field(..., min_length=1)
    departure_date: date
    return_date: date
    accommodation_type: AccommodationType = "hotel"

    @field_validator("return_date")
    @classmethod
    def validate_return_after_departure(cls, v: date, info: ValidationInfo) -> date:
        """Ensure return >= departure."""
        if "departure_date" in info.data and v < info.data["departure_date"]:
            raise ValueError("return_date must be >= departure_date")
        return v


class TripEdit(BaseModel):
    """Organizer edit that triggers a re-price.

    Unset fields keep their current value. ``organizer_origin`` replaces the
    origin of the organizer's roster entry.
    """

    destination: Airport | None = None
    departure_date: date | None = None
    return_date: date | None = None
    organizer_origin: Airport | None = None
    travelers: list[Traveler] | None = Field(default=None, min_length=1)
    accommodation_type: AccommodationType | None = None
