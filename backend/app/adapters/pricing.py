"""Pricing search adapter (flights + shared accommodation for a group)."""

import hashlib
import logging
import time
from datetime import date
from typing import Any, Protocol

import httpx
from pydantic import BaseModel, Field, ValidationError

from backend.app.config import Settings
from backend.app.models.common import AccommodationType, Airport, round_half_up
from backend.app.models.results import ConfigurationError, ErrorKind, UpstreamError
from backend.app.models.trip import AccommodationOption, FlightOption, Traveler, TravelerCost
from backend.app.utils.logging import StructuredSyncLogger
from backend.app.utils.metrics import PrometheusSyncMetrics

logger = logging.getLogger(__name__)


class PricingRequest(BaseModel):
    """Search input: destination, roster with origins, dates, stay type."""

    destination: Airport
    travelers: list[Traveler] = Field(..., min_length=1)
    departure_date: date
    return_date: date
    accommodation_type: AccommodationType = "hotel"

    @property
    def nights(self) -> int:
        return max((self.return_date - self.departure_date).days, 0)

    def to_payload(self) -> dict[str, Any]:
        """Wire body for the search endpoint."""
        return {
            "destination": self.destination.model_dump(),
            "travelers": [
                {
                    "name": t.name,
                    "origin": t.origin.model_dump(),
                    "isOrganizer": t.is_organizer,
                }
                for t in self.travelers
            ],
            "departureDate": self.departure_date.isoformat(),
            "returnDate": self.return_date.isoformat(),
            "accommodationType": self.accommodation_type,
        }


class QuotedAccommodation(BaseModel):
    """Accommodation as quoted, before group totals."""

    name: str
    price_per_night: float = Field(..., ge=0)
    total_nights: int = Field(..., ge=0)
    rating: float | None = None


class PricingQuote(BaseModel):
    """Expected shape of a search response."""

    flights: list[FlightOption] = Field(..., min_length=1)
    accommodation: QuotedAccommodation


class PricingResult(BaseModel):
    """Priced trip skeleton with totals satisfying the trip invariants."""

    flights: list[FlightOption]
    accommodation: AccommodationOption
    cost_breakdown: list[TravelerCost]
    trip_total: float
    total_per_person: float


def price_breakdown(quote: PricingQuote, travelers: list[Traveler]) -> PricingResult:
    """Derive per-traveler costs and totals from a quote.

    accommodation share = round(price_per_night * nights / n);
    subtotal = flight + share; trip total = sum of subtotals;
    per person = round(trip total / n).
    """
    count = len(travelers)
    accommodation_total = quote.accommodation.price_per_night * quote.accommodation.total_nights
    share = round_half_up(accommodation_total / count)
    roster = {t.name: t for t in travelers}

    entries: list[TravelerCost] = []
    for flight in quote.flights:
        flight_cost = flight.outbound_price + flight.return_price
        traveler = roster.get(flight.traveler_name)
        entries.append(
            TravelerCost(
                traveler_name=flight.traveler_name,
                origin=flight.origin,
                destination=flight.destination,
                flight_cost=flight_cost,
                accommodation_share=share,
                subtotal=flight_cost + share,
                user_id=traveler.user_id if traveler else None,
                avatar_url=traveler.avatar_url if traveler else None,
            )
        )

    trip_total = sum(entry.subtotal for entry in entries)

    return PricingResult(
        flights=quote.flights,
        accommodation=AccommodationOption(
            **quote.accommodation.model_dump(), total_price=accommodation_total
        ),
        cost_breakdown=entries,
        trip_total=trip_total,
        total_per_person=round_half_up(trip_total / count),
    )


class PricingClient(Protocol):
    """Protocol for pricing search implementations."""

    async def search(self, request: PricingRequest) -> PricingResult:
        """Price flights and accommodation for the whole group.

        Raises:
            UpstreamError: On HTTP failure or a response of the wrong shape
            ConfigurationError: If the search endpoint is not configured
        """
        ...


class HttpPricingClient:
    """Pricing search over HTTP."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
        metrics: PrometheusSyncMetrics | None = None,
        sync_logger: StructuredSyncLogger | None = None,
    ) -> None:
        """Initialize client.

        Args:
            base_url: Search endpoint URL
            api_key: Optional bearer token for the endpoint
            timeout: Request timeout in seconds
            client: Optional httpx client (for testing with mocks)
            metrics: Optional metrics sink
            sync_logger: Optional structured logger
        """
        self._base_url = base_url
        self._api_key = api_key
        self._timeout = timeout
        self._client = client
        self._metrics = metrics or PrometheusSyncMetrics()
        self._log = sync_logger or StructuredSyncLogger()

    async def search(self, request: PricingRequest) -> PricingResult:
        """Run the search and normalize totals."""
        if not self._base_url:
            raise ConfigurationError("PRICING_SEARCH_URL is not configured")

        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}

        close_client = False
        client = self._client
        if client is None:
            client = httpx.AsyncClient(timeout=self._timeout)
            close_client = True

        start = time.perf_counter()
        try:
            try:
                response = await client.post(
                    self._base_url, json=request.to_payload(), headers=headers
                )
            except httpx.HTTPError as exc:
                raise UpstreamError(f"Pricing search unreachable: {exc}") from exc

            if response.status_code == 429:
                raise UpstreamError(
                    "Rate limit exceeded. Please try again later.", ErrorKind.rate_limited
                )
            if response.status_code == 402:
                raise UpstreamError(
                    "Payment required. Please add credits to continue.", ErrorKind.quota_exceeded
                )
            if response.is_error:
                raise UpstreamError(f"Pricing search failed with status {response.status_code}")

            try:
                data = response.json()
            except ValueError as exc:
                raise UpstreamError("Pricing search returned invalid JSON") from exc

            if isinstance(data, dict) and data.get("error"):
                raise UpstreamError(str(data["error"]))

            try:
                quote = PricingQuote.model_validate(data)
            except ValidationError as exc:
                raise UpstreamError("Pricing search returned an unexpected shape") from exc
        except UpstreamError as exc:
            latency_ms = (time.perf_counter() - start) * 1000
            self._metrics.record_external_call("pricing_search", "error", latency_ms)
            self._metrics.inc_external_error("pricing_search", exc.kind.value)
            self._log.log_external_call(
                "pricing_search", "error", latency_ms, error_reason=str(exc)
            )
            raise
        finally:
            if close_client:
                await client.aclose()

        latency_ms = (time.perf_counter() - start) * 1000
        self._metrics.record_external_call("pricing_search", "success", latency_ms)
        self._log.log_external_call("pricing_search", "success", latency_ms)
        return price_breakdown(quote, request.travelers)


_AIRLINES = ("Delta", "United", "American", "JetBlue", "Alaska", "Southwest")


def _stable_int(*parts: str) -> int:
    digest = hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
    return int(digest[:8], 16)


class FixturePricingClient:
    """Deterministic offline pricing for development and tests.

    Prices are derived from a hash of the route, so the same request always
    prices the same way.
    """

    def __init__(self, fail_with: UpstreamError | None = None) -> None:
        self.fail_with = fail_with
        self.requests: list[PricingRequest] = []

    async def search(self, request: PricingRequest) -> PricingResult:
        """Price the request from fixtures."""
        self.requests.append(request)
        if self.fail_with is not None:
            raise self.fail_with

        dest = request.destination.iata
        flights = []
        for traveler in request.travelers:
            seed = _stable_int(traveler.origin.iata, dest, request.departure_date.isoformat())
            flights.append(
                FlightOption(
                    traveler_name=traveler.name,
                    origin=traveler.origin.iata,
                    destination=dest,
                    outbound_price=150 + seed % 250,
                    return_price=150 + (seed // 7) % 250,
                    airline=_AIRLINES[seed % len(_AIRLINES)],
                )
            )

        stay_seed = _stable_int(dest, request.accommodation_type)
        kind = "Residences" if request.accommodation_type == "airbnb" else "Hotel"
        quote = PricingQuote(
            flights=flights,
            accommodation=QuotedAccommodation(
                name=f"{request.destination.city} Central {kind}",
                price_per_night=120 + stay_seed % 180,
                total_nights=request.nights,
                rating=3.5 + (stay_seed % 15) / 10,
            ),
        )
        logger.debug("Fixture pricing for %s: %d flights", dest, len(flights))
        return price_breakdown(quote, request.travelers)


def get_pricing_client(settings: Settings) -> PricingClient:
    """Build the pricing client selected by configuration."""
    if settings.pricing_backend == "fixture":
        logger.info("Using fixture pricing client")
        return FixturePricingClient()

    return HttpPricingClient(
        base_url=settings.pricing_search_url,
        api_key=settings.pricing_api_key.get_secret_value() if settings.pricing_api_key else None,
        timeout=settings.external_timeout_seconds,
    )
