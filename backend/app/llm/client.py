"""LLM client for itinerary generation with OpenAI integration.

Security: Reads API key from settings only, never hardcoded.
Provides a deterministic client for development and tests.
"""

import logging
import time
from datetime import date, timedelta
from typing import Any, Literal, Protocol
from uuid import UUID

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, Field, ValidationError

from backend.app.config import Settings
from backend.app.models.itinerary import Activity, DayPlan, Itinerary
from backend.app.models.results import ConfigurationError, ErrorKind, UpstreamError
from backend.app.utils.logging import StructuredSyncLogger
from backend.app.utils.metrics import PrometheusSyncMetrics

logger = logging.getLogger(__name__)

PriceDirection = Literal["cheaper", "pricier"]


class ItineraryRequest(BaseModel):
    """Inputs for a day-by-day itinerary."""

    trip_id: UUID
    destination_city: str
    destination_country: str
    departure_date: date
    return_date: date
    traveler_count: int = Field(..., ge=1)
    accommodation_name: str | None = None

    @property
    def nights(self) -> int:
        return max((self.return_date - self.departure_date).days, 0)


class AlternativeRequest(BaseModel):
    """Inputs for swapping one activity for a cheaper or pricier one."""

    current: Activity
    direction: PriceDirection
    destination_city: str
    destination_country: str
    date: date


class ItineraryLLMClient(Protocol):
    """Protocol for itinerary generation implementations."""

    async def create_itinerary(self, request: ItineraryRequest) -> Itinerary:
        """Generate a structured itinerary.

        Raises:
            UpstreamError: On API failure (rate limit and quota included) or
                a response that does not match the itinerary shape
            ConfigurationError: If no API key is configured
        """
        ...

    async def find_alternative(self, request: AlternativeRequest) -> Activity:
        """Suggest a replacement activity in the same time slot."""
        ...


ITINERARY_TOOL: dict[str, Any] = {
    "type": "function",
    "function": {
        "name": "create_itinerary",
        "description": "Create a structured day-by-day trip itinerary",
        "parameters": {
            "type": "object",
            "properties": {
                "overview": {
                    "type": "string",
                    "description": "1-2 sentences. Lead with what's unique.",
                },
                "highlights": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "3-4 highlights, 4-6 words each.",
                },
                "days": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "day_number": {"type": "number"},
                            "date": {"type": "string", "description": "YYYY-MM-DD"},
                            "theme": {"type": "string", "description": "2-4 words"},
                            "activities": {
                                "type": "array",
                                "items": {
                                    "type": "object",
                                    "properties": {
                                        "time": {"type": "string", "description": "e.g. '10:00 AM'"},
                                        "title": {"type": "string"},
                                        "description": {"type": "string"},
                                        "type": {
                                            "type": "string",
                                            "enum": [
                                                "attraction",
                                                "restaurant",
                                                "event",
                                                "travel",
                                                "free_time",
                                            ],
                                        },
                                        "is_live_event": {"type": "boolean"},
                                        "estimated_cost": {
                                            "type": "number",
                                            "description": "USD per person",
                                        },
                                        "tip": {"type": "string"},
                                    },
                                    "required": ["time", "title", "description", "type"],
                                },
                            },
                        },
                        "required": ["day_number", "date", "theme", "activities"],
                    },
                },
            },
            "required": ["overview", "highlights", "days"],
        },
    },
}

_ITINERARY_SYSTEM_PROMPT = (
    "You are a travel expert. Write with smart brevity: every word must earn its place. "
    "No filler. Specific beats generic. Return structured data only."
)

_ALTERNATIVE_SYSTEM_PROMPT = (
    "You are a travel expert. One sentence descriptions. Actionable tips only. "
    "Respond with valid JSON only."
)


def _strip_code_fence(content: str) -> str:
    """Remove a surrounding ```json fence if the model added one."""
    text = content.strip()
    if text.startswith("```json"):
        text = text[7:]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


class DeterministicItineraryClient:
    """Deterministic itinerary client for testing (no API key required)."""

    async def create_itinerary(self, request: ItineraryRequest) -> Itinerary:
        """One day per calendar date with a fixed activity pattern."""
        days: list[DayPlan] = []
        for offset in range(request.nights + 1):
            day_number = offset + 1
            days.append(
                DayPlan(
                    day_number=day_number,
                    date=request.departure_date + timedelta(days=offset),
                    theme=f"{request.destination_city} Day {day_number}",
                    activities=[
                        Activity(
                            time="9:00 AM",
                            title=f"Breakfast spot {day_number}",
                            description="Local cafe near the stay.",
                            type="restaurant",
                            estimated_cost=25,
                        ),
                        Activity(
                            time="11:00 AM",
                            title=f"Landmark tour {day_number}",
                            description=f"Guided walk through central {request.destination_city}.",
                            type="attraction",
                            estimated_cost=40 if day_number % 2 else 0,
                        ),
                        Activity(
                            time="4:00 PM",
                            title="Free afternoon",
                            description="Downtime before dinner.",
                            type="free_time",
                        ),
                    ],
                )
            )

        return Itinerary(
            overview=(
                f"{request.nights} nights in {request.destination_city}, "
                f"{request.destination_country} for {request.traveler_count}."
            ),
            highlights=[f"Landmarks of {request.destination_city}", "Local breakfast spots"],
            days=days,
        )

    async def find_alternative(self, request: AlternativeRequest) -> Activity:
        """Halve or double the current cost."""
        current = request.current
        if request.direction == "cheaper":
            cost = current.cost // 2
            title = f"Budget pick: {current.title}"
        else:
            cost = current.cost * 2 if current.cost else 50
            title = f"Premium pick: {current.title}"

        return Activity(
            time=current.time,
            title=title,
            description=f"{request.direction.capitalize()} option in {request.destination_city}.",
            type=current.type,
            estimated_cost=cost,
        )


class OpenAIItineraryClient:
    """OpenAI-backed itinerary client using a forced tool call."""

    def __init__(
        self,
        api_key: str | None,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        timeout: float = 60.0,
        client: AsyncOpenAI | None = None,
        metrics: PrometheusSyncMetrics | None = None,
        sync_logger: StructuredSyncLogger | None = None,
    ) -> None:
        """Initialize OpenAI client.

        Args:
            api_key: API key (None defers the failure to the first call)
            model: Model name to use
            base_url: Optional OpenAI-compatible gateway URL
            timeout: Request timeout in seconds
            client: Optional pre-built client (for testing with mocks)
            metrics: Optional metrics sink
            sync_logger: Optional structured logger
        """
        if client is None and api_key:
            client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)
        self.client = client
        self.model = model
        self._metrics = metrics or PrometheusSyncMetrics()
        self._log = sync_logger or StructuredSyncLogger()

    def _require_client(self) -> AsyncOpenAI:
        if self.client is None:
            raise ConfigurationError("LLM_API_KEY is not configured")
        return self.client

    async def _complete(self, call: str, trip_id: UUID | None, **kwargs: Any) -> Any:
        """Run one chat completion, mapping SDK errors to UpstreamError."""
        client = self._require_client()
        start = time.perf_counter()

        try:
            response = await client.chat.completions.create(model=self.model, **kwargs)
        except openai.RateLimitError as exc:
            error = UpstreamError(
                "Rate limit exceeded, please try again later", ErrorKind.rate_limited
            )
            self._record_failure(call, trip_id, start, error)
            raise error from exc
        except openai.APIStatusError as exc:
            if exc.status_code == 402:
                error = UpstreamError("Payment required", ErrorKind.quota_exceeded)
            else:
                error = UpstreamError(f"AI gateway error: {exc.status_code}")
            self._record_failure(call, trip_id, start, error)
            raise error from exc
        except openai.APIError as exc:
            error = UpstreamError(f"AI gateway unreachable: {exc}")
            self._record_failure(call, trip_id, start, error)
            raise error from exc

        latency_ms = (time.perf_counter() - start) * 1000
        self._metrics.record_external_call(call, "success", latency_ms)
        self._log.log_external_call(call, "success", latency_ms, trip_id=trip_id)
        return response

    def _record_failure(
        self, call: str, trip_id: UUID | None, start: float, error: UpstreamError
    ) -> None:
        latency_ms = (time.perf_counter() - start) * 1000
        self._metrics.record_external_call(call, "error", latency_ms)
        self._metrics.inc_external_error(call, error.kind.value)
        self._log.log_external_call(
            call, "error", latency_ms, trip_id=trip_id, error_reason=str(error)
        )

    async def create_itinerary(self, request: ItineraryRequest) -> Itinerary:
        """Generate itinerary using OpenAI API."""
        response = await self._complete(
            "generate_itinerary",
            request.trip_id,
            messages=[
                {"role": "system", "content": _ITINERARY_SYSTEM_PROMPT},
                {"role": "user", "content": self._build_itinerary_prompt(request)},
            ],
            tools=[ITINERARY_TOOL],
            tool_choice={"type": "function", "function": {"name": "create_itinerary"}},
        )

        message = response.choices[0].message if response.choices else None
        tool_calls = message.tool_calls if message is not None else None
        if not tool_calls:
            logger.warning("No tool call in itinerary response for trip %s", request.trip_id)
            raise UpstreamError("No itinerary generated")

        try:
            return Itinerary.model_validate_json(tool_calls[0].function.arguments)
        except ValidationError as exc:
            logger.warning("Failed to parse itinerary for trip %s: %s", request.trip_id, exc)
            raise UpstreamError("Failed to parse itinerary response") from exc

    async def find_alternative(self, request: AlternativeRequest) -> Activity:
        """Ask for a replacement activity as plain JSON."""
        response = await self._complete(
            "find_alternative",
            None,
            messages=[
                {"role": "system", "content": _ALTERNATIVE_SYSTEM_PROMPT},
                {"role": "user", "content": self._build_alternative_prompt(request)},
            ],
        )

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise UpstreamError("Empty AI response")

        try:
            activity = Activity.model_validate_json(_strip_code_fence(content))
        except ValidationError as exc:
            raise UpstreamError("Invalid activity format from AI") from exc

        # Keep the time slot of the activity being replaced
        return activity.model_copy(update={"time": request.current.time})

    def _build_itinerary_prompt(self, request: ItineraryRequest) -> str:
        lines = [
            f"TRIP: {request.destination_city}, {request.destination_country}",
            f"DATES: {request.departure_date} to {request.return_date} ({request.nights} nights)",
            f"GROUP: {request.traveler_count} people",
        ]
        if request.accommodation_name:
            lines.append(f"STAYING: {request.accommodation_name}")
        lines.extend(
            [
                "",
                "Include: landmarks, live events "
                f"({request.departure_date}-{request.return_date}), dining, nightlife, local gems.",
                "Overview: 1-2 sentences. Day themes: 2-4 words. Descriptions and tips: one "
                "sentence each.",
                f"Number days 1 to {request.nights + 1}, one per calendar date.",
                "Group nearby attractions. Balance activities with downtime. "
                "Note LIVE EVENTS with exact dates.",
            ]
        )
        return "\n".join(lines)

    def _build_alternative_prompt(self, request: AlternativeRequest) -> str:
        current = request.current
        cost = current.cost
        target = (
            f"TARGET: Under ${cost}. Free is great."
            if request.direction == "cheaper"
            else f"TARGET: Above ${cost}. Premium experience."
        )
        return "\n".join(
            [
                f"Find a {request.direction} alternative in {request.destination_city}, "
                f"{request.destination_country} on {request.date}.",
                f"CURRENT: {current.title} (${cost}/person)",
                f"TYPE: {current.type}",
                f"TIME: {current.time}",
                target,
                "",
                "JSON only, with keys: time, title, description, type, estimated_cost, tip.",
            ]
        )


def get_itinerary_client(settings: Settings) -> ItineraryLLMClient:
    """Factory function to get the itinerary client selected by config.

    Returns:
        OpenAIItineraryClient for the ``openai`` backend (a missing key fails
        at call time), DeterministicItineraryClient for ``stub``
    """
    if settings.itinerary_backend == "stub":
        logger.warning("Using deterministic itinerary client")
        return DeterministicItineraryClient()

    api_key = settings.llm_api_key.get_secret_value() if settings.llm_api_key else None
    if not api_key:
        logger.warning("No LLM API key configured; itinerary generation will fail")

    return OpenAIItineraryClient(
        api_key=api_key,
        model=settings.llm_model,
        base_url=settings.llm_base_url,
        timeout=settings.external_timeout_seconds,
    )
