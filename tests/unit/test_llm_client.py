"""Tests for the itinerary LLM client.

All tests are deterministic and do not make real network calls.
"""

import json
import uuid
from datetime import date
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from backend.app.config import Settings
from backend.app.llm.client import (
    ITINERARY_TOOL,
    AlternativeRequest,
    DeterministicItineraryClient,
    ItineraryRequest,
    OpenAIItineraryClient,
    _strip_code_fence,
    get_itinerary_client,
)
from backend.app.models.itinerary import Activity
from backend.app.models.results import ConfigurationError, ErrorKind, UpstreamError

_GATEWAY = httpx.Request("POST", "https://llm.test/v1/chat/completions")


@pytest.fixture
def itinerary_request() -> ItineraryRequest:
    return ItineraryRequest(
        trip_id=uuid.uuid4(),
        destination_city="Lisbon",
        destination_country="Portugal",
        departure_date=date(2026, 11, 1),
        return_date=date(2026, 11, 3),
        traveler_count=3,
        accommodation_name="Baixa Hotel",
    )


@pytest.fixture
def museum() -> Activity:
    return Activity(time="2:00 PM", title="Museum", type="attraction", estimated_cost=30)


def _tool_response(arguments: str) -> Any:
    call = SimpleNamespace(function=SimpleNamespace(name="create_itinerary", arguments=arguments))
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(tool_calls=[call]))])


def _content_response(content: str | None) -> Any:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def _mock_client(response: Any = None, side_effect: Exception | None = None) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response, side_effect=side_effect)
    return client


class TestDeterministicClient:
    @pytest.mark.asyncio
    async def test_one_day_per_calendar_date(self, itinerary_request: ItineraryRequest) -> None:
        itinerary = await DeterministicItineraryClient().create_itinerary(itinerary_request)

        assert [d.day_number for d in itinerary.days] == [1, 2, 3]
        assert itinerary.days[2].date == date(2026, 11, 3)
        assert all(len(d.activities) == 3 for d in itinerary.days)

    @pytest.mark.asyncio
    async def test_cheaper_alternative_halves_cost(self, museum: Activity) -> None:
        alternative = await DeterministicItineraryClient().find_alternative(
            AlternativeRequest(
                current=museum,
                direction="cheaper",
                destination_city="Lisbon",
                destination_country="Portugal",
                date=date(2026, 11, 1),
            )
        )

        assert alternative.cost == 15
        assert alternative.time == museum.time
        assert alternative.activity_id != museum.activity_id


class TestOpenAIItineraryClient:
    @pytest.mark.asyncio
    async def test_parses_forced_tool_call(self, itinerary_request: ItineraryRequest) -> None:
        arguments = json.dumps(
            {
                "overview": "Two nights of tiles and tarts.",
                "highlights": ["Tram 28"],
                "days": [
                    {
                        "day_number": 1,
                        "date": "2026-11-01",
                        "theme": "Old town",
                        "activities": [
                            {
                                "time": "10:00 AM",
                                "title": "Castle",
                                "description": "Views.",
                                "type": "attraction",
                                "estimated_cost": 15,
                            }
                        ],
                    }
                ],
            }
        )
        client = _mock_client(_tool_response(arguments))

        itinerary = await OpenAIItineraryClient(api_key=None, client=client).create_itinerary(
            itinerary_request
        )

        assert itinerary.days[0].activities[0].title == "Castle"
        assert itinerary.days[0].activities[0].activity_id
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["tools"] == [ITINERARY_TOOL]
        assert kwargs["tool_choice"]["function"]["name"] == "create_itinerary"
        assert "Lisbon, Portugal" in kwargs["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_missing_tool_call(self, itinerary_request: ItineraryRequest) -> None:
        response = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(tool_calls=None))]
        )
        client = OpenAIItineraryClient(api_key=None, client=_mock_client(response))

        with pytest.raises(UpstreamError, match="No itinerary generated"):
            await client.create_itinerary(itinerary_request)

    @pytest.mark.asyncio
    async def test_malformed_arguments(self, itinerary_request: ItineraryRequest) -> None:
        client = OpenAIItineraryClient(
            api_key=None, client=_mock_client(_tool_response('{"days": "soon"}'))
        )

        with pytest.raises(UpstreamError, match="parse"):
            await client.create_itinerary(itinerary_request)

    @pytest.mark.asyncio
    async def test_no_key_is_configuration_error(self, itinerary_request: ItineraryRequest) -> None:
        with pytest.raises(ConfigurationError):
            await OpenAIItineraryClient(api_key=None).create_itinerary(itinerary_request)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("error", "kind"),
        [
            (
                openai.RateLimitError(
                    "slow down", response=httpx.Response(429, request=_GATEWAY), body=None
                ),
                ErrorKind.rate_limited,
            ),
            (
                openai.APIStatusError(
                    "pay up", response=httpx.Response(402, request=_GATEWAY), body=None
                ),
                ErrorKind.quota_exceeded,
            ),
            (
                openai.InternalServerError(
                    "boom", response=httpx.Response(500, request=_GATEWAY), body=None
                ),
                ErrorKind.upstream,
            ),
            (openai.APIConnectionError(request=_GATEWAY), ErrorKind.upstream),
        ],
    )
    async def test_sdk_errors_map_to_kinds(
        self, itinerary_request: ItineraryRequest, error: Exception, kind: ErrorKind
    ) -> None:
        client = OpenAIItineraryClient(api_key=None, client=_mock_client(side_effect=error))

        with pytest.raises(UpstreamError) as exc_info:
            await client.create_itinerary(itinerary_request)

        assert exc_info.value.kind == kind

    @pytest.mark.asyncio
    async def test_alternative_keeps_time_slot(self, museum: Activity) -> None:
        content = (
            "```json\n"
            '{"time": "9:00 PM", "title": "Miradouro", "description": "Free views.", '
            '"type": "attraction", "estimated_cost": 0}\n```'
        )
        client = OpenAIItineraryClient(api_key=None, client=_mock_client(_content_response(content)))

        alternative = await client.find_alternative(
            AlternativeRequest(
                current=museum,
                direction="cheaper",
                destination_city="Lisbon",
                destination_country="Portugal",
                date=date(2026, 11, 1),
            )
        )

        assert alternative.title == "Miradouro"
        assert alternative.time == "2:00 PM"

    @pytest.mark.asyncio
    async def test_alternative_empty_content(self, museum: Activity) -> None:
        client = OpenAIItineraryClient(api_key=None, client=_mock_client(_content_response(None)))

        with pytest.raises(UpstreamError, match="Empty"):
            await client.find_alternative(
                AlternativeRequest(
                    current=museum,
                    direction="pricier",
                    destination_city="Lisbon",
                    destination_country="Portugal",
                    date=date(2026, 11, 1),
                )
            )


def test_strip_code_fence() -> None:
    assert _strip_code_fence('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert _strip_code_fence('{"a": 1}') == '{"a": 1}'


def test_factory_selects_backend() -> None:
    assert isinstance(
        get_itinerary_client(Settings(itinerary_backend="stub")), DeterministicItineraryClient
    )
    client = get_itinerary_client(Settings(itinerary_backend="openai", llm_api_key="sk-test"))
    assert isinstance(client, OpenAIItineraryClient)
