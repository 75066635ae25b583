"""Tests for HTTP-based adapters."""

import asyncio

import httpx
import pytest

from lifestyle_tracker.adapters.openfoodfacts_client import (
    OpenFoodFactsClient,
    ProductParseError,
    parse_product,
    parse_serving_size,
)
from lifestyle_tracker.adapters.rate_limiter import SlidingWindowRateLimiter
from lifestyle_tracker.domain.errors import (
    ExternalSourceError,
    RateLimitedError,
    ValidationError,
)

_PRODUCT = {
    "code": "4000417025005",
    "product_name": "Rolled oats",
    "product_name_de": "Haferflocken",
    "brands": "Kölln, Peter Kölln",
    "serving_size": "40 g",
    "nutriments": {
        "energy-kcal_100g": 372,
        "proteins_100g": 13.5,
        "carbohydrates_100g": 58.7,
        "fat_100g": "7",
        "sugars_100g": "",
    },
    "nutriscore_grade": "a",
    "nova_group": "1",
}


def _client(handler) -> OpenFoodFactsClient:  # type: ignore[no-untyped-def]
    return OpenFoodFactsClient(
        base_url="https://world.openfoodfacts.org",
        search_url="https://world.openfoodfacts.org/cgi/search.pl",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        rate_limiter=SlidingWindowRateLimiter(max_requests=10),
    )


def test_get_product_parses_german_name_and_nutriments() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/v2/product/4000417025005.json"
        return httpx.Response(200, json={"status": 1, "product": _PRODUCT})

    client = _client(handler)

    food = asyncio.run(client.get_product("4000417025005"))

    assert food is not None
    assert food.key == "4000417025005"
    assert food.name == "Haferflocken"
    assert food.brand == "Kölln"
    assert food.calories == 372.0
    assert food.fat == 7.0
    assert food.sugar is None
    assert (food.serving_size, food.serving_unit) == (40.0, "g")
    assert food.nutriscore_grade == "A"
    assert food.nova_group == 1
    assert food.source == "openfoodfacts"


def test_get_product_unknown_barcode_returns_none() -> None:
    responses = iter(
        [
            httpx.Response(404, json={"status": 0}),
            httpx.Response(200, json={"status": 0, "status_verbose": "not found"}),
        ]
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return next(responses)

    client = _client(handler)

    assert asyncio.run(client.get_product("4000000000000")) is None
    assert asyncio.run(client.get_product("4000000000000")) is None


def test_get_product_rejects_malformed_barcode_without_io() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    client = _client(handler)

    with pytest.raises(ValidationError):
        asyncio.run(client.get_product("12ab"))
    assert calls == []


def test_rate_limited_response_raises() -> None:
    client = _client(lambda request: httpx.Response(429))

    with pytest.raises(RateLimitedError) as excinfo:
        asyncio.run(client.get_product("4000417025005"))

    assert excinfo.value.code == "RATE_LIMITED"


def test_server_error_raises_external_source_error() -> None:
    client = _client(lambda request: httpx.Response(503))

    with pytest.raises(ExternalSourceError) as excinfo:
        asyncio.run(client.search_products("hafer"))

    assert excinfo.value.details["status_code"] == 503


def test_transport_error_raises_external_source_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    client = _client(handler)

    with pytest.raises(ExternalSourceError):
        asyncio.run(client.get_product("4000417025005"))


def test_search_products_sends_query_and_skips_broken_products() -> None:
    seen: dict[str, str] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.url.params)
        return httpx.Response(
            200, json={"products": [_PRODUCT, {"product_name": "No barcode"}]}
        )

    client = _client(handler)

    foods = asyncio.run(client.search_products("  hafer  ", limit=5))

    assert [food.key for food in foods] == ["4000417025005"]
    assert seen["search_terms"] == "hafer"
    assert seen["page_size"] == "5"
    assert seen["json"] == "1"


def test_search_products_short_query_skips_io() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    client = _client(handler)

    assert asyncio.run(client.search_products("h")) == []
    assert calls == []


def test_parse_product_requires_barcode() -> None:
    with pytest.raises(ProductParseError):
        parse_product({"product_name": "Nameless"})


def test_parse_product_falls_back_to_placeholder_name() -> None:
    food = parse_product({"code": "12345678"})

    assert food.name == "Unknown Product"
    assert food.brand is None
    assert food.calories is None


def test_parse_serving_size_units() -> None:
    assert parse_serving_size("0.5 kg") == (500.0, "g")
    assert parse_serving_size("0.25 l") == (250.0, "ml")
    assert parse_serving_size("330 ml") == (330.0, "ml")
    assert parse_serving_size("30") == (30.0, "g")
    assert parse_serving_size("one slice") == (None, None)
    assert parse_serving_size(None) == (None, None)


class _FakeTime:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def test_rate_limiter_waits_for_oldest_call_to_expire() -> None:
    fake = _FakeTime()
    limiter = SlidingWindowRateLimiter(
        max_requests=2, window_seconds=60.0, clock=fake.clock, sleep=fake.sleep
    )

    async def scenario() -> None:
        await limiter.acquire()
        fake.now = 10.0
        await limiter.acquire()
        await limiter.acquire()

    asyncio.run(scenario())

    assert fake.sleeps == [50.0]
    assert limiter.remaining() == 0


def test_rate_limiter_frees_slots_after_window() -> None:
    fake = _FakeTime()
    limiter = SlidingWindowRateLimiter(
        max_requests=3, window_seconds=60.0, clock=fake.clock, sleep=fake.sleep
    )

    asyncio.run(limiter.acquire())
    asyncio.run(limiter.acquire())
    assert limiter.remaining() == 1

    fake.now = 60.0
    assert limiter.remaining() == 3
    assert fake.sleeps == []


def test_rate_limiter_rejects_zero_budget() -> None:
    with pytest.raises(ValueError):
        SlidingWindowRateLimiter(max_requests=0)
