"""Open Food Facts API client."""

import logging
import re
from dataclasses import dataclass

import httpx

from lifestyle_tracker.adapters.rate_limiter import SlidingWindowRateLimiter
from lifestyle_tracker.domain.errors import (
    ErrorCode,
    ExternalSourceError,
    FoodServiceError,
    RateLimitedError,
    ValidationError,
)
from lifestyle_tracker.domain.foods import FoodItem, is_barcode
from lifestyle_tracker.services.foods import ExternalFoodSource

_logger = logging.getLogger(__name__)

_SERVING = re.compile(r"(\d+(?:\.\d+)?)\s*(kg|ml|g|l)?", re.IGNORECASE)


class ProductParseError(FoodServiceError):
    """An Open Food Facts product could not be turned into a food item."""

    code = ErrorCode.PARSING_ERROR


@dataclass
class OpenFoodFactsClient(ExternalFoodSource):
    """HTTPX-backed Open Food Facts client with client-side rate limiting."""

    base_url: str
    search_url: str
    http_client: httpx.AsyncClient
    rate_limiter: SlidingWindowRateLimiter
    timeout_seconds: float = 10.0

    @classmethod
    def create(
        cls,
        base_url: str,
        search_url: str,
        user_agent: str,
        requests_per_minute: int = 100,
        timeout_seconds: float = 10.0,
    ) -> "OpenFoodFactsClient":
        """Create a client with a managed httpx session."""
        return cls(
            base_url=base_url.rstrip("/"),
            search_url=search_url,
            http_client=httpx.AsyncClient(headers={"User-Agent": user_agent}),
            rate_limiter=SlidingWindowRateLimiter(max_requests=requests_per_minute),
            timeout_seconds=timeout_seconds,
        )

    async def get_product(self, barcode: str) -> FoodItem | None:
        """Fetch a product by barcode, ``None`` when it is unknown."""
        if not is_barcode(barcode):
            raise ValidationError(f"Invalid barcode format: {barcode}", key=barcode)

        response = await self._get(
            f"{self.base_url}/api/v2/product/{barcode}.json",
            action=f"product:{barcode}",
        )
        if response.status_code == 404:
            return None
        payload = response.json()
        product = payload.get("product")
        if payload.get("status") != 1 or not product:
            return None
        return parse_product(product)

    async def search_products(self, query: str, limit: int = 20) -> list[FoodItem]:
        """Search products by free text."""
        trimmed = (query or "").strip()
        if len(trimmed) < 2:
            return []

        response = await self._get(
            self.search_url,
            action=f"search:{trimmed}",
            params={
                "search_terms": trimmed,
                "search_simple": 1,
                "action": "process",
                "page_size": limit,
                "page": 1,
                "json": 1,
            },
        )
        foods: list[FoodItem] = []
        for product in response.json().get("products") or []:
            try:
                foods.append(parse_product(product))
            except ProductParseError as exc:
                _logger.warning("Skipping product %s: %s", product.get("code"), exc)
        _logger.info(
            "Open Food Facts search %r returned %s products", trimmed, len(foods)
        )
        return foods

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    async def _get(
        self, url: str, *, action: str, params: dict[str, object] | None = None
    ) -> httpx.Response:
        await self.rate_limiter.acquire()
        try:
            response = await self.http_client.get(
                url, params=params, timeout=self.timeout_seconds
            )
        except httpx.HTTPError as exc:
            _logger.warning("Open Food Facts %s failed: %s", action, exc)
            raise ExternalSourceError(
                f"Open Food Facts request failed: {exc}", action=action
            ) from exc

        if response.status_code == 429:
            raise RateLimitedError("Open Food Facts rate limit exceeded", action=action)
        if response.status_code == 404:
            return response
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            _logger.warning(
                "Open Food Facts %s returned %s", action, response.status_code
            )
            raise ExternalSourceError(
                f"Open Food Facts returned HTTP {response.status_code}",
                action=action,
                status_code=response.status_code,
            ) from exc
        return response


def parse_product(product: dict[str, object]) -> FoodItem:
    """Map an Open Food Facts product to a food item, preferring German names."""
    code = product.get("code")
    if not code:
        raise ProductParseError("Product has no barcode")
    try:
        nutriments = product.get("nutriments") or {}
        serving_size, serving_unit = parse_serving_size(product.get("serving_size"))
        nova_group = product.get("nova_group")
        return FoodItem(
            key=str(code),
            name=str(
                product.get("product_name_de")
                or product.get("product_name")
                or "Unknown Product"
            ),
            brand=_first_brand(product.get("brands")),
            calories=_nutriment(nutriments, "energy-kcal_100g"),
            protein=_nutriment(nutriments, "proteins_100g"),
            carbs=_nutriment(nutriments, "carbohydrates_100g"),
            fat=_nutriment(nutriments, "fat_100g"),
            fiber=_nutriment(nutriments, "fiber_100g"),
            sugar=_nutriment(nutriments, "sugars_100g"),
            sodium=_nutriment(nutriments, "sodium_100g"),
            serving_size=serving_size,
            serving_unit=serving_unit,
            nutriscore_grade=_grade(product.get("nutriscore_grade")),
            nova_group=int(nova_group) if nova_group not in (None, "") else None,
            ecoscore_grade=_grade(product.get("ecoscore_grade")),
        )
    except (TypeError, ValueError) as exc:
        raise ProductParseError(
            f"Malformed product {code}: {exc}", key=str(code)
        ) from exc


def parse_serving_size(value: object) -> tuple[float | None, str | None]:
    """Parse strings such as "30 g" or "0.5 l" into grams or millilitres."""
    if not isinstance(value, str) or not value:
        return None, None
    match = _SERVING.search(value)
    if match is None:
        return None, None
    size = float(match.group(1))
    unit = (match.group(2) or "g").lower()
    if unit == "kg":
        return size * 1000, "g"
    if unit == "l":
        return size * 1000, "ml"
    return size, unit


def _first_brand(brands: object) -> str | None:
    if not isinstance(brands, str):
        return None
    first = brands.split(",")[0].strip()
    return first or None


def _nutriment(nutriments: dict[str, object], name: str) -> float | None:
    value = nutriments.get(name)
    if value is None or value == "":
        return None
    return float(value)


def _grade(value: object) -> str | None:
    return value.upper() if isinstance(value, str) and value else None
