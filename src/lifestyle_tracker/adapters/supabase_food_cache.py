"""Supabase implementation of the shared food cache."""

import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime

from supabase import Client

from lifestyle_tracker.domain.errors import CacheError, Tier
from lifestyle_tracker.domain.foods import CloudCacheStats, FoodItem
from lifestyle_tracker.services.background import BackgroundTasks
from lifestyle_tracker.services.foods import SharedFoodStore

_logger = logging.getLogger(__name__)

_TABLE = "food_items"
# PostgREST "or" filters are comma separated and grouped with parentheses.
_FILTER_SYNTAX = re.compile(r"[,()]")

_ROW_FIELDS = (
    "name",
    "brand",
    "calories",
    "protein",
    "carbs",
    "fat",
    "fiber",
    "sugar",
    "sodium",
    "serving_size",
    "serving_unit",
    "nutriscore_grade",
    "nova_group",
    "ecoscore_grade",
    "source",
)


@dataclass
class SupabaseFoodCache(SharedFoodStore):
    """Supabase-backed food cache shared by every user."""

    client: Client
    background: BackgroundTasks

    async def get_by_key(self, key: str) -> FoodItem | None:
        """Return the shared record and count the hit in the background."""
        try:
            response = (
                self.client.table(_TABLE)
                .select("*")
                .eq("barcode", key)
                .limit(1)
                .execute()
            )
        except Exception as exc:
            raise _cloud_error("get_by_key", exc, key=key) from exc
        if not response.data:
            return None
        self.background.spawn(self._increment_usage(key), label=f"cloud_usage:{key}")
        return _parse_food(response.data[0])

    async def put(self, food: FoodItem) -> None:
        """Upsert by barcode, leaving the usage counter to the database."""
        try:
            self.client.table(_TABLE).upsert(
                _food_to_row(food), on_conflict="barcode"
            ).execute()
        except Exception as exc:
            raise _cloud_error("put", exc, key=food.key) from exc

    async def search(self, query: str, limit: int = 20) -> list[FoodItem]:
        """Full-text search, falling back to a name/brand substring match."""
        trimmed = (query or "").strip()
        if len(trimmed) < 2:
            return []

        rows: list[dict[str, object]] = []
        try:
            response = (
                self.client.table(_TABLE)
                .select("*")
                .text_search(
                    "search_vector",
                    trimmed,
                    options={"type": "websearch", "config": "german"},
                )
                .order("usage_count", desc=True)
                .limit(limit)
                .execute()
            )
            rows = response.data or []
        except Exception as exc:
            _logger.warning("Cloud full-text search for %r failed: %s", trimmed, exc)

        if not rows:
            pattern = f"%{_FILTER_SYNTAX.sub(' ', trimmed)}%"
            try:
                response = (
                    self.client.table(_TABLE)
                    .select("*")
                    .or_(f"name.ilike.{pattern},brand.ilike.{pattern}")
                    .order("usage_count", desc=True)
                    .limit(limit)
                    .execute()
                )
            except Exception as exc:
                raise _cloud_error("search", exc, query=trimmed) from exc
            rows = response.data or []
        return [_parse_food(row) for row in rows]

    async def get_most_used(self, limit: int = 20) -> list[FoodItem]:
        """Return the globally most used foods."""
        try:
            response = (
                self.client.table(_TABLE)
                .select("*")
                .order("usage_count", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as exc:
            raise _cloud_error("get_most_used", exc) from exc
        return [_parse_food(row) for row in response.data or []]

    async def get_stats(self) -> CloudCacheStats:
        """Return the number of shared foods and their summed usage."""
        try:
            count_response = (
                self.client.table(_TABLE).select("barcode", count="exact").execute()
            )
            usage_response = self.client.table(_TABLE).select("usage_count").execute()
        except Exception as exc:
            raise _cloud_error("get_stats", exc) from exc
        total_items = count_response.count
        if total_items is None:
            total_items = len(count_response.data or [])
        total_usage = sum(
            int(row.get("usage_count") or 0) for row in usage_response.data or []
        )
        return CloudCacheStats(total_items=int(total_items), total_usage=total_usage)

    async def _increment_usage(self, key: str) -> None:
        try:
            self.client.rpc("increment_food_usage", {"food_barcode": key}).execute()
            return
        except Exception as exc:
            _logger.debug("increment_food_usage RPC failed for %s: %s", key, exc)

        response = (
            self.client.table(_TABLE)
            .select("usage_count")
            .eq("barcode", key)
            .limit(1)
            .execute()
        )
        current = int(response.data[0].get("usage_count") or 0) if response.data else 0
        self.client.table(_TABLE).update(
            {
                "usage_count": current + 1,
                "last_used": datetime.now(tz=UTC).isoformat(),
            }
        ).eq("barcode", key).execute()


def _cloud_error(operation: str, exc: Exception, **details: object) -> CacheError:
    _logger.error("Cloud food cache %s failed: %s", operation, exc)
    return CacheError(
        f"Cloud food cache {operation} failed: {exc}",
        tier=Tier.CLOUD,
        operation=operation,
        **details,
    )


def _food_to_row(food: FoodItem) -> dict[str, object]:
    row: dict[str, object] = {"barcode": food.key}
    row.update({name: getattr(food, name) for name in _ROW_FIELDS})
    row["last_used"] = datetime.now(tz=UTC).isoformat()
    return row


def _parse_time(value: object) -> datetime | None:
    if isinstance(value, str) and value:
        return datetime.fromisoformat(value)
    return None


def _optional_float(value: object) -> float | None:
    return float(value) if value is not None else None


def _parse_food(row: dict[str, object]) -> FoodItem:
    """Parse a food_items row into a domain model."""
    nova_group = row.get("nova_group")
    return FoodItem(
        key=str(row["barcode"]),
        name=str(row.get("name") or ""),
        brand=row.get("brand") or None,
        calories=_optional_float(row.get("calories")),
        protein=_optional_float(row.get("protein")),
        carbs=_optional_float(row.get("carbs")),
        fat=_optional_float(row.get("fat")),
        fiber=_optional_float(row.get("fiber")),
        sugar=_optional_float(row.get("sugar")),
        sodium=_optional_float(row.get("sodium")),
        serving_size=_optional_float(row.get("serving_size")),
        serving_unit=row.get("serving_unit") or None,
        nutriscore_grade=row.get("nutriscore_grade") or None,
        nova_group=int(nova_group) if nova_group is not None else None,
        ecoscore_grade=row.get("ecoscore_grade") or None,
        source=str(row.get("source") or "openfoodfacts"),
        usage_count=int(row.get("usage_count") or 1),
        last_used_at=_parse_time(row.get("last_used")),
        cached_at=_parse_time(row.get("cached_at")),
    )
