"""Tiered food lookup and search across the local, cloud and external stores."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Protocol

from lifestyle_tracker.domain.errors import (
    NotFoundError,
    NotInitializedError,
    TierError,
    Tier,
    ValidationError,
)
from lifestyle_tracker.domain.foods import (
    CacheStats,
    CloudCacheStats,
    FoodItem,
    RankedFood,
    SearchResult,
    SearchSource,
    is_barcode,
)
from lifestyle_tracker.services.background import BackgroundTasks
from lifestyle_tracker.services.ranking import FoodSearchRanker

_logger = logging.getLogger(__name__)


class LocalFoodStore(Protocol):
    """Per-device food cache, bounded in size."""

    async def initialize(self) -> None:
        """Create storage if needed."""

    async def get_by_key(self, key: str) -> FoodItem | None:
        """Return a cached food and record the hit."""

    async def put(self, food: FoodItem) -> None:
        """Insert or refresh a food."""

    async def search_by_name(self, query: str, limit: int) -> list[FoodItem]:
        """Return foods whose name contains the query."""

    async def get_top(self, limit: int) -> list[FoodItem]:
        """Return the most used foods."""

    async def count(self) -> int:
        """Return the number of cached foods."""

    async def clear(self) -> None:
        """Remove every cached food."""


class SharedFoodStore(Protocol):
    """Food cache shared by all users."""

    async def get_by_key(self, key: str) -> FoodItem | None:
        """Return a shared food and record the hit in the background."""

    async def put(self, food: FoodItem) -> None:
        """Upsert a food by key."""

    async def search(self, query: str, limit: int) -> list[FoodItem]:
        """Full-text search with a substring fallback."""

    async def get_most_used(self, limit: int) -> list[FoodItem]:
        """Return the globally most used foods."""

    async def get_stats(self) -> CloudCacheStats:
        """Return item and usage totals."""


class ExternalFoodSource(Protocol):
    """Third-party product database."""

    async def get_product(self, barcode: str) -> FoodItem | None:
        """Fetch one product, ``None`` when unknown."""

    async def search_products(self, query: str, limit: int) -> list[FoodItem]:
        """Search products by free text."""


@dataclass
class FoodService:
    """Resolves foods through the local, cloud and external tiers.

    Reads stop at the first tier that knows a key and copy the record into
    every faster tier in the background. Searches always hit all three tiers
    and keep their results in tier order.
    """

    local: LocalFoodStore
    cloud: SharedFoodStore
    external: ExternalFoodSource
    background: BackgroundTasks
    ranker: FoodSearchRanker = field(default_factory=FoodSearchRanker)
    max_results: int = 50
    min_query_length: int = 2
    external_timeout_seconds: float = 10.0
    prefetch_count: int = 20
    startup_hooks: list[Callable[[], Awaitable[None]]] = field(default_factory=list)
    _initialized: bool = field(default=False, init=False)

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Prepare local storage and start warming it from the cloud."""
        if self._initialized:
            return
        await self.local.initialize()
        for hook in self.startup_hooks:
            await hook()
        self._initialized = True
        self.background.spawn(self.prefetch_popular(), label="prefetch_popular")
        _logger.info("Food service initialized")

    async def get_by_key(self, key: str) -> FoodItem:
        """Return the food for ``key`` from the fastest tier that has it."""
        self._ensure_initialized()
        key = (key or "").strip()
        if not key:
            raise ValidationError("Key must not be empty")

        food = await self._lookup(Tier.LOCAL, self.local.get_by_key, key)
        if food is not None:
            _logger.info("Food %s found in local cache", key)
            return food

        food = await self._lookup(Tier.CLOUD, self.cloud.get_by_key, key)
        if food is not None:
            _logger.info("Food %s found in cloud cache", key)
            self.background.spawn(self.local.put(food), label=f"cache_local:{key}")
            return food

        if not is_barcode(key):
            _logger.info("Food %s is not a barcode, skipping external source", key)
            raise NotFoundError(key)

        food = await self._lookup(Tier.EXTERNAL, self.external.get_product, key)
        if food is not None:
            _logger.info("Food %s found in external source", key)
            self._cache_everywhere(food)
            return food

        _logger.info("Food %s not found in any tier", key)
        raise NotFoundError(key)

    async def search(self, query: str) -> SearchResult:
        """Search every tier and return ranked results, local first."""
        self._ensure_initialized()
        started = time.perf_counter()
        trimmed = (query or "").strip()
        if len(trimmed) < self.min_query_length:
            return SearchResult(items=[], source=SearchSource.LOCAL, query_time_ms=0.0)

        local_found, cloud_found, external_found = await asyncio.gather(
            self._search_local(trimmed),
            self._search_cloud(trimmed),
            self._search_external(trimmed),
            return_exceptions=True,
        )
        if isinstance(local_found, BaseException):
            raise local_found

        local_keys = {food.key for food in local_found}
        cloud_new = _unique(
            food for food in _or_empty(cloud_found) if food.key not in local_keys
        )
        seen_keys = local_keys | {food.key for food in cloud_new}
        external_new = _unique(
            food for food in _or_empty(external_found) if food.key not in seen_keys
        )

        local_ranked = self.ranker.rank(local_found, trimmed)
        cloud_ranked = self.ranker.rank(cloud_new, trimmed)
        external_ranked = self.ranker.rank(external_new, trimmed)

        for food in cloud_new:
            self.background.spawn(self.local.put(food), label=f"cache_local:{food.key}")
        for ranked in external_ranked:
            self._cache_everywhere(ranked.item)

        items = (local_ranked + cloud_ranked + external_ranked)[: self.max_results]
        counts = _tier_counts(items, local_ranked, cloud_ranked)
        elapsed_ms = (time.perf_counter() - started) * 1000
        source = _primary_source(counts)
        _logger.info(
            "Search %r: %s results (local=%s cloud=%s external=%s) in %.1fms",
            trimmed,
            len(items),
            counts[SearchSource.LOCAL],
            counts[SearchSource.CLOUD],
            counts[SearchSource.EXTERNAL],
            elapsed_ms,
        )
        return SearchResult(
            items=items,
            source=source,
            query_time_ms=elapsed_ms,
            local_count=counts[SearchSource.LOCAL],
            cloud_count=counts[SearchSource.CLOUD],
            external_count=counts[SearchSource.EXTERNAL],
        )

    async def prefetch_popular(self) -> int:
        """Copy the most used cloud foods into the local cache, one at a time."""
        try:
            popular = await self.cloud.get_most_used(self.prefetch_count)
        except Exception as exc:
            _logger.warning("Prefetch failed to read popular foods: %s", exc)
            return 0

        cached = 0
        for food in popular:
            try:
                await self.local.put(food)
            except Exception as exc:
                _logger.warning("Prefetch failed to cache %s: %s", food.key, exc)
                continue
            cached += 1
        _logger.info("Prefetch complete: %s/%s cached", cached, len(popular))
        return cached

    async def get_user_top_foods(self, limit: int = 10) -> list[FoodItem]:
        """Return the most used foods on this device."""
        self._ensure_initialized()
        return await self.local.get_top(limit)

    async def get_cache_stats(self) -> CacheStats:
        """Return local and cloud cache sizes."""
        self._ensure_initialized()
        local_count = await self.local.count()
        try:
            cloud = await self.cloud.get_stats()
        except Exception as exc:
            _logger.warning("Cloud cache stats unavailable: %s", exc)
            cloud = CloudCacheStats(total_items=0, total_usage=0)
        return CacheStats(local_count=local_count, cloud=cloud)

    async def clear_local_cache(self) -> None:
        """Drop every food from the local cache."""
        self._ensure_initialized()
        await self.local.clear()
        _logger.info("Local food cache cleared")

    async def close(self) -> None:
        """Wait for outstanding write-backs."""
        await self.background.drain()

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise NotInitializedError("FoodService.initialize() has not been called")

    async def _lookup(
        self,
        tier: Tier,
        fetch: Callable[[str], Awaitable[FoodItem | None]],
        key: str,
    ) -> FoodItem | None:
        try:
            return await fetch(key)
        except ValidationError:
            raise
        except Exception as exc:
            _logger.error("Lookup of %s failed in %s tier: %s", key, tier, exc)
            raise TierError(tier, "get_by_key", key, exc) from exc

    async def _search_local(self, query: str) -> list[FoodItem]:
        try:
            return await self.local.search_by_name(query, self.max_results)
        except Exception as exc:
            _logger.error("Local search for %r failed: %s", query, exc)
            raise TierError(Tier.LOCAL, "search", query, exc) from exc

    async def _search_cloud(self, query: str) -> list[FoodItem]:
        try:
            return await self.cloud.search(query, self.max_results)
        except Exception as exc:
            _logger.warning("Cloud search for %r failed: %s", query, exc)
            return []

    async def _search_external(self, query: str) -> list[FoodItem]:
        try:
            return await asyncio.wait_for(
                self.external.search_products(query, self.max_results),
                timeout=self.external_timeout_seconds,
            )
        except TimeoutError:
            _logger.warning(
                "External search for %r timed out after %ss",
                query,
                self.external_timeout_seconds,
            )
        except Exception as exc:
            _logger.warning("External search for %r failed: %s", query, exc)
        return []

    def _cache_everywhere(self, food: FoodItem) -> None:
        self.background.spawn(self.cloud.put(food), label=f"cache_cloud:{food.key}")
        self.background.spawn(self.local.put(food), label=f"cache_local:{food.key}")


def _or_empty(found: list[FoodItem] | BaseException) -> list[FoodItem]:
    return [] if isinstance(found, BaseException) else found


def _unique(foods: Iterable[FoodItem]) -> list[FoodItem]:
    seen: set[str] = set()
    unique: list[FoodItem] = []
    for food in foods:
        if food.key in seen:
            continue
        seen.add(food.key)
        unique.append(food)
    return unique


def _tier_counts(
    items: list[RankedFood],
    local_ranked: list[RankedFood],
    cloud_ranked: list[RankedFood],
) -> dict[SearchSource, int]:
    local_count = min(len(local_ranked), len(items))
    cloud_count = min(len(cloud_ranked), len(items) - local_count)
    return {
        SearchSource.LOCAL: local_count,
        SearchSource.CLOUD: cloud_count,
        SearchSource.EXTERNAL: len(items) - local_count - cloud_count,
    }


def _primary_source(counts: dict[SearchSource, int]) -> SearchSource:
    # Ties go to the faster tier, which is the earlier one.
    best = SearchSource.LOCAL
    for source in (SearchSource.CLOUD, SearchSource.EXTERNAL):
        if counts[source] > counts[best]:
            best = source
    return best
