"""Food domain models."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

_BARCODE = re.compile(r"^\d{8,14}$")


def is_barcode(key: str | None) -> bool:
    """Return whether ``key`` looks like an EAN/UPC barcode (8 to 14 digits)."""
    return bool(_BARCODE.match(key or ""))


class MatchType(StrEnum):
    """How a search query matched a food record, strongest first."""

    EXACT = "exact"
    STARTS_WITH = "starts_with"
    WORD_MATCH = "word_match"
    CONTAINS = "contains"
    BRAND_MATCH = "brand_match"


class SearchSource(StrEnum):
    """Tier that contributed the bulk of a search result."""

    LOCAL = "local"
    CLOUD = "cloud"
    EXTERNAL = "external"


@dataclass(frozen=True)
class FoodItem:
    """A food product keyed by its barcode; nutrition values are per 100 g."""

    key: str
    name: str
    brand: str | None = None
    calories: float | None = None
    protein: float | None = None
    carbs: float | None = None
    fat: float | None = None
    fiber: float | None = None
    sugar: float | None = None
    sodium: float | None = None
    serving_size: float | None = None
    serving_unit: str | None = None
    nutriscore_grade: str | None = None
    nova_group: int | None = None
    ecoscore_grade: str | None = None
    source: str = "openfoodfacts"
    usage_count: int = 1
    last_used_at: datetime | None = None
    cached_at: datetime | None = None


@dataclass(frozen=True)
class RankedFood:
    """A food item annotated with its relevance to one search query."""

    item: FoodItem
    match_type: MatchType
    match_position: int | None
    relevance_score: float

    @property
    def key(self) -> str:
        return self.item.key

    @property
    def name(self) -> str:
        return self.item.name


@dataclass(frozen=True)
class SearchResult:
    """Ranked search output with per-tier accounting."""

    items: list[RankedFood]
    source: SearchSource
    query_time_ms: float
    local_count: int = 0
    cloud_count: int = 0
    external_count: int = 0

    @property
    def total_count(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class CloudCacheStats:
    """Aggregate numbers for the shared cloud cache."""

    total_items: int
    total_usage: int


@dataclass(frozen=True)
class CacheStats:
    """Sizes of the local and cloud food caches."""

    local_count: int
    cloud: CloudCacheStats = field(
        default_factory=lambda: CloudCacheStats(total_items=0, total_usage=0)
    )
