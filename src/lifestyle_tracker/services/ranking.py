"""Relevance ranking for food search results."""

import re
import unicodedata
from collections.abc import Iterable
from dataclasses import dataclass

from lifestyle_tracker.domain.foods import FoodItem, MatchType, RankedFood

_WHITESPACE = re.compile(r"\s+")

_BASE_SCORES = {
    MatchType.EXACT: 100.0,
    MatchType.STARTS_WITH: 80.0,
    MatchType.WORD_MATCH: 60.0,
    MatchType.CONTAINS: 40.0,
    MatchType.BRAND_MATCH: 20.0,
}


def normalize_text(value: str) -> str:
    """Fold case and strip diacritics so "Hähnchen" and "hahnchen" compare equal."""
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    return _WHITESPACE.sub(" ", stripped.casefold()).strip()


@dataclass(frozen=True)
class FoodSearchRanker:
    """Scores and orders food items against a free-text query.

    Match types are scored in bands ``band_gap`` points apart. The position and
    usage bonuses together stay strictly below that gap, so a heavily used
    "contains" match can never overtake a "starts with" match.
    """

    max_position_bonus: float = 9.0
    max_usage_bonus: float = 10.0
    usage_half_point: float = 5.0
    band_gap: float = 20.0

    def __post_init__(self) -> None:
        if self.max_position_bonus + self.max_usage_bonus > self.band_gap:
            raise ValueError("bonuses must not bridge the gap between match types")

    def rank(self, items: Iterable[FoodItem], query: str) -> list[RankedFood]:
        """Return the items that match ``query``, best first."""
        normalized_query = normalize_text(query or "")
        if not normalized_query:
            return []

        scored: list[tuple[int, RankedFood]] = []
        for index, item in enumerate(items):
            ranked = self._score(item, normalized_query)
            if ranked is not None:
                scored.append((index, ranked))

        scored.sort(key=lambda entry: _sort_key(entry[0], entry[1]))
        return [ranked for _, ranked in scored]

    def explain(self, ranked: RankedFood, query: str) -> str:
        """Describe how a ranked item earned its score."""
        lines = [
            f'Query: "{query}"',
            f'Item: "{ranked.item.name}"'
            + (f" ({ranked.item.brand})" if ranked.item.brand else ""),
            f"Match type: {ranked.match_type}",
            f"Base score: {_BASE_SCORES[ranked.match_type]:.0f}",
        ]
        if ranked.match_position is not None:
            lines.append(
                f"Match position: {ranked.match_position}"
                f" (+{self._position_bonus(ranked.match_position):.2f})"
            )
        lines.append(
            f"Usage count: {ranked.item.usage_count}"
            f" (+{self._usage_bonus(ranked.item.usage_count):.2f})"
        )
        lines.append(f"Relevance score: {ranked.relevance_score:.2f}")
        return "\n".join(lines)

    def _score(self, item: FoodItem, query: str) -> RankedFood | None:
        match = _classify(normalize_text(item.name), query)
        if match is None and item.brand and query in normalize_text(item.brand):
            match = (MatchType.BRAND_MATCH, None)
        if match is None:
            return None

        match_type, position = match
        score = _BASE_SCORES[match_type]
        if position is not None:
            score += self._position_bonus(position)
        score += self._usage_bonus(item.usage_count)
        return RankedFood(
            item=item,
            match_type=match_type,
            match_position=position,
            relevance_score=round(score, 4),
        )

    def _position_bonus(self, position: int) -> float:
        return self.max_position_bonus / (1 + position)

    def _usage_bonus(self, usage_count: int) -> float:
        usage = max(usage_count, 0)
        return self.max_usage_bonus * usage / (usage + self.usage_half_point)


def _classify(name: str, query: str) -> tuple[MatchType, int] | None:
    """Classify a name match, strongest first, with the match offset."""
    if name == query:
        return MatchType.EXACT, 0
    if name.startswith(query):
        return MatchType.STARTS_WITH, 0
    word = re.search(rf"(?<!\w){re.escape(query)}(?!\w)", name)
    if word is not None:
        return MatchType.WORD_MATCH, word.start()
    position = name.find(query)
    if position >= 0:
        return MatchType.CONTAINS, position
    return None


def _sort_key(index: int, ranked: RankedFood) -> tuple[float, float, int, int]:
    position = ranked.match_position
    return (
        -ranked.relevance_score,
        position if position is not None else float("inf"),
        -ranked.item.usage_count,
        index,
    )


_DEFAULT_RANKER = FoodSearchRanker()


def rank_foods(items: Iterable[FoodItem], query: str) -> list[RankedFood]:
    """Rank items with the default scoring constants."""
    return _DEFAULT_RANKER.rank(items, query)
