"""Nutrition diary reads backed by the local day cache."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime, timedelta
from typing import Protocol

from lifestyle_tracker.domain.errors import ValidationError
from lifestyle_tracker.domain.nutrition import (
    DailyNutritionSummary,
    NutritionCacheStats,
    SyncResult,
)
from lifestyle_tracker.services.background import BackgroundTasks

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class DailySummaryRepository(Protocol):
    """Remote source of per-day diary totals."""

    def get_daily_summary(
        self, user_id: str, day: date
    ) -> DailyNutritionSummary | None:
        """Return the totals for one day, if the user logged anything."""


class NutritionCache(Protocol):
    """Local rolling window of diary days, one window per user."""

    def initialize(self) -> None:
        """Create storage if needed."""

    def get(self, user_id: str, day: date) -> DailyNutritionSummary | None:
        """Return a cached day."""

    def get_range(
        self, user_id: str, start: date, end: date
    ) -> list[DailyNutritionSummary]:
        """Return cached days in the inclusive range, newest first."""

    def put(self, user_id: str, summary: DailyNutritionSummary) -> None:
        """Store a day and trim the user's window."""

    def stats(self, user_id: str | None = None) -> NutritionCacheStats:
        """Describe one user's window, or every cached day."""


@dataclass
class NutritionSyncService:
    """Serves diary days from the local cache and refreshes it from remote.

    The in-progress guard and the cooldown are tracked per user.
    """

    repository: DailySummaryRepository
    cache: NutritionCache
    background: BackgroundTasks
    cooldown_seconds: float = 300.0
    clock: Callable[[], datetime] = field(default=_utcnow)
    _syncing: set[str] = field(default_factory=set, init=False)
    _last_sync: dict[str, datetime] = field(default_factory=dict, init=False)

    async def initialize(self) -> None:
        self.cache.initialize()

    def is_syncing(self, user_id: str) -> bool:
        return user_id in self._syncing

    def last_sync(self, user_id: str) -> datetime | None:
        return self._last_sync.get(user_id)

    async def get_daily_summary(
        self, user_id: str, day: date, force: bool = False
    ) -> DailyNutritionSummary | None:
        """Return one day, from cache unless ``force`` asks for a remote read."""
        if not force:
            cached = self.cache.get(user_id, day)
            if cached is not None:
                return cached

        summary = self._fetch(user_id, day)
        if summary is None:
            return None
        self.background.spawn(
            self._store(user_id, summary),
            label=f"cache_nutrition:{user_id}:{day.isoformat()}",
        )
        return summary

    async def get_range(
        self, user_id: str, start: date, end: date
    ) -> list[DailyNutritionSummary]:
        """Return the days between ``start`` and ``end``, filling cache gaps."""
        if end < start:
            raise ValidationError("end must not be before start", user_id=user_id)
        cached = self.cache.get_range(user_id, start, end)
        expected = (end - start).days + 1
        if len(cached) == expected:
            return cached

        _logger.info(
            "Nutrition cache has %s/%s days for user %s (%s..%s), fetching the rest",
            len(cached),
            expected,
            user_id,
            start,
            end,
        )
        cached_days = {summary.day for summary in cached}
        for offset in range(expected):
            day = start + timedelta(days=offset)
            if day in cached_days:
                continue
            try:
                summary = self._fetch(user_id, day)
            except Exception as exc:
                _logger.warning(
                    "Failed to fetch nutrition for %s on %s: %s", user_id, day, exc
                )
                continue
            if summary is not None:
                self.cache.put(user_id, summary)
        return self.cache.get_range(user_id, start, end)

    async def sync_recent_days(
        self, user_id: str, days: int = 1, force: bool = False
    ) -> SyncResult:
        """Pull the user's last ``days`` days (today included) into the cache."""
        last_sync = self._last_sync.get(user_id)
        if user_id in self._syncing:
            return SyncResult(
                success=False,
                days_synced=0,
                errors=["Sync already in progress"],
                last_sync=last_sync,
            )
        now = self.clock()
        if (
            not force
            and last_sync is not None
            and (now - last_sync).total_seconds() < self.cooldown_seconds
        ):
            _logger.debug(
                "Nutrition sync for %s skipped, last sync at %s", user_id, last_sync
            )
            return SyncResult(success=True, days_synced=0, last_sync=last_sync)

        self._syncing.add(user_id)
        errors: list[str] = []
        synced = 0
        try:
            today = now.date()
            for offset in range(max(days, 1)):
                day = today - timedelta(days=offset)
                try:
                    summary = self._fetch(user_id, day)
                    if summary is not None:
                        self.cache.put(user_id, summary)
                        synced += 1
                except Exception as exc:
                    _logger.error(
                        "Failed to sync nutrition for %s on %s: %s", user_id, day, exc
                    )
                    errors.append(f"Failed to sync {day.isoformat()}: {exc}")
            self._last_sync[user_id] = self.clock()
        finally:
            self._syncing.discard(user_id)

        _logger.info(
            "Nutrition sync for %s finished: %s day(s), %s error(s)",
            user_id,
            synced,
            len(errors),
        )
        return SyncResult(
            success=not errors,
            days_synced=synced,
            errors=errors,
            last_sync=self._last_sync[user_id],
        )

    def cache_stats(self, user_id: str | None = None) -> NutritionCacheStats:
        return self.cache.stats(user_id)

    def _fetch(self, user_id: str, day: date) -> DailyNutritionSummary | None:
        summary = self.repository.get_daily_summary(user_id, day)
        if summary is None:
            return None
        return replace(summary, last_synced=self.clock())

    async def _store(self, user_id: str, summary: DailyNutritionSummary) -> None:
        self.cache.put(user_id, summary)
