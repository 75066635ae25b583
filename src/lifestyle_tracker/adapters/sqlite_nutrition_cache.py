"""On-device rolling window of daily nutrition summaries."""

import logging
import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

from lifestyle_tracker.adapters.sqlite_db import (
    connect,
    from_db_time,
    local_tier_errors,
    to_db_time,
)
from lifestyle_tracker.domain.errors import NotInitializedError
from lifestyle_tracker.domain.nutrition import (
    DailyNutritionSummary,
    NutritionCacheStats,
)
from lifestyle_tracker.services.nutrition import NutritionCache

_logger = logging.getLogger(__name__)

_VALUE_COLUMNS = (
    "calorie_goal",
    "calories_consumed",
    "calories_burned",
    "net_calories",
    "protein_consumed",
    "protein_goal",
    "carbs_consumed",
    "carbs_goal",
    "fat_consumed",
    "fat_goal",
    "fiber_consumed",
    "sugar_consumed",
    "sodium_consumed",
    "water_consumed_ml",
    "water_goal_ml",
)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS daily_nutrition_cache (
        user_id TEXT NOT NULL,
        date TEXT NOT NULL,
        calorie_goal INTEGER NOT NULL,
        calories_consumed INTEGER NOT NULL DEFAULT 0,
        calories_burned INTEGER NOT NULL DEFAULT 0,
        net_calories INTEGER NOT NULL DEFAULT 0,
        protein_consumed REAL NOT NULL DEFAULT 0,
        protein_goal REAL NOT NULL DEFAULT 0,
        carbs_consumed REAL NOT NULL DEFAULT 0,
        carbs_goal REAL NOT NULL DEFAULT 0,
        fat_consumed REAL NOT NULL DEFAULT 0,
        fat_goal REAL NOT NULL DEFAULT 0,
        fiber_consumed REAL NOT NULL DEFAULT 0,
        sugar_consumed REAL NOT NULL DEFAULT 0,
        sodium_consumed REAL NOT NULL DEFAULT 0,
        water_consumed_ml INTEGER NOT NULL DEFAULT 0,
        water_goal_ml INTEGER NOT NULL DEFAULT 2000,
        last_synced TEXT,
        PRIMARY KEY (user_id, date)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_daily_nutrition_user_date "
    "ON daily_nutrition_cache(user_id, date DESC)",
)

_UPSERT = f"""
    INSERT INTO daily_nutrition_cache
        (user_id, date, {", ".join(_VALUE_COLUMNS)}, last_synced)
    VALUES (?, ?, {", ".join("?" for _ in _VALUE_COLUMNS)}, ?)
    ON CONFLICT(user_id, date) DO UPDATE SET
        {", ".join(f"{column} = excluded.{column}" for column in _VALUE_COLUMNS)},
        last_synced = excluded.last_synced
"""


@dataclass
class SqliteNutritionCache(NutritionCache):
    """Keeps each user's newest ``window_days`` diary days.

    Rows are keyed by ``(user_id, date)``. The window is trimmed per user, so a
    busy account never pushes another account's days out of the cache.
    """

    connection: sqlite3.Connection
    window_days: int = 30
    _initialized: bool = field(default=False, init=False)

    @classmethod
    def create(
        cls, db_path: str | Path, window_days: int = 30
    ) -> "SqliteNutritionCache":
        return cls(connection=connect(db_path), window_days=window_days)

    def initialize(self) -> None:
        if self._initialized:
            return
        with local_tier_errors("initialize"):
            with self.connection:
                for statement in _SCHEMA:
                    self.connection.execute(statement)
        self._initialized = True

    def get(self, user_id: str, day: date) -> DailyNutritionSummary | None:
        self._require_initialized()
        with local_tier_errors("get", user_id=user_id, day=day.isoformat()):
            row = self.connection.execute(
                "SELECT * FROM daily_nutrition_cache WHERE user_id = ? AND date = ?",
                (user_id, day.isoformat()),
            ).fetchone()
        return _row_to_summary(row) if row is not None else None

    def get_range(
        self, user_id: str, start: date, end: date
    ) -> list[DailyNutritionSummary]:
        """Return cached days from ``start`` to ``end`` inclusive, newest first."""
        self._require_initialized()
        with local_tier_errors("get_range", user_id=user_id):
            rows = self.connection.execute(
                "SELECT * FROM daily_nutrition_cache "
                "WHERE user_id = ? AND date BETWEEN ? AND ? "
                "ORDER BY date DESC",
                (user_id, start.isoformat(), end.isoformat()),
            ).fetchall()
        return [_row_to_summary(row) for row in rows]

    def get_last_days(self, user_id: str, days: int = 7) -> list[DailyNutritionSummary]:
        self._require_initialized()
        with local_tier_errors("get_last_days", user_id=user_id):
            rows = self.connection.execute(
                "SELECT * FROM daily_nutrition_cache WHERE user_id = ? "
                "ORDER BY date DESC LIMIT ?",
                (user_id, days),
            ).fetchall()
        return [_row_to_summary(row) for row in rows]

    def put(self, user_id: str, summary: DailyNutritionSummary) -> None:
        """Upsert one day and drop the user's days that fall out of the window."""
        self.put_many(user_id, [summary])

    def put_many(
        self, user_id: str, summaries: Iterable[DailyNutritionSummary]
    ) -> None:
        self._require_initialized()
        with local_tier_errors("put", user_id=user_id):
            with self.connection:
                self.connection.executemany(
                    _UPSERT,
                    [_summary_params(user_id, summary) for summary in summaries],
                )
        self._trim_window(user_id)

    def stats(self, user_id: str | None = None) -> NutritionCacheStats:
        """Describe one user's window, or the whole cache without ``user_id``."""
        self._require_initialized()
        query = (
            "SELECT COUNT(*) AS total, MIN(date) AS oldest, MAX(date) AS newest, "
            "MAX(last_synced) AS last_sync FROM daily_nutrition_cache"
        )
        params: tuple[object, ...] = ()
        if user_id is not None:
            query += " WHERE user_id = ?"
            params = (user_id,)
        with local_tier_errors("stats"):
            row = self.connection.execute(query, params).fetchone()
        return NutritionCacheStats(
            total_days=int(row["total"]),
            oldest_day=date.fromisoformat(row["oldest"]) if row["oldest"] else None,
            newest_day=date.fromisoformat(row["newest"]) if row["newest"] else None,
            last_sync=from_db_time(row["last_sync"]),
        )

    def clear(self, user_id: str | None = None) -> None:
        self._require_initialized()
        with local_tier_errors("clear"):
            with self.connection:
                if user_id is None:
                    self.connection.execute("DELETE FROM daily_nutrition_cache")
                else:
                    self.connection.execute(
                        "DELETE FROM daily_nutrition_cache WHERE user_id = ?",
                        (user_id,),
                    )

    def _trim_window(self, user_id: str) -> None:
        try:
            with self.connection:
                deleted = self.connection.execute(
                    "DELETE FROM daily_nutrition_cache "
                    "WHERE user_id = ? AND date NOT IN ("
                    "SELECT date FROM daily_nutrition_cache WHERE user_id = ? "
                    "ORDER BY date DESC LIMIT ?)",
                    (user_id, user_id, self.window_days),
                ).rowcount
            if deleted:
                _logger.info(
                    "Dropped %s day(s) from nutrition cache for user %s",
                    deleted,
                    user_id,
                )
        except sqlite3.Error as exc:
            _logger.warning("Nutrition cache trim failed for %s: %s", user_id, exc)

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise NotInitializedError("Nutrition cache is not initialized")


def _summary_params(
    user_id: str, summary: DailyNutritionSummary
) -> tuple[object, ...]:
    return (
        user_id,
        summary.day.isoformat(),
        *(getattr(summary, column) for column in _VALUE_COLUMNS),
        to_db_time(summary.last_synced),
    )


def _row_to_summary(row: sqlite3.Row) -> DailyNutritionSummary:
    return DailyNutritionSummary(
        day=date.fromisoformat(row["date"]),
        **{column: row[column] for column in _VALUE_COLUMNS},
        last_synced=from_db_time(row["last_synced"]),
    )
