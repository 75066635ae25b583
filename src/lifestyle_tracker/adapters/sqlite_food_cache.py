"""On-device food cache bounded by usage-based eviction."""

import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from lifestyle_tracker.adapters.sqlite_db import (
    connect,
    from_db_time,
    like_pattern,
    local_tier_errors,
    to_db_time,
    utcnow,
)
from lifestyle_tracker.domain.errors import NotInitializedError
from lifestyle_tracker.domain.foods import FoodItem
from lifestyle_tracker.services.foods import LocalFoodStore
from lifestyle_tracker.services.ranking import normalize_text

_logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS user_foods (
        barcode TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        brand TEXT,
        calories REAL,
        protein REAL,
        carbs REAL,
        fat REAL,
        fiber REAL,
        sugar REAL,
        sodium REAL,
        serving_size REAL,
        serving_unit TEXT,
        nutriscore_grade TEXT,
        nova_group INTEGER,
        ecoscore_grade TEXT,
        source TEXT NOT NULL DEFAULT 'openfoodfacts',
        usage_count INTEGER NOT NULL DEFAULT 1,
        last_used TEXT NOT NULL,
        cached_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_user_foods_usage ON user_foods(usage_count DESC)",
    "CREATE INDEX IF NOT EXISTS idx_user_foods_last_used ON user_foods(last_used DESC)",
)

_DESCRIPTIVE_COLUMNS = (
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

_UPSERT = f"""
    INSERT INTO user_foods (
        barcode, {", ".join(_DESCRIPTIVE_COLUMNS)}, usage_count, last_used, cached_at
    )
    VALUES (?, {", ".join("?" for _ in _DESCRIPTIVE_COLUMNS)}, 1, ?, ?)
    ON CONFLICT(barcode) DO UPDATE SET
        {", ".join(f"{column} = excluded.{column}" for column in _DESCRIPTIVE_COLUMNS)},
        usage_count = user_foods.usage_count + 1,
        last_used = excluded.last_used
"""

MIN_QUERY_LENGTH = 2


@dataclass
class SqliteFoodCache(LocalFoodStore):
    """SQLite implementation of the local food tier."""

    connection: sqlite3.Connection
    capacity: int = 50
    clock: Callable[[], datetime] = field(default=utcnow)
    _initialized: bool = field(default=False, init=False)

    @classmethod
    def create(cls, db_path: str | Path, capacity: int = 50) -> "SqliteFoodCache":
        """Open (or create) the cache database at ``db_path``."""
        return cls(connection=connect(db_path), capacity=capacity)

    async def initialize(self) -> None:
        """Create the table and indexes; repeat calls are no-ops."""
        if self._initialized:
            return
        with local_tier_errors("initialize"):
            with self.connection:
                for statement in _SCHEMA:
                    self.connection.execute(statement)
        self._initialized = True
        _logger.info("Local food cache ready (capacity=%s)", self.capacity)

    async def get_by_key(self, key: str) -> FoodItem | None:
        """Return the food with its usage already bumped, or ``None``."""
        self._require_initialized()
        with local_tier_errors("get_by_key", key=key):
            with self.connection:
                updated = self.connection.execute(
                    "UPDATE user_foods "
                    "SET usage_count = usage_count + 1, last_used = ? "
                    "WHERE barcode = ?",
                    (to_db_time(self.clock()), key),
                )
                if updated.rowcount == 0:
                    return None
                row = self.connection.execute(
                    "SELECT * FROM user_foods WHERE barcode = ?", (key,)
                ).fetchone()
        return _row_to_food(row) if row is not None else None

    async def put(self, food: FoodItem) -> None:
        """Insert a new food or refresh an existing one and bump its usage."""
        self._require_initialized()
        now = to_db_time(self.clock())
        with local_tier_errors("put", key=food.key):
            with self.connection:
                existed = (
                    self.connection.execute(
                        "SELECT 1 FROM user_foods WHERE barcode = ?", (food.key,)
                    ).fetchone()
                    is not None
                )
                self.connection.execute(
                    _UPSERT,
                    (
                        food.key,
                        *(getattr(food, column) for column in _DESCRIPTIVE_COLUMNS),
                        now,
                        now,
                    ),
                )
        if not existed:
            self._evict_overflow()

    async def search_by_name(self, query: str, limit: int = 50) -> list[FoodItem]:
        """Return foods whose name contains ``query``, most used first."""
        self._require_initialized()
        trimmed = (query or "").strip()
        if len(trimmed) < MIN_QUERY_LENGTH:
            return []
        with local_tier_errors("search_by_name", query=trimmed):
            rows = self.connection.execute(
                "SELECT * FROM user_foods WHERE fold(name) LIKE ? ESCAPE '\\' "
                "ORDER BY usage_count DESC, last_used DESC LIMIT ?",
                (like_pattern(normalize_text(trimmed)), limit),
            ).fetchall()
        return [_row_to_food(row) for row in rows]

    async def get_top(self, limit: int = 10) -> list[FoodItem]:
        """Return the most used foods."""
        self._require_initialized()
        with local_tier_errors("get_top"):
            rows = self.connection.execute(
                "SELECT * FROM user_foods ORDER BY usage_count DESC, last_used DESC "
                "LIMIT ?",
                (limit,),
            ).fetchall()
        return [_row_to_food(row) for row in rows]

    async def count(self) -> int:
        self._require_initialized()
        with local_tier_errors("count"):
            row = self.connection.execute("SELECT COUNT(*) FROM user_foods").fetchone()
        return int(row[0])

    async def clear(self) -> None:
        self._require_initialized()
        with local_tier_errors("clear"):
            with self.connection:
                self.connection.execute("DELETE FROM user_foods")

    def close(self) -> None:
        self.connection.close()

    def _evict_overflow(self) -> None:
        try:
            with self.connection:
                total = self.connection.execute(
                    "SELECT COUNT(*) FROM user_foods"
                ).fetchone()[0]
                overflow = total - self.capacity
                if overflow <= 0:
                    return
                self.connection.execute(
                    "DELETE FROM user_foods WHERE barcode IN ("
                    "SELECT barcode FROM user_foods "
                    "ORDER BY usage_count ASC, last_used ASC, rowid ASC LIMIT ?)",
                    (overflow,),
                )
            _logger.info("Evicted %s food(s) from local cache", overflow)
        except sqlite3.Error as exc:
            _logger.warning("Local food cache eviction failed: %s", exc)

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise NotInitializedError("Local food cache is not initialized")


def _row_to_food(row: sqlite3.Row) -> FoodItem:
    return FoodItem(
        key=row["barcode"],
        name=row["name"],
        brand=row["brand"],
        calories=row["calories"],
        protein=row["protein"],
        carbs=row["carbs"],
        fat=row["fat"],
        fiber=row["fiber"],
        sugar=row["sugar"],
        sodium=row["sodium"],
        serving_size=row["serving_size"],
        serving_unit=row["serving_unit"],
        nutriscore_grade=row["nutriscore_grade"],
        nova_group=row["nova_group"],
        ecoscore_grade=row["ecoscore_grade"],
        source=row["source"],
        usage_count=row["usage_count"],
        last_used_at=from_db_time(row["last_used"]),
        cached_at=from_db_time(row["cached_at"]),
    )
