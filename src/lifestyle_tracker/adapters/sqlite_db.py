"""SQLite helpers shared by the on-device caches."""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from lifestyle_tracker.domain.errors import CacheError, Tier
from lifestyle_tracker.services.ranking import normalize_text

MEMORY_DB = ":memory:"


def _fold(value: str | None) -> str | None:
    return normalize_text(value) if value is not None else None


def connect(db_path: str | Path) -> sqlite3.Connection:
    """Open the cache database with row access by name and ``fold()`` available."""
    if str(db_path) != MEMORY_DB:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.create_function("fold", 1, _fold, deterministic=True)
    return conn


def to_db_time(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def from_db_time(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def utcnow() -> datetime:
    return datetime.now(tz=UTC)


def like_pattern(value: str) -> str:
    """Wrap ``value`` for a substring ``LIKE ... ESCAPE '\\'`` match."""
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


@contextmanager
def local_tier_errors(operation: str, **details: object) -> Iterator[None]:
    """Re-raise sqlite3 failures as ``CacheError`` for the local tier."""
    try:
        yield
    except sqlite3.Error as exc:
        raise CacheError(
            f"Local cache {operation} failed: {exc}",
            tier=Tier.LOCAL,
            operation=operation,
            **details,
        ) from exc
