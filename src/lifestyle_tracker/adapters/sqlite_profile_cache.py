"""On-device cache of user profiles."""

import json
import logging
import sqlite3
from collections.abc import Callable
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from pathlib import Path

from lifestyle_tracker.adapters.sqlite_db import (
    connect,
    from_db_time,
    local_tier_errors,
    to_db_time,
    utcnow,
)
from lifestyle_tracker.domain.errors import NotInitializedError
from lifestyle_tracker.domain.profiles import IMMUTABLE_PROFILE_FIELDS, UserProfile
from lifestyle_tracker.services.profiles import ProfileCache

_logger = logging.getLogger(__name__)

_SCHEMA = """
    CREATE TABLE IF NOT EXISTS user_profile_cache (
        id TEXT PRIMARY KEY,
        payload TEXT NOT NULL,
        updated_at TEXT,
        cached_at TEXT NOT NULL
    )
"""

_DATETIME_FIELDS = frozenset({"created_at", "updated_at", "cached_at"})
_PROFILE_FIELDS = frozenset(item.name for item in fields(UserProfile))


@dataclass
class SqliteProfileCache(ProfileCache):
    """Stores each profile as a JSON document keyed by user id."""

    connection: sqlite3.Connection
    clock: Callable[[], datetime] = field(default=utcnow)
    _initialized: bool = field(default=False, init=False)

    @classmethod
    def create(cls, db_path: str | Path) -> "SqliteProfileCache":
        return cls(connection=connect(db_path))

    def initialize(self) -> None:
        if self._initialized:
            return
        with local_tier_errors("initialize"):
            with self.connection:
                self.connection.execute(_SCHEMA)
        self._initialized = True

    def get(self, user_id: str) -> UserProfile | None:
        self._require_initialized()
        with local_tier_errors("get", user_id=user_id):
            row = self.connection.execute(
                "SELECT payload FROM user_profile_cache WHERE id = ?", (user_id,)
            ).fetchone()
        if row is None:
            return None
        return _decode(json.loads(row["payload"]))

    def put(self, profile: UserProfile) -> None:
        """Store the full profile, stamping ``cached_at``."""
        self._require_initialized()
        payload = _encode(profile)
        payload["cached_at"] = to_db_time(self.clock())
        self._write(profile.id, payload)

    def update_fields(self, user_id: str, updates: dict[str, object]) -> bool:
        """Merge ``updates`` into a cached profile; ``False`` when not cached."""
        self._require_initialized()
        with local_tier_errors("update_fields", user_id=user_id):
            row = self.connection.execute(
                "SELECT payload FROM user_profile_cache WHERE id = ?", (user_id,)
            ).fetchone()
        if row is None:
            return False

        payload = json.loads(row["payload"])
        ignored = set(updates) - _PROFILE_FIELDS
        if ignored:
            _logger.debug("Ignoring unknown profile fields: %s", sorted(ignored))
        for name, value in updates.items():
            if name in IMMUTABLE_PROFILE_FIELDS or name not in _PROFILE_FIELDS:
                continue
            payload[name] = to_db_time(value) if isinstance(value, datetime) else value
        payload["updated_at"] = to_db_time(self.clock())
        self._write(user_id, payload)
        return True

    def delete(self, user_id: str) -> None:
        self._require_initialized()
        with local_tier_errors("delete", user_id=user_id):
            with self.connection:
                self.connection.execute(
                    "DELETE FROM user_profile_cache WHERE id = ?", (user_id,)
                )

    def clear(self) -> None:
        self._require_initialized()
        with local_tier_errors("clear"):
            with self.connection:
                self.connection.execute("DELETE FROM user_profile_cache")

    def _write(self, user_id: str, payload: dict[str, object]) -> None:
        with local_tier_errors("put", user_id=user_id):
            with self.connection:
                self.connection.execute(
                    "INSERT INTO user_profile_cache "
                    "(id, payload, updated_at, cached_at) "
                    "VALUES (?, ?, ?, ?) "
                    "ON CONFLICT(id) DO UPDATE SET payload = excluded.payload, "
                    "updated_at = excluded.updated_at, cached_at = excluded.cached_at",
                    (
                        user_id,
                        json.dumps(payload),
                        payload.get("updated_at"),
                        payload["cached_at"],
                    ),
                )

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise NotInitializedError("Profile cache is not initialized")


def _encode(profile: UserProfile) -> dict[str, object]:
    payload = asdict(profile)
    for name in _DATETIME_FIELDS:
        payload[name] = to_db_time(payload[name])
    return payload


def _decode(payload: dict[str, object]) -> UserProfile:
    values = {name: value for name, value in payload.items() if name in _PROFILE_FIELDS}
    for name in _DATETIME_FIELDS:
        values[name] = from_db_time(values.get(name))
    return UserProfile(**values)
