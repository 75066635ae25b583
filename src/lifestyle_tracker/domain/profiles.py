"""Domain models for user profiles and profile change events."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

# Columns that identify a cached profile row and can never be patched.
IMMUTABLE_PROFILE_FIELDS = frozenset({"id", "created_at", "cached_at"})


@dataclass(frozen=True)
class UserProfile:
    """Profile fields the app keeps cached on the device."""

    id: str
    username: str | None = None
    profile_image_url: str | None = None
    age: int | None = None
    weight: float | None = None
    height: float | None = None
    gender: str | None = None
    fitness_level: str | None = None
    training_experience_months: int | None = None
    available_training_days: int | None = None
    primary_goal: str | None = None
    onboarding_completed: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    cached_at: datetime | None = None


class ProfileEventKind(StrEnum):
    """Kinds of profile change broadcast on the event bus."""

    UPDATED = "updated"
    IMAGE_UPDATED = "image_updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class ProfileEvent:
    """Payload delivered to profile event listeners.

    ``fields`` is a partial update; ``None`` means listeners should refetch the
    whole profile.
    """

    user_id: str
    fields: dict[str, object] | None = None
    image_url: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
