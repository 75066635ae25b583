"""Profile reads through a local cache kept fresh by profile events."""

import logging
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from typing import Protocol

from lifestyle_tracker.domain.errors import ValidationError
from lifestyle_tracker.domain.profiles import (
    IMMUTABLE_PROFILE_FIELDS,
    ProfileEvent,
    ProfileEventKind,
    UserProfile,
)
from lifestyle_tracker.services.events import ProfileEventBus

_logger = logging.getLogger(__name__)


class ProfileRepository(Protocol):
    """Remote profile store."""

    def get_profile(self, user_id: str) -> UserProfile | None:
        """Fetch a profile by user id."""

    def update_profile(self, user_id: str, fields: dict[str, object]) -> UserProfile:
        """Apply a partial update and return the stored profile."""

    def delete_profile(self, user_id: str) -> None:
        """Delete a profile."""


class ProfileCache(Protocol):
    """Local profile cache."""

    def initialize(self) -> None:
        """Create storage if needed."""

    def get(self, user_id: str) -> UserProfile | None:
        """Return a cached profile."""

    def put(self, profile: UserProfile) -> None:
        """Store a full profile."""

    def update_fields(self, user_id: str, fields: dict[str, object]) -> bool:
        """Patch a cached profile, ``False`` when it is not cached."""

    def delete(self, user_id: str) -> None:
        """Remove a cached profile."""


@dataclass
class ProfileSyncService:
    """Reads profiles cache-first and writes them remote-first.

    Write methods only talk to the remote store and announce the change on the
    event bus. The cache is maintained by the listeners registered in
    ``initialize``, alongside whatever other features subscribe to the bus.
    """

    repository: ProfileRepository
    cache: ProfileCache
    events: ProfileEventBus
    _unsubscribers: list[Callable[[], None]] = field(default_factory=list, init=False)

    @property
    def initialized(self) -> bool:
        return bool(self._unsubscribers)

    async def initialize(self) -> None:
        """Prepare the cache and subscribe the cache listeners once."""
        if self.initialized:
            return
        self.cache.initialize()
        self._unsubscribers = [
            self.events.on(ProfileEventKind.UPDATED, self._on_updated),
            self.events.on(ProfileEventKind.IMAGE_UPDATED, self._on_image_updated),
            self.events.on(ProfileEventKind.DELETED, self._on_deleted),
        ]
        _logger.info("Profile sync listeners registered")

    def shutdown(self) -> None:
        """Unsubscribe the cache listeners."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    async def get_profile(self, user_id: str) -> UserProfile | None:
        """Return the cached profile, fetching it on a miss."""
        cached = self.cache.get(user_id)
        if cached is not None:
            _logger.debug("Profile cache hit for user %s", user_id)
            return cached
        _logger.info("Profile cache miss for user %s", user_id)
        return await self.sync_profile(user_id)

    async def sync_profile(self, user_id: str) -> UserProfile | None:
        """Fetch the remote profile and cache it."""
        profile = self.repository.get_profile(user_id)
        if profile is None:
            _logger.info("No remote profile for user %s", user_id)
            return None
        self.cache.put(profile)
        return self.cache.get(user_id) or profile

    async def update_profile(
        self, user_id: str, fields: dict[str, object]
    ) -> UserProfile | None:
        """Write a partial update remotely, then announce it."""
        if not fields:
            raise ValidationError("No profile fields to update", user_id=user_id)
        immutable = IMMUTABLE_PROFILE_FIELDS.intersection(fields)
        if immutable:
            raise ValidationError(
                f"Cannot update {', '.join(sorted(immutable))}",
                user_id=user_id,
            )
        self.repository.update_profile(user_id, fields)
        await self.events.emit(
            ProfileEventKind.UPDATED, ProfileEvent(user_id=user_id, fields=dict(fields))
        )
        return await self.get_profile(user_id)

    async def update_profile_image(self, user_id: str, image_url: str) -> None:
        """Store a new profile image reference, then announce it."""
        self.repository.update_profile(user_id, {"profile_image_url": image_url})
        await self.events.emit(
            ProfileEventKind.IMAGE_UPDATED,
            ProfileEvent(user_id=user_id, image_url=image_url),
        )

    async def delete_profile(self, user_id: str) -> None:
        """Delete the remote profile, then announce it."""
        self.repository.delete_profile(user_id)
        await self.events.emit(ProfileEventKind.DELETED, ProfileEvent(user_id=user_id))

    async def refresh_profile(self, user_id: str) -> UserProfile | None:
        """Refetch the profile and tell subscribers it changed."""
        profile = await self.sync_profile(user_id)
        if profile is not None:
            fields = {
                name: value
                for name, value in asdict(profile).items()
                if name not in IMMUTABLE_PROFILE_FIELDS
            }
            await self.events.emit(
                ProfileEventKind.UPDATED, ProfileEvent(user_id=user_id, fields=fields)
            )
        return profile

    async def _on_updated(self, event: ProfileEvent) -> None:
        if event.fields:
            if self.cache.update_fields(event.user_id, event.fields):
                return
        await self.sync_profile(event.user_id)

    def _on_image_updated(self, event: ProfileEvent) -> None:
        self.cache.update_fields(
            event.user_id, {"profile_image_url": event.image_url}
        )

    def _on_deleted(self, event: ProfileEvent) -> None:
        self.cache.delete(event.user_id)
