"""In-process publish/subscribe for profile changes."""

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from lifestyle_tracker.domain.profiles import ProfileEvent, ProfileEventKind

_logger = logging.getLogger(__name__)

ProfileListener = Callable[[ProfileEvent], Awaitable[None] | None]


@dataclass
class ProfileEventBus:
    """Delivers profile events to every subscribed listener.

    Listeners run in subscription order. A listener that raises is logged and
    skipped; the remaining listeners still receive the event.
    """

    _listeners: dict[ProfileEventKind, list[ProfileListener]] = field(
        default_factory=dict
    )

    def on(
        self, kind: ProfileEventKind, listener: ProfileListener
    ) -> Callable[[], None]:
        """Subscribe ``listener`` and return a callable that unsubscribes it."""
        self._listeners.setdefault(kind, []).append(listener)

        def unsubscribe() -> None:
            self.off(kind, listener)

        return unsubscribe

    def off(self, kind: ProfileEventKind, listener: ProfileListener) -> None:
        """Remove a listener; unknown listeners are ignored."""
        listeners = self._listeners.get(kind, [])
        if listener in listeners:
            listeners.remove(listener)

    async def emit(self, kind: ProfileEventKind, event: ProfileEvent) -> int:
        """Deliver ``event`` and return how many listeners handled it cleanly."""
        delivered = 0
        for listener in list(self._listeners.get(kind, [])):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                _logger.exception(
                    "Profile %s listener failed for user %s", kind, event.user_id
                )
                continue
            delivered += 1
        _logger.debug(
            "Emitted profile %s for user %s to %s listener(s)",
            kind,
            event.user_id,
            delivered,
        )
        return delivered

    def listener_count(self, kind: ProfileEventKind) -> int:
        return len(self._listeners.get(kind, []))

    def clear(self) -> None:
        """Drop every listener."""
        self._listeners.clear()
