"""
Event records and a listener bus.

Providers, the registry and the loader publish events here; external
consumers (token accounting, dashboards) subscribe without being part of
the core. A listener that raises is logged and skipped.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import enum as _enum
import logging as _logging
import time as _time
import typing as _typing

_logger = _logging.getLogger(__name__)


class EventType(_enum.Enum):
    """Kinds of events published on the bus."""

    # Registry lifecycle
    PROVIDER_REGISTERED = "provider_registered"
    """A provider was added to the registry."""

    PROVIDER_UNREGISTERED = "provider_unregistered"
    """A provider was removed from the registry."""

    PROVIDER_ENABLED = "provider_enabled"
    PROVIDER_DISABLED = "provider_disabled"

    # Runtime outcomes
    PROVIDER_ERROR = "provider_error"
    """A provider call failed inside an isolated fan-out."""

    HEALTH_CHANGED = "health_changed"
    """A provider's health status changed."""

    RESOURCE_LOADED = "resource_loaded"
    """The loader resolved a URI (data: uri, tokens, cached)."""


@_dataclasses.dataclass(frozen=True)
class Event:
    """An immutable event record."""

    type: EventType
    source: str
    """Name of the component or provider the event is about."""

    timestamp: float = _dataclasses.field(default_factory=_time.time)
    data: _typing.Mapping[str, _typing.Any] = _dataclasses.field(default_factory=dict)

    def to_dict(self) -> dict[str, _typing.Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "type": self.type.value,
            "source": self.source,
            "timestamp": self.timestamp,
            "data": dict(self.data),
        }


Listener = _typing.Callable[[Event], None]


class EventBus:
    """Synchronous publish/subscribe bus."""

    def __init__(self) -> None:
        self._listeners: list[tuple[Listener, frozenset[EventType] | None]] = []

    def subscribe(
        self,
        listener: Listener,
        types: _typing.Iterable[EventType] | None = None,
    ) -> _typing.Callable[[], None]:
        """
        Register a listener.

        Args:
            listener: Called with each matching event.
            types: Only deliver these event types (None = all).

        Returns:
            A function that removes the listener.
        """
        entry = (listener, frozenset(types) if types is not None else None)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    def publish(self, event: Event) -> None:
        """Deliver an event to every subscribed listener."""
        for listener, types in list(self._listeners):
            if types is not None and event.type not in types:
                continue
            try:
                listener(event)
            except Exception:
                _logger.warning(
                    "Event listener %r failed for %s", listener, event.type.value, exc_info=True
                )

    def emit(self, type: EventType, source: str, **data: _typing.Any) -> Event:
        """Build and publish an event."""
        event = Event(type=type, source=source, data=data)
        self.publish(event)
        return event

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
