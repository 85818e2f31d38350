"""Event bus for observing skill system activity.

Components publish events (registrations, executions, extension changes,
synchronization progress, handled errors) on an explicit EventBus instance
that is passed in at construction time. Logging and metrics sinks subscribe
as listeners; the core never depends on them.

Usage:
    >>> bus = EventBus()
    >>> bus.subscribe(my_listener)
    >>> bus.emit(Event(EventType.SKILL_REGISTERED, {"skill_id": "echo-cmd"}))
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol
from uuid import uuid4

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Event types published on the bus."""

    SKILL_REGISTERED = "skill_registered"
    SKILL_UPDATED = "skill_updated"
    SKILL_UNREGISTERED = "skill_unregistered"
    EXECUTION_STARTED = "execution_started"
    EXECUTION_COMPLETED = "execution_completed"
    EXECUTION_FAILED = "execution_failed"
    EXTENSION_ADDED = "extension_added"
    EXTENSION_REMOVED = "extension_removed"
    SYNC_STARTED = "sync_started"
    SYNC_COMPLETED = "sync_completed"
    SYNC_FAILED = "sync_failed"
    SKILL_SYNCHRONIZED = "skill_synchronized"
    CONFLICT_DETECTED = "conflict_detected"
    STATUS_CHANGED = "status_changed"
    ERROR_HANDLED = "error_handled"


@dataclass
class Event:
    """Base event class.

    Attributes:
        type: The type of event (from EventType enum)
        data: Dictionary containing event-specific data
        event_id: Unique identifier for event correlation
        timestamp: When the event was created
    """

    type: EventType
    data: dict[str, Any]
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=datetime.now)


class EventListener(Protocol):
    """Protocol for event listeners.

    Any object implementing this protocol can be registered as a listener.
    """

    def handle_event(self, event: Event) -> None:
        """Handle an event.

        Args:
            event: The event to handle
        """
        ...


class EventBus:
    """Observer-pattern event bus.

    Each component receives the bus it publishes on; there is no global
    instance. A failing listener is logged and does not prevent delivery to
    the remaining listeners.

    Example:
        >>> bus = EventBus()
        >>> class Printer:
        ...     def handle_event(self, event):
        ...         print(event.type.value)
        >>> bus.subscribe(Printer())
        >>> bus.emit(Event(EventType.SYNC_STARTED, {}))
        sync_started
    """

    def __init__(self) -> None:
        self._listeners: list[EventListener] = []

    def subscribe(self, listener: EventListener) -> None:
        """Subscribe a listener to events."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: EventListener) -> None:
        """Unsubscribe a previously subscribed listener."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, event: Event) -> None:
        """Emit an event to all listeners."""
        for listener in list(self._listeners):
            try:
                listener.handle_event(event)
            except Exception as e:
                logger.error(f"Event listener {listener!r} failed on {event.type.value}: {e}")

    def publish(self, event_type: EventType, **data: Any) -> Event:
        """Build and emit an event in one call.

        Returns:
            The emitted Event
        """
        event = Event(event_type, data)
        self.emit(event)
        return event

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def clear(self) -> None:
        """Clear all listeners."""
        self._listeners.clear()
