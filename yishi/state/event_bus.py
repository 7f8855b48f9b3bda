"""
Event bus for YISHI state changes.

Provides decoupled communication between the core systems and whatever
front end hosts them (autosave, toasts, audio cues).

Usage:
    bus = EventBus()
    bus.on(EventType.SPIRIT_RESOLVED, my_handler)
    bus.emit(EventType.SPIRIT_RESOLVED, spirit_id="sp_wang")

    def my_handler(event: GameEvent):
        print(f"{event.data['spirit_id']} has passed on")
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Game events that can be published."""

    # World events
    FLAG_CHANGED = "flag.changed"
    ITEM_GRANTED = "item.granted"
    MIASMA_CHANGED = "miasma.changed"

    # Spirit events
    GHOST_STATE_CHANGED = "ghost.state_changed"
    OBSESSION_CHANGED = "ghost.obsession_changed"
    SPIRIT_RESOLVED = "ghost.resolved"
    SPIRIT_REFUSED = "ghost.refused"

    # Story events
    STORY_STARTED = "story.started"
    STORY_COMPLETED = "story.completed"
    STORY_ABORTED = "story.aborted"

    # Persistence
    AUTOSAVE = "save.auto"
    WORLD_SAVED = "save.saved"
    WORLD_LOADED = "save.loaded"


@dataclass
class GameEvent:
    """
    Event payload for the event bus.

    Attributes:
        type: The event type (from EventType enum)
        data: Event-specific payload as dict
        timestamp: When the event was emitted
    """

    type: EventType
    data: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        return f"[{self.type.value}] {self.data}"


# Type alias for event handlers
EventHandler = Callable[[GameEvent], None]


class EventBus:
    """
    Synchronous event bus.

    Listeners are called immediately on emit(). One bus is owned by each
    GameContext; there is no global instance.
    """

    def __init__(self, history_limit: int = 100):
        self._listeners: dict[EventType, list[EventHandler]] = {}
        self._history: list[GameEvent] = []
        self._history_limit = history_limit

    def on(self, event_type: EventType, handler: EventHandler) -> None:
        """Subscribe to an event type."""
        if event_type not in self._listeners:
            self._listeners[event_type] = []
        if handler not in self._listeners[event_type]:
            self._listeners[event_type].append(handler)

    def off(self, event_type: EventType, handler: EventHandler) -> None:
        """Unsubscribe from an event type."""
        if event_type in self._listeners and handler in self._listeners[event_type]:
            self._listeners[event_type].remove(handler)

    def emit(self, event_type: EventType, **data) -> GameEvent:
        """
        Emit an event to all subscribers.

        Returns:
            The emitted GameEvent (for chaining/testing)
        """
        event = GameEvent(type=event_type, data=data)

        self._history.append(event)
        if len(self._history) > self._history_limit:
            self._history = self._history[-self._history_limit :]

        for handler in list(self._listeners.get(event_type, [])):
            try:
                handler(event)
            except Exception:
                # One bad listener shouldn't break the others
                logger.exception("Error in handler for %s", event_type.value)

        return event

    def clear(self) -> None:
        """Clear all listeners. Useful for testing."""
        self._listeners.clear()

    def get_history(self, event_type: EventType | None = None) -> list[GameEvent]:
        """Recent events, optionally filtered by type."""
        if event_type is None:
            return list(self._history)
        return [e for e in self._history if e.type == event_type]

    def listener_count(self, event_type: EventType) -> int:
        return len(self._listeners.get(event_type, []))
