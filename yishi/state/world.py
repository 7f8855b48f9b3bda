"""
The shared world document.

Exactly one interpreter or negotiation session runs at a time, so every
system mutates this object directly; there is no partial-update API.
"""

import copy
from typing import Any

from .event_bus import EventBus, EventType
from .schema import MIASMA_LADDER, Miasma, WorldStateData


class WorldState:
    """Owns a WorldStateData and the few helpers every system needs."""

    def __init__(self, data: WorldStateData | None = None, bus: EventBus | None = None):
        self.data = data.model_copy(deep=True) if data is not None else WorldStateData()
        self.bus = bus

    def get_flag(self, key: str, default: Any = None) -> Any:
        return self.data.flags.get(key, default)

    def set_flag(self, key: str, value: Any) -> None:
        self.data.flags[key] = value
        if self.bus:
            self.bus.emit(EventType.FLAG_CHANGED, key=key, value=value)

    def has_item(self, item_id: str) -> bool:
        return item_id in self.data.items

    def grant_item(self, item_id: str) -> bool:
        """Add an item if not already held. Returns True if it was new."""
        if self.has_item(item_id):
            return False
        self.data.items.append(item_id)
        if self.bus:
            self.bus.emit(EventType.ITEM_GRANTED, item_id=item_id)
        return True

    def step_miasma_down(self) -> Miasma:
        """Move miasma one rung toward clear. No-op at clear."""
        current = self.data.miasma
        idx = MIASMA_LADDER.index(current)
        if idx < len(MIASMA_LADDER) - 1:
            self.data.miasma = MIASMA_LADDER[idx + 1]
            if self.bus:
                self.bus.emit(EventType.MIASMA_CHANGED, before=current.value, after=self.data.miasma.value)
        return self.data.miasma

    def add_summary(self, line: str) -> None:
        self.data.dialogue_summary.append(line)

    def snapshot(self) -> WorldStateData:
        """Deep copy for persistence."""
        return self.data.model_copy(deep=True)

    def restore(self, data: WorldStateData | dict) -> None:
        """Replace the document with a deep copy of a snapshot."""
        if isinstance(data, dict):
            self.data = WorldStateData.model_validate(copy.deepcopy(data))
        else:
            self.data = data.model_copy(deep=True)
        if self.bus:
            self.bus.emit(EventType.WORLD_LOADED, version=self.data.version)
