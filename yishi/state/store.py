"""
Save slot storage.

Separates persistence from the world document for testability. Stores only
deal in SavePayload; SaveManager binds a store to a live WorldState.
"""

import json
import logging
import time
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from .event_bus import EventBus, EventType, GameEvent
from .schema import SavePayload, SaveSlotInfo
from .world import WorldState

logger = logging.getLogger(__name__)


LAST_SAVED_FLAG = "lastSavedAt"


def slot_name(slot: int) -> str:
    return f"Slot {slot + 1}"


@runtime_checkable
class SaveStore(Protocol):
    """
    Abstract storage interface for save slots.

    Implementations:
    - JsonSaveStore: File-based persistence (production)
    - MemorySaveStore: In-memory storage (testing)
    """

    def write(self, slot: int, payload: SavePayload) -> None:
        """Persist a payload into a slot."""
        ...

    def read(self, slot: int) -> SavePayload | None:
        """Read a slot. Returns None if empty or unreadable."""
        ...

    def delete(self, slot: int) -> bool:
        ...

    def exists(self, slot: int) -> bool:
        ...


class JsonSaveStore:
    """
    File-based slot storage using JSON.

    Features:
    - Automatic backup of the previous save
    - Corrupt files read as empty slots
    """

    def __init__(self, saves_dir: Path | str = "saves", namespace: str = "yishi"):
        self.saves_dir = Path(saves_dir)
        self.saves_dir.mkdir(parents=True, exist_ok=True)
        self.namespace = namespace

    def _path(self, slot: int) -> Path:
        return self.saves_dir / f"{self.namespace}-slot-{slot}.json"

    def write(self, slot: int, payload: SavePayload) -> None:
        save_file = self._path(slot)

        if save_file.exists():
            backup = save_file.with_suffix(".json.bak")
            backup.write_text(save_file.read_text(encoding="utf-8"), encoding="utf-8")

        save_file.write_text(payload.model_dump_json(indent=2, by_alias=True), encoding="utf-8")

    def read(self, slot: int) -> SavePayload | None:
        save_file = self._path(slot)
        if not save_file.exists():
            return None
        try:
            data = json.loads(save_file.read_text(encoding="utf-8"))
            return SavePayload.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error("Failed to parse save slot %d: %s", slot, e)
            return None

    def delete(self, slot: int) -> bool:
        save_file = self._path(slot)
        if save_file.exists():
            save_file.unlink()
            return True
        return False

    def exists(self, slot: int) -> bool:
        return self._path(slot).exists()


class MemorySaveStore:
    """
    In-memory slot storage for testing.

    Payloads are kept as JSON text so reads never alias live state.
    """

    def __init__(self):
        self.slots: dict[int, str] = {}

    def write(self, slot: int, payload: SavePayload) -> None:
        self.slots[slot] = payload.model_dump_json(by_alias=True)

    def read(self, slot: int) -> SavePayload | None:
        raw = self.slots.get(slot)
        if raw is None:
            return None
        return SavePayload.model_validate_json(raw)

    def delete(self, slot: int) -> bool:
        return self.slots.pop(slot, None) is not None

    def exists(self, slot: int) -> bool:
        return slot in self.slots

    def clear(self) -> None:
        self.slots.clear()


class SaveManager:
    """Binds a SaveStore to the live world document."""

    def __init__(self, world: WorldState, store: SaveStore):
        self.world = world
        self.store = store

    def save(self, slot: int = 0) -> None:
        self.store.write(slot, SavePayload(world=self.world.snapshot()))
        if self.world.bus:
            self.world.bus.emit(EventType.WORLD_SAVED, slot=slot)

    def load(self, slot: int = 0) -> bool:
        """Restore a slot into the world. Returns False if the slot is empty."""
        payload = self.store.read(slot)
        if payload is None:
            return False
        self.world.restore(payload.world)
        return True

    def slot_info(self, slot: int) -> SaveSlotInfo:
        payload = self.store.read(slot)
        if payload is None:
            return SaveSlotInfo(slot=slot, exists=False, name=slot_name(slot))
        last_saved = payload.world.flags.get(LAST_SAVED_FLAG)
        return SaveSlotInfo(
            slot=slot,
            exists=True,
            name=slot_name(slot),
            last_saved_at=last_saved if isinstance(last_saved, (int, float)) else None,
        )


def install_autosave(bus: EventBus, manager: SaveManager, slot: int = 0) -> None:
    """
    Save into `slot` whenever an AUTOSAVE event is emitted.

    Failures are logged; autosave never interrupts play.
    """

    def on_autosave(event: GameEvent) -> None:
        try:
            manager.world.set_flag(LAST_SAVED_FLAG, time.time())
            manager.save(slot)
        except (OSError, ValueError) as e:
            logger.error("Autosave failed: %s", e)

    bus.on(EventType.AUTOSAVE, on_autosave)
