"""State management for YISHI: data records, world document, persistence."""

from .schema import (
    SCHEMA_VERSION,
    Anchor,
    GhostOption,
    GhostState,
    Hint,
    HintKind,
    MediationStage,
    Miasma,
    Obsession,
    ObsessionState,
    OptionCategory,
    OptionEffect,
    OptionSet,
    Spirit,
    StoryNode,
    WordCard,
    WorldStateData,
)
from .world import WorldState
from .event_bus import EventBus, EventType, GameEvent
from .store import (
    JsonSaveStore,
    MemorySaveStore,
    SaveManager,
    SaveStore,
    install_autosave,
)
from .repo import DataRepo, DataSource, GameData

__all__ = [
    # Schema
    "SCHEMA_VERSION",
    "Anchor",
    "GhostOption",
    "GhostState",
    "Hint",
    "HintKind",
    "MediationStage",
    "Miasma",
    "Obsession",
    "ObsessionState",
    "OptionCategory",
    "OptionEffect",
    "OptionSet",
    "Spirit",
    "StoryNode",
    "WordCard",
    "WorldStateData",
    # World
    "WorldState",
    # Events
    "EventBus",
    "EventType",
    "GameEvent",
    # Persistence
    "SaveStore",
    "JsonSaveStore",
    "MemorySaveStore",
    "SaveManager",
    "install_autosave",
    # Data
    "DataRepo",
    "DataSource",
    "GameData",
]
