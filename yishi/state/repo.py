"""
Data repository.

Loads the game's JSON collections (spirits, wordcards, items, anchors,
stories, maps, npcs), caches the raw documents, and validates them into a
GameData bundle with id lookups.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Protocol, TypeVar, runtime_checkable

from pydantic import BaseModel, ValidationError

from ..errors import DataError, MissingTargetError
from .schema import NPC, Anchor, MapDef, SacredItem, Spirit, StoryNode, WordCard

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

COLLECTIONS: dict[str, type[BaseModel]] = {
    "spirits": Spirit,
    "wordcards": WordCard,
    "items": SacredItem,
    "anchors": Anchor,
    "stories": StoryNode,
    "maps": MapDef,
    "npcs": NPC,
}


@runtime_checkable
class DataSource(Protocol):
    """Anything that can hand back a raw collection by name."""

    def get(self, name: str) -> list[dict]:
        ...


def _index(records: list[M]) -> dict[str, M]:
    index: dict[str, M] = {}
    for record in records:
        if record.id in index:
            logger.warning("Duplicate id %r in %s; keeping first", record.id, type(record).__name__)
            continue
        index[record.id] = record
    return index


@dataclass
class GameData:
    """Validated, read-only game content."""

    spirits: list[Spirit] = field(default_factory=list)
    wordcards: list[WordCard] = field(default_factory=list)
    items: list[SacredItem] = field(default_factory=list)
    anchors: list[Anchor] = field(default_factory=list)
    stories: list[StoryNode] = field(default_factory=list)
    maps: list[MapDef] = field(default_factory=list)
    npcs: list[NPC] = field(default_factory=list)

    def __post_init__(self):
        self._spirits = _index(self.spirits)
        self._wordcards = _index(self.wordcards)
        self._items = _index(self.items)
        self._anchors = _index(self.anchors)
        self._stories = _index(self.stories)
        self._npcs = _index(self.npcs)

    @classmethod
    def from_dicts(cls, **collections: list[dict]) -> "GameData":
        """
        Validate raw collections into a bundle.

        Raises:
            DataError: if a record fails validation
            MissingTargetError: if a collection name is unknown
        """
        parsed: dict[str, list[Any]] = {}
        for name, raw in collections.items():
            model = COLLECTIONS.get(name)
            if model is None:
                raise MissingTargetError(f"Unknown schema: {name}")
            records = []
            for idx, entry in enumerate(raw or []):
                try:
                    records.append(model.model_validate(entry))
                except ValidationError as e:
                    record_id = entry.get("id", f"#{idx}") if isinstance(entry, dict) else f"#{idx}"
                    raise DataError(name, str(record_id), str(e)) from e
            parsed[name] = records
        return cls(**parsed)

    def _lookup(self, index: dict[str, M], kind: str, record_id: str) -> M:
        record = index.get(record_id)
        if record is None:
            raise DataError(kind, record_id)
        return record

    def spirit(self, spirit_id: str) -> Spirit:
        return self._lookup(self._spirits, "spirit", spirit_id)

    def story(self, story_id: str) -> StoryNode:
        return self._lookup(self._stories, "story", story_id)

    def anchor(self, anchor_id: str) -> Anchor:
        return self._lookup(self._anchors, "anchor", anchor_id)

    def npc(self, npc_id: str) -> NPC:
        return self._lookup(self._npcs, "npc", npc_id)

    def item(self, item_id: str) -> SacredItem:
        return self._lookup(self._items, "item", item_id)

    def wordcard(self, card_id: str) -> WordCard:
        return self._lookup(self._wordcards, "wordcard", card_id)

    def find_spirit(self, spirit_id: str) -> Spirit | None:
        return self._spirits.get(spirit_id)

    def find_npc(self, npc_id: str) -> NPC | None:
        return self._npcs.get(npc_id)


class DataRepo:
    """
    Cached collection loader.

    By default reads `<data_dir>/<name>.json`; tests pass an in-memory
    loader instead.
    """

    def __init__(
        self,
        data_dir: Path | str = "assets/data",
        loader: Callable[[str], Any] | None = None,
    ):
        self.data_dir = Path(data_dir)
        self._loader = loader or self._read_file
        self._cache: dict[str, list[dict]] = {}

    def _read_file(self, name: str) -> Any:
        path = self.data_dir / f"{name}.json"
        if not path.exists():
            logger.info("No %s collection at %s", name, path)
            return []
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def get(self, name: str) -> list[dict]:
        """
        Fetch one raw collection.

        Raises:
            MissingTargetError: for names that are not a known collection
            DataError: if the document is not a list
        """
        if name in self._cache:
            return self._cache[name]
        if name not in COLLECTIONS:
            raise MissingTargetError(f"Unknown schema: {name}")
        try:
            data = self._loader(name)
        except json.JSONDecodeError as e:
            raise DataError("collection", name, f"invalid JSON: {e}") from e
        if not isinstance(data, list):
            raise DataError("collection", name, "expected a list")
        self._cache[name] = data
        return data

    def load(self) -> GameData:
        """Load and validate every collection."""
        return GameData.from_dicts(**{name: self.get(name) for name in COLLECTIONS})

    def clear(self) -> None:
        self._cache.clear()
