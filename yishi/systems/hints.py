"""
Hint derivation.

Hints come from two places:
- flags the story scripts left behind (hint:*, ghost.hint*, ghostHint:*, *.hint*)
- every obsession that is still unresolved, turned into a nudge

Output is sorted clue < action < item, then by id, so repeated calls with
the same world give the same list.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Mapping

from ..state.schema import HINT_KIND_ORDER, Anchor, Hint, HintKind, ObsessionState, Spirit
from .ghosts import obsession_flag_key
from .services import StoryServiceIndex

if TYPE_CHECKING:
    from ..context import GameContext


HINT_FLAG_PREFIXES = ("hint:", "ghost.hint", "ghostHint:")
HINT_FLAG_INFIX = ".hint"

OFFERING_KEYWORDS = (
    "offering", "lamp", "wick", "incense", "rice", "ritual", "item", "well",
    "供品", "燈", "燈芯", "香", "飯", "祭", "物", "井",
)

DEFAULT_LOCATION = "the related place"

_PERSON_DIRECT = re.compile(r"^(?:person|關鍵人物):[^\s:：]+[:：]?(.+)?$")
_NPC_TOKEN = re.compile(r"npc_[^\s:：]+")


def is_hint_flag_key(key: str) -> bool:
    return key.startswith(HINT_FLAG_PREFIXES) or HINT_FLAG_INFIX in key


def extract_person_action(condition: str) -> str | None:
    """
    Action text for a key-person condition, or None if it isn't one.

    `person:npc_elder:have a chat` -> "have a chat"
    `ask npc_wang about the ledger`  -> "about the ledger"
    """
    if not condition:
        return None
    direct = _PERSON_DIRECT.match(condition)
    if direct:
        return (direct.group(1) or "").strip()
    if "npc_" in condition:
        return _NPC_TOKEN.split(condition)[-1].strip()
    return None


def extract_target(condition: str) -> str:
    """Text after the last colon, else the whole condition."""
    if not condition:
        return ""
    head, sep, tail = condition.replace("：", ":").rpartition(":")
    if sep and tail.strip():
        return tail.strip()
    return condition.strip()


def is_item_related(condition: str, obsession_name: str) -> bool:
    haystack = f"{condition} {obsession_name}".lower()
    return any(keyword in haystack for keyword in OFFERING_KEYWORDS)


class HintDeriver:
    """Scans flags and unresolved obsessions for player-facing hints."""

    def __init__(self, context: "GameContext"):
        self.context = context

    def gather(self) -> list[Hint]:
        results: list[Hint] = []
        seen: set[str] = set()

        flags = self.context.world.data.flags
        self._collect_flag_hints(flags, results, seen)

        anchors = {a.id: a for a in self.context.data.anchors}
        index = self.context.service_index
        for spirit in self.context.data.spirits:
            location = self._spirit_location(spirit, anchors, index)
            for obsession in spirit.obsessions:
                if not obsession.id:
                    continue
                key = obsession_flag_key(obsession.id)
                if key in seen:
                    continue
                if flags.get(key) == ObsessionState.RESOLVED.value:
                    continue
                if obsession.state == ObsessionState.RESOLVED:
                    continue

                primary = obsession.conditions[0] if obsession.conditions else ""
                text, kind = self._build_obsession_hint(
                    spirit.name or spirit.id, location, obsession.name or obsession.id, primary
                )
                results.append(Hint(id=key, text=text, kind=kind))
                seen.add(key)

        return sorted(results, key=lambda h: (HINT_KIND_ORDER[h.kind], h.id))

    def _collect_flag_hints(self, flags: Mapping[str, Any], results: list[Hint], seen: set[str]) -> None:
        for key, value in flags.items():
            if key in seen or not isinstance(value, str):
                continue
            trimmed = value.strip()
            if trimmed and is_hint_flag_key(key):
                results.append(Hint(id=key, text=trimmed, kind=HintKind.CLUE))
                seen.add(key)

    def _spirit_location(self, spirit: Spirit, anchors: dict[str, Anchor], index: StoryServiceIndex) -> str:
        for anchor in anchors.values():
            if anchor.service_spirit == spirit.id:
                return anchor.location

        anchor_id = index.anchor_for_spirit(spirit.id) or spirit.anchor
        if anchor_id in anchors:
            return anchors[anchor_id].location
        return DEFAULT_LOCATION

    def _build_obsession_hint(
        self, spirit_name: str, location: str, obsession_name: str, condition: str
    ) -> tuple[str, HintKind]:
        condition = (condition or "").strip()

        action = extract_person_action(condition)
        if action is not None:
            action = action or f"let's talk about “{obsession_name}”"
            return f"Go to {location} and tell this spirit's key person: “{action}”.", HintKind.ACTION

        target = extract_target(condition) or obsession_name
        kind = HintKind.ITEM if is_item_related(condition, obsession_name) else HintKind.ACTION
        return f"Look around {location} for “{target}”; it may help {spirit_name}.", kind
