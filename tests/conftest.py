"""
Pytest fixtures for YISHI core tests.

Provides a small content bundle, a fresh world and a scripted sub-flow
invoker so sessions run without any UI.
"""

import pytest
from pathlib import Path

# Add the project root to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from yishi.context import GameContext
from yishi.state.event_bus import EventBus
from yishi.state.repo import GameData
from yishi.state.world import WorldState


SPIRITS = [
    {
        "id": "sp_wang",
        "name": "Old Wang",
        "era": "1960s",
        "anchor": "an_shop",
        "miasma": "turbid",
        "background": "Ran the rice shop on the corner until the flood took the ledger.",
        "obsessions": [
            {"id": "ob_ledger", "name": "The lost ledger", "conditions": ["holds:ledger"]},
            {"id": "ob_apology", "name": "An unsaid apology", "conditions": ["person:npc_son:say sorry for the shop"]},
        ],
        "special": {"type": "refuses-talk", "key_person": "npc_son"},
    },
    {
        "id": "sp_lin",
        "name": "Miss Lin",
        "anchor": "an_well",
        "initial_state": "lost-self",
        "background": "A schoolteacher who drowned in the old well.",
        "obsessions": [
            {"id": "ob_lamp", "name": "The unlit lamp", "conditions": ["find the lamp wick: wick by the well"]},
        ],
        "special": {"type": "lost-self", "key_item": "jade_pendant"},
    },
]

ANCHORS = [
    {"id": "an_shop", "location": "the rice shop", "conditions": []},
    {"id": "an_well", "location": "the old well", "conditions": ["flag:met_lin"], "service_spirit": "sp_lin"},
    {"id": "an_temple", "location": "the temple", "conditions": ["holds:incense"]},
]

STORIES = [
    {
        "id": "st_shop",
        "anchor": "an_shop",
        "service": {"spirit_id": "sp_wang", "trigger_line": 3},
        "steps": [
            {"t": "TEXT", "speaker": "Wang", "text": "Who's there?", "line_id": "l1"},
            {"t": "UPDATE_FLAG", "flag": "met_wang", "value": True},
            {"t": "CALL_GHOST_COMM", "spirit_id": "sp_wang"},
            {"t": "CALL_MEDIATION", "npc_id": "npc_son"},
            {"t": "END"},
        ],
    },
    {
        "id": "st_branch",
        "anchor": "an_shop",
        "steps": [
            {"t": "TEXT", "text": "The shutters rattle.", "line_id": "start"},
            {
                "t": "CHOICE",
                "line_id": "ask",
                "options": [
                    {"action": "GOTO_LINE", "text": "Look closer", "target_line_id": "closer"},
                    {"action": "GOTO_LINE", "text": "Wander off", "target_line_id": "nowhere"},
                    {"action": "END", "text": "Leave"},
                ],
            },
            {"t": "UPDATE_FLAG", "flag": "skipped_closer", "value": True},
            {"t": "GIVE_ITEM", "item_id": "ledger", "line_id": "closer", "message": "A damp ledger."},
            {"t": "UPDATE_FLAG", "flag": "found_ledger", "value": 1},
        ],
    },
]

NPCS = [
    {"id": "npc_son", "title": "Wang's son", "taboos": ["debt"], "stages": ["resist", "hesitate", "willing", "commit"]},
]

WORDCARDS = [
    {"id": "wc_soothe", "word": "rest", "tags": ["soothe"]},
    {"id": "wc_ritual", "word": "offering", "tags": ["ritual"]},
    {"id": "wc_accuse", "word": "truth", "tags": ["accusation"]},
    {"id": "wc_ask", "word": "why", "tags": ["question"]},
]


class ScriptedInvoker:
    """
    Sub-flow invoker that answers from per-key scripts.

    A script entry may be a value, an exception instance (raised) or a
    callable taking the payload. Keys without a script answer None.
    """

    def __init__(self, scripts: dict | None = None):
        self.scripts = {k: list(v) for k, v in (scripts or {}).items()}
        self.calls: list[tuple[str, dict]] = []

    async def push(self, key, payload):
        self.calls.append((key, payload))
        queue = self.scripts.get(key)
        if not queue:
            return None
        answer = queue.pop(0)
        if isinstance(answer, BaseException):
            raise answer
        if callable(answer):
            return answer(payload)
        return answer

    def keys(self) -> list[str]:
        return [key for key, _ in self.calls]


def make_data(**overrides) -> GameData:
    collections = {
        "spirits": SPIRITS,
        "anchors": ANCHORS,
        "stories": STORIES,
        "npcs": NPCS,
        "wordcards": WORDCARDS,
    }
    collections.update(overrides)
    return GameData.from_dicts(**collections)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def world(bus):
    """Fresh world document attached to the test bus."""
    return WorldState(bus=bus)


@pytest.fixture
def game_data():
    """Small content bundle: two spirits, three anchors, two stories."""
    return make_data()


@pytest.fixture
def invoker():
    return ScriptedInvoker()


@pytest.fixture
def context(world, game_data, invoker, bus):
    """Context wired to the scripted invoker with no error delay."""
    ctx = GameContext(world=world, data=game_data, invoker=invoker, bus=bus)
    ctx.config["error_exit_delay"] = 0
    return ctx
