"""Tests for hint derivation."""

from yishi.state.schema import HintKind
from yishi.systems.ghosts import obsession_flag_key
from yishi.systems.hints import (
    DEFAULT_LOCATION,
    HintDeriver,
    extract_person_action,
    extract_target,
    is_hint_flag_key,
    is_item_related,
)
from yishi.context import GameContext

from conftest import make_data


class TestHelpers:
    """Test the pattern helpers."""

    def test_hint_flag_keys(self):
        assert is_hint_flag_key("hint:well")
        assert is_hint_flag_key("ghost.hint.lamp")
        assert is_hint_flag_key("ghostHint:wang")
        assert is_hint_flag_key("story.hint_seen")
        assert not is_hint_flag_key("met_wang")

    def test_person_action(self):
        assert extract_person_action("person:npc_son:say sorry") == "say sorry"
        assert extract_person_action("person:npc_son") == ""
        assert extract_person_action("關鍵人物:npc_son：道歉") == "道歉"
        assert extract_person_action("ask npc_wang about the ledger") == "about the ledger"
        assert extract_person_action("holds:ledger") is None

    def test_target_after_last_colon(self):
        assert extract_target("holds:ledger") == "ledger"
        assert extract_target("a:b:c") == "c"
        assert extract_target("no colon") == "no colon"
        assert extract_target("trailing:") == "trailing:"

    def test_item_keywords(self):
        assert is_item_related("bring the offering", "")
        assert is_item_related("", "The unlit LAMP")
        assert is_item_related("準備供品", "")
        assert not is_item_related("talk it through", "An apology")


class TestHintDeriver:
    """Test gathering and ordering."""

    def test_flag_hints_are_clues(self, context):
        context.world.set_flag("hint:well", "  Someone saw a light by the well.  ")
        context.world.set_flag("ghostHint:blank", "   ")
        context.world.set_flag("hint:number", 3)
        hints = HintDeriver(context).gather()
        clues = [h for h in hints if h.kind == HintKind.CLUE]
        assert [(h.id, h.text) for h in clues] == [("hint:well", "Someone saw a light by the well.")]

    def test_obsession_hints(self, context):
        hints = {h.id: h for h in HintDeriver(context).gather()}

        apology = hints[obsession_flag_key("ob_apology")]
        assert apology.kind == HintKind.ACTION
        assert "say sorry for the shop" in apology.text
        assert "the rice shop" in apology.text

        lamp = hints[obsession_flag_key("ob_lamp")]
        assert lamp.kind == HintKind.ITEM
        assert "wick by the well" in lamp.text
        assert "the old well" in lamp.text

        ledger = hints[obsession_flag_key("ob_ledger")]
        assert ledger.kind == HintKind.ACTION
        assert "“ledger”" in ledger.text

    def test_order_clue_action_item(self, context):
        context.world.set_flag("hint:z", "Last clue by id")
        context.world.set_flag("hint:a", "First clue by id")
        hints = HintDeriver(context).gather()
        order = {HintKind.CLUE: 0, HintKind.ACTION: 1, HintKind.ITEM: 2}
        keys = [(order[h.kind], h.id) for h in hints]
        assert keys == sorted(keys)
        assert hints[0].id == "hint:a"

    def test_resolved_obsessions_skipped(self, context):
        context.world.set_flag(obsession_flag_key("ob_ledger"), "resolved")
        ids = [h.id for h in HintDeriver(context).gather()]
        assert obsession_flag_key("ob_ledger") not in ids
        assert obsession_flag_key("ob_apology") in ids

    def test_authored_resolved_skipped(self, world, invoker):
        spirits = [{"id": "sp_x", "name": "X", "obsessions": [
            {"id": "ob_done", "name": "Done", "state": "resolved"},
            {"id": "ob_open", "name": "Open", "conditions": ["light the incense"]},
        ]}]
        ctx = GameContext(world=world, data=make_data(spirits=spirits, stories=[]), invoker=invoker)
        hints = HintDeriver(ctx).gather()
        assert [h.id for h in hints] == [obsession_flag_key("ob_open")]
        assert hints[0].kind == HintKind.ITEM
        assert DEFAULT_LOCATION in hints[0].text

    def test_deterministic_and_idempotent(self, context):
        context.world.set_flag("hint:well", "A light by the well.")
        deriver = HintDeriver(context)
        first = deriver.gather()
        second = deriver.gather()
        assert first == second
        assert first == HintDeriver(context).gather()
