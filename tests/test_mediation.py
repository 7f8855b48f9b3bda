"""Tests for NPC mediation."""

import pytest

from yishi.context import GameContext
from yishi.errors import DataError
from yishi.state.schema import NPC, MediationStage, ObsessionState
from yishi.systems.ghosts import GhostStateTracker
from yishi.systems.mediation import (
    DEFAULT_STAGE_FLOW,
    REBUFF,
    REPLIES,
    MediationSession,
    obsessions_for_npc,
    score_message,
    stage_flow_for,
)

from conftest import make_data


class TestScoreMessage:
    """Test how far a single message moves an NPC."""

    @pytest.mark.parametrize("message,expected", [
        ("Let's buy the incense tomorrow.", 1),
        ("We'll prepare it tonight, between us.", 2),
        ("Your father waited for you.", 0),
        ("Don't be stingy, buy it tonight.", 0),
        ("今晚一起準備", 1),
        ("今晚一起準備，保密", 2),
    ])
    def test_scores(self, message, expected):
        assert score_message(message) == expected

    def test_taboo_blocks(self):
        assert score_message("Buy it tonight and settle the debt.", ["debt"]) == 0

    def test_taboo_ignores_spacing(self):
        assert score_message("Buy it tonight, the d e b t can wait.", ["debt"]) == 0

    def test_case_insensitive(self):
        assert score_message("TOMORROW we TRY.") == 1


class TestStageFlow:
    def test_default_flow(self):
        assert stage_flow_for(NPC(id="n", title="N")) == DEFAULT_STAGE_FLOW

    def test_custom_flow(self):
        npc = NPC(id="n", title="N", stages=["hesitate", "commit"])
        assert stage_flow_for(npc) == [MediationStage.HESITATE, MediationStage.COMMIT]


class TestMediationSession:
    """Test a conversation from resist to commit."""

    def test_unknown_npc(self, context):
        with pytest.raises(DataError):
            MediationSession(context, "npc_nobody")

    def test_starts_resisting(self, context):
        session = MediationSession(context, "npc_son")
        assert session.stage == MediationStage.RESIST
        assert not session.committed

    def test_empty_message(self, context):
        session = MediationSession(context, "npc_son")
        assert session.say("   ") == "Say something first."
        assert session.stage == MediationStage.RESIST

    def test_rebuff_holds_stage(self, context):
        session = MediationSession(context, "npc_son")
        assert session.say("You're stupid.") == REBUFF
        assert session.stage == MediationStage.RESIST

    def test_advances_and_clamps(self, context):
        session = MediationSession(context, "npc_son")
        assert session.say("Let's go tomorrow.") == REPLIES[MediationStage.HESITATE]
        assert session.say("We'll arrange it tonight, it's a secret.") == REPLIES[MediationStage.COMMIT]
        assert session.committed
        assert session.say("Tomorrow, then.") == REPLIES[MediationStage.COMMIT]

    def test_uncommitted_resolves_nothing(self, context):
        session = MediationSession(context, "npc_son")
        session.say("Let's go tomorrow.")
        result = session.finish()
        assert result.npc_id == "npc_son"
        assert result.stage == MediationStage.HESITATE
        assert result.resolved == []

    def test_commit_resolves_linked_knots(self, context):
        session = MediationSession(context, "npc_son")
        session.say("We'll arrange it tonight, between us.")
        session.say("Tomorrow we try together.")
        assert session.finish().resolved == ["ob_apology"]


class TestObsessionsForNpc:
    def test_finds_by_condition(self, context):
        assert obsessions_for_npc(context, "npc_son") == ["ob_apology"]
        assert obsessions_for_npc(context, "npc_stranger") == []

    def test_skips_resolved(self, context):
        GhostStateTracker(context.world).record_obsession("ob_apology", ObsessionState.RESOLVED)
        assert obsessions_for_npc(context, "npc_son") == []

    def test_whole_id_only(self, world, invoker):
        spirits = [{
            "id": "sp_sonia",
            "name": "Sonia",
            "obsessions": [
                {"id": "ob_sonia", "name": "A letter", "conditions": ["person:npc_sonia:read the letter"]},
                {"id": "ob_both", "name": "A debt", "conditions": ["ask npc_son (or npc_sonia) about it"]},
            ],
        }]
        ctx = GameContext(world=world, data=make_data(spirits=spirits), invoker=invoker)
        assert obsessions_for_npc(ctx, "npc_son") == ["ob_both"]
        assert obsessions_for_npc(ctx, "npc_sonia") == ["ob_sonia", "ob_both"]
