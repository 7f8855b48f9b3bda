"""
Mediation with a living NPC.

The player talks an NPC round one message at a time. A message moves the
NPC along its stage flow (resist -> hesitate -> willing -> commit):

- anything with a negative word, or one of the NPC's taboos: no movement
- a concrete action word: one stage
- an action word plus a trust word: two stages

Reaching commit resolves the knots whose conditions point at this NPC.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from ..state.schema import NPC, MediationStage, ObsessionState
from ..subflow import MediationResult
from .ghosts import GhostStateTracker

if TYPE_CHECKING:
    from ..context import GameContext

logger = logging.getLogger(__name__)


DEFAULT_STAGE_FLOW = [
    MediationStage.RESIST,
    MediationStage.HESITATE,
    MediationStage.WILLING,
    MediationStage.COMMIT,
]

NEGATIVE_KEYWORDS = ("stupid", "stingy", "cheap", "hate", "笨", "小氣", "吝嗇", "討厭")
ACTION_KEYWORDS = (
    "tonight", "tomorrow", "buy", "together", "prepare", "arrange", "try",
    "今晚", "明天", "買", "一起", "準備", "安排", "試試",
)
TRUST_KEYWORDS = (
    "between us", "save face", "keep it quiet", "secret", "cover for you",
    "不讓外人知道", "給你面子", "保密", "替你擋",
)

REPLIES = {
    MediationStage.RESIST: "He looks unmoved.",
    MediationStage.HESITATE: "His voice softens. “Fine, let me think about it.”",
    MediationStage.WILLING: "He nods. “I could give it a try.”",
    MediationStage.COMMIT: "He says it plainly. “All right. I'll do it.”",
}
REBUFF = "He frowns. “Don't talk like that.”"

_SPACE = re.compile(r"\s+")


def score_message(message: str, taboos: list[str] | None = None) -> int:
    """How many stages a message moves the NPC."""
    text = message.lower()
    compact = _SPACE.sub("", text)
    blocked = list(NEGATIVE_KEYWORDS) + [t.lower() for t in (taboos or []) if t]
    if any(_SPACE.sub("", word) in compact for word in blocked):
        return 0
    if not any(word in text for word in ACTION_KEYWORDS):
        return 0
    return 2 if any(word in text for word in TRUST_KEYWORDS) else 1


def stage_flow_for(npc: NPC) -> list[MediationStage]:
    return list(npc.stages) if npc.stages else list(DEFAULT_STAGE_FLOW)


def obsessions_for_npc(context: "GameContext", npc_id: str) -> list[str]:
    """Unresolved knots whose conditions mention this NPC."""
    tracker = GhostStateTracker(context.world)
    pattern = re.compile(rf"(?<!\w){re.escape(npc_id)}(?!\w)")
    found = []
    for spirit in context.data.spirits:
        for obsession in spirit.obsessions:
            if tracker.obsession_state(spirit, obsession.id) == ObsessionState.RESOLVED:
                continue
            if any(pattern.search(condition) for condition in obsession.conditions):
                found.append(obsession.id)
    return found


class MediationSession:
    """
    One conversation with an NPC.

    Raises:
        DataError: if the npc id is unknown
    """

    def __init__(self, context: "GameContext", npc_id: str):
        self.context = context
        self.npc = context.data.npc(npc_id)
        self.flow = stage_flow_for(self.npc)
        self.stage = self.flow[0]

    @property
    def committed(self) -> bool:
        return self.stage == MediationStage.COMMIT

    def say(self, message: str) -> str:
        """Feed one player message; returns the NPC's reply."""
        message = message.strip()
        if not message:
            return "Say something first."

        delta = score_message(message, self.npc.taboos)
        if delta <= 0:
            return REBUFF

        current = self.flow.index(self.stage)
        new = min(len(self.flow) - 1, current + delta)
        if new == current:
            return REPLIES[self.stage]
        self.stage = self.flow[new]
        logger.debug("Mediation with %s moved to %s", self.npc.id, self.stage.value)
        return REPLIES[self.stage]

    def finish(self) -> MediationResult:
        resolved = obsessions_for_npc(self.context, self.npc.id) if self.committed else []
        return MediationResult(npc_id=self.npc.id, stage=self.stage, resolved=resolved)
