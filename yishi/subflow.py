"""
Sub-flow contract.

The interpreter and negotiation machine never talk to UI directly. Every
suspension goes through `SubFlowInvoker.push(key, payload)`, which resolves
exactly once with a result for that key:

    dialogue      TEXT acknowledgement           -> ignored
    choice        CHOICE pick                    -> option index (int)
    notice        user-facing message            -> ignored
    ghost_comm    ghost negotiation              -> GhostCommResult
    mediation     mediation with a living NPC    -> MediationResult
    story         nested story                   -> StoryResult
    wordcard      pick a word card to play       -> card id, or None to stop
    ghost_option  pick one generated option      -> option index, or None to stop

A rejected sub-flow raises SubFlowError.
"""

from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from .state.schema import MediationStage, Miasma


class SubFlowKey:
    DIALOGUE = "dialogue"
    CHOICE = "choice"
    NOTICE = "notice"
    GHOST_COMM = "ghost_comm"
    MEDIATION = "mediation"
    STORY = "story"
    WORDCARD = "wordcard"
    GHOST_OPTION = "ghost_option"


@runtime_checkable
class SubFlowInvoker(Protocol):
    async def push(self, key: str, payload: dict[str, Any]) -> Any:
        ...


class GhostCommResult(BaseModel):
    """Outcome of one ghost negotiation session."""
    spirit_id: str = ""
    resolved_knots: list[str] = Field(default_factory=list)
    miasma: Miasma = Miasma.TURBID
    mediator: str | None = None  # NPC id the spirit needs brought in
    refused: bool = False
    success: bool = False


class MediationResult(BaseModel):
    npc_id: str
    stage: MediationStage = MediationStage.RESIST
    resolved: list[str] = Field(default_factory=list)


class StoryResult(BaseModel):
    story_id: str
    flags_updated: list[str] = Field(default_factory=list)
    completed: bool = False
    aborted: bool = False
    message: str = ""
