"""
Console sub-flow invoker.

Answers every sub-flow the interpreter and negotiation machine push by
prompting on the terminal. Ghost calls, mediations and nested stories are
run in place with the same context.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from rich.prompt import Prompt

from ..errors import DataError, SubFlowError
from ..state.schema import GhostOption, OptionSet
from ..subflow import SubFlowKey
from .renderer import console, render_choices, render_line, render_notice, render_option_set

if TYPE_CHECKING:
    from ..context import GameContext

logger = logging.getLogger(__name__)


async def _ask(prompt: str, **kwargs: Any) -> str:
    return await asyncio.to_thread(Prompt.ask, prompt, **kwargs)


async def _pick(count: int, prompt: str, allow_stop: bool = False) -> int | None:
    """1-based pick from the terminal; blank means stop when allowed."""
    choices = [str(i) for i in range(1, count + 1)]
    if allow_stop:
        raw = await _ask(f"{prompt} (blank to stop)", default="", show_default=False)
        if not raw.strip():
            return None
        if raw.strip() not in choices:
            console.print("[dim]Not an option.[/dim]")
            return await _pick(count, prompt, allow_stop)
        return int(raw) - 1
    raw = await _ask(prompt, choices=choices)
    return int(raw) - 1


class ConsoleInvoker:
    """SubFlowInvoker that talks to a terminal."""

    def __init__(self, context: "GameContext | None" = None):
        self.context = context

    def bind(self, context: "GameContext") -> None:
        self.context = context

    async def push(self, key: str, payload: dict[str, Any]) -> Any:
        if self.context is None:
            raise SubFlowError(key, "console invoker is not bound to a context")

        if key == SubFlowKey.DIALOGUE:
            render_line(payload.get("speaker"), payload.get("text", ""))
            await _ask("[dim]…[/dim]", default="", show_default=False)
            return None

        if key == SubFlowKey.CHOICE:
            options = payload.get("options") or []
            render_choices(options)
            return await _pick(len(options), "Choice")

        if key == SubFlowKey.NOTICE:
            render_notice(payload.get("message", ""))
            return None

        if key == SubFlowKey.GHOST_COMM:
            return await self._ghost_comm(payload["spirit_id"])

        if key == SubFlowKey.MEDIATION:
            return await self._mediation(payload["npc_id"])

        if key == SubFlowKey.STORY:
            from ..systems.story import StoryInterpreter
            return await StoryInterpreter(self.context).run(payload["story_id"])

        if key == SubFlowKey.WORDCARD:
            return await self._wordcard(payload.get("wordcards") or [])

        if key == SubFlowKey.GHOST_OPTION:
            option_set = OptionSet(
                options=[GhostOption.model_validate(o) for o in payload.get("options") or []],
                tone=payload.get("tone", ""),
            )
            render_option_set(option_set)
            if not option_set.options:
                return None
            return await _pick(len(option_set.options), "Say", allow_stop=True)

        raise SubFlowError(key, "unknown sub-flow")

    async def _ghost_comm(self, spirit_id: str) -> Any:
        from ..systems.negotiation import GhostNegotiation

        try:
            session = GhostNegotiation(self.context, spirit_id)
        except DataError as e:
            raise SubFlowError(SubFlowKey.GHOST_COMM, str(e)) from e
        console.rule(f"{session.spirit.name}")
        result = await session.run()
        if result.refused:
            render_notice(f"{session.spirit.name} falls silent.")
        return result

    async def _mediation(self, npc_id: str) -> Any:
        from ..systems.mediation import MediationSession

        try:
            session = MediationSession(self.context, npc_id)
        except DataError as e:
            raise SubFlowError(SubFlowKey.MEDIATION, str(e)) from e
        console.rule(session.npc.title)
        while not session.committed:
            message = await _ask(f"[dim]{session.stage.value}[/dim] You say", default="", show_default=False)
            if not message.strip():
                break
            render_line(session.npc.title, session.say(message))
        return session.finish()

    async def _wordcard(self, held: list[str]) -> str | None:
        data = self.context.data
        cards = [data.wordcard(cid) for cid in held if cid in {w.id for w in data.wordcards}]
        if not cards:
            cards = list(data.wordcards)
        if not cards:
            return None
        render_choices([f"{c.word} ({', '.join(t.value for t in c.tags)})" for c in cards], title="Word cards")
        picked = await _pick(len(cards), "Card", allow_stop=True)
        return None if picked is None else cards[picked].id
