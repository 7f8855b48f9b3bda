"""
Story script interpreter.

Runs one StoryNode as a step machine:

    TEXT          -> "dialogue" sub-flow, then the next step
    CHOICE        -> "choice" sub-flow, then the picked option's action
    GIVE_ITEM     -> idempotent inventory grant
    UPDATE_FLAG   -> world flag write, recorded in flags_updated
    CALL_GHOST_COMM / CALL_MEDIATION -> sub-flows that may resolve knots
    SCREEN_EFFECT -> sequencing marker only
    END           -> stop

Jumps are resolved against a line_id index built once per node. A missing
target is logged and execution carries on with the next step.

Usage:
    interpreter = StoryInterpreter(context)
    result = await interpreter.run("st_wang_intro")
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from ..errors import DataError, SubFlowError
from ..rules.conditions import parse_expected_value
from ..state.event_bus import EventType
from ..state.schema import (
    CallGhostOption,
    CallGhostStep,
    CallMediationOption,
    CallMediationStep,
    ChoiceStep,
    EndOption,
    EndStep,
    GiveItemStep,
    GotoLineOption,
    ObsessionState,
    ScreenEffectStep,
    StartStoryOption,
    StoryNode,
    TextStep,
    UpdateFlagStep,
)
from ..subflow import GhostCommResult, MediationResult, StoryResult, SubFlowKey
from .ghosts import GhostStateTracker
from .spawn import story_flag_key

if TYPE_CHECKING:
    from ..context import GameContext

logger = logging.getLogger(__name__)


def build_line_index(story: StoryNode, strict: bool = False) -> dict[str, int]:
    """
    Map line_id -> step index. The first occurrence of a line_id wins.

    Raises:
        DataError: in strict mode, on a duplicate line_id
    """
    index: dict[str, int] = {}
    for pos, step in enumerate(story.steps):
        line_id = step.line_id
        if not line_id:
            continue
        if line_id in index:
            if strict:
                raise DataError("story", story.id, f"duplicate line id {line_id!r}")
            logger.warning(
                "Duplicate line id %r in story %s (steps %d and %d); keeping first",
                line_id, story.id, index[line_id], pos,
            )
            continue
        index[line_id] = pos
    return index


def check_references(story: StoryNode, context: "GameContext") -> None:
    """
    Verify the spirits, nested stories and items a node refers to exist.

    Items are only checked when the items collection is loaded.

    Raises:
        DataError: for the first unknown id
    """
    data = context.data
    for step in story.steps:
        if isinstance(step, CallGhostStep):
            data.spirit(step.spirit_id)
        elif isinstance(step, GiveItemStep) and data.items:
            data.item(step.item_id)
        elif isinstance(step, ChoiceStep):
            for option in step.options:
                if isinstance(option, CallGhostOption):
                    data.spirit(option.spirit_id)
                elif isinstance(option, StartStoryOption):
                    data.story(option.story_id)


def parse_update(raw: str) -> tuple[str, Any]:
    """`key=value` -> (key, parsed value); a bare key sets True."""
    key, sep, value = raw.partition("=")
    return key.strip(), parse_expected_value(value.strip()) if sep else True


class StoryInterpreter:
    """
    Executes story nodes against the shared world.

    One run at a time: calling run() while a story is suspended raises
    RuntimeError.
    """

    def __init__(self, context: "GameContext"):
        self.context = context
        self.tracker = GhostStateTracker(context.world)
        self._busy = False
        self._suppressed_mediation: set[str] = set()
        self._touched: list[str] = []

    @property
    def busy(self) -> bool:
        return self._busy

    async def run(self, story_id: str) -> StoryResult:
        if self._busy:
            raise RuntimeError("StoryInterpreter is already running a story")
        self._busy = True
        try:
            return await self._run(story_id)
        finally:
            self._busy = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def _run(self, story_id: str) -> StoryResult:
        config = self.context.config
        try:
            story = self.context.data.story(story_id)
            check_references(story, self.context)
            lines = build_line_index(story, strict=bool(config.get("strict_lines", False)))
        except DataError as e:
            return await self._abort(story_id, e)

        self._suppressed_mediation.clear()
        self._touched = []
        self.context.bus.emit(EventType.STORY_STARTED, story_id=story.id, anchor_id=story.anchor)
        logger.info("Story %s started", story.id)

        pos = 0
        while pos < len(story.steps):
            nxt = await self._execute(story, pos, lines)
            if nxt is None:
                break
            pos = nxt

        return self._complete(story)

    def _complete(self, story: StoryNode) -> StoryResult:
        world = self.context.world
        key = story_flag_key(story.id)
        if not world.get_flag(key):
            world.set_flag(key, True)
        world.add_summary(f"Finished “{story.id}” at {story.anchor}.")

        flags = list(self._touched)
        self.context.bus.emit(EventType.STORY_COMPLETED, story_id=story.id, flags=flags)
        self.context.bus.emit(EventType.AUTOSAVE, reason="story", story_id=story.id)
        logger.info("Story %s completed (%d flags updated)", story.id, len(flags))
        return StoryResult(story_id=story.id, flags_updated=flags, completed=True)

    async def _abort(self, story_id: str, error: DataError) -> StoryResult:
        """Tell the player, hold the message briefly, then give up."""
        logger.error("Story %s cannot run: %s", story_id, error)
        message = f"This story cannot continue: {error}"
        try:
            await self._push(SubFlowKey.NOTICE, {"message": message, "story_id": story_id})
        except SubFlowError as e:
            logger.warning("Notice not shown: %s", e)
        await asyncio.sleep(float(self.context.config.get("error_exit_delay", 1.2)))
        self.context.bus.emit(EventType.STORY_ABORTED, story_id=story_id, error=str(error))
        return StoryResult(story_id=story_id, aborted=True, message=message)

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    async def _execute(self, story: StoryNode, pos: int, lines: dict[str, int]) -> int | None:
        """Run one step. Returns the next step index, or None to end the node."""
        step = story.steps[pos]
        world = self.context.world

        if isinstance(step, TextStep):
            for raw in step.updates:
                key, value = parse_update(raw)
                if key:
                    self._set_flag(key, value)
            try:
                await self._push(SubFlowKey.DIALOGUE, {
                    "speaker": step.speaker,
                    "text": step.text,
                    "display_mode": step.display_mode,
                })
            except SubFlowError as e:
                logger.debug("Dialogue not acknowledged: %s", e)
            return pos + 1

        if isinstance(step, ChoiceStep):
            return await self._choose(story, step, pos, lines)

        if isinstance(step, GiveItemStep):
            if world.grant_item(step.item_id):
                logger.info("Granted %s%s", step.item_id, f" ({step.message})" if step.message else "")
            return pos + 1

        if isinstance(step, UpdateFlagStep):
            self._set_flag(step.flag, step.value)
            return pos + 1

        if isinstance(step, CallGhostStep):
            await self._ghost_comm(step.spirit_id)
            return pos + 1

        if isinstance(step, CallMediationStep):
            if step.npc_id in self._suppressed_mediation:
                # Already brought in by the preceding ghost call
                self._suppressed_mediation.discard(step.npc_id)
                logger.debug("Skipping mediation with %s; already chained", step.npc_id)
            else:
                await self._mediation(step.npc_id)
            return pos + 1

        if isinstance(step, ScreenEffectStep):
            return pos + 1

        if isinstance(step, EndStep):
            return None

        raise TypeError(f"Unhandled step type: {type(step).__name__}")

    async def _choose(self, story: StoryNode, step: ChoiceStep, pos: int, lines: dict[str, int]) -> int | None:
        try:
            picked = await self._push(SubFlowKey.CHOICE, {
                "line_id": step.line_id,
                "options": [opt.text for opt in step.options],
            })
        except SubFlowError as e:
            logger.warning("Choice in %s rejected (%s); continuing", story.id, e)
            return pos + 1

        if not isinstance(picked, int) or isinstance(picked, bool) or not 0 <= picked < len(step.options):
            logger.warning("Invalid choice %r in %s; continuing", picked, story.id)
            return pos + 1

        option = step.options[picked]
        nxt = pos + 1

        if isinstance(option, GotoLineOption):
            nxt = self._jump(story, lines, option.target_line_id, pos)
        elif isinstance(option, StartStoryOption):
            child = await self._nested_story(option.story_id)
            if child is not None:
                for key in child.flags_updated:
                    self._track(key)
        elif isinstance(option, CallGhostOption):
            await self._ghost_comm(option.spirit_id)
        elif isinstance(option, CallMediationOption):
            await self._mediation(option.npc_id)
        elif isinstance(option, EndOption):
            return None
        else:
            raise TypeError(f"Unhandled choice option: {type(option).__name__}")

        if option.next_line_id:
            nxt = self._jump(story, lines, option.next_line_id, pos)
        return nxt

    def _jump(self, story: StoryNode, lines: dict[str, int], line_id: str, pos: int) -> int:
        target = lines.get(line_id)
        if target is None:
            logger.warning("Jump target %r missing in story %s; continuing", line_id, story.id)
            return pos + 1
        return target

    def _set_flag(self, key: str, value: Any) -> None:
        self.context.world.set_flag(key, value)
        self._track(key)

    def _track(self, key: str) -> None:
        if key not in self._touched:
            self._touched.append(key)

    # -------------------------------------------------------------------------
    # Sub-flows
    # -------------------------------------------------------------------------

    async def _push(self, key: str, payload: dict) -> Any:
        invoker = self.context.invoker
        if invoker is None:
            raise SubFlowError(key, "no invoker")
        return await invoker.push(key, payload)

    async def _ghost_comm(self, spirit_id: str) -> GhostCommResult:
        if self.tracker.is_settled(spirit_id):
            logger.debug("Spirit %s already settled; skipping ghost call", spirit_id)
            return GhostCommResult(spirit_id=spirit_id, success=True)

        try:
            raw = await self._push(SubFlowKey.GHOST_COMM, {"spirit_id": spirit_id})
            result = _coerce(raw, GhostCommResult, spirit_id=spirit_id)
        except (SubFlowError, ValidationError) as e:
            logger.warning("Ghost call with %s unresolved: %s", spirit_id, e)
            result = GhostCommResult(spirit_id=spirit_id, miasma=self.context.world.data.miasma)

        self._apply_resolved(result.resolved_knots, spirit_id)

        if result.mediator:
            self._suppressed_mediation.add(result.mediator)
            await self._mediation(result.mediator, spirit_id)
        return result

    async def _mediation(self, npc_id: str, spirit_id: str | None = None) -> MediationResult:
        try:
            raw = await self._push(SubFlowKey.MEDIATION, {"npc_id": npc_id, "spirit_id": spirit_id})
            result = _coerce(raw, MediationResult, npc_id=npc_id)
        except (SubFlowError, ValidationError) as e:
            logger.warning("Mediation with %s unresolved: %s", npc_id, e)
            result = MediationResult(npc_id=npc_id)

        self._apply_resolved(result.resolved, spirit_id)
        return result

    async def _nested_story(self, story_id: str) -> StoryResult | None:
        try:
            raw = await self._push(SubFlowKey.STORY, {"story_id": story_id})
            return _coerce(raw, StoryResult, story_id=story_id)
        except (SubFlowError, ValidationError) as e:
            logger.warning("Nested story %s unresolved: %s", story_id, e)
            return None

    def _apply_resolved(self, obsession_ids: list[str], spirit_id: str | None) -> None:
        """Record resolved knots and lay to rest any spirit with none left."""
        spirits = {spirit_id} if spirit_id else set()
        for obsession_id in obsession_ids:
            self.tracker.record_obsession(obsession_id, ObsessionState.RESOLVED)
            owner = self._owner_of(obsession_id)
            if owner:
                spirits.add(owner)

        for sid in sorted(spirits):
            spirit = self.context.data.find_spirit(sid)
            if spirit is None or not spirit.obsessions:
                continue
            if self.tracker.all_obsessions_resolved(spirit):
                self.tracker.mark_resolved(sid)

    def _owner_of(self, obsession_id: str) -> str | None:
        for spirit in self.context.data.spirits:
            if any(o.id == obsession_id for o in spirit.obsessions):
                return spirit.id
        return None


def _coerce(raw: Any, model: type, **defaults: Any) -> Any:
    """Accept a model instance, a dict, or None from a sub-flow."""
    if isinstance(raw, model):
        return raw
    if raw is None:
        return model(**defaults)
    if isinstance(raw, dict):
        return model.model_validate({**defaults, **raw})
    raise SubFlowError(model.__name__, f"unexpected result {raw!r}")
