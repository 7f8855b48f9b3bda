"""
Ghost negotiation state machine.

One session per ghost call. The player plays a word card, picks one of the
generated options, and its effect lands:

    calm     miasma one rung toward clear
    loosen   target knots -> loosened
    untie    target knots -> resolved (session succeeds once all are)
    exchange no direct change
    provoke  spirit starts refusing

Knots only move forward. Two identical accusations in a row and the spirit
falls silent, ending the session with its key person as mediator.

Every applied option bumps `ghost.<spirit>.step`; the next option set is
seeded from that counter plus a sorted snapshot of the relevant flags, so a
reloaded save produces the same options.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..config import OFFLINE_FLAG
from ..errors import DataError, SubFlowError
from ..state.event_bus import EventType
from ..state.schema import (
    OBSESSION_ORDER,
    GhostOption,
    GhostState,
    Miasma,
    ObsessionState,
    OptionCategory,
    OptionEffect,
    OptionSet,
    SpecialCaseType,
    WordCard,
)
from ..subflow import GhostCommResult, SubFlowKey
from ..tools.seed import negotiation_seed
from .ghosts import GhostStateTracker, obsession_flag_key, state_flag_key
from .options import OptionRequest

if TYPE_CHECKING:
    from ..context import GameContext

logger = logging.getLogger(__name__)


REFUSAL_REPEATS = 2


def step_flag_key(spirit_id: str) -> str:
    return f"ghost.{spirit_id}.step"


@dataclass
class TurnOutcome:
    """What one applied option did."""
    applied: bool
    effect: OptionEffect | None = None
    changed: dict[str, ObsessionState] = field(default_factory=dict)
    miasma: Miasma = Miasma.TURBID
    ended: bool = False
    success: bool = False
    refused: bool = False
    reason: str = ""


class GhostNegotiation:
    """
    A single conversation with one spirit.

    Raises:
        DataError: if the spirit id is unknown
    """

    def __init__(self, context: "GameContext", spirit_id: str):
        self.context = context
        self.spirit = context.data.spirit(spirit_id)
        self.tracker = GhostStateTracker(context.world)

        self.states: dict[str, ObsessionState] = {
            o.id: self.tracker.obsession_state(self.spirit, o.id) for o in self.spirit.obsessions
        }
        self.resolved_knots: list[str] = []
        self.options: OptionSet | None = None

        self.ended = False
        self.success = False
        self.refused = False
        self.mediator: str | None = None

        self._last_accusation: frozenset[str] | None = None
        self._repeats = 0

    @property
    def spirit_id(self) -> str:
        return self.spirit.id

    @property
    def step(self) -> int:
        raw = self.context.world.get_flag(step_flag_key(self.spirit_id), 0)
        try:
            return int(raw)
        except (TypeError, ValueError):
            return 0

    @property
    def repeats(self) -> int:
        return self._repeats

    # -------------------------------------------------------------------------
    # Seeding
    # -------------------------------------------------------------------------

    def relevant_flags(self) -> dict[str, Any]:
        """The fixed flag set that feeds the option seed."""
        keys = [OFFLINE_FLAG, state_flag_key(self.spirit_id)]
        keys.extend(obsession_flag_key(o.id) for o in self.spirit.obsessions)
        flags = self.context.world.data.flags
        return {k: flags[k] for k in keys if k in flags}

    def seed(self) -> str:
        return negotiation_seed(self.spirit_id, self.step, self.relevant_flags())

    def is_lost(self) -> bool:
        special = self.spirit.special
        return bool(
            special is not None
            and special.type == SpecialCaseType.LOST_SELF
            and special.key_item
            and not self.context.world.has_item(special.key_item)
        )

    # -------------------------------------------------------------------------
    # Turns
    # -------------------------------------------------------------------------

    async def generate_options(self, word_card: WordCard | str) -> OptionSet:
        """Ask the option source for this turn's options."""
        if isinstance(word_card, str):
            word_card = self.context.data.wordcard(word_card)
        request = OptionRequest(
            spirit=self.spirit,
            word=word_card,
            world=self.context.world.data,
            states=dict(self.states),
            seed=self.seed(),
        )
        self.options = await self.context.options.generate(request)
        return self.options

    def apply_option(self, option: GhostOption) -> TurnOutcome:
        world = self.context.world
        if self.ended:
            return TurnOutcome(applied=False, miasma=world.data.miasma, ended=True, reason="session ended")

        missing = [item for item in option.requires if not world.has_item(item)]
        if missing:
            return TurnOutcome(
                applied=False,
                effect=option.effect,
                miasma=world.data.miasma,
                reason=f"missing items: {', '.join(missing)}",
            )

        if option.category == OptionCategory.ACCUSATION:
            targets = frozenset(option.targets)
            self._repeats = self._repeats + 1 if targets == self._last_accusation else 1
            self._last_accusation = targets
        else:
            self._repeats = 0
            self._last_accusation = None

        outcome = TurnOutcome(applied=True, effect=option.effect)

        if self._repeats >= REFUSAL_REPEATS:
            self._refuse()
            outcome.refused = True
        elif option.effect == OptionEffect.CALM:
            world.step_miasma_down()
        elif option.effect == OptionEffect.LOOSEN:
            outcome.changed = self._advance(option.targets, ObsessionState.LOOSENED)
        elif option.effect == OptionEffect.UNTIE:
            outcome.changed = self._advance(option.targets, ObsessionState.RESOLVED)
            if self.states and all(s == ObsessionState.RESOLVED for s in self.states.values()):
                self.success = True
                self.ended = True
                logger.info("Negotiation with %s succeeded", self.spirit_id)
        elif option.effect == OptionEffect.PROVOKE:
            self.tracker.set_state(self.spirit_id, GhostState.REFUSING)

        world.set_flag(step_flag_key(self.spirit_id), self.step + 1)

        outcome.miasma = world.data.miasma
        outcome.ended = self.ended
        outcome.success = self.success
        return outcome

    def _advance(self, targets: list[str], target: ObsessionState) -> dict[str, ObsessionState]:
        changed = {}
        for obsession_id in targets:
            current = self.states.get(obsession_id)
            if current is None:
                logger.warning("Option targets unknown knot %r on %s", obsession_id, self.spirit_id)
                continue
            if OBSESSION_ORDER[target] <= OBSESSION_ORDER[current]:
                continue
            self.states[obsession_id] = target
            self.tracker.record_obsession(obsession_id, target)
            changed[obsession_id] = target
            if target == ObsessionState.RESOLVED:
                self.resolved_knots.append(obsession_id)
            self.context.bus.emit(
                EventType.OBSESSION_CHANGED,
                spirit_id=self.spirit_id,
                obsession_id=obsession_id,
                state=target.value,
            )
        return changed

    def _refuse(self) -> None:
        self.refused = True
        self.ended = True
        special = self.spirit.special
        self.mediator = special.key_person if special else None
        self.tracker.set_state(self.spirit_id, GhostState.SILENT)
        self.context.bus.emit(EventType.SPIRIT_REFUSED, spirit_id=self.spirit_id, mediator=self.mediator)
        logger.info("Spirit %s fell silent (mediator: %s)", self.spirit_id, self.mediator)

    def finish(self) -> GhostCommResult:
        """Close the session and report what changed."""
        self.ended = True
        if self.tracker.get_state(self.spirit_id) == GhostState.COMMUNICATING:
            self.tracker.set_state(self.spirit_id, GhostState.MANIFEST)
        self.context.bus.emit(EventType.AUTOSAVE, reason="ghost_comm", spirit_id=self.spirit_id)
        return GhostCommResult(
            spirit_id=self.spirit_id,
            resolved_knots=list(self.resolved_knots),
            miasma=self.context.world.data.miasma,
            mediator=self.mediator,
            refused=self.refused,
            success=self.success,
        )

    # -------------------------------------------------------------------------
    # Sub-flow loop
    # -------------------------------------------------------------------------

    async def run(self) -> GhostCommResult:
        """
        Drive the whole session through the invoker.

        Each round pushes "wordcard" (card id, or None to stop) and then
        "ghost_option" (option index, or None to stop).
        """
        invoker = self.context.invoker
        if invoker is None:
            raise SubFlowError(SubFlowKey.GHOST_COMM, "no invoker")

        if self.tracker.is_settled(self.spirit_id):
            self.success = True
            return self.finish()

        self.tracker.set_state(
            self.spirit_id, GhostState.LOST_SELF if self.is_lost() else GhostState.COMMUNICATING
        )

        try:
            while not self.ended:
                card_id = await invoker.push(SubFlowKey.WORDCARD, {
                    "spirit_id": self.spirit_id,
                    "wordcards": list(self.context.world.data.wordcards),
                })
                if card_id is None:
                    break
                try:
                    option_set = await self.generate_options(card_id)
                except DataError as e:
                    logger.warning("Unknown word card %r: %s", card_id, e)
                    break

                picked = await invoker.push(SubFlowKey.GHOST_OPTION, {
                    "spirit_id": self.spirit_id,
                    "tone": option_set.tone,
                    "options": [o.model_dump(mode="json") for o in option_set.options],
                })
                if picked is None:
                    break
                if not isinstance(picked, int) or isinstance(picked, bool) or not 0 <= picked < len(option_set.options):
                    logger.warning("Invalid option pick %r for %s", picked, self.spirit_id)
                    continue
                outcome = self.apply_option(option_set.options[picked])
                if not outcome.applied:
                    logger.info("Option not applicable: %s", outcome.reason)
        except SubFlowError as e:
            logger.warning("Negotiation with %s abandoned: %s", self.spirit_id, e)

        return self.finish()
