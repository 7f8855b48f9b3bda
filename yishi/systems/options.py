"""
Ghost option generation.

Two sources share one contract and return an OptionSet {options, tone}:
- LocalOptionSource: offline, built from pre-written phrasing variants and
  a seeded generator, so the same saved state always yields the same set
- ProviderOptionSource: asks a remote chat model for JSON, falling back to
  the local source when offline or when the provider fails
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Protocol, runtime_checkable

from pydantic import ValidationError

from ..config import OFFLINE_FLAG
from ..rules.conditions import parse_condition
from ..errors import ConditionParseError
from ..state.schema import (
    GhostOption,
    Miasma,
    ObsessionState,
    OptionCategory,
    OptionEffect,
    OptionSet,
    SpecialCaseType,
    Spirit,
    WordCard,
    WorldStateData,
)
from ..tools.seed import SeededRandom

if TYPE_CHECKING:
    from ..llm.base import LLMClient

logger = logging.getLogger(__name__)


MAX_OPTIONS = 4


@dataclass
class OptionRequest:
    """Everything an option source may look at for one turn."""
    spirit: Spirit
    word: WordCard
    world: WorldStateData
    states: dict[str, ObsessionState] = field(default_factory=dict)
    seed: str = ""


@runtime_checkable
class OptionSource(Protocol):
    async def generate(self, request: OptionRequest) -> OptionSet:
        ...


# ─── Phrasing ───────────────────────────────────────────────

PHRASES: dict[OptionCategory, list[str]] = {
    OptionCategory.SOOTHE: [
        "Rest a moment. Nobody here means you harm.",
        "I'm not here to drive you off. Breathe with me.",
        "You've waited a long time. I can wait a little with you.",
    ],
    OptionCategory.QUESTION: [
        "Tell me about {name}. What happened?",
        "What is it about {name} that keeps you here?",
        "Who else remembers {name}?",
    ],
    OptionCategory.EXCHANGE: [
        "If I bring what you need for {name}, will you let it go?",
        "Let's make a trade over {name}.",
    ],
    OptionCategory.RITUAL: [
        "Let me set things right for {name}, the proper way.",
        "We can hold the rite for {name} together.",
    ],
    OptionCategory.ACCUSATION: [
        "It was {name}, wasn't it? That's the truth you've been hiding.",
        "Say it plainly: {name} is why you can't leave.",
    ],
}

TONES: dict[Miasma, list[str]] = {
    Miasma.BOILING: ["seething", "barely holding together"],
    Miasma.TURBID: ["wounded but willing to talk", "wary"],
    Miasma.CLEAR: ["quiet", "almost at peace"],
}


def required_items(conditions: list[str]) -> list[str]:
    """Item ids an obsession's conditions ask the player to hold."""
    items = []
    for raw in conditions:
        try:
            parsed = parse_condition(raw)
        except ConditionParseError:
            continue
        if parsed.kind == "item" and parsed.key:
            items.append(parsed.key)
    return items


class LocalOptionSource:
    """Deterministic offline option generator."""

    def __init__(self, rng: Callable[[str], SeededRandom] = SeededRandom):
        self._rng = rng

    async def generate(self, request: OptionRequest) -> OptionSet:
        return self.build(request)

    def build(self, request: OptionRequest) -> OptionSet:
        rng = self._rng(request.seed)
        spirit = request.spirit
        category = request.word.tags[0] if request.word.tags else OptionCategory.SOOTHE

        options: list[GhostOption] = []
        if request.world.miasma != Miasma.CLEAR:
            options.append(GhostOption(
                text=rng.choice(PHRASES[OptionCategory.SOOTHE]),
                category=OptionCategory.SOOTHE,
                effect=OptionEffect.CALM,
            ))

        special = spirit.special
        lost = (
            special is not None
            and special.type == SpecialCaseType.LOST_SELF
            and special.key_item
            and special.key_item not in request.world.items
        )
        if lost:
            # Can't reach the knots until the spirit remembers itself
            options.append(GhostOption(
                text=rng.choice(PHRASES[OptionCategory.SOOTHE]),
                category=OptionCategory.SOOTHE,
                effect=OptionEffect.CALM,
                hint=special.key_item,
            ))
            return OptionSet(options=options[:MAX_OPTIONS], tone="lost in itself")

        for obsession in spirit.obsessions:
            state = request.states.get(obsession.id, obsession.state)
            if state == ObsessionState.RESOLVED:
                continue
            options.append(self._option_for(rng, category, obsession.id, obsession.name, state, obsession.conditions))

        options = rng.shuffle(options)[:MAX_OPTIONS]
        tone = rng.choice(TONES[request.world.miasma])
        return OptionSet(options=options, tone=tone)

    def _option_for(
        self,
        rng: SeededRandom,
        category: OptionCategory,
        obsession_id: str,
        name: str,
        state: ObsessionState,
        conditions: list[str],
    ) -> GhostOption:
        text = rng.choice(PHRASES[category]).format(name=name)
        hint = conditions[0] if conditions else None

        if category == OptionCategory.SOOTHE:
            return GhostOption(text=text, category=category, effect=OptionEffect.CALM, hint=hint)

        if category in (OptionCategory.RITUAL, OptionCategory.EXCHANGE):
            # Untying needs the knot loosened first and the right things in hand
            effect = OptionEffect.UNTIE if state == ObsessionState.LOOSENED else OptionEffect.LOOSEN
            return GhostOption(
                text=text,
                category=category,
                targets=[obsession_id],
                requires=required_items(conditions) if effect == OptionEffect.UNTIE else [],
                effect=effect,
                hint=hint,
            )

        return GhostOption(
            text=text,
            category=category,
            targets=[obsession_id],
            effect=OptionEffect.LOOSEN,
            hint=hint,
        )


# ─── Remote provider ────────────────────────────────────────

SYSTEM_PROMPT = (
    "You design dialogue for a folk-ghost narrative game. Given a spirit, the "
    "word card the player chose and the world state, reply with JSON only: "
    '{"tone": str, "options": [{"text": str, "category": one of soothe/question/'
    'exchange/ritual/accusation, "targets": [obsession ids], "requires": [item ids], '
    '"effect": one of untie/loosen/calm/exchange/provoke, "hint": str?}] } '
    "with 1 to 4 options."
)


def build_prompt_bundle(request: OptionRequest) -> dict:
    spirit = request.spirit
    return {
        "spirit": {
            "id": spirit.id,
            "name": spirit.name,
            "era": spirit.era,
            "background": spirit.background,
            "obsessions": [
                {"id": o.id, "name": o.name, "state": request.states.get(o.id, o.state).value}
                for o in spirit.obsessions
            ],
        },
        "word": {"id": request.word.id, "word": request.word.word, "tags": [t.value for t in request.word.tags]},
        "world": {
            "miasma": request.world.miasma.value,
            "items": list(request.world.items),
            "companions": list(request.world.companions),
        },
    }


def parse_option_payload(content: str) -> OptionSet:
    """
    Parse a provider reply into an OptionSet.

    Raises:
        ValueError: if the reply is not valid JSON of the expected shape
    """
    text = content.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.startswith("json"):
            text = text[4:]
    try:
        payload = json.loads(text)
        option_set = OptionSet.model_validate(payload)
    except (json.JSONDecodeError, ValidationError) as e:
        raise ValueError(f"Provider reply is not a valid option set: {e}") from e
    if not option_set.options:
        raise ValueError("Provider returned no options")
    option_set.options = option_set.options[:MAX_OPTIONS]
    return option_set


class ProviderOptionSource:
    """Remote option generation with a local fallback."""

    def __init__(self, client: "LLMClient | None", fallback: LocalOptionSource | None = None):
        self.client = client
        self.fallback = fallback or LocalOptionSource()

    def is_ready(self) -> bool:
        return self.client is not None and self.client.is_available()

    async def generate(self, request: OptionRequest) -> OptionSet:
        if request.world.flags.get(OFFLINE_FLAG) or not self.is_ready():
            return await self.fallback.generate(request)

        from ..llm.base import Message

        bundle = json.dumps(build_prompt_bundle(request), ensure_ascii=False, indent=2)
        messages = [Message(role="user", content=f"Game context for this turn:\n{bundle}")]
        try:
            response = await asyncio.to_thread(
                self.client.chat,
                messages,
                system=SYSTEM_PROMPT,
                temperature=0.6,
                max_tokens=700,
            )
            return parse_option_payload(response.content)
        except (ConnectionError, ValueError, TimeoutError) as e:
            logger.warning("Option provider failed, using local options: %s", e)
            return await self.fallback.generate(request)
