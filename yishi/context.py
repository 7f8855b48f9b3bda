"""
Explicit dependencies threaded into the interpreter and negotiation machine.

There is no registry lookup: whoever starts a session builds a GameContext
and hands it in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from .config import DEFAULT_CONFIG, Config
from .state.event_bus import EventBus
from .state.repo import GameData
from .state.world import WorldState
from .tools.seed import SeededRandom

if TYPE_CHECKING:
    from .systems.services import StoryServiceIndex
    from .subflow import SubFlowInvoker
    from .systems.options import OptionSource


@dataclass
class GameContext:
    """
    Everything a session needs.

    Attributes:
        world: The shared world document
        data: Validated game content
        invoker: Sub-flow invoker (UI bridge)
        options: Where ghost options come from (local seeded or remote)
        bus: Event bus owned by this context
        config: Engine settings
        rng: Factory turning a seed string into a generator
    """

    world: WorldState
    data: GameData
    invoker: "SubFlowInvoker | None" = None
    options: "OptionSource | None" = None
    bus: EventBus = field(default_factory=EventBus)
    config: Config = field(default_factory=lambda: DEFAULT_CONFIG.copy())
    rng: Callable[[str], SeededRandom] = SeededRandom
    _service_index: "StoryServiceIndex | None" = field(default=None, init=False, repr=False)

    def __post_init__(self):
        if self.world.bus is None:
            self.world.bus = self.bus
        if self.options is None:
            from .systems.options import LocalOptionSource
            self.options = LocalOptionSource(rng=self.rng)

    @property
    def service_index(self) -> "StoryServiceIndex":
        """Story-service index for the loaded data, built on first use."""
        if self._service_index is None:
            from .systems.services import build_story_service_index
            self._service_index = build_story_service_index(
                self.data.stories,
                strict=bool(self.config.get("strict_services", False)),
            )
        return self._service_index
