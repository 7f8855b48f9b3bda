"""
Ghost state tracking.

Each spirit's lifecycle state lives in a world flag (`spirit.<id>.state`).
Membership in `resolved_spirits` always wins over the flag.
"""

import logging

from ..state.event_bus import EventType
from ..state.schema import GhostState, ObsessionState, Spirit
from ..state.world import WorldState

logger = logging.getLogger(__name__)


STATE_FLAG_PREFIX = "spirit."
STATE_FLAG_SUFFIX = ".state"
OBSESSION_FLAG_PREFIX = "obsession:"

SETTLED_STATES = {GhostState.RESOLVED, GhostState.ECHO}


def state_flag_key(spirit_id: str) -> str:
    return f"{STATE_FLAG_PREFIX}{spirit_id}{STATE_FLAG_SUFFIX}"


def obsession_flag_key(obsession_id: str) -> str:
    return f"{OBSESSION_FLAG_PREFIX}{obsession_id}"


class GhostStateTracker:
    """Reads and writes per-spirit state against the shared world."""

    def __init__(self, world: WorldState):
        self.world = world

    @staticmethod
    def flag_key(spirit_id: str) -> str:
        return state_flag_key(spirit_id)

    def get_state(self, spirit_id: str) -> GhostState:
        if not spirit_id:
            return GhostState.UNSEEN
        if spirit_id in self.world.data.resolved_spirits:
            return GhostState.RESOLVED
        raw = self.world.get_flag(state_flag_key(spirit_id))
        try:
            return GhostState(raw)
        except ValueError:
            return GhostState.UNSEEN

    def set_state(self, spirit_id: str, state: GhostState) -> None:
        if not spirit_id:
            return
        before = self.get_state(spirit_id)
        self.world.set_flag(state_flag_key(spirit_id), state.value)
        if before != state and self.world.bus:
            self.world.bus.emit(
                EventType.GHOST_STATE_CHANGED,
                spirit_id=spirit_id,
                before=before.value,
                after=state.value,
            )

    def mark_resolved(self, spirit_id: str) -> None:
        """Idempotently lay a spirit to rest."""
        if not spirit_id:
            return
        resolved = self.world.data.resolved_spirits
        newly = spirit_id not in resolved
        if newly:
            resolved.append(spirit_id)
        self.world.set_flag(state_flag_key(spirit_id), GhostState.RESOLVED.value)
        if newly:
            logger.info("Spirit %s resolved", spirit_id)
            if self.world.bus:
                self.world.bus.emit(EventType.SPIRIT_RESOLVED, spirit_id=spirit_id)

    def is_settled(self, spirit_id: str) -> bool:
        """Resolved or lingering only as an echo; nothing left to negotiate."""
        return self.get_state(spirit_id) in SETTLED_STATES

    # -------------------------------------------------------------------------
    # Obsessions
    # -------------------------------------------------------------------------

    def obsession_state(self, spirit: Spirit, obsession_id: str) -> ObsessionState:
        """Flag state if recorded, else the authored state."""
        raw = self.world.get_flag(obsession_flag_key(obsession_id))
        try:
            return ObsessionState(raw)
        except ValueError:
            pass
        for obsession in spirit.obsessions:
            if obsession.id == obsession_id:
                return obsession.state
        return ObsessionState.UNRESOLVED

    def record_obsession(self, obsession_id: str, state: ObsessionState) -> None:
        self.world.set_flag(obsession_flag_key(obsession_id), state.value)

    def all_obsessions_resolved(self, spirit: Spirit) -> bool:
        return all(
            self.obsession_state(spirit, o.id) == ObsessionState.RESOLVED
            for o in spirit.obsessions
        )
