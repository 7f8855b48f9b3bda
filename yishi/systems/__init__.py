"""
Game systems for YISHI.

Each system takes the shared world (directly or through a GameContext) and
mutates it in place; only one story or negotiation runs at a time.
"""

from .ghosts import GhostStateTracker
from .services import StoryServiceEntry, StoryServiceIndex, build_story_service_index
from .spawn import DirectedAnchor, SpawnDirector
from .hints import HintDeriver
from .options import LocalOptionSource, OptionRequest, OptionSource, ProviderOptionSource
from .story import StoryInterpreter
from .negotiation import GhostNegotiation, TurnOutcome
from .mediation import MediationSession
from .integrity import AuditResult, IntegrityAuditor, Issue, Severity

__all__ = [
    "GhostStateTracker",
    "StoryServiceEntry",
    "StoryServiceIndex",
    "build_story_service_index",
    "DirectedAnchor",
    "SpawnDirector",
    "HintDeriver",
    # Option generation
    "LocalOptionSource",
    "OptionRequest",
    "OptionSource",
    "ProviderOptionSource",
    # Sessions
    "StoryInterpreter",
    "GhostNegotiation",
    "TurnOutcome",
    "MediationSession",
    # Data audit
    "AuditResult",
    "IntegrityAuditor",
    "Issue",
    "Severity",
]
