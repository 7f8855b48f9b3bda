"""
Pydantic models for YISHI game data and world state.

Data records (spirits, anchors, stories...) are loaded from JSON and treated
as read-only. WorldStateData is the single mutable document that gets
snapshotted into save slots.

World state is versioned for migration support.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


SCHEMA_VERSION = 1


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------

class Miasma(str, Enum):
    """Ambient severity gauge. Only ever stepped down during negotiation."""
    CLEAR = "clear"
    TURBID = "turbid"
    BOILING = "boiling"


# Ordered from worst to best; calming moves one rung to the right
MIASMA_LADDER: list[Miasma] = [Miasma.BOILING, Miasma.TURBID, Miasma.CLEAR]


class Merit(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ObsessionState(str, Enum):
    """Forward-only lifecycle of a single knot."""
    UNRESOLVED = "unresolved"
    LOOSENED = "loosened"
    RESOLVED = "resolved"


OBSESSION_ORDER: dict[ObsessionState, int] = {
    ObsessionState.UNRESOLVED: 0,
    ObsessionState.LOOSENED: 1,
    ObsessionState.RESOLVED: 2,
}


class GhostState(str, Enum):
    """Per-spirit lifecycle, persisted as a world flag."""
    UNSEEN = "unseen"
    MANIFEST = "manifest"
    LOST_SELF = "lost-self"
    COMMUNICATING = "communicating"
    REFUSING = "refusing"
    SILENT = "silent"
    RESOLVED = "resolved"
    ECHO = "echo"


class SpecialCaseType(str, Enum):
    LOST_SELF = "lost-self"       # Needs a key item to remember who they were
    REFUSES_TALK = "refuses-talk"  # Shuts down on the wrong approach


class OptionCategory(str, Enum):
    SOOTHE = "soothe"
    QUESTION = "question"
    EXCHANGE = "exchange"
    RITUAL = "ritual"
    ACCUSATION = "accusation"


class OptionEffect(str, Enum):
    UNTIE = "untie"          # Target knots become resolved
    LOOSEN = "loosen"        # Target knots become loosened
    CALM = "calm"            # Miasma down one rung
    EXCHANGE = "exchange"    # Conditional trade, no direct state change
    PROVOKE = "provoke"      # Spirit starts refusing


class HintKind(str, Enum):
    CLUE = "clue"
    ACTION = "action"
    ITEM = "item"


HINT_KIND_ORDER: dict[HintKind, int] = {
    HintKind.CLUE: 0,
    HintKind.ACTION: 1,
    HintKind.ITEM: 2,
}


class MediationStage(str, Enum):
    """How far a living NPC has been talked round."""
    RESIST = "resist"
    HESITATE = "hesitate"
    WILLING = "willing"
    COMMIT = "commit"


# -----------------------------------------------------------------------------
# Data records
# -----------------------------------------------------------------------------

class Obsession(BaseModel):
    """A knot the spirit needs untied before it can pass on."""
    id: str
    name: str
    conditions: list[str] = Field(default_factory=list)
    state: ObsessionState = ObsessionState.UNRESOLVED


class SpecialCase(BaseModel):
    type: SpecialCaseType
    key_item: str | None = None
    key_person: str | None = None   # NPC id who can mediate
    refusal_trigger: str | None = None


class Constraint(BaseModel):
    unique_keys: list[str] = Field(default_factory=list)


class Spirit(BaseModel):
    id: str
    name: str
    era: str = ""
    anchor: str = ""                 # Home anchor id
    initial_state: GhostState = GhostState.MANIFEST
    miasma: Miasma = Miasma.TURBID
    background: str = ""
    obsessions: list[Obsession] = Field(default_factory=list)
    special: SpecialCase | None = None
    constraint: Constraint | None = None


class AfterCompletion(BaseModel):
    decoration: str | None = None
    echo_script: str | None = None   # Story id played once the spirit is gone


class Anchor(BaseModel):
    id: str
    location: str
    conditions: list[str] = Field(default_factory=list)
    map_id: str | None = None
    service_spirit: str | None = None
    after_completion: AfterCompletion | None = None


class WordCard(BaseModel):
    id: str
    word: str
    tags: list[OptionCategory] = Field(default_factory=list)
    note: str | None = None


class SacredItem(BaseModel):
    id: str
    name: str
    source: str = ""
    uses: list[str] = Field(default_factory=list)
    hook: str | None = None


class NPC(BaseModel):
    id: str
    title: str
    traits: list[str] = Field(default_factory=list)
    taboos: list[str] = Field(default_factory=list)
    stages: list[MediationStage] = Field(default_factory=list)
    persuadable: list[str] = Field(default_factory=list)
    arrival_conditions: list[str] = Field(default_factory=list)


class MapDef(BaseModel):
    id: str
    image: str


class GhostOption(BaseModel):
    """One line the player can say to a spirit."""
    text: str
    category: OptionCategory
    targets: list[str] = Field(default_factory=list)
    requires: list[str] = Field(default_factory=list)
    effect: OptionEffect
    hint: str | None = None


class OptionSet(BaseModel):
    """Shape shared by the local generator and the remote provider."""
    options: list[GhostOption] = Field(default_factory=list)
    tone: str = ""


class Hint(BaseModel):
    id: str
    text: str
    kind: HintKind


# -----------------------------------------------------------------------------
# Story scripts
# -----------------------------------------------------------------------------

class GotoLineOption(BaseModel):
    action: Literal["GOTO_LINE"] = "GOTO_LINE"
    text: str
    target_line_id: str
    next_line_id: str | None = None


class StartStoryOption(BaseModel):
    action: Literal["START_STORY"] = "START_STORY"
    text: str
    story_id: str
    next_line_id: str | None = None


class CallGhostOption(BaseModel):
    action: Literal["CALL_GHOST_COMM"] = "CALL_GHOST_COMM"
    text: str
    spirit_id: str
    next_line_id: str | None = None


class CallMediationOption(BaseModel):
    action: Literal["CALL_MEDIATION"] = "CALL_MEDIATION"
    text: str
    npc_id: str
    next_line_id: str | None = None


class EndOption(BaseModel):
    action: Literal["END"] = "END"
    text: str
    next_line_id: str | None = None


ChoiceOption = Annotated[
    Union[GotoLineOption, StartStoryOption, CallGhostOption, CallMediationOption, EndOption],
    Field(discriminator="action"),
]


class TextStep(BaseModel):
    t: Literal["TEXT"] = "TEXT"
    speaker: str | None = None
    text: str
    line_id: str | None = None
    display_mode: str | None = None
    updates: list[str] = Field(default_factory=list)  # "key=value" applied on display


class ChoiceStep(BaseModel):
    t: Literal["CHOICE"] = "CHOICE"
    line_id: str | None = None
    options: list[ChoiceOption] = Field(min_length=1)


class GiveItemStep(BaseModel):
    t: Literal["GIVE_ITEM"] = "GIVE_ITEM"
    item_id: str
    message: str | None = None
    line_id: str | None = None


class UpdateFlagStep(BaseModel):
    t: Literal["UPDATE_FLAG"] = "UPDATE_FLAG"
    flag: str
    value: Any = True
    line_id: str | None = None


class CallGhostStep(BaseModel):
    t: Literal["CALL_GHOST_COMM"] = "CALL_GHOST_COMM"
    spirit_id: str
    line_id: str | None = None


class CallMediationStep(BaseModel):
    t: Literal["CALL_MEDIATION"] = "CALL_MEDIATION"
    npc_id: str
    line_id: str | None = None


class ScreenEffectStep(BaseModel):
    t: Literal["SCREEN_EFFECT"] = "SCREEN_EFFECT"
    effect: str = ""
    line_id: str | None = None


class EndStep(BaseModel):
    t: Literal["END"] = "END"
    line_id: str | None = None


Step = Annotated[
    Union[
        TextStep,
        ChoiceStep,
        GiveItemStep,
        UpdateFlagStep,
        CallGhostStep,
        CallMediationStep,
        ScreenEffectStep,
        EndStep,
    ],
    Field(discriminator="t"),
]


class StoryService(BaseModel):
    """Declares that a story carries a spirit's resolution arc."""
    spirit_id: str
    trigger_line: int  # 1-based step index of the ghost call


class StoryNode(BaseModel):
    id: str
    anchor: str
    service: StoryService | None = None
    steps: list[Step] = Field(default_factory=list)


# -----------------------------------------------------------------------------
# World state
# -----------------------------------------------------------------------------

class WorldStateData(BaseModel):
    """
    The persisted world document.

    `flags` is the open extension point: ghost states, obsession states,
    story completion markers, conversation step counters and settings all
    live there.

    Saves use the camelCase names `resolvedSpirits` and `dialogueSummary`;
    the snake_case names are accepted on input too.
    """
    model_config = ConfigDict(populate_by_name=True)

    location: str = "harbour-clinic-alley"
    miasma: Miasma = Miasma.TURBID
    merit: Merit = Merit.LOW
    companions: list[str] = Field(default_factory=list)
    items: list[str] = Field(default_factory=list)
    wordcards: list[str] = Field(default_factory=list)
    flags: dict[str, Any] = Field(default_factory=dict)
    resolved_spirits: list[str] = Field(default_factory=list, alias="resolvedSpirits")
    dialogue_summary: list[str] = Field(default_factory=list, alias="dialogueSummary")
    version: int = SCHEMA_VERSION


class SavePayload(BaseModel):
    """On-disk shape of a save slot."""
    world: WorldStateData


class SaveSlotInfo(BaseModel):
    slot: int
    exists: bool
    name: str
    last_saved_at: float | None = None
