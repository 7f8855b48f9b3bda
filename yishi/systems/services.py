"""
Story-service index.

A story may declare that it carries a spirit's resolution arc via its
`service` block. The binding is only trusted if the declared trigger line
really is a ghost call for that spirit, either directly or as one of the
options of a CHOICE step.
"""

import logging
from dataclasses import dataclass, field

from ..errors import DataError
from ..state.schema import CallGhostOption, CallGhostStep, ChoiceStep, StoryNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoryServiceEntry:
    story_id: str
    anchor_id: str
    spirit_id: str
    trigger_line: int


@dataclass
class StoryServiceIndex:
    by_anchor: dict[str, StoryServiceEntry] = field(default_factory=dict)
    by_spirit: dict[str, StoryServiceEntry] = field(default_factory=dict)

    def spirit_for_anchor(self, anchor_id: str) -> str | None:
        entry = self.by_anchor.get(anchor_id)
        return entry.spirit_id if entry else None

    def anchor_for_spirit(self, spirit_id: str) -> str | None:
        entry = self.by_spirit.get(spirit_id)
        return entry.anchor_id if entry else None


def validate_service(story: StoryNode) -> str | None:
    """Return why a story's service binding is invalid, or None if it holds."""
    service = story.service
    if service is None or not service.spirit_id:
        return "no service"

    line = service.trigger_line
    if line <= 0 or line > len(story.steps):
        return f"trigger line {line} out of range"

    step = story.steps[line - 1]
    if isinstance(step, CallGhostStep):
        if step.spirit_id != service.spirit_id:
            return f"trigger line calls {step.spirit_id}, not {service.spirit_id}"
        return None
    if isinstance(step, ChoiceStep):
        if any(
            isinstance(opt, CallGhostOption) and opt.spirit_id == service.spirit_id
            for opt in step.options
        ):
            return None
        return "no choice option calls the declared spirit"
    return f"trigger line is a {step.t} step"


def build_story_service_index(stories: list[StoryNode], strict: bool = False) -> StoryServiceIndex:
    """
    Index valid service bindings by anchor and by spirit (first entry wins).

    Invalid bindings are dropped with a debug log. With strict=True they raise.

    Raises:
        DataError: in strict mode, for the first invalid binding
    """
    index = StoryServiceIndex()

    for story in stories:
        if story.service is None:
            continue

        problem = validate_service(story)
        if problem is not None:
            if strict:
                raise DataError("story service", story.id, problem)
            logger.debug("Dropping service binding on %s: %s", story.id, problem)
            continue

        entry = StoryServiceEntry(
            story_id=story.id,
            anchor_id=story.anchor,
            spirit_id=story.service.spirit_id,
            trigger_line=story.service.trigger_line,
        )
        index.by_anchor.setdefault(entry.anchor_id, entry)
        index.by_spirit.setdefault(entry.spirit_id, entry)

    return index
