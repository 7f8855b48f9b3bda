"""
Spawn / accessibility resolution.

Decides which anchors the player can reach and which stories can be
started at an anchor, from the current world state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..rules.conditions import check_all
from ..state.schema import Anchor, StoryNode
from .services import StoryServiceEntry, StoryServiceIndex

if TYPE_CHECKING:
    from ..context import GameContext


STORY_FLAG_PREFIX = "story:"


def story_flag_key(story_id: str) -> str:
    return f"{STORY_FLAG_PREFIX}{story_id}"


@dataclass
class DirectedAnchor:
    """An accessible anchor plus what the resolver learned about it."""
    anchor: Anchor
    resolved: bool = False
    service: StoryServiceEntry | None = None

    @property
    def id(self) -> str:
        return self.anchor.id


class SpawnDirector:
    """
    Resolves reachable anchors and startable stories.

    Anchors resolve their bound spirit through the context's service index,
    then the anchor's own `service_spirit`.
    """

    def __init__(self, context: "GameContext"):
        self.context = context
        self._accessible: dict[str, DirectedAnchor] = {}

    @property
    def index(self) -> StoryServiceIndex:
        return self.context.service_index

    def bound_spirit(self, anchor: Anchor) -> str | None:
        """Spirit whose arc this anchor carries: service index, else `service_spirit`."""
        return self.index.spirit_for_anchor(anchor.id) or anchor.service_spirit

    def is_resolved(self, anchor: Anchor) -> bool:
        spirit_id = self.bound_spirit(anchor)
        return bool(spirit_id) and spirit_id in self.context.world.data.resolved_spirits

    def is_accessible(self, anchor: Anchor) -> bool:
        if self.is_resolved(anchor):
            return True
        return check_all(anchor.conditions, self.context.world.data)

    def list_accessible_anchors(self) -> list[DirectedAnchor]:
        """Every anchor that is resolved or whose conditions all hold."""
        self._accessible.clear()
        result = []
        for anchor in self.context.data.anchors:
            if not self.is_accessible(anchor):
                continue
            directed = DirectedAnchor(
                anchor=anchor,
                resolved=self.is_resolved(anchor),
                service=self.index.by_anchor.get(anchor.id),
            )
            result.append(directed)
            self._accessible[anchor.id] = directed
        return result

    def is_story_finished(self, story: StoryNode) -> bool:
        return bool(self.context.world.get_flag(story_flag_key(story.id)))

    def list_startable_stories(self, anchor_id: str | None) -> list[StoryNode]:
        """
        Stories at an anchor that have not been completed.

        Resolved anchors offer nothing new; inaccessible ones offer nothing.
        """
        if not anchor_id:
            return []
        if not self._accessible:
            self.list_accessible_anchors()
        directed = self._accessible.get(anchor_id)
        if directed is None or directed.resolved:
            return []
        return [
            story
            for story in self.context.data.stories
            if story.anchor == anchor_id and not self.is_story_finished(story)
        ]

    def echo_script(self, anchor_id: str) -> str | None:
        """Post-completion echo story for a resolved anchor, if any."""
        directed = self._accessible.get(anchor_id)
        if directed is None or not directed.resolved:
            return None
        after = directed.anchor.after_completion
        return after.echo_script if after else None
