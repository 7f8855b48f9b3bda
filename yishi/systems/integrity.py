"""
Game data integrity audit.

Catches authoring mistakes before they surface in play:
- records that fail schema validation
- duplicate entries by each record's unique keys (default: id)
- spirit backgrounds that are near copies of each other
- gating conditions that do not parse
- story scripts with duplicate line ids, dangling jumps, unknown
  references or service bindings that do not hold

Exit codes used by the CLI:
    0 - All checks passed
    1 - Warnings only
    2 - Errors found
"""

from __future__ import annotations

import json
import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import ValidationError

from ..errors import ConditionParseError, DataError
from ..rules.conditions import parse_condition
from ..state.repo import COLLECTIONS, DataSource
from ..state.schema import (
    CallGhostOption,
    CallGhostStep,
    CallMediationOption,
    CallMediationStep,
    ChoiceStep,
    GotoLineOption,
    StartStoryOption,
    StoryNode,
)
from .services import validate_service

SIMILARITY_THRESHOLD = 0.8
SHINGLE_SIZE = 3


# ─────────────────────────────────────────────────────────────────────────────
# Data Structures
# ─────────────────────────────────────────────────────────────────────────────


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class Issue:
    """A single validation issue."""

    category: str
    severity: Severity
    message: str
    collection: str | None = None
    context: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "severity": self.severity.value,
            "message": self.message,
            "collection": self.collection,
            "context": self.context,
        }


@dataclass
class AuditResult:
    """Complete audit results."""

    issues: list[Issue] = field(default_factory=list)
    stats: dict[str, int] = field(default_factory=dict)

    @property
    def error_count(self) -> int:
        return len([i for i in self.issues if i.severity == Severity.ERROR])

    @property
    def warning_count(self) -> int:
        return len([i for i in self.issues if i.severity == Severity.WARNING])

    @property
    def is_healthy(self) -> bool:
        return self.error_count == 0

    @property
    def exit_code(self) -> int:
        if self.error_count:
            return 2
        if self.warning_count:
            return 1
        return 0

    def to_dict(self) -> dict:
        return {
            "status": "pass" if self.is_healthy else "fail",
            "stats": self.stats,
            "summary": {"errors": self.error_count, "warnings": self.warning_count},
            "issues": [i.to_dict() for i in self.issues],
        }


# ─────────────────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────────────────


def unique_keys_for(entry: dict) -> list[str]:
    constraint = entry.get("constraint") if isinstance(entry, dict) else None
    keys = constraint.get("unique_keys") if isinstance(constraint, dict) else None
    if isinstance(keys, list) and keys:
        return keys
    return ["id"]


def sanitize_text(text: Any) -> str:
    """NFKC-normalise and drop punctuation, symbols and whitespace."""
    if not text:
        return ""
    normalized = unicodedata.normalize("NFKC", str(text))
    return "".join(
        ch for ch in normalized
        if not ch.isspace() and unicodedata.category(ch)[0] not in ("P", "S")
    )


def shingles(text: str, size: int = SHINGLE_SIZE) -> set[str]:
    if len(text) < size:
        return set()
    return {text[i:i + size] for i in range(len(text) - size + 1)}


def jaccard(left: set[str], right: set[str]) -> float:
    union = left | right
    if not union:
        return 0.0
    return len(left & right) / len(union)


# ─────────────────────────────────────────────────────────────────────────────
# Checks
# ─────────────────────────────────────────────────────────────────────────────


def check_uniqueness(name: str, entries: list[dict]) -> list[Issue]:
    """Entries sharing the values of their unique keys."""
    buckets: dict[str, list[dict]] = {}
    for entry in entries:
        keys = unique_keys_for(entry)
        values = [json.dumps(entry.get(k), ensure_ascii=False, sort_keys=True) for k in keys]
        buckets.setdefault(f"{'|'.join(keys)}::{'|'.join(values)}", []).append(entry)

    issues = []
    for bucket in buckets.values():
        if len(bucket) < 2:
            continue
        keys = unique_keys_for(bucket[0])
        descriptor = ", ".join(f"{k}={bucket[0].get(k, '(unset)')}" for k in keys)
        ids = [str(e.get("id", "(no id)")) for e in bucket]
        issues.append(Issue(
            category="uniqueness",
            severity=Severity.ERROR,
            message=f"{name}: duplicate entries ({descriptor}) -> ids: {', '.join(ids)}",
            collection=name,
            context={"keys": keys, "ids": ids},
        ))
    return issues


def check_similarity(name: str, entries: list[dict], text_field: str = "background") -> list[Issue]:
    """Pairs of entries whose text is suspiciously alike."""
    processed = []
    for entry in entries:
        text = sanitize_text(entry.get(text_field))
        if len(text) >= SHINGLE_SIZE:
            processed.append((str(entry.get("id", "(no id)")), shingles(text)))

    issues = []
    for i, (left_id, left) in enumerate(processed):
        for right_id, right in processed[i + 1:]:
            score = jaccard(left, right)
            if score > SIMILARITY_THRESHOLD:
                issues.append(Issue(
                    category="similarity",
                    severity=Severity.WARNING,
                    message=f"{name}: {text_field} near-duplicate ({left_id} vs {right_id}) -> Jaccard={score:.2f}",
                    collection=name,
                    context={"left": left_id, "right": right_id, "score": round(score, 4)},
                ))
    return issues


def check_conditions(name: str, entries: list[dict], field_name: str) -> list[Issue]:
    issues = []
    for entry in entries:
        for raw in entry.get(field_name) or []:
            try:
                parse_condition(raw)
            except ConditionParseError as e:
                issues.append(Issue(
                    category="condition",
                    severity=Severity.ERROR,
                    message=f"{name}: {entry.get('id', '(no id)')} has unparsable condition {raw!r}",
                    collection=name,
                    context={"error": str(e)},
                ))
    return issues


def check_story(story: StoryNode, spirit_ids: set[str], story_ids: set[str],
                npc_ids: set[str], anchor_ids: set[str]) -> list[Issue]:
    """Line ids, jump targets, references and service binding of one story."""
    issues = []

    def add(category: str, severity: Severity, message: str) -> None:
        issues.append(Issue(category, severity, f"stories: {story.id} {message}", "stories"))

    if anchor_ids and story.anchor not in anchor_ids:
        add("reference", Severity.WARNING, f"sits at unknown anchor {story.anchor!r}")

    lines: set[str] = set()
    for step in story.steps:
        if step.line_id:
            if step.line_id in lines:
                add("lines", Severity.WARNING, f"repeats line id {step.line_id!r}")
            lines.add(step.line_id)

    for pos, step in enumerate(story.steps, start=1):
        if isinstance(step, CallGhostStep) and step.spirit_id not in spirit_ids:
            add("reference", Severity.ERROR, f"step {pos} calls unknown spirit {step.spirit_id!r}")
        elif isinstance(step, CallMediationStep) and npc_ids and step.npc_id not in npc_ids:
            add("reference", Severity.WARNING, f"step {pos} mediates with unknown npc {step.npc_id!r}")
        elif isinstance(step, ChoiceStep):
            for option in step.options:
                if isinstance(option, GotoLineOption) and option.target_line_id not in lines:
                    add("lines", Severity.WARNING, f"step {pos} jumps to missing line {option.target_line_id!r}")
                elif isinstance(option, StartStoryOption) and option.story_id not in story_ids:
                    add("reference", Severity.ERROR, f"step {pos} starts unknown story {option.story_id!r}")
                elif isinstance(option, CallGhostOption) and option.spirit_id not in spirit_ids:
                    add("reference", Severity.ERROR, f"step {pos} calls unknown spirit {option.spirit_id!r}")
                elif isinstance(option, CallMediationOption) and npc_ids and option.npc_id not in npc_ids:
                    add("reference", Severity.WARNING, f"step {pos} mediates with unknown npc {option.npc_id!r}")
                if option.next_line_id and option.next_line_id not in lines:
                    add("lines", Severity.WARNING, f"step {pos} continues at missing line {option.next_line_id!r}")

    if story.service is not None:
        problem = validate_service(story)
        if problem is not None:
            add("service", Severity.WARNING, f"service binding ignored: {problem}")

    return issues


# ─────────────────────────────────────────────────────────────────────────────
# Auditor
# ─────────────────────────────────────────────────────────────────────────────


class IntegrityAuditor:
    """Runs every check over a data source."""

    def __init__(self, source: DataSource):
        self.source = source

    def run(self) -> AuditResult:
        result = AuditResult()
        raw: dict[str, list[dict]] = {}

        for name in COLLECTIONS:
            try:
                raw[name] = [e for e in self.source.get(name) if isinstance(e, dict)]
            except DataError as e:
                result.issues.append(Issue("load", Severity.ERROR, str(e), name))
                raw[name] = []
            result.stats[name] = len(raw[name])

        for name, entries in raw.items():
            result.issues.extend(check_uniqueness(name, entries))
        result.issues.extend(check_similarity("spirits", raw["spirits"]))
        result.issues.extend(check_conditions("anchors", raw["anchors"], "conditions"))
        result.issues.extend(check_conditions("npcs", raw["npcs"], "arrival_conditions"))

        stories = self._validate("stories", raw["stories"], result)
        spirit_ids = {str(e.get("id")) for e in raw["spirits"]}
        story_ids = {s.id for s in stories}
        npc_ids = {str(e.get("id")) for e in raw["npcs"]}
        anchor_ids = {str(e.get("id")) for e in raw["anchors"]}
        for story in stories:
            result.issues.extend(check_story(story, spirit_ids, story_ids, npc_ids, anchor_ids))

        for name in COLLECTIONS:
            if name != "stories":
                self._validate(name, raw[name], result)
        return result

    def _validate(self, name: str, entries: list[dict], result: AuditResult) -> list[Any]:
        model = COLLECTIONS[name]
        valid = []
        for idx, entry in enumerate(entries):
            try:
                valid.append(model.model_validate(entry))
            except ValidationError as e:
                result.issues.append(Issue(
                    category="schema",
                    severity=Severity.ERROR,
                    message=f"{name}: {entry.get('id', f'#{idx}')} fails validation ({e.error_count()} errors)",
                    collection=name,
                    context={"errors": [err["msg"] for err in e.errors()]},
                ))
        return valid
