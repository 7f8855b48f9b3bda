"""
Condition mini-language as pure functions.

Gating predicates are written as `<kind>:<rest>`:

    holds:jade_pendant        item check against inventory
    flag:met_lin              truthiness of a flag
    flag:favour=2             flag equals a parsed literal

Parsing raises ConditionParseError. Gating callers use check_condition(),
which treats any failure as "not met".
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterable, Literal

from ..errors import ConditionParseError

if TYPE_CHECKING:
    from ..state.schema import WorldStateData

logger = logging.getLogger(__name__)


ITEM_KINDS = {"holds", "holds-item", "item", "持有"}
FLAG_KINDS = {"flag", "旗標"}

_UNSET = object()

# Plain decimal literals only; no nan, infinity, hex or digit separators
NUMBER_PATTERN = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")


@dataclass(frozen=True)
class ParsedCondition:
    """
    A parsed predicate.

    `expect` is _UNSET for bare flag checks (truthiness); item checks never
    carry an expectation.
    """
    kind: Literal["item", "flag"]
    key: str
    expect: Any = _UNSET

    @property
    def has_expect(self) -> bool:
        return self.expect is not _UNSET


VACUOUS = ParsedCondition(kind="flag", key="", expect=True)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"not a JSON literal: {name}")


def parse_expected_value(value: str) -> Any:
    """Parse a flag's expected value: bool, then number, then JSON, then raw."""
    if value == "" or value == "true":
        return True
    if value == "false":
        return False
    if NUMBER_PATTERN.match(value):
        if "." in value or "e" in value.lower():
            return float(value)
        return int(value)
    try:
        return json.loads(value, parse_constant=_reject_constant)
    except ValueError:
        return value


def parse_condition(raw: str) -> ParsedCondition:
    """
    Parse one condition string.

    Raises:
        ConditionParseError: if the kind prefix is not recognised
    """
    text = (raw or "").strip()
    if not text:
        return VACUOUS

    kind_part, _, rest_part = text.partition(":")
    kind = kind_part.strip()
    rest = rest_part.strip()

    if kind in ITEM_KINDS:
        return ParsedCondition(kind="item", key=rest)

    if kind in FLAG_KINDS:
        key_part, sep, expect_part = rest.partition("=")
        key = key_part.strip()
        if not sep:
            return ParsedCondition(kind="flag", key=key)
        return ParsedCondition(kind="flag", key=key, expect=parse_expected_value(expect_part.strip()))

    raise ConditionParseError(raw)


def _flags_equal(actual: Any, expected: Any) -> bool:
    # bool is an int subclass; keep True from matching 1
    if isinstance(actual, bool) != isinstance(expected, bool):
        return False
    return actual == expected


def evaluate_parsed(parsed: ParsedCondition, world: "WorldStateData") -> bool:
    if parsed.kind == "item":
        return parsed.key in world.items
    if parsed == VACUOUS:
        return True
    actual = world.flags.get(parsed.key)
    if not parsed.has_expect:
        return bool(actual)
    if parsed.key not in world.flags:
        return False
    return _flags_equal(actual, parsed.expect)


def evaluate_condition(raw: str, world: "WorldStateData") -> bool:
    """Evaluate a condition standalone. Parse errors propagate."""
    return evaluate_parsed(parse_condition(raw), world)


def check_condition(raw: str, world: "WorldStateData") -> bool:
    """Evaluate a condition for gating. Any failure counts as not met."""
    try:
        return evaluate_condition(raw, world)
    except Exception as e:
        logger.warning("Condition %r failed closed: %s", raw, e)
        return False


def check_all(conditions: Iterable[str], world: "WorldStateData") -> bool:
    """True when every gating condition holds. Empty list is vacuously true."""
    return all(check_condition(c, world) for c in conditions)
