"""
Game rules as pure functions.

Separates logic from data models for easier testing.
"""

from .conditions import (
    ParsedCondition,
    parse_condition,
    evaluate_condition,
    check_condition,
    check_all,
)

__all__ = [
    "ParsedCondition",
    "parse_condition",
    "evaluate_condition",
    "check_condition",
    "check_all",
]
