"""
Error taxonomy for the YISHI core.

Everything here is locally recoverable except DataError raised while a
story is being loaded.
"""


class YishiError(Exception):
    """Base class for core errors."""
    pass


class ConditionParseError(YishiError, ValueError):
    """A gating condition string could not be parsed."""
    def __init__(self, raw: str):
        self.raw = raw
        super().__init__(f"Unknown condition: {raw!r}")


class MissingTargetError(YishiError, LookupError):
    """A jump target or schema name could not be found."""
    pass


class DataError(YishiError):
    """A referenced spirit, story, item or npc id is missing from loaded data."""
    def __init__(self, kind: str, record_id: str, detail: str = ""):
        self.kind = kind
        self.record_id = record_id
        message = f"Unknown {kind}: {record_id!r}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class SubFlowError(YishiError):
    """A ghost-comm, mediation or nested story sub-flow was rejected."""
    def __init__(self, key: str, reason: str = ""):
        self.key = key
        self.reason = reason
        super().__init__(f"Sub-flow '{key}' rejected" + (f": {reason}" if reason else ""))
