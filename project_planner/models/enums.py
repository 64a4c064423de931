"""Enumerations for the planning pipeline."""

from enum import Enum


class PipelineStatus(str, Enum):
    """Pipeline run status."""

    NOT_STARTED = "not_started"
    """Run has been created but no stage has executed."""

    PROCESSING = "processing"
    """Stages are executing."""

    RESUMING = "resuming"
    """State restored from a checkpoint, about to continue."""

    COMPLETED = "completed"
    """Every stage produced its output."""

    FAILED = "failed"
    """A stage failed and the run stopped."""


class Priority(str, Enum):
    """Task priority level."""

    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @property
    def rank(self) -> int:
        """Sort rank, lowest first."""
        return _PRIORITY_RANK[self]

    def bumped(self) -> "Priority":
        """Next level up, saturating at Critical."""
        return _PRIORITY_ORDER[max(0, self.rank - 1)]

    @classmethod
    def parse(cls, value: "str | Priority | None", default: "Priority | None" = None) -> "Priority":
        """Coerce free text into a priority, falling back to ``default`` (Medium)."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.strip().lower():
                    return member
        return default or cls.MEDIUM


_PRIORITY_ORDER = [Priority.CRITICAL, Priority.HIGH, Priority.MEDIUM, Priority.LOW]
_PRIORITY_RANK = {p: i for i, p in enumerate(_PRIORITY_ORDER)}


class EventLevel(str, Enum):
    """Severity for the event log."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def severity(self) -> int:
        """Numeric severity, higher is more severe."""
        return ["debug", "info", "warn", "error"].index(self.value)
