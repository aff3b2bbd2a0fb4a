"""
Severity levels and the threshold filter.
"""

from __future__ import annotations

from enum import Enum


class Severity(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    FATAL = "FATAL"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_RANKS = {
    Severity.DEBUG: 0,
    Severity.INFO: 1,
    Severity.WARNING: 2,
    Severity.ERROR: 3,
    Severity.FATAL: 4,
}

# Threshold names accepted by should_log(). Anything else fails open.
_THRESHOLDS = {
    "debug": Severity.DEBUG,
    "info": Severity.INFO,
    "warn": Severity.WARNING,
    "warning": Severity.WARNING,
    "error": Severity.ERROR,
}

_ALIASES = {
    "WARN": Severity.WARNING,
    "CRITICAL": Severity.FATAL,
}


def should_log(threshold: str | None, severity: Severity) -> bool:
    """Decide whether a record at ``severity`` passes the configured threshold.

    Unknown or empty thresholds emit everything.
    """
    minimum = _THRESHOLDS.get((threshold or "").strip().lower())
    if minimum is None:
        return True
    return severity >= minimum


def parse_severity(name: str) -> Severity:
    """Map a level name (case-insensitive, ``WARN``/``CRITICAL`` accepted) to a Severity."""
    key = name.strip().upper()
    if key in _ALIASES:
        return _ALIASES[key]
    return Severity(key)
