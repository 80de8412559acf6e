"""Diagnostic data models: Severity and Diagnostic.

Kept separate from the scope so that the CLI formatters can import them
without pulling in the collector.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class Severity(IntEnum):
    """Ordered diagnostic severity.

    The integer encoding enables direct comparison: DEBUG < INFO < WARNING < ERROR.
    Only ERROR is fatal.
    """

    DEBUG = 1
    INFO = 2
    WARNING = 3
    ERROR = 4


@dataclass(frozen=True)
class Diagnostic:
    """A single entry recorded into a diagnostics scope.

    Attributes:
        severity: How serious the entry is.
        message: Human-readable description.
        package: Identity (as a string) of the package the entry is
            attributed to, or None for session-wide entries.
        error: The exception describing a fatal problem, if any.
        sequence: Monotonic position within the scope's log, used to
            preserve recording order when draining.
    """

    severity: Severity
    message: str
    package: str | None = None
    error: Exception | None = None
    sequence: int = 0

    @property
    def is_fatal(self) -> bool:
        return self.severity >= Severity.ERROR

    def __str__(self) -> str:
        prefix = f"{self.package}: " if self.package else ""
        return f"{self.severity.name.lower()}: {prefix}{self.message}"
