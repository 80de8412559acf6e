"""Hierarchical, concurrency-safe diagnostics collector.

A ``DiagnosticsScope`` is created once per request and handed to every
stage. Child scopes (``scope.child(package)``) share the parent's log and
only add a default package attribution, so entries recorded anywhere in
the tree are visible from the top scope.

The log is append-only and guarded by a lock: fetch tasks may record from
worker threads or concurrently scheduled coroutines, while ``drain()`` and
``has_fatal()`` are synchronous queries made at join points.
"""

from __future__ import annotations

import itertools
import logging
import threading

from pkggraph.core.diagnostics.models import Diagnostic, Severity

logger = logging.getLogger(__name__)

_LOG_LEVELS: dict[Severity, int] = {
    Severity.DEBUG: logging.DEBUG,
    Severity.INFO: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


class _DiagnosticsLog:
    """Shared storage behind a tree of scopes."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: list[Diagnostic] = []
        self._counter = itertools.count()

    def append(
        self,
        severity: Severity,
        message: str,
        package: str | None,
        error: Exception | None,
    ) -> Diagnostic:
        with self._lock:
            entry = Diagnostic(
                severity=severity,
                message=message,
                package=package,
                error=error,
                sequence=next(self._counter),
            )
            self._entries.append(entry)
        return entry

    def snapshot(self) -> list[Diagnostic]:
        with self._lock:
            return list(self._entries)

    def take(self) -> list[Diagnostic]:
        with self._lock:
            entries, self._entries = self._entries, []
            return entries


class DiagnosticsScope:
    """Collector of error, warning, and note entries attributable to a package.

    Example::

        diagnostics = DiagnosticsScope()
        pkg_scope = diagnostics.child("swift-mmio")
        pkg_scope.warning("version range spans 3 major versions")
        diagnostics.has_fatal()   # False
        diagnostics.drain()       # [Diagnostic(WARNING, ..., package="swift-mmio")]
    """

    def __init__(
        self,
        package: object | None = None,
        *,
        _log: _DiagnosticsLog | None = None,
    ) -> None:
        self._log = _log if _log is not None else _DiagnosticsLog()
        self._package = str(package) if package is not None else None

    @property
    def package(self) -> str | None:
        """Default package attribution for entries recorded in this scope."""
        return self._package

    def child(self, package: object) -> DiagnosticsScope:
        """Return a sub-scope attributing its entries to *package*."""
        return DiagnosticsScope(package, _log=self._log)

    # -- Recording ----------------------------------------------------------

    def record(
        self,
        severity: Severity,
        message: str,
        package: object | None = None,
        error: Exception | None = None,
    ) -> Diagnostic:
        """Append an entry to the shared log.

        Args:
            severity: Entry severity; ERROR entries are fatal.
            message: Human-readable description.
            package: Package attribution. Defaults to this scope's package.
            error: The exception describing the problem, if any.

        Returns:
            The recorded ``Diagnostic``.
        """
        owner = str(package) if package is not None else self._package
        entry = self._log.append(severity, message, owner, error)
        logger.log(_LOG_LEVELS[severity], "%s", entry)
        return entry

    def error(self, error: Exception, package: object | None = None) -> Diagnostic:
        """Record *error* as a fatal entry."""
        return self.record(Severity.ERROR, str(error), package, error)

    def warning(self, message: str, package: object | None = None) -> Diagnostic:
        return self.record(Severity.WARNING, message, package)

    def note(self, message: str, package: object | None = None) -> Diagnostic:
        return self.record(Severity.INFO, message, package)

    def debug(self, message: str, package: object | None = None) -> Diagnostic:
        return self.record(Severity.DEBUG, message, package)

    # -- Queries ------------------------------------------------------------

    def has_fatal(self) -> bool:
        """Return True if any fatal entry has been recorded and not drained."""
        return any(entry.is_fatal for entry in self._log.snapshot())

    @property
    def entries(self) -> list[Diagnostic]:
        """All entries recorded so far, in recording order, without draining."""
        return self._log.snapshot()

    def errors(self) -> list[Diagnostic]:
        return [entry for entry in self._log.snapshot() if entry.is_fatal]

    def drain(self) -> list[Diagnostic]:
        """Remove and return every recorded entry in recording order."""
        return sorted(self._log.take(), key=lambda entry: entry.sequence)

    def by_package(self) -> dict[str | None, list[Diagnostic]]:
        """Group the current entries by package attribution.

        Session-wide entries are grouped under ``None``. Groups appear in
        the order their first entry was recorded.
        """
        grouped: dict[str | None, list[Diagnostic]] = {}
        for entry in self._log.snapshot():
            grouped.setdefault(entry.package, []).append(entry)
        return grouped
