"""Diagnostics scope: hierarchical collector of errors, warnings, and notes."""

from pkggraph.core.diagnostics.models import Diagnostic, Severity
from pkggraph.core.diagnostics.scope import DiagnosticsScope

__all__ = [
    "Diagnostic",
    "DiagnosticsScope",
    "Severity",
]
