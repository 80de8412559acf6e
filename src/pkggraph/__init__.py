"""pkggraph: Dependency resolution and module graph construction for source packages."""

from __future__ import annotations

__version__ = "0.1.0"
__license__ = "MIT"
