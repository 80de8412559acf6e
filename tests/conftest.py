"""Shared fixtures for pkggraph tests.

The ``firmware`` fixtures model a small embedded project: the root package
``firmware`` uses the ``MMIO`` product of ``mmio``, whose macro target in
turn uses the ``SwiftSyntax`` product of ``swift-syntax``. The root and
``swift-syntax`` also carry test targets, and the root vends its ``Core``
executable as a product.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

import pytest
import yaml

from pkggraph.core.dependency import InMemoryFetcher, Manifest
from pkggraph.core.diagnostics import DiagnosticsScope


def _mmio(version: str) -> dict[str, Any]:
    return {
        "name": "mmio",
        "location": "/mmio",
        "dependencies": [
            {"location": "/swift-syntax", "requirement": {"upToNextMajor": "509.0.0"}},
        ],
        "products": [
            {"name": "MMIO", "kind": "library", "linkage": "automatic", "targets": ["MMIO"]},
        ],
        "targets": [
            {"name": "MMIO", "dependencies": ["MMIOMacros"]},
            {
                "name": "MMIOMacros",
                "kind": "macro",
                "dependencies": [{"product": "SwiftSyntax", "package": "swift-syntax"}],
            },
        ],
    }


def _swift_syntax() -> dict[str, Any]:
    return {
        "name": "swift-syntax",
        "location": "/swift-syntax",
        "products": [
            {"name": "SwiftSyntax", "kind": "library", "linkage": "automatic", "targets": ["SwiftSyntax"]},
        ],
        "targets": [
            {"name": "SwiftSyntax"},
            {"name": "SwiftSyntaxTests", "kind": "test", "dependencies": ["SwiftSyntax"]},
        ],
    }


FIRMWARE_ROOT: dict[str, Any] = {
    "name": "firmware",
    "location": "/firmware",
    "dependencies": [
        {"location": "/mmio", "requirement": {"range": ["1.0.0", "2.0.0"]}},
    ],
    "products": [{"name": "Core", "kind": "executable", "targets": ["Core"]}],
    "targets": [
        {"name": "Core", "kind": "executable", "dependencies": ["HAL"]},
        {"name": "HAL", "dependencies": [{"product": "MMIO", "package": "mmio"}]},
        {"name": "CoreTests", "kind": "test", "dependencies": ["Core"]},
        {"name": "HALTests", "kind": "test", "dependencies": ["HAL"]},
    ],
}

FIRMWARE_INDEX: dict[str, Any] = {
    "packages": {
        "mmio": {
            "versions": {v: _mmio(v) for v in ("1.0.0", "1.2.0", "2.0.0")},
        },
        "swift-syntax": {
            "versions": {v: _swift_syntax() for v in ("509.0.0", "509.1.0", "510.0.0")},
        },
    },
}


@pytest.fixture
def diagnostics() -> DiagnosticsScope:
    """A fresh top-level diagnostics scope."""
    return DiagnosticsScope()


@pytest.fixture
def firmware_root() -> Manifest:
    return Manifest.from_dict(copy.deepcopy(FIRMWARE_ROOT))


@pytest.fixture
def firmware_fetcher() -> InMemoryFetcher:
    return InMemoryFetcher.from_dict(copy.deepcopy(FIRMWARE_INDEX))


@pytest.fixture
def firmware_workspace(tmp_path: Path) -> Path:
    """Write the firmware example as a single workspace YAML file.

    The file holds the root manifest under ``roots`` and the package index
    under ``packages``.
    """
    project = tmp_path / "firmware"
    project.mkdir()
    workspace = project / "workspace.yaml"
    data = {"roots": [copy.deepcopy(FIRMWARE_ROOT)], **copy.deepcopy(FIRMWARE_INDEX)}
    workspace.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    return workspace
