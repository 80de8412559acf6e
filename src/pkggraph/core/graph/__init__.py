"""Modules graph construction from a resolved package set."""

from pkggraph.core.graph.models import ModuleKey, ModuleNode, ModulesGraph
from pkggraph.core.graph.builder import GraphBuilder

__all__ = [
    "GraphBuilder",
    "ModuleKey",
    "ModuleNode",
    "ModulesGraph",
]
