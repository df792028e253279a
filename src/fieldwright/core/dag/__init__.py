"""Field dependency graph: construction, cycle detection and ordering."""

from fieldwright.core.dag.builder import build_dependency_graph, collect_parent_references
from fieldwright.core.dag.graph import DependencyGraph
from fieldwright.core.dag.models import FieldNode

__all__ = [
    "DependencyGraph",
    "FieldNode",
    "build_dependency_graph",
    "collect_parent_references",
]
