# src/fieldwright/core/dag/models.py
"""Types for dependency-graph construction.

Leaf module: no intra-package imports beyond contracts.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class FieldNode:
    """One schema field in the dependency graph.

    ``index`` is the declaration position, used as the deterministic
    tie-break wherever more than one order is valid.
    """

    name: str
    index: int
    parent_dependencies: frozenset[str] = field(default_factory=frozenset)


def suggest_similar(name: str, candidates: list[str]) -> list[str]:
    """Suggest similar names for reference errors."""
    return difflib.get_close_matches(name, candidates, n=3, cutoff=0.6)
