# src/fieldwright/core/dag/builder.py
"""Dependency graph construction from resolved field pipelines.

Edges are inferred by scanning each stage's declared references:

- FieldRef(other)   -> edge other -> field
- FieldRef(self) / SelfValue -> no edge (the field's in-progress value)
- RawPath           -> no edge (reads the immutable raw snapshot)
- ParentRef         -> recorded on the node as a cross-graph dependency on
                       the enclosing instance, never an edge in this graph

Manual ``depends_on`` declarations are unioned in for reads hidden inside
opaque logic (an AI prompt built from the instance, a derived function that
reads ``ctx.instance`` directly).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from fieldwright.contracts.errors import RegistrationError
from fieldwright.contracts.references import FieldRef, ParentRef, Reference
from fieldwright.core.dag.graph import DependencyGraph
from fieldwright.core.dag.models import suggest_similar
from fieldwright.core.registry import MetadataRegistry

if TYPE_CHECKING:
    from fieldwright.core.cascade import ResolvedField


def _field_references(resolved: ResolvedField) -> list[Reference]:
    refs: list[Reference] = []
    for stage in resolved.pipeline:
        refs.extend(stage.references)
    refs.extend(resolved.spec.depends_on)
    return refs


def build_dependency_graph(schema: str, fields: Sequence[ResolvedField], *, declared: Iterable[str] = ()) -> DependencyGraph:
    """Build and freeze the dependency graph for one schema.

    Args:
        schema: Schema name (for error messages)
        fields: Resolved fields in declaration order
        declared: Every declared field name, managed or not (for messages)

    Raises:
        RegistrationError: If a reference names a field that is not managed
    """
    graph = DependencyGraph(schema)
    names = [resolved.name for resolved in fields]
    managed = set(names)
    all_declared = set(declared) | managed

    for index, resolved in enumerate(fields):
        refs = _field_references(resolved)
        parents = sorted({ref.name for ref in refs if isinstance(ref, ParentRef)})
        graph.add_field(resolved.name, index=index, parent_dependencies=parents)

    for resolved in fields:
        for ref in _field_references(resolved):
            if not isinstance(ref, FieldRef) or ref.name == resolved.name:
                continue
            if ref.name not in managed:
                if ref.name in all_declared:
                    raise RegistrationError(
                        f"{schema}.{resolved.name} depends on '{ref.name}', which has no pipeline and is not managed"
                    )
                suggestions = suggest_similar(ref.name, names)
                hint = f" Did you mean: {', '.join(suggestions)}?" if suggestions else ""
                raise RegistrationError(f"{schema}.{resolved.name} references unknown field '{ref.name}'.{hint}")
            graph.add_dependency(resolved.name, ref.name)

    graph.freeze()
    return graph


def collect_parent_references(schema: type, registry: MetadataRegistry) -> frozenset[str]:
    """Parent-instance fields a nested schema reads (``^.name`` references).

    Scans declared stages, styles and manual dependencies; type defaults can
    never reference fields, so the registry alone is sufficient.
    """
    names: set[str] = set()
    for field_name in registry.field_names(schema):
        spec = registry.get_field_spec(schema, field_name)
        stages = list(registry.get_pipeline(schema, field_name))
        if spec.style is not None:
            stages.extend(spec.style.stages)
        refs: list[Reference] = [ref for stage in stages for ref in stage.references]
        refs.extend(spec.depends_on)
        names.update(ref.name for ref in refs if isinstance(ref, ParentRef))
    return frozenset(names)
