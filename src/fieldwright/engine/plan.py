# src/fieldwright/engine/plan.py
"""SchemaPlan: everything compiled once per schema and shared read-only.

A plan bundles the resolved pipelines, the dependency graph and its
orders, output field selection and cross rules. Plans are built by the
factory (tier-1 defaults differ per factory) and never mutated afterwards,
so any number of concurrent calls may read one plan.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog

from fieldwright.contracts.enums import ExecutionStrategy
from fieldwright.contracts.errors import RegistrationError
from fieldwright.contracts.references import FieldRef
from fieldwright.contracts.sentinels import MISSING
from fieldwright.contracts.stage import Stage
from fieldwright.core.cascade import CascadeResolver, ResolvedField
from fieldwright.core.dag import DependencyGraph, build_dependency_graph
from fieldwright.core.matching import MatchConfig
from fieldwright.core.registry import MetadataRegistry, ObjectRule
from fieldwright.engine.pipeline import FieldPipeline

slog = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SchemaPlan:
    """Compiled, immutable execution plan for one schema."""

    schema: type
    name: str
    fields: dict[str, ResolvedField]
    pipelines: dict[str, FieldPipeline]
    graph: DependencyGraph
    order: tuple[str, ...]
    output_fields: tuple[str, ...]
    declared_strategy: ExecutionStrategy | None
    matching: MatchConfig | None
    cross_rules: dict[str, tuple[Stage, ...]]
    object_rules: tuple[ObjectRule, ...]
    discriminator_field: str | None = None
    discriminator_value: Any = MISSING

    @property
    def cyclic(self) -> bool:
        return not self.graph.is_acyclic()


def compile_plan(schema: type, registry: MetadataRegistry, resolver: CascadeResolver) -> SchemaPlan:
    """Resolve pipelines and build the dependency graph for ``schema``.

    Raises:
        RegistrationError: If the schema is not registered or a reference is invalid
        CascadeError: If a default or style is malformed
    """
    if not registry.is_registered(schema):
        raise RegistrationError(f"{schema!r} is not a registered schema")

    declared = registry.field_names(schema)
    managed = registry.managed_fields(schema, ())
    resolved = resolver.resolve_all(schema, managed)
    graph = build_dependency_graph(schema.__name__, resolved, declared=declared)
    options = registry.get_schema_options(schema)

    fields = {item.name: item for item in resolved}
    cross_rules = {item.name: item.cross_rules for item in resolved if item.cross_rules}
    for name, rules in cross_rules.items():
        for rule in rules:
            for ref in rule.references:
                if isinstance(ref, FieldRef) and ref.name not in fields:
                    raise RegistrationError(f"{schema.__name__}.{name}: cross rule {rule!r} references unmanaged field '{ref.name}'")

    discriminator_field = None
    discriminator_value: Any = MISSING
    for item in resolved:
        if item.spec.discriminator is not MISSING:
            discriminator_field = item.name
            discriminator_value = item.spec.discriminator

    plan = SchemaPlan(
        schema=schema,
        name=schema.__name__,
        fields=fields,
        pipelines={item.name: FieldPipeline(item) for item in resolved},
        graph=graph,
        order=tuple(graph.processing_order()),
        output_fields=tuple(item.name for item in resolved if not item.spec.staging),
        declared_strategy=options.strategy,
        matching=options.matching,
        cross_rules=cross_rules,
        object_rules=options.rules,
        discriminator_field=discriminator_field,
        discriminator_value=discriminator_value,
    )
    slog.debug(
        "schema_compiled",
        schema=plan.name,
        fields=len(plan.fields),
        edges=graph.edge_count,
        cyclic=plan.cyclic,
        strategy=str(options.strategy) if options.strategy else None,
    )
    return plan
