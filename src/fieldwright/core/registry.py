# src/fieldwright/core/registry.py
"""Metadata registry: per-schema, per-field stage pipelines.

A side table keyed by (schema class, field name), populated while schema
classes are being defined. Schema classes themselves hold no pipeline
state; everything the engine needs is read back from here.

Inheritance: a subclass sees every ancestor's fields. For a field declared
on both an ancestor and a subclass, the ancestor's stages run first,
followed by the subclass's own stages.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from fieldwright.contracts.enums import ExecutionStrategy, StageKind
from fieldwright.contracts.errors import RegistrationError
from fieldwright.contracts.references import Reference
from fieldwright.contracts.sentinels import MISSING
from fieldwright.contracts.stage import Stage

if TYPE_CHECKING:
    from fieldwright.core.cascade import Style
    from fieldwright.core.matching import MatchConfig


@dataclass(frozen=True)
class FieldSpec:
    """Declaration-level metadata for one field (stages live separately)."""

    name: str
    value_type: type | None = None
    style: Style | None = None
    depends_on: tuple[Reference, ...] = ()
    examples: tuple[Any, ...] | None = None
    examples_description: str | None = None
    staging: bool = False
    discriminator: Any = MISSING
    matching: MatchConfig | None = None
    declared: bool = True


@dataclass(frozen=True)
class ObjectRule:
    """Whole-instance rule run once against the finished instance.

    ``check`` receives the resolved values mapping and returns True/None to
    pass, False or a message string to fail.
    """

    check: Callable[[Mapping[str, Any]], bool | str | None]
    rule: str = "object_rule"
    message: str | None = None


@dataclass(frozen=True)
class SchemaOptions:
    """Schema-level declarations. None means "inherit or use the engine default"."""

    strategy: ExecutionStrategy | None = None
    manage_all: bool | frozenset[str] | None = None
    default_transforms: Mapping[type, Style] | None = None
    matching: MatchConfig | None = None
    rules: tuple[ObjectRule, ...] = ()


@dataclass
class _SchemaEntry:
    options: SchemaOptions = field(default_factory=SchemaOptions)
    order: list[str] = field(default_factory=list)
    specs: dict[str, FieldSpec] = field(default_factory=dict)
    stages: dict[str, list[Stage]] = field(default_factory=dict)
    cross: dict[str, list[Stage]] = field(default_factory=dict)


class MetadataRegistry:
    """Collects stage pipelines at schema-definition time.

    Writes happen while classes are being defined (under a lock); reads
    after that are safe from any number of concurrent create() calls.
    """

    def __init__(self) -> None:
        self._entries: dict[type, _SchemaEntry] = {}
        self._lock = threading.Lock()

    def _entry(self, schema: type) -> _SchemaEntry:
        entry = self._entries.get(schema)
        if entry is None:
            entry = _SchemaEntry()
            self._entries[schema] = entry
        return entry

    def _lineage(self, schema: type) -> list[type]:
        """Registered classes in the MRO, most distant ancestor first."""
        return [klass for klass in reversed(schema.__mro__) if klass in self._entries]

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_schema(self, schema: type, options: SchemaOptions) -> None:
        with self._lock:
            self._entry(schema).options = options

    def register_field(self, schema: type, spec: FieldSpec) -> None:
        with self._lock:
            entry = self._entry(schema)
            if spec.name not in entry.specs:
                entry.order.append(spec.name)
                entry.stages.setdefault(spec.name, [])
            entry.specs[spec.name] = spec

    def register(self, schema: type, field_name: str, stage: Stage) -> None:
        """Append a stage to a field's pipeline, preserving declaration order."""
        if not isinstance(stage, Stage):
            raise RegistrationError(f"{schema.__name__}.{field_name}: {stage!r} is not a Stage")
        with self._lock:
            entry = self._entry(schema)
            if field_name not in entry.specs:
                entry.order.append(field_name)
                entry.specs[field_name] = FieldSpec(name=field_name)
            if stage.kind is StageKind.CROSS_VALIDATION:
                entry.cross.setdefault(field_name, []).append(stage)
            else:
                entry.stages.setdefault(field_name, []).append(stage)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def is_registered(self, schema: type) -> bool:
        return schema in self._entries

    def field_names(self, schema: type) -> list[str]:
        """All declared field names, ancestors' declaration order first."""
        names: list[str] = []
        seen: set[str] = set()
        for klass in self._lineage(schema):
            for name in self._entries[klass].order:
                if name not in seen:
                    seen.add(name)
                    names.append(name)
        return names

    def get_pipeline(self, schema: type, field_name: str) -> list[Stage]:
        """Fully merged, ordered pipeline: ancestor stages before the child's own."""
        pipeline: list[Stage] = []
        for klass in self._lineage(schema):
            pipeline.extend(self._entries[klass].stages.get(field_name, ()))
        return pipeline

    def declared_pipelines(self, schema: type, field_name: str) -> list[list[Stage]]:
        """Per-class stage lists (ancestor first), for per-declaration checks."""
        return [
            list(self._entries[klass].stages[field_name])
            for klass in self._lineage(schema)
            if self._entries[klass].stages.get(field_name)
        ]

    def get_cross_rules(self, schema: type, field_name: str) -> list[Stage]:
        rules: list[Stage] = []
        for klass in self._lineage(schema):
            rules.extend(self._entries[klass].cross.get(field_name, ()))
        return rules

    def get_field_spec(self, schema: type, field_name: str) -> FieldSpec:
        """Merged spec; a subclass's explicit settings override its ancestors'."""
        merged: FieldSpec | None = None
        for klass in self._lineage(schema):
            spec = self._entries[klass].specs.get(field_name)
            if spec is None:
                continue
            if merged is None:
                merged = spec
                continue
            if not spec.declared:
                continue
            merged = replace(
                merged,
                value_type=spec.value_type or merged.value_type,
                style=spec.style or merged.style,
                depends_on=merged.depends_on + spec.depends_on,
                examples=spec.examples if spec.examples is not None else merged.examples,
                examples_description=spec.examples_description or merged.examples_description,
                staging=spec.staging or merged.staging,
                discriminator=spec.discriminator if spec.discriminator is not MISSING else merged.discriminator,
                matching=spec.matching or merged.matching,
                declared=True,
            )
        if merged is None:
            raise RegistrationError(f"{schema.__name__} has no field '{field_name}'")
        return merged

    def get_schema_options(self, schema: type) -> SchemaOptions:
        """Schema options merged through inheritance (nearest class wins)."""
        merged = SchemaOptions()
        for klass in self._lineage(schema):
            options = self._entries[klass].options
            merged = SchemaOptions(
                strategy=options.strategy or merged.strategy,
                manage_all=options.manage_all if options.manage_all is not None else merged.manage_all,
                default_transforms=(
                    {**(merged.default_transforms or {}), **options.default_transforms}
                    if options.default_transforms is not None
                    else merged.default_transforms
                ),
                matching=options.matching or merged.matching,
                rules=merged.rules + options.rules,
            )
        return merged

    def managed_fields(self, schema: type, annotated: Iterable[str]) -> list[str]:
        """Fields the engine processes.

        A field with an empty pipeline is skipped unless the schema's
        manage_all policy covers it. ``annotated`` adds annotation-only
        attributes that manage_all may pull in.
        """
        options = self.get_schema_options(schema)
        names = self.field_names(schema)
        for name in annotated:
            if name not in names:
                names.append(name)

        def covered(name: str) -> bool:
            policy = options.manage_all
            if policy is None or policy is False:
                return False
            if policy is True:
                return True
            return name in policy

        declared = set(self.field_names(schema))
        managed: list[str] = []
        for name in names:
            has_stages = bool(self.get_pipeline(schema, name)) or bool(self.get_cross_rules(schema, name))
            has_style = name in declared and self.get_field_spec(schema, name).style is not None
            if has_stages or has_style or covered(name):
                managed.append(name)
        return managed


registry = MetadataRegistry()
"""Process-wide registry populated by Schema class definitions."""
