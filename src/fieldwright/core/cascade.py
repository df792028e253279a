# src/fieldwright/core/cascade.py
"""Cascade resolver: which pipeline ultimately governs each field.

Four tiers, lowest to highest priority:

1. Global default: the factory's per-value-type Style
2. Schema default: the schema's ``default_transforms`` per value type
3. Named bundle: a Style explicitly applied to one field
4. Field stages: stages declared directly on the field

Only fields with no tier-4 coercion/validation stages consult tiers 1-2.
Sourcing-only declarations (``Copy()``, ``DerivedFrom(...)``) choose where a
value comes from and do not count: such fields still receive the type
default. A tier-3 bundle replaces the type defaults and still allows tier-4
stages appended after it.

Resolution is pure and cached per (schema, field) for the resolver's
lifetime.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from fieldwright.contracts.enums import StageKind
from fieldwright.contracts.errors import CascadeError, RegistrationError
from fieldwright.contracts.references import FieldRef, ParentRef
from fieldwright.contracts.stage import CoercionStage, Stage, StageContext
from fieldwright.core.registry import FieldSpec, MetadataRegistry

_PHASE = {
    StageKind.SOURCING: 0,
    StageKind.COERCION: 1,
    StageKind.AI_TRANSFORM: 1,
    StageKind.VALIDATION: 2,
}


class Style:
    """Reusable named pipeline bundle (tier 3, and the unit of type defaults).

    Styles compose: a Style may include other Styles, which are flattened
    in place.

    Example:
        TRIM_LOWER = Style("trim_lower", CoerceTrim(), CoerceCase("lower"))
        EMAIL = Style("email", TRIM_LOWER, ValidatePattern(EMAIL_RE))
    """

    def __init__(self, name: str, *items: Stage | Style) -> None:
        self.name = name
        stages: list[Stage] = []
        for item in items:
            if isinstance(item, Style):
                stages.extend(item.stages)
            elif isinstance(item, Stage):
                stages.append(item)
            else:
                raise CascadeError(f"Style '{name}': {item!r} is neither a Stage nor a Style")
        for stage in stages:
            if stage.kind in (StageKind.SOURCING, StageKind.CROSS_VALIDATION):
                raise CascadeError(f"Style '{name}' may not contain {stage.kind} stage {stage!r}")
        check_stage_order(stages, f"style '{name}'")
        self.stages: tuple[Stage, ...] = tuple(stages)

    def __repr__(self) -> str:
        return f"Style({self.name!r}, {len(self.stages)} stages)"


class CascadeTier(StrEnum):
    """Which tier produced a field's non-sourcing stages."""

    FIELD = "field"
    STYLE = "style"
    SCHEMA_DEFAULT = "schema_default"
    GLOBAL_DEFAULT = "global_default"
    PASS_THROUGH = "pass_through"


@dataclass(frozen=True)
class ResolvedField:
    """Final, read-only pipeline for one field."""

    name: str
    pipeline: tuple[Stage, ...]
    tier: CascadeTier
    spec: FieldSpec
    cross_rules: tuple[Stage, ...] = ()


class TypeDefaults(CoercionStage):
    """Type-default dispatch for fields without a declared value type.

    Picks the Style registered for the nearest class in the runtime value's
    MRO and runs its stages in order.
    """

    is_async = True

    def __init__(self, styles: Mapping[type, Style]) -> None:
        super().__init__(rule="type_defaults")
        self.styles = dict(styles)

    def style_for(self, value: Any) -> Style | None:
        return lookup_type_style(self.styles, type(value))

    def apply(self, value: Any, ctx: StageContext) -> Any:
        style = self.style_for(value)
        if style is None:
            return value
        for stage in style.stages:
            value = stage.apply(value, ctx)
        return value

    async def apply_async(self, value: Any, ctx: StageContext) -> Any:
        style = self.style_for(value)
        if style is None:
            return value
        for stage in style.stages:
            value = await stage.apply_async(value, ctx)
        return value


def lookup_type_style(styles: Mapping[type, Style], value_type: type) -> Style | None:
    """Nearest-ancestor lookup: ``bool`` falls back to ``int`` only if unmapped."""
    for klass in value_type.__mro__:
        if klass in styles:
            return styles[klass]
    return None


def check_stage_order(stages: Sequence[Stage], where: str) -> None:
    """Within one declaration: sourcing, then coercion, then validation.

    Catch boundaries may sit anywhere after sourcing.

    Raises:
        RegistrationError: If a stage is declared out of phase order
    """
    phase = 0
    for stage in stages:
        if stage.kind is StageKind.CATCH:
            if phase == 0:
                raise RegistrationError(f"{where}: catch boundary {stage!r} has no stages above it")
            phase = max(phase, 1)
            continue
        stage_phase = _PHASE.get(stage.kind)
        if stage_phase is None:
            continue
        if stage_phase < phase:
            raise RegistrationError(f"{where}: {stage.kind} stage {stage!r} is declared after a later-phase stage")
        phase = stage_phase


def validate_default_styles(styles: Mapping[type, Style], where: str) -> dict[type, Style]:
    """Type defaults must be reference-free coercion/validation bundles."""
    checked: dict[type, Style] = {}
    for value_type, style in styles.items():
        if not isinstance(value_type, type):
            raise CascadeError(f"{where}: default key {value_type!r} is not a type")
        if not isinstance(style, Style):
            raise CascadeError(f"{where}: default for {value_type.__name__} must be a Style, got {style!r}")
        for stage in style.stages:
            if stage.kind in (StageKind.AI_TRANSFORM, StageKind.CATCH):
                raise CascadeError(f"{where}: type default '{style.name}' may not contain {stage.kind} stage {stage!r}")
            if any(isinstance(ref, FieldRef | ParentRef) for ref in stage.references):
                raise CascadeError(f"{where}: type default '{style.name}' may not reference other fields ({stage!r})")
        checked[value_type] = style
    return checked


class CascadeResolver:
    """Resolves and caches the final pipeline of every field of a schema.

    The resolver belongs to one factory, because tier 1 (global defaults)
    differs between factories. Results are cached under a lock; cached
    values are immutable and safe to share.
    """

    def __init__(self, registry: MetadataRegistry, global_defaults: Mapping[type, Style] | None = None) -> None:
        self._registry = registry
        self._global_defaults = validate_default_styles(global_defaults or {}, "factory defaults")
        self._cache: dict[tuple[type, str], ResolvedField] = {}
        self._lock = threading.Lock()

    def resolve(self, schema: type, field_name: str) -> ResolvedField:
        key = (schema, field_name)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        resolved = self._resolve(schema, field_name)
        with self._lock:
            return self._cache.setdefault(key, resolved)

    def resolve_all(self, schema: type, field_names: Iterable[str]) -> list[ResolvedField]:
        return [self.resolve(schema, name) for name in field_names]

    def _resolve(self, schema: type, field_name: str) -> ResolvedField:
        from fieldwright.stages.sourcing import Copy

        where = f"{schema.__name__}.{field_name}"
        for declared in self._registry.declared_pipelines(schema, field_name):
            check_stage_order(declared, where)

        declared_stages = self._registry.get_pipeline(schema, field_name)
        spec = (
            self._registry.get_field_spec(schema, field_name)
            if field_name in self._registry.field_names(schema)
            else FieldSpec(name=field_name, declared=False)
        )

        # Sourcing always precedes everything else, across inheritance levels.
        sourcing = [stage for stage in declared_stages if stage.kind is StageKind.SOURCING]
        body = [stage for stage in declared_stages if stage.kind is not StageKind.SOURCING]

        if spec.style is not None:
            body = [*spec.style.stages, *body]
            tier = CascadeTier.STYLE
        elif body:
            tier = CascadeTier.FIELD
        else:
            body, tier = self._type_default(schema, spec)

        if not sourcing:
            sourcing = [Copy()]

        return ResolvedField(
            name=field_name,
            pipeline=(*sourcing, *body),
            tier=tier,
            spec=spec,
            cross_rules=tuple(self._registry.get_cross_rules(schema, field_name)),
        )

    def _type_default(self, schema: type, spec: FieldSpec) -> tuple[list[Stage], CascadeTier]:
        options = self._registry.get_schema_options(schema)
        schema_defaults = validate_default_styles(options.default_transforms or {}, schema.__name__)

        if spec.value_type is not None:
            style = lookup_type_style(schema_defaults, spec.value_type)
            if style is not None:
                return list(style.stages), CascadeTier.SCHEMA_DEFAULT
            style = lookup_type_style(self._global_defaults, spec.value_type)
            if style is not None:
                return list(style.stages), CascadeTier.GLOBAL_DEFAULT
            return [], CascadeTier.PASS_THROUGH

        if schema_defaults:
            # Schema entries override global entries for the same type.
            return [TypeDefaults({**self._global_defaults, **schema_defaults})], CascadeTier.SCHEMA_DEFAULT
        if self._global_defaults:
            return [TypeDefaults(self._global_defaults)], CascadeTier.GLOBAL_DEFAULT
        return [], CascadeTier.PASS_THROUGH
