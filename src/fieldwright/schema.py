# src/fieldwright/schema.py
"""Declarative surface: Schema subclasses and Field declarations.

Example:
    class Order(Schema, strategy="convergent"):
        quantity: int = Field(CoerceType(int), ValidateRange(minimum=1))
        unit_price: float = Field(DerivedFrom("quantity", lambda q: 8 if q and q > 100 else 10))
        total: float = Field(DerivedFrom(["quantity", "unit_price"], lambda q, p: q * p))

Declaring a class writes its pipelines into the metadata registry; the
class itself keeps no pipeline state. Structural defects (unknown field
references, out-of-order stages, a cycle in a single-pass schema) raise
while the class statement executes.
"""

from __future__ import annotations

import inspect
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, ClassVar, get_origin

from fieldwright.contracts.enums import ExecutionStrategy
from fieldwright.contracts.errors import CyclicDependencyError, RegistrationError
from fieldwright.contracts.references import Reference, parse_references
from fieldwright.contracts.sentinels import MISSING
from fieldwright.contracts.stage import Stage
from fieldwright.core.cascade import CascadeResolver, Style
from fieldwright.core.dag import build_dependency_graph
from fieldwright.core.matching import MatchConfig
from fieldwright.core.registry import FieldSpec, ObjectRule, SchemaOptions, registry
from fieldwright.stages.validation import ValidateEquals


class Field:
    """One field declaration: its stages plus declaration-level metadata.

    Args:
        *stages: Pipeline stages in declaration order
        type: Value type used to pick tier-1/tier-2 defaults (falls back to
            the class annotation)
        style: Tier-3 named bundle applied ahead of the field's own stages
        depends_on: Manual dependencies for reads hidden inside opaque logic
        examples: Accepted example values attached to this field's errors
        examples_description: What the examples illustrate
        staging: Resolve the field but leave it out of the output
        discriminator: Fixed value identifying this schema inside a union
        matching: Key-matching override used when sourcing from raw input
    """

    def __init__(
        self,
        *stages: Stage,
        type: type | None = None,
        style: Style | None = None,
        depends_on: str | Reference | Sequence[str | Reference] = (),
        examples: Iterable[Any] | None = None,
        examples_description: str | None = None,
        staging: bool = False,
        discriminator: Any = MISSING,
        matching: MatchConfig | None = None,
    ) -> None:
        if style is not None and not isinstance(style, Style):
            raise RegistrationError(f"style must be a Style, got {style!r}")
        self.stages = stages
        self.value_type = type
        self.style = style
        self.depends_on = parse_references(depends_on) if depends_on else ()
        self.examples = tuple(examples) if examples is not None else None
        self.examples_description = examples_description
        self.staging = staging
        self.discriminator = discriminator
        self.matching = matching
        self.name = ""

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name
        registry.register_field(
            owner,
            FieldSpec(
                name=name,
                value_type=self.value_type,
                style=self.style,
                depends_on=tuple(self.depends_on),
                examples=self.examples,
                examples_description=self.examples_description,
                staging=self.staging,
                discriminator=self.discriminator,
                matching=self.matching,
            ),
        )
        for stage in self.stages:
            registry.register(owner, name, stage)
        if self.discriminator is not MISSING:
            registry.register(owner, name, ValidateEquals(self.discriminator, rule="discriminator"))

    def __get__(self, instance: object, owner: type | None = None) -> Any:
        if instance is None:
            return self
        # Only reached for fields left out of the output (staging or failed).
        raise AttributeError(f"{type(instance).__name__} has no resolved field '{self.name}'")

    def __repr__(self) -> str:
        return f"Field({self.name!r}, {len(self.stages)} stages)"


def _is_classvar(annotation: Any) -> bool:
    if isinstance(annotation, str):
        return annotation.startswith(("ClassVar", "typing.ClassVar"))
    return annotation is ClassVar or get_origin(annotation) is ClassVar


def _plain(value: Any) -> Any:
    if isinstance(value, Schema):
        return value.to_dict()
    if isinstance(value, Mapping):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return tuple(_plain(item) for item in value)
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


class Schema:
    """Base class for declared schemas.

    Class keywords:
        strategy: "single_pass" or "convergent" (engine default otherwise)
        manage_all: True, or an iterable of field names, to process fields
            that declare no stages (annotation-only attributes included)
        default_transforms: Tier-2 ``{type: Style}`` defaults
        matching: Schema-wide key-matching override for raw-input sourcing
        rules: Whole-instance ObjectRules run once at the end

    Instances are produced by ValidationFactory.create(); resolved fields
    are plain attributes.
    """

    def __init_subclass__(
        cls,
        *,
        strategy: ExecutionStrategy | str | None = None,
        manage_all: bool | Iterable[str] | None = None,
        default_transforms: Mapping[type, Style] | None = None,
        matching: MatchConfig | None = None,
        rules: Iterable[ObjectRule] = (),
        **kwargs: Any,
    ) -> None:
        super().__init_subclass__(**kwargs)
        policy: bool | frozenset[str] | None
        if manage_all is None or isinstance(manage_all, bool):
            policy = manage_all
        else:
            policy = frozenset(manage_all)
        rule_list = tuple(rules)
        for rule in rule_list:
            if not isinstance(rule, ObjectRule):
                raise RegistrationError(f"{cls.__name__}: rules must be ObjectRule instances, got {rule!r}")
        registry.register_schema(
            cls,
            SchemaOptions(
                strategy=ExecutionStrategy(strategy) if strategy is not None else None,
                manage_all=policy,
                default_transforms=dict(default_transforms) if default_transforms is not None else None,
                matching=matching,
                rules=rule_list,
            ),
        )
        cls._register_annotations()
        cls._check_blueprint()

    @classmethod
    def _register_annotations(cls) -> None:
        """Annotations supply value types and annotation-only fields."""
        known = set(registry.field_names(cls))
        for name, annotation in inspect.get_annotations(cls).items():
            if name.startswith("_") or _is_classvar(annotation):
                continue
            value_type = annotation if isinstance(annotation, type) else None
            declared = cls.__dict__.get(name)
            if isinstance(declared, Field):
                if declared.value_type is None and value_type is not None:
                    spec = registry.get_field_spec(cls, name)
                    if spec.value_type is None:
                        # Re-register this class's own spec with the annotated type.
                        registry.register_field(cls, _with_type(declared, value_type))
                continue
            if name not in known:
                registry.register_field(cls, FieldSpec(name=name, value_type=value_type, declared=False))

    @classmethod
    def _check_blueprint(cls) -> None:
        resolver = CascadeResolver(registry)
        managed = registry.managed_fields(cls, ())
        graph = build_dependency_graph(cls.__name__, resolver.resolve_all(cls, managed), declared=registry.field_names(cls))
        strategy = registry.get_schema_options(cls).strategy
        if strategy is ExecutionStrategy.SINGLE_PASS and not graph.is_acyclic():
            raise CyclicDependencyError(cls.__name__, graph.find_cycle() or [])
        discriminators = [name for name in registry.field_names(cls) if registry.get_field_spec(cls, name).discriminator is not MISSING]
        if len(discriminators) > 1:
            raise RegistrationError(f"{cls.__name__} declares more than one discriminator field: {', '.join(discriminators)}")

    def to_dict(self) -> dict[str, Any]:
        """Resolved output fields as plain data (nested instances included)."""
        return {name: _plain(value) for name, value in vars(self).items() if not name.startswith("_")}

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return vars(self) == vars(other)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        body = ", ".join(f"{name}={value!r}" for name, value in vars(self).items() if not name.startswith("_"))
        return f"{type(self).__name__}({body})"


def _with_type(declared: Field, value_type: type) -> FieldSpec:
    return FieldSpec(
        name=declared.name,
        value_type=value_type,
        style=declared.style,
        depends_on=tuple(declared.depends_on),
        examples=declared.examples,
        examples_description=declared.examples_description,
        staging=declared.staging,
        discriminator=declared.discriminator,
        matching=declared.matching,
    )
