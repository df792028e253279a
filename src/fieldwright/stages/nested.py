# src/fieldwright/stages/nested.py
"""Nested schemas: a field whose value is itself a validated instance."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from fieldwright.contracts.errors import (
    ConfigurationError,
    FieldValidationError,
    NestedValidationError,
    ValidationFailed,
)
from fieldwright.contracts.references import FieldRef
from fieldwright.contracts.sentinels import MISSING
from fieldwright.contracts.stage import CoercionStage, ParentScope, StageContext
from fieldwright.core.dag import collect_parent_references
from fieldwright.core.registry import registry


class Nested(CoercionStage):
    """Build a sub-instance (or a list of them with ``many=True``).

    The child shares the call's context and options. It sees this instance
    through a read-only parent scope, so ``^.currency`` inside the child
    reads this instance's ``currency``; those reads become dependency edges
    of the field carrying the Nested stage.

    Child failures are wrapped in a NestedValidationError whose paths are
    prefixed with the field name and, for lists, the item index
    (``items[2].sku``).
    """

    is_async = True

    def __init__(self, schema: type, *, many: bool = False, rule: str | None = None) -> None:
        if not registry.is_registered(schema):
            raise ConfigurationError(f"Nested target {schema!r} is not a schema")
        parents = sorted(collect_parent_references(schema, registry))
        super().__init__(rule=rule or "nested", references=[FieldRef(name) for name in parents])
        self.schema = schema
        self.many = many

    def apply(self, value: Any, ctx: StageContext) -> Any:
        raise ConfigurationError("Nested is async-only; run it through the engine")

    async def apply_async(self, value: Any, ctx: StageContext) -> Any:
        if value is MISSING or value is None:
            return value
        if ctx.run_nested is None:
            raise ConfigurationError(f"Field '{ctx.field}' has a Nested stage but no nested runner is available")
        scope = ParentScope(instance=ctx.instance, raw=ctx.raw, parent=ctx.parent)
        if not self.many:
            if not isinstance(value, Mapping) and not hasattr(value, "to_dict"):
                raise self.fail(f"Expected an object for {self.schema.__name__}, got {type(value).__name__}", value)
            try:
                return await ctx.run_nested(self.schema, value, scope)
            except ValidationFailed as exc:
                raise NestedValidationError(exc.errors, rule=self.rule, value=value) from exc

        if isinstance(value, str | bytes) or not isinstance(value, Sequence):
            raise self.fail(f"Expected a list of {self.schema.__name__}, got {type(value).__name__}", value)
        items: list[Any] = []
        errors: list[FieldValidationError] = []
        for index, item in enumerate(value):
            try:
                items.append(await ctx.run_nested(self.schema, item, scope))
            except ValidationFailed as exc:
                errors.extend(error.with_path(f"[{index}]") for error in exc.errors)
        if errors:
            raise NestedValidationError(errors, rule=self.rule, value=value)
        return items

    def __repr__(self) -> str:
        return f"Nested({self.schema.__name__}, many={self.many})"
