# src/fieldwright/engine/factory.py
"""ValidationFactory: the engine's single entry point.

    factory = ValidationFactory(default_transforms={str: TRIM}, ai_handler=call_model)
    order = await factory.create(Order, {"quantity": "150"})

The factory owns tier-1 defaults and the model handler, and compiles one
read-only SchemaPlan per schema on first use. Every create() call gets its
own Execution; nothing mutable is shared between calls.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Hashable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from fieldwright.contracts.enums import ExecutionStrategy, InstanceState
from fieldwright.contracts.errors import FieldValidationError, RegistrationError, ValidationFailed
from fieldwright.contracts.sentinels import MISSING
from fieldwright.contracts.stage import ModelHandler, ParentScope
from fieldwright.core.cascade import CascadeResolver, Style
from fieldwright.core.config import CreateOptions, EngineSettings, RunOptions, resolve_run_options
from fieldwright.core.logging import bound_call
from fieldwright.core.registry import MetadataRegistry
from fieldwright.core.registry import registry as default_registry
from fieldwright.engine.convergent import run_convergent
from fieldwright.engine.cross_validation import run_cross_validation
from fieldwright.engine.execution import Execution
from fieldwright.engine.pipeline import CallStats
from fieldwright.engine.plan import SchemaPlan, compile_plan
from fieldwright.engine.single_pass import run_single_pass
from fieldwright.schema import Schema

slog = structlog.get_logger(__name__)

type SchemaTarget = type[Schema] | Sequence[type[Schema]]


@dataclass(frozen=True, slots=True)
class ExecutionReport:
    """How one create() call went."""

    schema: str
    strategy: ExecutionStrategy
    iterations: int
    converged: bool
    ai_calls: int
    repairs: int
    state: InstanceState


@dataclass(frozen=True, slots=True)
class Resolution:
    instance: Schema
    report: ExecutionReport


def _plain_raw(raw: Any) -> Any:
    # An already-valid instance is accepted as raw input.
    if isinstance(raw, Schema):
        return raw.to_dict()
    return raw


def _build_instance(schema: type[Schema], values: Mapping[str, Any]) -> Schema:
    instance = schema.__new__(schema)
    instance.__dict__.update(values)
    return instance


class ValidationFactory:
    """Compiles schemas and runs create() calls against them.

    Args:
        settings: Engine defaults (EngineSettings() if omitted)
        default_transforms: Tier-1 ``{type: Style}`` defaults for every schema
        ai_handler: Model handler used by AI stages unless a call overrides it
        registry: Metadata registry to read schemas from
    """

    def __init__(
        self,
        settings: EngineSettings | None = None,
        default_transforms: Mapping[type, Style] | None = None,
        ai_handler: ModelHandler | None = None,
        *,
        registry: MetadataRegistry = default_registry,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.ai_handler = ai_handler
        self._registry = registry
        self._resolver = CascadeResolver(registry, default_transforms)
        self._plans: dict[type, SchemaPlan] = {}
        self._lock = threading.Lock()

    def compile(self, schema: type) -> SchemaPlan:
        """Compiled plan for ``schema``, built once and cached."""
        plan = self._plans.get(schema)
        if plan is not None:
            return plan
        with self._lock:
            plan = self._plans.get(schema)
            if plan is None:
                plan = compile_plan(schema, self._registry, self._resolver)
                self._plans[schema] = plan
        return plan

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def resolve(self, schema: SchemaTarget, raw: Any, options: CreateOptions | None = None, **overrides: Any) -> Resolution:
        """Build and validate an instance, returning it with an execution report.

        ``schema`` may be a list of discriminated schemas; the one whose
        discriminator value matches the raw input is used.

        Raises:
            ValidationFailed: If any field (or cross rule) rejected the input
            ConfigurationError: For schema-design defects
        """
        options = self._merge_options(options, overrides)
        target = self.select_schema(schema, raw, options)
        stats = CallStats()
        with bound_call(target.__name__):
            instance, execution = await self._execute(target, raw, options, stats=stats, parent=None)
            report = ExecutionReport(
                schema=execution.plan.name,
                strategy=execution.options.strategy,
                iterations=execution.iterations,
                converged=execution.converged,
                ai_calls=stats.ai_calls,
                repairs=stats.repairs,
                state=execution.state,
            )
            slog.debug("instance_created", iterations=report.iterations, ai_calls=report.ai_calls)
        return Resolution(instance=instance, report=report)

    async def create(self, schema: SchemaTarget, raw: Any, options: CreateOptions | None = None, **overrides: Any) -> Schema:
        """Build and validate an instance of ``schema`` from ``raw``."""
        resolution = await self.resolve(schema, raw, options, **overrides)
        return resolution.instance

    def create_sync(self, schema: SchemaTarget, raw: Any, options: CreateOptions | None = None, **overrides: Any) -> Schema:
        """Blocking create() for callers without a running event loop."""
        return asyncio.run(self.create(schema, raw, options, **overrides))

    def select_schema(self, schema: SchemaTarget, raw: Any, options: CreateOptions) -> type[Schema]:
        """Pick the union member matching the raw discriminator value.

        Raises:
            RegistrationError: If the union is malformed
            ValidationFailed: If the raw value matches no member
        """
        candidates = [schema] if isinstance(schema, type) else list(schema)
        overrides = dict(options.discriminators or {})
        if not candidates:
            raise RegistrationError("create() needs at least one schema")
        if len(candidates) == 1 and not overrides:
            return candidates[0]

        mapping: dict[Any, type[Schema]] = {}
        field_names: set[str] = set()
        for candidate in candidates:
            plan = self.compile(candidate)
            if plan.discriminator_field is None:
                if len(candidates) > 1:
                    raise RegistrationError(f"{plan.name} has no discriminator field and cannot be part of a union")
                continue
            if plan.discriminator_value in mapping:
                raise RegistrationError(
                    f"{plan.name} and {mapping[plan.discriminator_value].__name__} share discriminator value {plan.discriminator_value!r}"
                )
            field_names.add(plan.discriminator_field)
            mapping[plan.discriminator_value] = candidate
        for target in overrides.values():
            plan = self.compile(target)
            if plan.discriminator_field is not None:
                field_names.add(plan.discriminator_field)
        mapping.update(overrides)

        if len(field_names) != 1:
            raise RegistrationError(f"Union members must share exactly one discriminator field, found: {sorted(field_names) or 'none'}")
        field = field_names.pop()
        data = _plain_raw(raw)
        value = data.get(field, MISSING) if isinstance(data, Mapping) else MISSING
        if isinstance(value, Hashable) and value in mapping:
            return mapping[value]
        error = FieldValidationError(
            f"Unknown discriminator value {value!r}" if value is not MISSING else f"Missing discriminator field '{field}'",
            path=field,
            rule="discriminator",
            value=None if value is MISSING else value,
            examples=list(mapping),
        )
        raise ValidationFailed(" | ".join(sorted({target.__name__ for target in mapping.values()})), [error])

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _merge_options(self, options: CreateOptions | None, overrides: Mapping[str, Any]) -> CreateOptions:
        if options is None:
            return CreateOptions(**overrides)
        if not overrides:
            return options
        return CreateOptions(**{**dict(options), **overrides})

    def _run_options(self, plan: SchemaPlan, options: CreateOptions) -> RunOptions:
        return resolve_run_options(
            self.settings,
            options,
            declared_strategy=plan.declared_strategy,
            factory_handler=self.ai_handler,
        )

    async def _execute(
        self,
        schema: type[Schema],
        raw: Any,
        options: CreateOptions,
        *,
        stats: CallStats,
        parent: ParentScope | None,
    ) -> tuple[Schema, Execution]:
        plan = self.compile(schema)
        run_options = self._run_options(plan, options)

        async def run_nested(child: type, child_raw: Any, scope: ParentScope) -> Any:
            instance, _ = await self._execute(child, child_raw, options, stats=stats, parent=scope)
            return instance

        execution = Execution(plan, _plain_raw(raw), run_options, stats=stats, parent=parent, run_nested=run_nested)
        if run_options.strategy is ExecutionStrategy.SINGLE_PASS:
            await run_single_pass(execution)
        else:
            await run_convergent(execution)

        errors = execution.ordered_errors()
        if not (errors and run_options.fail_fast):
            errors.extend(run_cross_validation(execution))
        if errors:
            execution.state = InstanceState.FAILED
            if run_options.fail_fast:
                errors = errors[:1]
            raise ValidationFailed(plan.name, errors)

        execution.state = InstanceState.DONE
        return _build_instance(plan.schema, execution.output()), execution
