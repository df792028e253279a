# src/fieldwright/engine/execution.py
"""Per-call state: the instance-in-progress owned by one create() call."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from types import MappingProxyType
from typing import Any

from fieldwright.contracts.enums import InstanceState
from fieldwright.contracts.errors import FieldValidationError
from fieldwright.contracts.sentinels import MISSING
from fieldwright.contracts.stage import ParentScope, StageContext
from fieldwright.core.config import RunOptions
from fieldwright.engine.pipeline import CallStats, FieldResult
from fieldwright.engine.plan import SchemaPlan

type NestedRunner = Callable[[type, Any, ParentScope], Awaitable[Any]]


class Execution:
    """Instance-in-progress plus the read-only inputs of one call.

    ``values`` is the only mutable state and is never shared: stages see it
    through a read-only view. Executors (single-pass, convergent) drive
    run_field() and decide what to do with the results.
    """

    def __init__(
        self,
        plan: SchemaPlan,
        raw: Any,
        options: RunOptions,
        *,
        stats: CallStats,
        parent: ParentScope | None = None,
        run_nested: NestedRunner | None = None,
    ) -> None:
        self.plan = plan
        self.raw = raw
        self.options = options
        self.stats = stats
        self.parent = parent
        self.run_nested = run_nested
        self.values: dict[str, Any] = dict.fromkeys(plan.order, MISSING)
        self.view = MappingProxyType(self.values)
        self.errors: dict[str, FieldValidationError] = {}
        self.repaired: set[str] = set()
        self.state = InstanceState.BUILDING
        self.iterations = 0
        self.converged = False

    def context_for(self, name: str) -> StageContext:
        spec = self.plan.fields[name].spec
        return StageContext(
            field=name,
            raw=self.raw,
            instance=self.view,
            context=self.options.context,
            parent=self.parent,
            matching=spec.matching or self.plan.matching,
            handler=self.options.ai_handler,
            max_retries=self.options.max_retries,
            run_nested=self.run_nested,
        )

    async def run_field(self, name: str) -> FieldResult:
        """Run one field's full pipeline and record its outcome.

        A failing field keeps its previous value so other fields still see
        its last good state.
        """
        result = await self.plan.pipelines[name].run(self.context_for(name), self.stats)
        if result.error is None:
            self.values[name] = result.value
            self.errors.pop(name, None)
        else:
            self.errors[name] = result.error
        if result.repaired:
            self.repaired.add(name)
        return result

    async def seed_field(self, name: str) -> None:
        self.values[name] = await self.plan.pipelines[name].seed(self.context_for(name), self.stats)

    def ordered_errors(self) -> list[FieldValidationError]:
        return [self.errors[name] for name in self.plan.order if name in self.errors]

    def resolved_values(self) -> dict[str, Any]:
        """Every managed field, staging included, with MISSING as None."""
        return {name: None if value is MISSING else value for name, value in self.values.items()}

    def output(self) -> dict[str, Any]:
        resolved = self.resolved_values()
        return {name: resolved[name] for name in self.plan.output_fields}
