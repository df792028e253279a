# src/fieldwright/engine/pipeline.py
"""Field pipeline runner: executes one field's resolved stages.

Stages run in order, each receiving the previous stage's output. On a
data error the runner looks for the first catch boundary below the failing
stage; if one exists, its recovered value replays the stages below the
boundary. AI transform stages run the rest of the pipeline inside the
bounded retry loop (engine.retry), so a downstream rejection re-invokes
the handler before any catch boundary sees the error.

Exceptions other than FieldValidationError raised by user-supplied
callables become FieldValidationErrors carrying the stage's rule, with the
original exception chained. ConfigurationErrors always propagate.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog

from fieldwright.contracts.enums import FieldState, StageKind
from fieldwright.contracts.errors import ConfigurationError, FieldValidationError
from fieldwright.contracts.sentinels import MISSING
from fieldwright.contracts.stage import Stage, StageContext
from fieldwright.core.cascade import ResolvedField
from fieldwright.engine.retry import retry_with_feedback

slog = structlog.get_logger(__name__)


@dataclass
class CallStats:
    """Counters shared by every field (and nested instance) of one call."""

    ai_calls: int = 0
    repairs: int = 0


@dataclass(frozen=True, slots=True)
class FieldResult:
    """Outcome of one pipeline run. ``error`` already carries the field path."""

    value: Any
    state: FieldState
    error: FieldValidationError | None = None
    repaired: bool = False


async def _apply(stage: Stage, value: Any, ctx: StageContext) -> Any:
    if stage.is_async:
        return await stage.apply_async(value, ctx)
    return stage.apply(value, ctx)


class FieldPipeline:
    """Immutable executor for one resolved field, shared by every call."""

    def __init__(self, resolved: ResolvedField) -> None:
        self.name = resolved.name
        self.stages: tuple[Stage, ...] = resolved.pipeline
        self.spec = resolved.spec
        self.sourcing_count = sum(1 for stage in self.stages if stage.kind is StageKind.SOURCING)

    async def run(self, ctx: StageContext, stats: CallStats) -> FieldResult:
        """Run the full pipeline from sourcing onwards."""
        run = _PipelineRun(self, ctx, stats)
        try:
            value = await run.run_from(0, MISSING)
        except FieldValidationError as error:
            return FieldResult(value=MISSING, state=FieldState.FAILED, error=error.with_path(self.name), repaired=run.repaired)
        return FieldResult(value=value, state=FieldState.RESOLVED, repaired=run.repaired)

    async def seed(self, ctx: StageContext, stats: CallStats) -> Any:
        """Sourcing stages only; a failure seeds MISSING."""
        run = _PipelineRun(self, ctx, stats)
        value: Any = MISSING
        for index in range(self.sourcing_count):
            try:
                value = await run.call(index, value)
            except FieldValidationError as error:
                slog.debug("seed_failed", field=self.name, rule=error.rule, reason=error.message)
                return MISSING
        return value


class _PipelineRun:
    """Per-call state of one pipeline execution."""

    def __init__(self, pipeline: FieldPipeline, ctx: StageContext, stats: CallStats) -> None:
        self.pipeline = pipeline
        self.stages = pipeline.stages
        self.ctx = ctx
        self.stats = stats
        self.repaired = False

    def _tag(self, error: FieldValidationError, index: int) -> FieldValidationError:
        error.stage_index = index
        spec = self.pipeline.spec
        if error.examples is None and spec.examples is not None:
            error.examples = list(spec.examples)
        if error.examples_description is None and spec.examples_description is not None:
            error.examples_description = spec.examples_description
        return error

    async def guarded(self, index: int, value: Any, call: Callable[[], Awaitable[Any]]) -> Any:
        stage = self.stages[index]
        try:
            return await call()
        except FieldValidationError as error:
            self._tag(error, index)
            raise
        except ConfigurationError:
            raise
        except Exception as exc:
            error = FieldValidationError(str(exc) or type(exc).__name__, rule=stage.rule, value=value)
            raise self._tag(error, index) from exc

    async def call(self, index: int, value: Any) -> Any:
        stage = self.stages[index]
        return await self.guarded(index, value, lambda: _apply(stage, value, self.ctx))

    async def run_from(self, start: int, value: Any, *, recover: bool = True) -> Any:
        index = start
        while index < len(self.stages):
            stage = self.stages[index]
            if stage.kind is StageKind.CATCH:
                # Inactive on the success path.
                index += 1
                continue
            try:
                if stage.kind is StageKind.AI_TRANSFORM:
                    return await self._run_ai(index, value)
                value = await self.call(index, value)
            except FieldValidationError as error:
                if not recover:
                    raise
                value, index = await self._recover(error)
                continue
            index += 1
        return value

    async def _run_ai(self, index: int, value: Any) -> Any:
        stage = self.stages[index]
        override = getattr(stage, "max_retries", None)
        budget = override if override is not None else self.ctx.max_retries

        async def attempt(number: int, previous: FieldValidationError | None) -> Any:
            self.stats.ai_calls += 1
            produced = await self.guarded(
                index,
                value,
                lambda: stage.invoke(value, self.ctx, attempt=number, max_retries=budget, previous_error=previous),  # type: ignore[attr-defined]
            )
            return await self.run_from(index + 1, produced, recover=False)

        return await retry_with_feedback(attempt, max_retries=budget, field=self.ctx.field, rule=stage.rule)

    async def _recover(self, error: FieldValidationError) -> tuple[Any, int]:
        """Recover through the first catch boundary below the failing stage.

        Returns the recovered value and the index to resume from.

        Raises:
            FieldValidationError: The original error if no boundary applies
        """
        origin = error.stage_index if error.stage_index is not None else -1
        for index in range(origin + 1, len(self.stages)):
            boundary = self.stages[index]
            if boundary.kind is not StageKind.CATCH:
                continue
            recovered = await self.guarded(index, error.value, lambda boundary=boundary: boundary.recover(error, self.ctx))  # type: ignore[attr-defined]
            self.repaired = True
            self.stats.repairs += 1
            slog.info(
                "catch_recovered",
                field=self.ctx.field,
                boundary=boundary.rule,
                failed_rule=error.rule,
                reason=error.message,
            )
            return recovered, index + 1
        raise error
