# src/fieldwright/stages/ai.py
"""AI transform stage and catch boundaries.

AITransform delegates to the host's model handler. The retry loop around it
lives in engine.retry: the stage only knows how to render a prompt and make
one call.

Catch boundaries recover errors raised by stages above them in the same
field's pipeline: Catch substitutes a plain fallback, AICatchRepair asks the
model handler to repair the failing value. Either way the pipeline then
replays the stages below the boundary against the recovered value.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any

from fieldwright.contracts.enums import StageKind
from fieldwright.contracts.errors import ConfigurationError, FieldValidationError
from fieldwright.contracts.references import Reference, parse_references
from fieldwright.contracts.sentinels import MISSING
from fieldwright.contracts.stage import AIRequest, CatchStage, Stage, StageContext

type PromptSource = str | Callable[[Any, StageContext], str]


def _require_handler(stage: Stage, ctx: StageContext) -> Any:
    if ctx.handler is None:
        raise ConfigurationError(f"Field '{ctx.field}' uses {stage!r} but no ai_handler is configured on the factory or the call")
    return ctx.handler


def _describe(value: Any) -> str:
    return "<missing>" if value is MISSING else repr(value)


class AITransform(Stage):
    """Replace the value with the model handler's output.

    Behaves as a coercion: its output flows into the stages below it. If one
    of those rejects it, the handler is re-invoked with the rejection as
    ``request.previous_error``, until ``max_retries`` attempts have been made.

    ``prompt`` may be a string or a function ``(value, ctx) -> str``. Reads
    of other fields made inside a prompt function are invisible to the
    dependency scanner; declare them with ``depends_on``.
    """

    kind = StageKind.AI_TRANSFORM
    is_async = True

    def __init__(
        self,
        prompt: PromptSource,
        *,
        depends_on: str | Reference | Sequence[str | Reference] = (),
        max_retries: int | None = None,
        description: str | None = None,
        metadata: Mapping[str, Any] | None = None,
        rule: str | None = None,
    ) -> None:
        super().__init__(rule=rule or "ai_transform", references=parse_references(depends_on) if depends_on else ())
        if max_retries is not None and max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self.prompt = prompt
        self.max_retries = max_retries
        self.description = description
        self.metadata = dict(metadata or {})

    def render(self, value: Any, ctx: StageContext, previous_error: FieldValidationError | None = None) -> str:
        text = self.prompt(value, ctx) if callable(self.prompt) else f"{self.prompt}\n\nInput:\n{_describe(value)}"
        if previous_error is not None:
            text += f"\n\nYour previous answer {_describe(previous_error.value)} was rejected: {previous_error.message}"
            if previous_error.examples:
                text += f"\nExamples of acceptable values: {previous_error.examples!r}"
        return text

    async def invoke(
        self,
        value: Any,
        ctx: StageContext,
        *,
        attempt: int = 1,
        max_retries: int = 1,
        previous_error: FieldValidationError | None = None,
    ) -> Any:
        handler = _require_handler(self, ctx)
        request = AIRequest(
            field=ctx.field,
            prompt=self.render(value, ctx, previous_error),
            attempt=attempt,
            max_retries=max_retries,
            previous_error=previous_error,
            metadata=self.metadata,
        )
        return await handler(value, ctx.instance, ctx.context, request)

    async def apply_async(self, value: Any, ctx: StageContext) -> Any:
        return await self.invoke(value, ctx)


class Catch(CatchStage):
    """Substitute a fallback for an error raised above this boundary.

    ``fallback`` is either the replacement value itself or a function
    ``(error, failing_value) -> replacement``. No external call is made.

    Example:
        metadata = Field(Coerce(json.loads), Catch(lambda err, value: {}))
    """

    def __init__(self, fallback: Any = None, *, rule: str | None = None) -> None:
        super().__init__(rule=rule or "catch")
        self.fallback = fallback

    async def recover(self, error: FieldValidationError, ctx: StageContext) -> Any:
        if callable(self.fallback):
            return self.fallback(error, error.value)
        return self.fallback


class AICatchRepair(CatchStage):
    """Ask the model handler to repair the failing value.

    The handler receives the failing value and a prompt carrying the error
    text; ``request.repair`` is True.
    """

    def __init__(self, prompt: str, *, metadata: Mapping[str, Any] | None = None, rule: str | None = None) -> None:
        super().__init__(rule=rule or "ai_catch_repair")
        self.prompt = prompt
        self.metadata = dict(metadata or {})

    async def recover(self, error: FieldValidationError, ctx: StageContext) -> Any:
        handler = _require_handler(self, ctx)
        text = f"{self.prompt}\n\nValue: {_describe(error.value)}\nError: {error.message}"
        if error.examples:
            text += f"\nExamples: {error.examples!r}"
        request = AIRequest(field=ctx.field, prompt=text, repair=True, previous_error=error, metadata=self.metadata)
        return await handler(error.value, ctx.instance, ctx.context, request)
