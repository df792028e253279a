"""Stage base classes and the per-field execution context.

A stage is one step of a field's pipeline. Stages are declared once when a
schema class is built and shared read-only by every create() call, so a
stage must never keep per-call state on ``self``. Everything a stage may
read for one call arrives through StageContext.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from fieldwright.contracts.enums import StageKind
from fieldwright.contracts.errors import FieldValidationError
from fieldwright.contracts.references import (
    FieldRef,
    ParentRef,
    RawPath,
    Reference,
    SelfValue,
    lookup_path,
)
from fieldwright.contracts.sentinels import MISSING

if TYPE_CHECKING:
    from fieldwright.core.matching import MatchConfig


@dataclass(frozen=True, slots=True)
class AIRequest:
    """Attempt metadata handed to the model handler.

    Attributes:
        field: Name of the field being transformed
        prompt: Rendered prompt text for this attempt
        attempt: 1-based attempt number
        max_retries: Attempt budget (``attempt`` runs 1..max_retries)
        previous_error: The downstream rejection of the previous attempt
        repair: True when invoked by an AI catch boundary
    """

    field: str
    prompt: str
    attempt: int = 1
    max_retries: int = 1
    previous_error: FieldValidationError | None = None
    repair: bool = False
    metadata: Mapping[str, Any] = field(default_factory=dict)


type ModelHandler = Callable[[Any, Mapping[str, Any], Any, AIRequest], Awaitable[Any]]
"""Host-supplied async call: (value, instance_in_progress, context, request) -> replacement."""


@dataclass(frozen=True, slots=True)
class ParentScope:
    """Read-only view of an enclosing instance for nested schemas."""

    instance: Mapping[str, Any]
    raw: Any
    parent: ParentScope | None = None


@dataclass(frozen=True, slots=True)
class StageContext:
    """Everything one stage may read while resolving one field.

    ``instance`` is a read-only view over the instance-in-progress. Stages
    return new values; they never write to the instance.
    """

    field: str
    raw: Any
    instance: Mapping[str, Any]
    context: Any = None
    parent: ParentScope | None = None
    matching: MatchConfig | None = None
    handler: ModelHandler | None = None
    max_retries: int = 2
    run_nested: Callable[[type, Any, ParentScope], Awaitable[Any]] | None = None

    def resolve(self, ref: Reference, current: Any = MISSING) -> Any:
        """Resolve one reference variant. Absent values resolve to MISSING."""
        match ref:
            case SelfValue():
                return current
            case FieldRef(name=name):
                if name == self.field:
                    return current
                return self.instance.get(name, MISSING)
            case RawPath(path=path):
                return lookup_path(self.raw, path)
            case ParentRef(name=name):
                if self.parent is None:
                    return MISSING
                return self.parent.instance.get(name, MISSING)
        raise TypeError(f"Unknown reference variant: {ref!r}")

    def resolve_all(self, refs: Sequence[Reference], current: Any = MISSING) -> list[Any]:
        return [self.resolve(ref, current) for ref in refs]


def _snake(name: str) -> str:
    out: list[str] = []
    for index, char in enumerate(name):
        if char.isupper() and index and not name[index - 1].isupper():
            out.append("_")
        out.append(char.lower())
    return "".join(out)


class Stage:
    """Base class for every pipeline stage.

    Subclasses set ``kind`` and implement apply(). ``rule`` identifies the
    stage in error payloads; it defaults to the snake-cased class name.
    ``references`` lists what the stage reads besides its input value and
    is what the dependency graph builder scans.
    """

    kind: ClassVar[StageKind]
    is_async: ClassVar[bool] = False

    def __init__(self, *, rule: str | None = None, references: Sequence[Reference] = ()) -> None:
        self.rule = rule or _snake(type(self).__name__)
        self.references: tuple[Reference, ...] = tuple(references)

    def apply(self, value: Any, ctx: StageContext) -> Any:
        raise NotImplementedError

    async def apply_async(self, value: Any, ctx: StageContext) -> Any:
        return self.apply(value, ctx)

    def fail(self, message: str, value: Any) -> FieldValidationError:
        return FieldValidationError(message, rule=self.rule, value=value)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(rule={self.rule!r})"


class SourcingStage(Stage):
    """Selects where the field's starting value comes from."""

    kind = StageKind.SOURCING


class CoercionStage(Stage):
    """Transforms a value without judging it."""

    kind = StageKind.COERCION


class ValidationStage(Stage):
    """Judges a value without replacing it.

    Subclasses implement check(), returning True/None to pass, False to fail
    with the default message, or a string to fail with that message.
    """

    kind = StageKind.VALIDATION
    default_message: ClassVar[str] = "Validation failed"

    def __init__(self, *, message: str | None = None, rule: str | None = None, references: Sequence[Reference] = ()) -> None:
        super().__init__(rule=rule, references=references)
        self.message = message

    def check(self, value: Any, ctx: StageContext) -> bool | str | None:
        raise NotImplementedError

    def apply(self, value: Any, ctx: StageContext) -> Any:
        verdict = self.check(value, ctx)
        if verdict is True or verdict is None:
            return value
        message = verdict if isinstance(verdict, str) else (self.message or self.default_message)
        raise self.fail(message, value)


class CatchStage(Stage):
    """Field-scoped boundary recovering errors raised by stages above it."""

    kind = StageKind.CATCH
    is_async = True

    async def recover(self, error: FieldValidationError, ctx: StageContext) -> Any:
        raise NotImplementedError

    def apply(self, value: Any, ctx: StageContext) -> Any:
        # Inactive on the success path.
        return value
