# src/fieldwright/stages/coercion.py
"""Coercion stages: transform a value without judging it.

Built-in coercions pass None and MISSING through untouched; whether a value
is required is a validation concern (ValidateRequired).
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Literal

from fieldwright.contracts.enums import MatchStrategy, StageKind
from fieldwright.contracts.errors import FieldValidationError
from fieldwright.contracts.sentinels import MISSING
from fieldwright.contracts.stage import CoercionStage, Stage, StageContext
from fieldwright.core.matching import MatchConfig, Matcher


def _absent(value: Any) -> bool:
    return value is MISSING or value is None


class Coerce(CoercionStage):
    """Apply an arbitrary function. ``with_context=True`` passes ``ctx=``."""

    def __init__(self, fn: Callable[..., Any], *, with_context: bool = False, rule: str | None = None) -> None:
        super().__init__(rule=rule or "coerce")
        self.fn = fn
        self.with_context = with_context

    def apply(self, value: Any, ctx: StageContext) -> Any:
        if value is MISSING:
            return value
        if self.with_context:
            return self.fn(value, ctx=ctx)
        return self.fn(value)


_TRUE = frozenset({"true", "yes", "y", "1", "on"})
_FALSE = frozenset({"false", "no", "n", "0", "off"})


class CoerceType(CoercionStage):
    """Convert to ``int``, ``float``, ``str`` or ``bool``.

    Numeric strings may carry thousands separators and surrounding
    whitespace. ``int`` accepts integral floats only.
    """

    def __init__(self, target: type, *, rule: str | None = None) -> None:
        if target not in (int, float, str, bool):
            raise ValueError(f"CoerceType supports int, float, str and bool, not {target!r}")
        super().__init__(rule=rule or f"coerce_type_{target.__name__}")
        self.target = target

    def apply(self, value: Any, ctx: StageContext) -> Any:
        if _absent(value):
            return value
        if self.target is str:
            return value if isinstance(value, str) else str(value)
        if self.target is bool:
            return self._to_bool(value)
        number = self._to_number(value)
        if self.target is int:
            if not float(number).is_integer():
                raise self.fail(f"Expected a whole number, got {value!r}", value)
            return int(number)
        return float(number)

    def _to_number(self, value: Any) -> float | int:
        if isinstance(value, bool):
            raise self.fail(f"Expected a number, got boolean {value!r}", value)
        if isinstance(value, int | float):
            if isinstance(value, float) and math.isnan(value):
                raise self.fail("Expected a number, got NaN", value)
            return value
        if isinstance(value, str):
            text = value.strip().replace(",", "").replace("_", "")
            try:
                return int(text)
            except ValueError:
                pass
            try:
                parsed = float(text)
            except ValueError:
                raise self.fail(f"Expected a number, got {value!r}", value) from None
            if math.isnan(parsed):
                raise self.fail("Expected a number, got NaN", value)
            return parsed
        raise self.fail(f"Expected a number, got {type(value).__name__}", value)

    def _to_bool(self, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, int | float) and value in (0, 1):
            return bool(value)
        if isinstance(value, str):
            folded = value.strip().casefold()
            if folded in _TRUE:
                return True
            if folded in _FALSE:
                return False
        raise self.fail(f"Expected a boolean, got {value!r}", value)


class CoerceTrim(CoercionStage):
    """Strip surrounding whitespace from strings."""

    def apply(self, value: Any, ctx: StageContext) -> Any:
        return value.strip() if isinstance(value, str) else value


class CoerceCase(CoercionStage):
    """Change letter case of strings."""

    def __init__(self, mode: Literal["lower", "upper", "title"], *, rule: str | None = None) -> None:
        if mode not in ("lower", "upper", "title"):
            raise ValueError(f"Unknown case mode: {mode!r}")
        super().__init__(rule=rule or f"coerce_case_{mode}")
        self.mode = mode

    def apply(self, value: Any, ctx: StageContext) -> Any:
        if not isinstance(value, str):
            return value
        if self.mode == "lower":
            return value.lower()
        if self.mode == "upper":
            return value.upper()
        return value.title()


class CoerceRound(CoercionStage):
    """Round half-up to ``precision`` decimal places."""

    def __init__(self, precision: int = 0, *, rule: str | None = None) -> None:
        super().__init__(rule=rule or "coerce_round")
        self.precision = precision

    def apply(self, value: Any, ctx: StageContext) -> Any:
        if _absent(value) or isinstance(value, bool) or not isinstance(value, int | float):
            return value
        quantum = Decimal(1).scaleb(-self.precision)
        rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
        return int(rounded) if self.precision <= 0 and isinstance(value, int) else float(rounded)


class RecursiveValues(CoercionStage):
    """Apply coercions to every leaf of a free-form mapping or list.

    Keys and container shapes are kept; only leaves pass through the wrapped
    stages, in order. A leaf rejection carries the path to that leaf
    (``settings.database.port``, ``tags[2]``).

    Example:
        settings = Field(RecursiveValues(CoerceTrim(), CoerceCase("lower")))
    """

    def __init__(self, *stages: Stage, rule: str | None = None) -> None:
        if not stages:
            raise ValueError("RecursiveValues needs at least one coercion")
        for stage in stages:
            if stage.kind is not StageKind.COERCION or stage.is_async:
                raise ValueError(f"RecursiveValues wraps synchronous coercions only, not {stage!r}")
        super().__init__(rule=rule or "recursive_values", references=[ref for stage in stages for ref in stage.references])
        self.stages = stages

    def apply(self, value: Any, ctx: StageContext) -> Any:
        if value is MISSING:
            return value
        return self._walk(value, ctx)

    def _walk(self, value: Any, ctx: StageContext) -> Any:
        if isinstance(value, Mapping):
            out = {}
            for key, item in value.items():
                try:
                    out[key] = self._walk(item, ctx)
                except FieldValidationError as exc:
                    exc.with_path(str(key))
                    raise
            return out
        if isinstance(value, list | tuple):
            items = []
            for index, item in enumerate(value):
                try:
                    items.append(self._walk(item, ctx))
                except FieldValidationError as exc:
                    exc.with_path(f"[{index}]")
                    raise
            return tuple(items) if isinstance(value, tuple) else items
        for stage in self.stages:
            value = stage.apply(value, ctx)
        return value


type CandidateSource = Iterable[Any] | Callable[[Any], Iterable[Any]]


class CoerceFromSet(CoercionStage):
    """Replace the value with the best match from a candidate set.

    ``candidates`` is either a fixed iterable or a function of the runtime
    context (``lambda ctx: ctx["catalog"]``), so the acceptable values can be
    supplied per call. Matching options are passed as MatchConfig fields.

    Example:
        status = Field(CoerceFromSet(
            lambda ctx: ctx["statuses"],
            strategy=MatchStrategy.FUZZY,
            threshold=0.6,
            synonyms={"Shipped": ["sent", "dispatched"]},
        ))
    """

    def __init__(self, candidates: CandidateSource, config: MatchConfig | None = None, *, rule: str | None = None, **options: Any) -> None:
        super().__init__(rule=rule or "coerce_from_set")
        if config is not None and options:
            raise ValueError("Pass either a MatchConfig or keyword options, not both")
        if "strategy" in options and isinstance(options["strategy"], str):
            options["strategy"] = MatchStrategy(options["strategy"])
        self.matcher = Matcher(config or MatchConfig(**options))
        self.candidates = candidates

    def candidate_list(self, ctx: StageContext) -> list[Any]:
        source = self.candidates(ctx.context) if callable(self.candidates) else self.candidates
        if source is None:
            raise FieldValidationError("No candidate set available in context", rule=self.rule)
        return list(source)

    def apply(self, value: Any, ctx: StageContext) -> Any:
        if _absent(value):
            return value
        try:
            return self.matcher.match(value, self.candidate_list(ctx))
        except FieldValidationError as exc:
            exc.rule = self.rule if exc.rule in ("", "match") else exc.rule
            exc.value = value
            raise
