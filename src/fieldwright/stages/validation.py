# src/fieldwright/stages/validation.py
"""Validation stages: judge a value, never replace it.

Only ValidateRequired rejects missing values; every other validator treats
None and MISSING as "nothing to judge" and passes them through.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Any

from fieldwright.contracts.sentinels import MISSING
from fieldwright.contracts.stage import StageContext, ValidationStage


def _absent(value: Any) -> bool:
    return value is MISSING or value is None


class Validate(ValidationStage):
    """Custom predicate: returns True/None to pass, False or a message to fail.

    Example:
        Validate(lambda v: v in LABELS or f"Must be one of: {', '.join(LABELS)}")
    """

    def __init__(
        self,
        fn: Callable[..., bool | str | None],
        message: str | None = None,
        *,
        with_context: bool = False,
        rule: str | None = None,
    ) -> None:
        super().__init__(message=message, rule=rule or "validate")
        self.fn = fn
        self.with_context = with_context

    def check(self, value: Any, ctx: StageContext) -> bool | str | None:
        if value is MISSING:
            return True
        if self.with_context:
            return self.fn(value, ctx=ctx)
        return self.fn(value)


class ValidateRequired(ValidationStage):
    default_message = "Value is required"

    def check(self, value: Any, ctx: StageContext) -> bool | str | None:
        if _absent(value):
            return False
        if isinstance(value, str) and not value.strip():
            return False
        return True


class ValidateRange(ValidationStage):
    """Inclusive numeric bounds; either bound may be omitted."""

    def __init__(self, minimum: float | None = None, maximum: float | None = None, *, message: str | None = None, rule: str | None = None) -> None:
        super().__init__(message=message, rule=rule or "validate_range")
        self.minimum = minimum
        self.maximum = maximum

    def check(self, value: Any, ctx: StageContext) -> bool | str | None:
        if _absent(value):
            return True
        if isinstance(value, bool) or not isinstance(value, int | float):
            return f"Expected a number, got {type(value).__name__}"
        if self.minimum is not None and value < self.minimum:
            return f"Value {value} is below the minimum of {self.minimum}"
        if self.maximum is not None and value > self.maximum:
            return f"Value {value} is above the maximum of {self.maximum}"
        return True


class ValidateLength(ValidationStage):
    """Inclusive length bounds for strings and sized collections."""

    def __init__(self, minimum: int | None = None, maximum: int | None = None, *, message: str | None = None, rule: str | None = None) -> None:
        super().__init__(message=message, rule=rule or "validate_length")
        self.minimum = minimum
        self.maximum = maximum

    def check(self, value: Any, ctx: StageContext) -> bool | str | None:
        if _absent(value):
            return True
        try:
            length = len(value)
        except TypeError:
            return f"Value of type {type(value).__name__} has no length"
        if self.minimum is not None and length < self.minimum:
            return f"Length {length} is below the minimum of {self.minimum}"
        if self.maximum is not None and length > self.maximum:
            return f"Length {length} is above the maximum of {self.maximum}"
        return True


class ValidatePattern(ValidationStage):
    """Full-string regular expression match."""

    default_message = "Value does not match the required pattern"

    def __init__(self, pattern: str | re.Pattern[str], message: str | None = None, *, rule: str | None = None) -> None:
        super().__init__(message=message, rule=rule or "validate_pattern")
        self.pattern = re.compile(pattern) if isinstance(pattern, str) else pattern

    def check(self, value: Any, ctx: StageContext) -> bool | str | None:
        if _absent(value):
            return True
        if not isinstance(value, str):
            return f"Expected a string, got {type(value).__name__}"
        return self.pattern.fullmatch(value) is not None


class ValidateEquals(ValidationStage):
    """Value must equal ``expected`` (used for discriminator fields)."""

    def __init__(self, expected: Any, *, message: str | None = None, rule: str | None = None) -> None:
        super().__init__(message=message, rule=rule or "validate_equals")
        self.expected = expected

    def check(self, value: Any, ctx: StageContext) -> bool | str | None:
        if value == self.expected:
            return True
        return f"Expected {self.expected!r}, got {value!r}"
