"""Cross-validation rules: run once against the finished instance.

Neither kind enters a field's pipeline or the dependency graph. They run
after single-pass completes or after convergence, exactly once.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from fieldwright.contracts.enums import StageKind
from fieldwright.contracts.references import Reference, parse_references
from fieldwright.contracts.sentinels import MISSING
from fieldwright.contracts.stage import StageContext, ValidationStage
from fieldwright.core.registry import ObjectRule


class CrossValidate(ValidationStage):
    """Judge a field against other fields of the finished instance.

    ``fn`` receives the field's value followed by each referenced value, and
    returns True/None to pass, False or a message to fail.

    Example:
        confirm = Field(CrossValidate("password", lambda c, p: c == p or "Passwords must match"))
    """

    kind = StageKind.CROSS_VALIDATION
    default_message = "Cross-field validation failed"

    def __init__(
        self,
        fields: str | Reference | Sequence[str | Reference],
        fn: Callable[..., bool | str | None],
        message: str | None = None,
        *,
        rule: str | None = None,
    ) -> None:
        super().__init__(message=message, rule=rule or "cross_validate", references=parse_references(fields))
        self.fn = fn

    def check(self, value: Any, ctx: StageContext) -> bool | str | None:
        others = [None if resolved is MISSING else resolved for resolved in ctx.resolve_all(self.references, value)]
        return self.fn(None if value is MISSING else value, *others)


__all__ = ["CrossValidate", "ObjectRule"]
