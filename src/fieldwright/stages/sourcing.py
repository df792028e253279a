# src/fieldwright/stages/sourcing.py
"""Sourcing stages: where a field's starting value comes from."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import replace
from typing import Any

from fieldwright.contracts.errors import AmbiguousMatchError, NoMatchError
from fieldwright.contracts.references import Reference, parse_references
from fieldwright.contracts.sentinels import MISSING
from fieldwright.contracts.stage import SourcingStage, StageContext
from fieldwright.core.matching import MatchConfig, Matcher, normalize_key


class Copy(SourcingStage):
    """Take the value stored under the field's name (or ``key``) in the raw input.

    This is the implicit sourcing stage of every pipeline that declares none.
    When the field or schema carries a matching override, keys that do not
    match exactly are looked up through the matcher after folding case and
    separators, so ``First_Name`` and ``  LAST NAME `` still resolve. A tie
    between two raw keys is an error, never a guess.
    """

    def __init__(self, key: str | None = None, *, rule: str | None = None) -> None:
        super().__init__(rule=rule or "copy")
        self.key = key

    def apply(self, value: Any, ctx: StageContext) -> Any:
        raw = ctx.raw
        if not isinstance(raw, Mapping):
            return MISSING
        key = self.key or ctx.field
        if key in raw:
            return raw[key]
        if ctx.matching is None:
            return MISSING
        return self._match_key(key, raw, ctx.matching)

    def _match_key(self, key: str, raw: Mapping[Any, Any], config: MatchConfig) -> Any:
        keys = [candidate for candidate in raw if isinstance(candidate, str)]
        matcher = Matcher(replace(config, selector=None, synonyms={}, normalizer=normalize_key))
        try:
            found = matcher.match(key, keys)
        except AmbiguousMatchError as exc:
            exc.rule = self.rule
            raise
        except NoMatchError:
            return MISSING
        return raw[found]


class DerivedFrom(SourcingStage):
    """Compute the starting value from other fields or raw-input paths.

    ``refs`` accepts field names, ``$.raw.paths``, ``^.parent_field`` or
    explicit reference variants. Missing values arrive as None.

    Without ``fn`` the single referenced value is taken as-is (several
    references yield a list). With ``fn`` the resolved values are passed
    positionally; ``with_context=True`` also passes the StageContext as the
    ``ctx`` keyword.

    Example:
        total = Field(DerivedFrom(["quantity", "unit_price"], lambda q, p: q * p))
    """

    def __init__(
        self,
        refs: str | Reference | Sequence[str | Reference],
        fn: Callable[..., Any] | None = None,
        *,
        with_context: bool = False,
        rule: str | None = None,
    ) -> None:
        parsed = parse_references(refs)
        super().__init__(rule=rule or "derived_from", references=parsed)
        self.fn = fn
        self.with_context = with_context

    def apply(self, value: Any, ctx: StageContext) -> Any:
        values = [None if resolved is MISSING else resolved for resolved in ctx.resolve_all(self.references, value)]
        if self.fn is None:
            return values[0] if len(values) == 1 else values
        if self.with_context:
            return self.fn(*values, ctx=ctx)
        return self.fn(*values)


class Constant(SourcingStage):
    """Always start from a fixed value."""

    def __init__(self, value: Any, *, rule: str | None = None) -> None:
        super().__init__(rule=rule or "constant")
        self.value = value

    def apply(self, value: Any, ctx: StageContext) -> Any:
        return self.value
