# src/fieldwright/core/matching.py
"""Context-aware matcher: snap a value onto a runtime-supplied candidate set.

Candidates may be scalars or arbitrary objects; a selector projects each
object onto the value that is compared. The matcher always returns the
original candidate, so a catalog object comes back whole and a numeric tier
comes back as the tier's own number.

Algorithm:
1. Synonym/alias table is consulted first (no distance computation).
2. Every candidate is scored in [0, 1] by the configured strategy.
3. The best score must reach ``threshold``; otherwise NoMatchError exposes
   the full candidate list for repair.
4. If another candidate scores within ``ambiguity_tolerance`` of the best,
   AmbiguousMatchError names every tied candidate. The matcher never
   silently picks among near-ties.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from rapidfuzz.distance import Levenshtein

from fieldwright.contracts.enums import MatchStrategy
from fieldwright.contracts.errors import AmbiguousMatchError, NoMatchError
from fieldwright.contracts.sentinels import MISSING


@dataclass(frozen=True)
class MatchConfig:
    """Matching options.

    Attributes:
        strategy: Scoring strategy
        threshold: Minimum accepted score (ignored for NUMERIC, where
            ``numeric_tolerance`` is the gate)
        ambiguity_tolerance: Candidates scoring within this distance of the
            best are ties
        case_sensitive: Compare text without case folding
        synonyms: Canonical value -> aliases that map onto it
        selector: Projects a candidate object onto its comparable value
        comparator: Custom scorer ``(value, projected_candidate) -> [0, 1]``
        numeric_tolerance: Maximum absolute distance for NUMERIC matches
        rounding: Decimal places the input is rounded to before NUMERIC
            comparison
        normalizer: Applied to both sides of text comparisons after case
            folding
    """

    strategy: MatchStrategy = MatchStrategy.FUZZY
    threshold: float = 0.8
    ambiguity_tolerance: float = 0.02
    case_sensitive: bool = False
    synonyms: Mapping[Any, Sequence[Any]] = field(default_factory=dict)
    selector: Callable[[Any], Any] | None = None
    comparator: Callable[[Any, Any], float] | None = None
    numeric_tolerance: float | None = None
    rounding: int | None = None
    normalizer: Callable[[str], str] | None = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.threshold <= 1.0:
            raise ValueError("threshold must be within [0, 1]")
        if self.ambiguity_tolerance < 0:
            raise ValueError("ambiguity_tolerance must be >= 0")
        if self.strategy is MatchStrategy.CUSTOM and self.comparator is None:
            raise ValueError("CUSTOM strategy requires a comparator")
        if self.numeric_tolerance is not None and self.numeric_tolerance < 0:
            raise ValueError("numeric_tolerance must be >= 0")


def normalize_key(text: str) -> str:
    """Fold a field/key name to its letters and digits (``First_Name`` -> ``firstname``)."""
    return "".join(char for char in text.lower() if char.isalnum())


class Matcher:
    """Scores and selects candidates according to a MatchConfig."""

    def __init__(self, config: MatchConfig | None = None) -> None:
        self._config = config or MatchConfig()

    @property
    def config(self) -> MatchConfig:
        return self._config

    def _project(self, candidate: Any) -> Any:
        if self._config.selector is None:
            return candidate
        return self._config.selector(candidate)

    def _fold(self, value: Any) -> str:
        text = str(value).strip()
        if not self._config.case_sensitive:
            text = text.casefold()
        if self._config.normalizer is not None:
            text = self._config.normalizer(text)
        return text

    def score(self, value: Any, candidate: Any) -> float:
        """Score one (already projected) candidate against the value."""
        strategy = self._config.strategy
        if strategy is MatchStrategy.CUSTOM:
            assert self._config.comparator is not None  # checked in MatchConfig
            return float(self._config.comparator(value, candidate))
        if strategy is MatchStrategy.NUMERIC:
            return self._numeric_score(value, candidate)

        left = self._fold(value)
        right = self._fold(candidate)
        if strategy is MatchStrategy.EXACT:
            return 1.0 if left == right else 0.0
        if strategy is MatchStrategy.FUZZY:
            return float(Levenshtein.normalized_similarity(left, right))
        if not left or not right:
            return 1.0 if left == right else 0.0
        shorter, longer = sorted((left, right), key=len)
        if strategy is MatchStrategy.CONTAINS:
            hit = shorter in longer
        elif strategy is MatchStrategy.PREFIX:
            hit = longer.startswith(shorter)
        else:
            hit = longer.endswith(shorter)
        return len(shorter) / len(longer) if hit else 0.0

    def _numeric_score(self, value: Any, candidate: Any) -> float:
        number = _to_number(value)
        target = _to_number(candidate)
        if number is None or target is None:
            return 0.0
        if self._config.rounding is not None:
            number = round(number, self._config.rounding)
        distance = abs(number - target)
        tolerance = self._config.numeric_tolerance
        if tolerance is not None and distance > tolerance:
            return 0.0
        return 1.0 / (1.0 + distance)

    def _synonym_hit(self, value: Any, candidates: Sequence[Any], projected: Sequence[Any]) -> Any:
        if not self._config.synonyms or isinstance(value, bool) or not isinstance(value, str | int | float):
            return MISSING
        folded = self._fold(value)
        for canonical, aliases in self._config.synonyms.items():
            if folded == self._fold(canonical) or any(folded == self._fold(alias) for alias in aliases):
                for candidate, projection in zip(candidates, projected, strict=True):
                    if self._fold(projection) == self._fold(canonical):
                        return candidate
        return MISSING

    def rank(self, value: Any, candidates: Iterable[Any]) -> list[tuple[float, Any]]:
        """Score every candidate, best first. Ties keep candidate order."""
        pool = list(candidates)
        scored = [(self.score(value, self._project(candidate)), candidate) for candidate in pool]
        return sorted(scored, key=lambda pair: -pair[0])

    def match(self, value: Any, candidates: Iterable[Any]) -> Any:
        """Return the candidate that best matches ``value``.

        Raises:
            NoMatchError: Candidate set empty or best score below threshold
            AmbiguousMatchError: Two or more candidates tie near the best score
        """
        pool = list(candidates)
        projected = [self._project(candidate) for candidate in pool]

        if not pool:
            raise NoMatchError(f"No candidates to match {value!r} against", rule="match", value=value, candidates=[], best_score=0.0)

        alias = self._synonym_hit(value, pool, projected)
        if alias is not MISSING:
            return alias

        scores = [self.score(value, projection) for projection in projected]
        best = max(scores)
        threshold = 0.0 if self._config.strategy is MatchStrategy.NUMERIC else self._config.threshold
        if best <= 0.0 or best < threshold:
            raise NoMatchError(
                f"No candidate matches {value!r} (best score {best:.2f}, threshold {threshold:.2f}); expected one of: {projected!r}",
                rule="match",
                value=value,
                candidates=projected,
                best_score=best,
            )

        tied = [pool[i] for i, score in enumerate(scores) if best - score <= self._config.ambiguity_tolerance]
        if len(tied) > 1:
            tied_names = [self._project(candidate) for candidate in tied]
            raise AmbiguousMatchError(
                f"Ambiguous match for {value!r}: {tied_names!r} all score within {self._config.ambiguity_tolerance} of {best:.2f}",
                rule="match",
                value=value,
                tied=tied_names,
                best_score=best,
            )
        return pool[scores.index(best)]


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return None if math.isnan(value) else float(value)
    if isinstance(value, str):
        try:
            return float(value.strip().replace(",", ""))
        except ValueError:
            return None
    return None
