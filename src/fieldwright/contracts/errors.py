"""Error contracts for schema configuration and per-field data failures.

Two families, never mixed:

- ConfigurationError: a defect in how a schema is declared (cycles under
  single-pass, oscillation, convergence timeout, bad registrations). These
  are fatal and are never retried or caught by catch boundaries.
- FieldValidationError: one field's value was rejected by a coercion or
  validation stage. These carry enough structure (path, rule, offending
  value, example hints) for an upstream caller to repair the input, e.g. by
  feeding the error back into an AI retry loop.
"""

from collections.abc import Iterable, Mapping, Sequence
from typing import Any, NotRequired, TypedDict


class ErrorDetail(TypedDict):
    """Serialized shape of a FieldValidationError."""

    path: str
    rule: str
    message: str
    value: Any
    examples: NotRequired[list[Any]]
    examples_description: NotRequired[str]
    candidates: NotRequired[list[Any]]
    tied: NotRequired[list[Any]]


# =============================================================================
# Configuration errors (fatal)
# =============================================================================


class ConfigurationError(Exception):
    """Raised for schema-design defects. Never auto-retried."""


class RegistrationError(ConfigurationError):
    """Raised when field or stage declarations are inconsistent."""


class CascadeError(ConfigurationError):
    """Raised when a default pipeline or style bundle is malformed."""


class CyclicDependencyError(ConfigurationError):
    """Raised when a single-pass schema has a dependency cycle.

    Attributes:
        schema: Name of the offending schema
        cycle: Field names along the cycle, first node repeated at the end
    """

    def __init__(self, schema: str, cycle: Sequence[str]) -> None:
        self.schema = schema
        self.cycle = list(cycle)
        path = " -> ".join(self.cycle)
        super().__init__(f"Schema '{schema}' has a dependency cycle ({path}); single-pass execution requires an acyclic graph")


class OscillationError(ConfigurationError):
    """Raised when convergent fields keep cycling through the same values.

    Attributes:
        schema: Name of the offending schema
        cycles: Field name -> the repeating sequence of observed values
        iteration: Iteration at which the oscillation was detected
    """

    def __init__(self, schema: str, cycles: Mapping[str, Sequence[Any]], iteration: int) -> None:
        self.schema = schema
        self.cycles = {name: list(values) for name, values in cycles.items()}
        self.iteration = iteration
        described = "; ".join(f"{name}: {' -> '.join(repr(v) for v in values)}" for name, values in self.cycles.items())
        super().__init__(f"Schema '{schema}' oscillates at iteration {iteration} ({described})")


class ConvergenceTimeoutError(ConfigurationError):
    """Raised when convergent execution exhausts max_iterations.

    Attributes:
        schema: Name of the offending schema
        max_iterations: The exhausted iteration budget
        changing_fields: Fields whose value still changed in the last iteration
    """

    def __init__(self, schema: str, max_iterations: int, changing_fields: Iterable[str]) -> None:
        self.schema = schema
        self.max_iterations = max_iterations
        self.changing_fields = list(changing_fields)
        super().__init__(
            f"Schema '{schema}' did not converge within {max_iterations} iterations; still changing: {', '.join(self.changing_fields)}"
        )


# =============================================================================
# Data errors (per field)
# =============================================================================


class FieldValidationError(Exception):
    """A coercion or validation stage rejected a field's value.

    Attributes:
        path: Dotted field path (``items[0].sku`` for nested values)
        rule: Identifier of the rejecting stage
        value: The offending value
        message: Human-readable reason
        examples: Example values that would have been accepted
        examples_description: What the examples illustrate
    """

    def __init__(
        self,
        message: str,
        *,
        path: str = "",
        rule: str = "",
        value: Any = None,
        examples: Sequence[Any] | None = None,
        examples_description: str | None = None,
    ) -> None:
        self.message = message
        self.path = path
        self.rule = rule
        self.value = value
        self.examples = list(examples) if examples is not None else None
        self.examples_description = examples_description
        # Set by the pipeline runner: index of the stage that raised.
        self.stage_index: int | None = None
        super().__init__(message)

    def __str__(self) -> str:
        where = f"{self.path}: " if self.path else ""
        tag = f" [{self.rule}]" if self.rule else ""
        return f"{where}{self.message}{tag}"

    def with_path(self, prefix: str) -> "FieldValidationError":
        """Prefix this error's path with an enclosing field path."""
        if not self.path:
            self.path = prefix
        elif self.path.startswith("["):
            self.path = f"{prefix}{self.path}"
        else:
            self.path = f"{prefix}.{self.path}"
        return self

    def to_dict(self) -> ErrorDetail:
        detail: ErrorDetail = {
            "path": self.path,
            "rule": self.rule,
            "message": self.message,
            "value": self.value,
        }
        if self.examples is not None:
            detail["examples"] = list(self.examples)
        if self.examples_description is not None:
            detail["examples_description"] = self.examples_description
        return detail


class NoMatchError(FieldValidationError):
    """No candidate reached the match threshold.

    Fixable: exposes the full candidate list so a repair or retry mechanism
    can present the acceptable values.
    """

    def __init__(self, message: str, *, candidates: Sequence[Any], best_score: float, **kwargs: Any) -> None:
        self.candidates = list(candidates)
        self.best_score = best_score
        super().__init__(message, **kwargs)

    def to_dict(self) -> ErrorDetail:
        detail = super().to_dict()
        detail["candidates"] = list(self.candidates)
        return detail


class AmbiguousMatchError(FieldValidationError):
    """Two or more candidates tied within the ambiguity tolerance."""

    def __init__(self, message: str, *, tied: Sequence[Any], best_score: float, **kwargs: Any) -> None:
        self.tied = list(tied)
        self.best_score = best_score
        super().__init__(message, **kwargs)

    def to_dict(self) -> ErrorDetail:
        detail = super().to_dict()
        detail["tied"] = list(self.tied)
        return detail


class NestedValidationError(FieldValidationError):
    """A sub-instance failed; wraps its errors with prefixed paths."""

    def __init__(self, errors: Sequence[FieldValidationError], *, path: str = "", rule: str = "nested", value: Any = None) -> None:
        self.errors = list(errors)
        summary = f"{len(self.errors)} nested error(s)"
        super().__init__(summary, path=path, rule=rule, value=value)

    def with_path(self, prefix: str) -> "FieldValidationError":
        super().with_path(prefix)
        for error in self.errors:
            error.with_path(prefix)
        return self

    def flatten(self) -> list[FieldValidationError]:
        flat: list[FieldValidationError] = []
        for error in self.errors:
            if isinstance(error, NestedValidationError):
                flat.extend(error.flatten())
            else:
                flat.append(error)
        return flat


class ValidationFailed(Exception):
    """Terminal failure of one create() call: every unrecovered field error.

    Attributes:
        schema: Name of the schema being built
        errors: Flattened field errors, in field resolution order
    """

    def __init__(self, schema: str, errors: Sequence[FieldValidationError]) -> None:
        flat: list[FieldValidationError] = []
        for error in errors:
            if isinstance(error, NestedValidationError):
                flat.extend(error.flatten())
            else:
                flat.append(error)
        self.schema = schema
        self.errors = flat
        lines = "\n".join(f"  - {error}" for error in flat)
        super().__init__(f"Validation of '{schema}' failed with {len(flat)} error(s):\n{lines}")

    @property
    def paths(self) -> list[str]:
        return [error.path for error in self.errors]

    def to_dicts(self) -> list[ErrorDetail]:
        return [error.to_dict() for error in self.errors]
