"""All modes, kinds and states used across subsystem boundaries."""

from enum import StrEnum


class StageKind(StrEnum):
    """Role a stage plays inside one field's pipeline.

    Pipelines run sourcing, then coercion, then validation. AI transforms
    behave as coercions. Catch boundaries are positional markers that only
    act when a stage above them fails. Cross validation never enters a
    pipeline: it runs once against the finished instance.
    """

    SOURCING = "sourcing"
    COERCION = "coercion"
    VALIDATION = "validation"
    AI_TRANSFORM = "ai_transform"
    CATCH = "catch"
    CROSS_VALIDATION = "cross_validation"


class ExecutionStrategy(StrEnum):
    """How the engine visits fields.

    SINGLE_PASS requires an acyclic dependency graph and visits each field
    once in topological order. CONVERGENT re-runs every pipeline until the
    instance reaches a fixed point.
    """

    SINGLE_PASS = "single_pass"
    CONVERGENT = "convergent"


class MatchStrategy(StrEnum):
    """Scoring strategy used by the context-aware matcher."""

    EXACT = "exact"
    FUZZY = "fuzzy"
    CONTAINS = "contains"
    PREFIX = "prefix"
    SUFFIX = "suffix"
    NUMERIC = "numeric"
    CUSTOM = "custom"


class FieldState(StrEnum):
    """Lifecycle of one field within one pass."""

    UNRESOLVED = "unresolved"
    SOURCING = "sourcing"
    COERCING = "coercing"
    VALIDATING = "validating"
    RESOLVED = "resolved"
    FAILED = "failed"


class InstanceState(StrEnum):
    """Lifecycle of one create() call."""

    BUILDING = "building"
    ITERATING = "iterating"
    CONVERGED = "converged"
    OSCILLATING = "oscillating"
    TIMED_OUT = "timed_out"
    CROSS_VALIDATING = "cross_validating"
    DONE = "done"
    FAILED = "failed"
