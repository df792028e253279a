"""Shared contracts for fieldwright.

Leaf package: everything here may be imported by core, engine and stages,
and imports nothing from them at runtime.
"""

from fieldwright.contracts.enums import (
    ExecutionStrategy,
    FieldState,
    InstanceState,
    MatchStrategy,
    StageKind,
)
from fieldwright.contracts.errors import (
    AmbiguousMatchError,
    CascadeError,
    ConfigurationError,
    ConvergenceTimeoutError,
    CyclicDependencyError,
    ErrorDetail,
    FieldValidationError,
    NestedValidationError,
    NoMatchError,
    OscillationError,
    RegistrationError,
    ValidationFailed,
)
from fieldwright.contracts.references import (
    FieldRef,
    ParentRef,
    RawPath,
    Reference,
    SelfValue,
    lookup_path,
    parse_reference,
    parse_references,
)
from fieldwright.contracts.sentinels import MISSING, MissingSentinel
from fieldwright.contracts.stage import (
    AIRequest,
    CatchStage,
    CoercionStage,
    ModelHandler,
    ParentScope,
    SourcingStage,
    Stage,
    StageContext,
    ValidationStage,
)

__all__ = [
    "MISSING",
    "AIRequest",
    "AmbiguousMatchError",
    "CascadeError",
    "CatchStage",
    "CoercionStage",
    "ConfigurationError",
    "ConvergenceTimeoutError",
    "CyclicDependencyError",
    "ErrorDetail",
    "ExecutionStrategy",
    "FieldRef",
    "FieldState",
    "FieldValidationError",
    "InstanceState",
    "MatchStrategy",
    "MissingSentinel",
    "ModelHandler",
    "NestedValidationError",
    "NoMatchError",
    "OscillationError",
    "ParentRef",
    "ParentScope",
    "RawPath",
    "Reference",
    "RegistrationError",
    "SelfValue",
    "SourcingStage",
    "Stage",
    "StageContext",
    "StageKind",
    "ValidationFailed",
    "ValidationStage",
    "lookup_path",
    "parse_reference",
    "parse_references",
]
