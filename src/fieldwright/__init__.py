"""fieldwright: declarative field transformation and validation.

Declare a schema, hand the factory messy input, get back a validated
instance or a structured error set:

    class Contact(Schema):
        name: str = Field(CoerceTrim(), ValidateRequired())
        status: str = Field(CoerceFromSet(lambda ctx: ctx["statuses"], threshold=0.6))

    contact = await ValidationFactory().create(Contact, raw, context={"statuses": STATUSES})
"""

from fieldwright.contracts import (
    MISSING,
    AIRequest,
    AmbiguousMatchError,
    CascadeError,
    ConfigurationError,
    ConvergenceTimeoutError,
    CyclicDependencyError,
    ExecutionStrategy,
    FieldRef,
    FieldValidationError,
    MatchStrategy,
    ModelHandler,
    NestedValidationError,
    NoMatchError,
    OscillationError,
    ParentRef,
    RawPath,
    RegistrationError,
    SelfValue,
    StageContext,
    ValidationFailed,
)
from fieldwright.core.cascade import Style
from fieldwright.core.config import CreateOptions, EngineSettings, LoggingSettings, load_settings
from fieldwright.core.logging import bound_call, configure_logging, get_logger
from fieldwright.core.matching import MatchConfig, Matcher
from fieldwright.core.registry import ObjectRule
from fieldwright.engine import ExecutionReport, Resolution, ValidationFactory
from fieldwright.schema import Field, Schema
from fieldwright.stages import (
    AICatchRepair,
    AITransform,
    Catch,
    Coerce,
    CoerceCase,
    CoerceFromSet,
    CoerceRound,
    CoerceTrim,
    CoerceType,
    Constant,
    Copy,
    CrossValidate,
    DerivedFrom,
    Nested,
    RecursiveValues,
    Validate,
    ValidateEquals,
    ValidateLength,
    ValidatePattern,
    ValidateRange,
    ValidateRequired,
)

__version__ = "0.1.0"

__all__ = [
    "MISSING",
    "AICatchRepair",
    "AIRequest",
    "AITransform",
    "AmbiguousMatchError",
    "CascadeError",
    "Catch",
    "Coerce",
    "CoerceCase",
    "CoerceFromSet",
    "CoerceRound",
    "CoerceTrim",
    "CoerceType",
    "ConfigurationError",
    "Constant",
    "ConvergenceTimeoutError",
    "Copy",
    "CreateOptions",
    "CrossValidate",
    "CyclicDependencyError",
    "DerivedFrom",
    "EngineSettings",
    "ExecutionReport",
    "ExecutionStrategy",
    "Field",
    "FieldRef",
    "FieldValidationError",
    "LoggingSettings",
    "MatchConfig",
    "MatchStrategy",
    "Matcher",
    "ModelHandler",
    "Nested",
    "NestedValidationError",
    "NoMatchError",
    "ObjectRule",
    "OscillationError",
    "ParentRef",
    "RawPath",
    "RecursiveValues",
    "RegistrationError",
    "Resolution",
    "Schema",
    "SelfValue",
    "StageContext",
    "Style",
    "Validate",
    "ValidateEquals",
    "ValidateLength",
    "ValidatePattern",
    "ValidateRange",
    "ValidateRequired",
    "ValidationFactory",
    "ValidationFailed",
    "bound_call",
    "configure_logging",
    "get_logger",
    "load_settings",
]
