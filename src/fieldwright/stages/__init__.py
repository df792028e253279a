"""Generic stage catalog."""

from fieldwright.stages.ai import AICatchRepair, AITransform, Catch
from fieldwright.stages.coercion import (
    Coerce,
    CoerceCase,
    CoerceFromSet,
    CoerceRound,
    CoerceTrim,
    CoerceType,
    RecursiveValues,
)
from fieldwright.stages.nested import Nested
from fieldwright.stages.rules import CrossValidate, ObjectRule
from fieldwright.stages.sourcing import Constant, Copy, DerivedFrom
from fieldwright.stages.validation import (
    Validate,
    ValidateEquals,
    ValidateLength,
    ValidatePattern,
    ValidateRange,
    ValidateRequired,
)

__all__ = [
    "AICatchRepair",
    "AITransform",
    "Catch",
    "Coerce",
    "CoerceCase",
    "CoerceFromSet",
    "CoerceRound",
    "CoerceTrim",
    "CoerceType",
    "Constant",
    "Copy",
    "CrossValidate",
    "DerivedFrom",
    "Nested",
    "ObjectRule",
    "RecursiveValues",
    "Validate",
    "ValidateEquals",
    "ValidateLength",
    "ValidatePattern",
    "ValidateRange",
    "ValidateRequired",
]
