"""Execution engine: pipeline runner, strategies, cross validation, factory."""

from fieldwright.engine.factory import ExecutionReport, Resolution, ValidationFactory
from fieldwright.engine.plan import SchemaPlan, compile_plan

__all__ = [
    "ExecutionReport",
    "Resolution",
    "SchemaPlan",
    "ValidationFactory",
    "compile_plan",
]
