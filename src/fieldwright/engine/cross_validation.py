# src/fieldwright/engine/cross_validation.py
"""Cross-field and whole-instance rules, run once on the stabilized instance."""

from __future__ import annotations

from types import MappingProxyType

import structlog

from fieldwright.contracts.enums import InstanceState
from fieldwright.contracts.errors import ConfigurationError, FieldValidationError
from fieldwright.engine.execution import Execution

slog = structlog.get_logger(__name__)


def run_cross_validation(execution: Execution) -> list[FieldValidationError]:
    """Evaluate field cross rules, then schema object rules.

    Cross rules of a field that already failed are skipped, and object
    rules only run when every field resolved: judging a half-built instance
    only produces noise.
    """
    plan = execution.plan
    execution.state = InstanceState.CROSS_VALIDATING
    errors: list[FieldValidationError] = []

    for name in plan.order:
        if name in execution.errors:
            continue
        for rule in plan.cross_rules.get(name, ()):
            ctx = execution.context_for(name)
            value = execution.values[name]
            try:
                rule.apply(value, ctx)
            except FieldValidationError as error:
                errors.append(error.with_path(name))
            except ConfigurationError:
                raise
            except Exception as exc:
                error = FieldValidationError(str(exc) or type(exc).__name__, path=name, rule=rule.rule, value=value)
                error.__cause__ = exc
                errors.append(error)

    if execution.errors or errors:
        return errors

    resolved = MappingProxyType(execution.resolved_values())
    for object_rule in plan.object_rules:
        try:
            verdict = object_rule.check(resolved)
        except ConfigurationError:
            raise
        except Exception as exc:
            error = FieldValidationError(str(exc) or type(exc).__name__, rule=object_rule.rule)
            error.__cause__ = exc
            errors.append(error)
            continue
        if verdict is True or verdict is None:
            continue
        message = verdict if isinstance(verdict, str) else (object_rule.message or "Object rule failed")
        errors.append(FieldValidationError(message, rule=object_rule.rule))

    if errors:
        slog.debug("cross_validation_failed", schema=plan.name, errors=len(errors))
    return errors
