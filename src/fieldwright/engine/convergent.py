# src/fieldwright/engine/convergent.py
"""Convergent strategy: iterate every pipeline to a fixed point.

1. Seed pass: sourcing stages only, so cross-references have something to
   read. Seed failures leave the field MISSING.
2. Iterate up to ``max_iterations``: take a read-only snapshot, re-run
   every field's full pipeline in processing order (each field sees the
   values already updated in this iteration), then diff against the
   snapshot. No value and no error changed: converged.
3. A per-field rolling history catches oscillation: a field whose recent
   values repeat a cycle of two or more distinct values is fatal.
4. Running out of iterations is fatal and names the still-changing fields.

Errors raised inside iterations are transient; only the errors of the
converged iteration are reported. A catch boundary repair resets that
field's history.

Snapshots and histories hold references, not copies: stages return new
values and never mutate the instance, and a matcher result is the candidate
object itself, which need not be copyable or define __eq__.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Mapping, Sequence
from types import MappingProxyType
from typing import Any

import structlog

from fieldwright.contracts.enums import InstanceState
from fieldwright.contracts.errors import ConvergenceTimeoutError, OscillationError
from fieldwright.contracts.sentinels import MISSING
from fieldwright.engine.execution import Execution

slog = structlog.get_logger(__name__)


def same_value(left: Any, right: Any) -> bool:
    """Equality that treats MISSING by identity and never raises on odd types."""
    if left is right:
        return True
    if left is MISSING or right is MISSING:
        return False
    try:
        return bool(left == right)
    except (TypeError, ValueError):
        return False


def detect_cycle(history: Sequence[Any]) -> list[Any] | None:
    """The repeating value cycle at the tail of ``history``, if any.

    A cycle of period p is reported when the last 2p values are the same
    p-length sequence twice over and it holds at least two distinct values.
    """
    values = list(history)
    for period in range(2, len(values) // 2 + 1):
        tail = values[-period:]
        before = values[-2 * period : -period]
        if not all(same_value(a, b) for a, b in zip(tail, before, strict=True)):
            continue
        if any(not same_value(tail[0], other) for other in tail[1:]):
            return tail
    return None


def _error_signature(execution: Execution) -> dict[str, tuple[str, str]]:
    return {name: (error.rule, error.message) for name, error in execution.errors.items()}


async def run_convergent(execution: Execution) -> None:
    """Drive ``execution`` to a fixed point.

    Raises:
        OscillationError: If any field cycles between values
        ConvergenceTimeoutError: If max_iterations is exhausted
    """
    plan = execution.plan
    options = execution.options

    for name in plan.order:
        await execution.seed_field(name)

    histories: dict[str, deque[Any]] = {name: deque(maxlen=options.oscillation_window) for name in plan.order}
    execution.state = InstanceState.ITERATING
    changing: list[str] = []

    for iteration in range(1, options.max_iterations + 1):
        execution.iterations = iteration
        snapshot: Mapping[str, Any] = MappingProxyType(dict(execution.values))
        previous_errors = _error_signature(execution)
        execution.repaired.clear()

        for name in plan.order:
            await execution.run_field(name)

        changing = [name for name in plan.order if not same_value(snapshot[name], execution.values[name])]
        errors_changed = _error_signature(execution) != previous_errors
        slog.debug(
            "convergent_iteration",
            schema=plan.name,
            iteration=iteration,
            changed=changing,
            errors=len(execution.errors),
        )
        if not changing and not errors_changed:
            execution.converged = True
            execution.state = InstanceState.CONVERGED
            slog.debug("converged", schema=plan.name, iterations=iteration)
            return

        cycles: dict[str, list[Any]] = {}
        for name in plan.order:
            history = histories[name]
            if name in execution.repaired:
                history.clear()
            history.append(execution.values[name])
            if name in changing:
                cycle = detect_cycle(history)
                if cycle is not None:
                    cycles[name] = cycle
        if cycles:
            execution.state = InstanceState.OSCILLATING
            slog.error("oscillation_detected", schema=plan.name, iteration=iteration, fields=sorted(cycles))
            raise OscillationError(plan.name, cycles, iteration)

    execution.state = InstanceState.TIMED_OUT
    if not changing:
        # Only the error set kept moving.
        changing = sorted(execution.errors)
    slog.error("convergence_timeout", schema=plan.name, max_iterations=options.max_iterations, changing=changing)
    raise ConvergenceTimeoutError(plan.name, options.max_iterations, changing)
