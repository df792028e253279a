# src/fieldwright/engine/single_pass.py
"""Single-pass strategy: one visit per field in topological order."""

from __future__ import annotations

import asyncio

import structlog

from fieldwright.contracts.enums import InstanceState
from fieldwright.contracts.errors import CyclicDependencyError
from fieldwright.engine.execution import Execution

slog = structlog.get_logger(__name__)


async def run_single_pass(execution: Execution) -> None:
    """Visit every field exactly once, dependencies first.

    With ``parallel_fields`` the fields of one topological generation share
    no edge and run concurrently; results are still recorded in
    declaration order.

    Raises:
        CyclicDependencyError: If the plan's graph has a cycle (only reachable
            through a per-call strategy override; declared single-pass
            schemas are rejected when the class is defined)
    """
    plan = execution.plan
    if plan.cyclic:
        raise CyclicDependencyError(plan.name, plan.graph.find_cycle() or [])

    execution.state = InstanceState.BUILDING
    execution.iterations = 1
    fail_fast = execution.options.fail_fast

    if execution.options.parallel_fields:
        for generation in plan.graph.generations():
            results = await asyncio.gather(*(execution.run_field(name) for name in generation))
            if fail_fast and any(result.error is not None for result in results):
                break
    else:
        for name in plan.order:
            result = await execution.run_field(name)
            if fail_fast and result.error is not None:
                break

    execution.converged = True
    slog.debug("single_pass_complete", schema=plan.name, fields=len(plan.order), errors=len(execution.errors))
