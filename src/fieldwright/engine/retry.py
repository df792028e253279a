# src/fieldwright/engine/retry.py
"""Bounded, error-aware retry loop around AI transform stages.

Each attempt calls the model handler and then runs the rest of the same
field's pipeline on its output. When a downstream stage rejects that
output, the rejection is handed to the next attempt explicitly, so the
handler can correct itself. No retry state lives anywhere but this call.

Only data errors (FieldValidationError) are retried. Configuration errors
propagate on the first occurrence.
"""

from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt

from fieldwright.contracts.errors import FieldValidationError

slog = structlog.get_logger(__name__)

T = TypeVar("T")


async def retry_with_feedback(attempt: Callable[[int, FieldValidationError | None], Awaitable[T]], *, max_retries: int, field: str, rule: str) -> T:
    """Run ``attempt`` until one succeeds or ``max_retries`` attempts are spent.

    Args:
        attempt: Coroutine factory receiving the 1-based attempt number and
            the previous attempt's rejection (None on the first attempt)
        max_retries: Attempt budget; attempts are numbered 1..max_retries
        field: Field name (for logging)
        rule: Rule of the AI stage (for logging)

    Returns:
        The first attempt's result that no downstream stage rejected

    Raises:
        FieldValidationError: The last rejection once the budget is spent
    """
    previous: FieldValidationError | None = None
    async for attempt_state in AsyncRetrying(
        stop=stop_after_attempt(max_retries),
        retry=retry_if_exception_type(FieldValidationError),
        reraise=True,
    ):
        with attempt_state:
            number = attempt_state.retry_state.attempt_number
            try:
                return await attempt(number, previous)
            except FieldValidationError as error:
                previous = error
                if number < max_retries:
                    slog.warning(
                        "ai_output_rejected",
                        field=field,
                        stage=rule,
                        attempt=number,
                        max_retries=max_retries,
                        rejected_by=error.rule,
                        reason=error.message,
                    )
                else:
                    slog.warning("ai_retries_exhausted", field=field, stage=rule, attempts=number, rejected_by=error.rule)
                raise

    # AsyncRetrying always returns or raises
    raise RuntimeError("Unexpected state in retry loop")  # pragma: no cover
