# src/fieldwright/core/logging.py
"""Structured logging for fieldwright.

Engine modules log through ``structlog.get_logger(__name__)`` and never
configure anything themselves: the host owns the root logger. A host that
wants fieldwright's format calls configure_logging() once at startup; stdlib
records from the host and from model-handler libraries then share the same
renderer through ProcessorFormatter.

Every event emitted during one create() call carries ``schema`` and
``call_id`` (see bound_call), so interleaved concurrent calls can be told
apart.
"""

import itertools
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from structlog.stdlib import ProcessorFormatter
from structlog.typing import Processor

from fieldwright.core.config import LoggingSettings

# HTTP client loggers that model handlers typically bring along.
_HANDLER_TRANSPORT_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "urllib3", "openai", "anthropic")

_call_ids = itertools.count(1)


@contextmanager
def bound_call(schema: str) -> Iterator[int]:
    """Tag every event logged inside the block with the call's identity."""
    call_id = next(_call_ids)
    with structlog.contextvars.bound_contextvars(schema=schema, call_id=call_id):
        yield call_id


def _shorten(limit: int) -> Processor:
    """Clip long string values (rejection messages can embed whole candidate lists)."""

    def processor(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        for key, value in event_dict.items():
            if key != "event" and isinstance(value, str) and len(value) > limit:
                event_dict[key] = f"{value[:limit]}... ({len(value)} chars)"
        return event_dict

    return processor


def _drop_formatter_keys(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    # Always added by ProcessorFormatter.
    del event_dict["_record"]
    del event_dict["_from_structlog"]
    return event_dict


def _renderer(json_output: bool) -> list[Processor]:
    if json_output:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer(sort_keys=True)]
    return [structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())]


def configure_logging(*, json_output: bool = False, level: str = "INFO", max_value_chars: int = 300) -> None:
    """Route structlog and stdlib logging through one processor chain on stderr.

    Args:
        json_output: One JSON object per line instead of console output
        level: Root log level (DEBUG, INFO, WARNING, ERROR)
        max_value_chars: String values longer than this are clipped
    """
    log_level = logging.getLevelNamesMapping()[level.upper()]
    pre_chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _shorten(max_value_chars),
    ]

    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Uncached so a later configure_logging() call takes effect.
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ProcessorFormatter(processors=[_drop_formatter_keys, *_renderer(json_output)], foreign_pre_chain=pre_chain))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)
    for name in _HANDLER_TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))


def configure_from_settings(settings: LoggingSettings) -> None:
    configure_logging(json_output=settings.json_output, level=settings.level, max_value_chars=settings.max_value_chars)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Bound structlog logger for ``name`` (typically ``__name__``)."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
