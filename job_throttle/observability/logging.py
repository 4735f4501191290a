"""
Structured logging for throttled job execution.

Library modules log through the standard library with ``extra=`` fields.
``setup_logging`` routes those records through structlog; job and
admission identifiers bound with the helpers below are merged into every
record emitted while they are bound.
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog
from opentelemetry import trace

from job_throttle.config import Settings, get_settings
from job_throttle.types.job import JobContext

# Third-party loggers that are noisy below WARNING
QUIET_LOGGERS = ("redis", "opentelemetry")


def add_trace_ids(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Attach the active OpenTelemetry trace and span ids, if any."""
    ctx = trace.get_current_span().get_span_context()
    if ctx.is_valid:
        event_dict.setdefault("trace_id", format(ctx.trace_id, "032x"))
        event_dict.setdefault("span_id", format(ctx.span_id, "016x"))
    return event_dict


def _renderer(log_format: str) -> Any:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def setup_logging(settings: Settings | None = None) -> None:
    """
    Configure structured logging for the host process.

    Args:
        settings: Settings to read ``log_level`` and ``log_format`` from.
            Defaults to the cached environment settings.
    """
    settings = settings or get_settings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.ExtraAdder(),
        add_trace_ids,
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(settings.log_format),
            ],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_job_context(context: JobContext) -> None:
    """Bind the identity of a job attempt to all subsequent log records."""
    structlog.contextvars.bind_contextvars(
        job_id=str(context.job_id),
        job_type=context.job_type,
        attempt=context.attempt,
    )


@contextmanager
def bound_admission_context(**fields: Any) -> Iterator[None]:
    """
    Bind admission fields (bucket, lock key, decision) for a block.

    None values are skipped. Previous values are restored on exit.
    """
    with structlog.contextvars.bound_contextvars(
        **{name: value for name, value in fields.items() if value is not None}
    ):
        yield


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
