"""structlog configuration for the CLI and library code.

Two renderers:
- "json": one JSON object per line, for batch sweeps and log shipping
- "console": colored key=value lines for interactive runs

Logs always go to stderr so `--json` results on stdout stay parseable.
Every entry carries the run_id of the invocation that produced it; sweeps
copy the context into their worker threads so per-run events keep it too.
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar

import structlog

_run_id: ContextVar[str] = ContextVar("run_id", default="")

# Third-party loggers that are chatty at INFO (httpx logs every request)
_NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")


def set_run_id(run_id: str) -> None:
    _run_id.set(run_id)


def get_run_id() -> str:
    return _run_id.get()


def _add_run_id(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: structlog.types.EventDict,
) -> structlog.types.EventDict:
    run_id = get_run_id()
    if run_id:
        event_dict["run_id"] = run_id
    return event_dict


def setup_logging(level: str = "INFO", log_format: str = "console") -> None:
    """Route structlog and stdlib logging through one stderr handler.

    Args:
        level: Root log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: "json" or "console".
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _add_run_id,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer: structlog.types.Processor
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        # Entries from plain stdlib loggers get the same enrichment
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    ))

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level.upper()))

    quiet_level = max(root_logger.level, logging.WARNING)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Named structlog logger."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
