"""Structured logging setup for OrderTrack.

Pipeline modules log through the standard library; structlog renders every
record and merges the run context (run id, source file, request id) bound by
the import orchestrator and the web middleware.
"""

import logging
import sys
from typing import Any

import structlog

from ordertrack.config import LoggingConfig

LOG_FORMATS = ("text", "json")


def _renderer(log_format: str) -> Any:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def configure_logging(level: str | None = None, config: LoggingConfig | None = None) -> None:
    """Route stdlib and structlog output through one renderer.

    Args:
        level: Overrides the configured level (CLI ``--log-level``)
        config: Log settings; read from LOG_LEVEL, LOG_FORMAT and LOG_FILE
            when omitted

    Raises:
        ValueError: If the log format is neither text nor json
    """
    config = config or LoggingConfig.from_env()
    if config.format not in LOG_FORMATS:
        raise ValueError(f"LOG_FORMAT must be one of {', '.join(LOG_FORMATS)}, got {config.format!r}")

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    structlog.configure(
        processors=pre_chain
        + [
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Pipeline modules use logging.getLogger; their records get the same
    # context and renderer as structlog events
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            _renderer(config.format),
        ],
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.file is not None:
        config.file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(config.file))

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel((level or config.level).upper())


def bind_run_context(**values: Any) -> None:
    """Attach identifiers such as the run id to every following log line."""
    structlog.contextvars.bind_contextvars(**values)


def clear_run_context(*keys: str) -> None:
    if keys:
        structlog.contextvars.unbind_contextvars(*keys)
    else:
        structlog.contextvars.clear_contextvars()


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
