"""Logging configuration using structlog.

Logs go to stderr so stdout stays reserved for data output (piping).
"""

import logging
import sys
from typing import Any

import structlog

_LOG_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


class _LazyStderrFactory:
    """Resolve sys.stderr when a logger is created, not at configure() time.

    CliRunner swaps sys.stderr between invocations, so a handle captured
    once by PrintLoggerFactory(file=sys.stderr) goes stale.
    """

    def __call__(self, *args: Any, **kwargs: Any) -> structlog.PrintLogger:
        return structlog.PrintLogger(file=sys.stderr)


def setup_logging(verbose: bool = False, level: str | None = None) -> None:
    """Configure structlog for GridStream.

    Args:
        verbose: If True, log at DEBUG. Otherwise INFO.
        level: Explicit level name; overrides ``verbose`` when given.
    """
    log_level = level or ("debug" if verbose else "info")
    if log_level not in _LOG_LEVELS:
        msg = f"Unknown log level {log_level!r}. Use one of: {', '.join(_LOG_LEVELS)}"
        raise ValueError(msg)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_LOG_LEVELS[log_level]),
        context_class=dict,
        logger_factory=_LazyStderrFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None, **context: Any) -> Any:
    """Get a structlog logger, optionally bound with a name and extra context.

    Never call this at module level. Call it inside functions or
    __init__() after setup_logging() has run.
    """
    logger = structlog.get_logger()
    if name:
        logger = logger.bind(logger=name)
    if context:
        logger = logger.bind(**context)
    return logger
