"""Logging setup for pool services and scripts."""

import logging

import structlog


def configure_logging(*, json_output: bool = True, level: str = "INFO") -> None:
    """Configure structlog for production use.

    Args:
        json_output: If True, output JSON logs (for production)
        level: Log level (DEBUG, INFO, WARNING, ERROR)
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level.upper())),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_pool_context(pool: str, **extra: str) -> None:
    """Attach pool identity to every log line emitted in this context."""
    structlog.contextvars.bind_contextvars(pool=pool, **extra)


def clear_pool_context() -> None:
    structlog.contextvars.clear_contextvars()
