"""Structured logging configuration for media metadata lookups."""

import logging
import sys
from pathlib import Path
from typing import List, Optional

import structlog

from mediameta.config import LoggingConfig

# These log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore")


def _renderer(log_format: str):
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def _handlers(config: LoggingConfig, level: int) -> List[logging.Handler]:
    """stderr handler plus an optional file handler.

    stdout is reserved for lookup results.
    """
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(level)
    handlers: List[logging.Handler] = [console]

    if config.output:
        try:
            log_path = Path(config.output)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
            file_handler.setLevel(level)
            handlers.append(file_handler)
        except OSError as e:
            print(f"Warning: Could not create log file {config.output}: {e}", file=sys.stderr)

    return handlers


def setup_logging(config: LoggingConfig) -> None:
    """Configure structlog on top of stdlib logging.

    Context bound with ``structlog.contextvars`` (e.g. the batch item index)
    is merged into every event.
    """
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _renderer(config.format),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    level = getattr(logging, config.level.upper())
    logging.basicConfig(
        format="%(message)s",
        level=level,
        handlers=_handlers(config, level),
        force=True,
    )

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
