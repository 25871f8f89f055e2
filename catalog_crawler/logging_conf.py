"""Structlog → stdlib JSON logging for the crawler and its CLI."""

from __future__ import annotations

import logging.config
from collections import deque
from pathlib import Path
from typing import Any

import structlog

from .config import ConfigLocator

ROOT_LOGGER = "catalog_crawler"
CRAWLER_LOG = "crawler.log"
ERROR_LOG = "error.log"

_JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# (log_dir, verbose) of the active configuration
_active: tuple[Path, bool] | None = None


def build_logging_config(log_dir: Path, verbose: bool = False) -> dict[str, Any]:
    """Return the ``dictConfig`` mapping for ``log_dir``.

    ``crawler.log`` receives every event at the active level and ``error.log``
    only errors. The console stays at WARNING unless ``verbose`` is set, so the
    CLI tables are not interleaved with event lines.
    """

    level = "DEBUG" if verbose else "INFO"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                "fmt": _JSON_FORMAT,
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": "DEBUG" if verbose else "WARNING",
                "formatter": "json",
            },
            "crawler_file": {
                "class": "logging.FileHandler",
                "level": level,
                "filename": str(log_dir / CRAWLER_LOG),
                "formatter": "json",
                "encoding": "utf-8",
            },
            "error_file": {
                "class": "logging.FileHandler",
                "level": "ERROR",
                "filename": str(log_dir / ERROR_LOG),
                "formatter": "json",
                "encoding": "utf-8",
            },
        },
        "loggers": {
            ROOT_LOGGER: {
                "handlers": ["console", "crawler_file", "error_file"],
                "level": level,
                "propagate": False,
            },
        },
    }


def configure_logging(verbose: bool = False, log_dir: Path | None = None) -> structlog.BoundLogger:
    """Route ``catalog_crawler.*`` structlog events into the JSON log files.

    ``log_dir`` defaults to the project's ``logs/`` directory. Calling again
    with the same arguments is a no-op; a different directory or verbosity
    replaces the handlers.
    """

    global _active
    target = Path(log_dir) if log_dir is not None else ConfigLocator().logs_dir
    target.mkdir(parents=True, exist_ok=True)
    if _active != (target, verbose):
        logging.config.dictConfig(build_logging_config(target, verbose))
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
        )
        _active = (target, verbose)
    return structlog.get_logger(ROOT_LOGGER)


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    """Return the last ``line_count`` lines of a log file, or ``[]`` when absent."""

    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        return list(deque(stream, maxlen=line_count))


__all__ = [
    "CRAWLER_LOG",
    "ERROR_LOG",
    "build_logging_config",
    "configure_logging",
    "tail_log",
]
