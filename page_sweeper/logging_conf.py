"""Logging setup: structlog events rendered as JSON lines by python-json-logger."""

from __future__ import annotations

import logging
import logging.config
import os
from pathlib import Path

import structlog

_LOGGING_INITIALISED = False

LOGGER_NAME = "page_sweeper"
JSON_FIELDS = "%(asctime)s %(levelname)s %(name)s %(threadName)s %(message)s"


def default_log_dir() -> Path:
    env_root = os.environ.get("PAGE_SWEEPER_HOME")
    if env_root:
        return Path(env_root).expanduser().resolve() / "logs"
    return Path(__file__).resolve().parents[1] / "logs"


def _handlers(log_dir: Path, verbose: bool) -> dict[str, dict]:
    sweep_log = log_dir / "sweep.log"
    error_log = log_dir / "error.log"
    for path in (sweep_log, error_log):
        path.touch(exist_ok=True)
    return {
        # stdout 保留给抓取结果
        "console": {
            "class": "logging.StreamHandler",
            "level": "DEBUG" if verbose else "WARNING",
            "formatter": "json",
            "stream": "ext://sys.stderr",
        },
        "sweep_file": {
            "class": "logging.FileHandler",
            "level": "DEBUG" if verbose else "INFO",
            "filename": str(sweep_log),
            "encoding": "utf-8",
            "formatter": "json",
        },
        "error_file": {
            "class": "logging.FileHandler",
            "level": "ERROR",
            "filename": str(error_log),
            "encoding": "utf-8",
            "formatter": "json",
        },
    }


def configure_logging(verbose: bool = False) -> structlog.BoundLogger:
    """Configure handlers once per process and return the application logger.

    structlog hands its event dict to the stdlib logger as ``extra`` so the
    JSON formatter writes every bound key (``worker_id``, ``offset`` and so
    on) as a top level field.
    """

    global _LOGGING_INITIALISED
    if _LOGGING_INITIALISED:
        return structlog.get_logger(LOGGER_NAME)

    log_dir = default_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "json": {
                    "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                    "fmt": JSON_FIELDS,
                }
            },
            "handlers": _handlers(log_dir, verbose),
            "loggers": {
                LOGGER_NAME: {
                    "handlers": ["console", "sweep_file", "error_file"],
                    "level": "DEBUG" if verbose else "INFO",
                    "propagate": False,
                },
            },
        }
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _LOGGING_INITIALISED = True
    return structlog.get_logger(LOGGER_NAME)


def worker_logger(worker_id: int) -> structlog.BoundLogger:
    return structlog.get_logger(f"{LOGGER_NAME}.worker").bind(worker_id=worker_id)


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    """Last ``line_count`` lines of a log file, empty when it does not exist."""

    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        lines = stream.readlines()
    return lines[-line_count:]


__all__ = ["configure_logging", "default_log_dir", "tail_log", "worker_logger"]
