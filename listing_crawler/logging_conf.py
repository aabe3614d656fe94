"""Logging configuration built around structlog JSON logging."""

from __future__ import annotations

import logging
import logging.config
import os
from pathlib import Path
from typing import Iterable

import structlog

from .config.loader import HOME_ENV_VAR

_LOGGING_INITIALISED = False


def _default_log_dir() -> Path:
    env_root = os.environ.get(HOME_ENV_VAR)
    if env_root:
        return Path(env_root).expanduser().resolve() / "logs"
    return Path(__file__).resolve().parents[1] / "logs"


def _slug(keyword: str) -> str:
    return "".join(ch.lower() if ch.isalnum() else "-" for ch in keyword.strip()).strip("-") or "keyword"


def configure_logging(verbose: bool = False) -> structlog.BoundLogger:
    """Configure structlog + stdlib handlers and return application logger."""

    global _LOGGING_INITIALISED
    log_dir = _default_log_dir()
    error_log = log_dir / "error.log"
    crawler_log = log_dir / "crawler.log"
    (log_dir / "keywords").mkdir(parents=True, exist_ok=True)
    error_log.touch(exist_ok=True)
    crawler_log.touch(exist_ok=True)

    if not _LOGGING_INITIALISED:
        level = "DEBUG" if verbose else "INFO"
        logging.config.dictConfig(
            {
                "version": 1,
                "disable_existing_loggers": False,
                "formatters": {
                    "plain": {
                        "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                        "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                    }
                },
                "handlers": {
                    "console": {
                        "class": "logging.StreamHandler",
                        "level": level,
                        "formatter": "plain",
                    },
                    "crawler_file": {
                        "class": "logging.FileHandler",
                        "level": "INFO",
                        "filename": str(crawler_log),
                        "formatter": "plain",
                    },
                    "error_file": {
                        "class": "logging.FileHandler",
                        "level": "ERROR",
                        "filename": str(error_log),
                        "formatter": "plain",
                    },
                },
                "loggers": {
                    "listing_crawler": {
                        "handlers": ["console", "crawler_file", "error_file"],
                        "level": level,
                        "propagate": False,
                    },
                },
            }
        )

        # Forward structlog events into stdlib; JSON rendering happens at handler level
        structlog.configure(
            processors=[
                structlog.contextvars.merge_contextvars,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.stdlib.add_log_level,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )
        _LOGGING_INITIALISED = True
    return structlog.get_logger("listing_crawler")


def keyword_logger(keyword: str, verbose: bool = False) -> structlog.BoundLogger:
    """Return a logger bound to one keyword run, with its own log file."""

    configure_logging(verbose)
    slug = _slug(keyword)
    keyword_log_path = _default_log_dir() / "keywords" / f"{slug}.log"
    keyword_log_path.parent.mkdir(parents=True, exist_ok=True)

    logger_name = f"listing_crawler.keyword.{slug}"
    py_logger = logging.getLogger(logger_name)
    if not any(
        isinstance(handler, logging.FileHandler) and handler.baseFilename == str(keyword_log_path)
        for handler in py_logger.handlers
    ):
        file_handler = logging.FileHandler(keyword_log_path, encoding="utf-8")
        global_logger = logging.getLogger("listing_crawler")
        if global_logger.handlers:
            file_handler.setFormatter(global_logger.handlers[0].formatter)
        file_handler.setLevel(logging.INFO)
        py_logger.addHandler(file_handler)

    return structlog.get_logger(logger_name).bind(keyword=keyword)


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    """Return the last N lines from a log file."""

    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        lines = stream.readlines()
    return lines[-line_count:]


def keyword_log_path(keyword: str) -> Path:
    return _default_log_dir() / "keywords" / f"{_slug(keyword)}.log"


def global_log_path() -> Path:
    return _default_log_dir() / "crawler.log"


def available_keyword_logs() -> Iterable[Path]:
    """Yield available per-keyword log file paths."""

    keywords_dir = _default_log_dir() / "keywords"
    if not keywords_dir.exists():
        return []
    return sorted(p for p in keywords_dir.glob("*.log"))


__all__ = [
    "available_keyword_logs",
    "configure_logging",
    "global_log_path",
    "keyword_log_path",
    "keyword_logger",
    "tail_log",
]
