"""structlog setup forwarding to stdlib handlers that render JSON lines."""

from __future__ import annotations

import logging
import logging.config
import os
from collections import deque
from pathlib import Path
from threading import Lock
from typing import Any, Iterable

import structlog

LOGGER_NAME = "spider_runner"
SPIDER_LOGGER_PREFIX = f"{LOGGER_NAME}.spider"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(threadName)s %(message)s"

_SETUP_LOCK = Lock()
_configured = False
# spider name -> file handler attached to its logger
_spider_handlers: dict[str, logging.Handler] = {}


def default_log_dir() -> Path:
    override = os.environ.get("SPIDER_RUNNER_LOG_DIR")
    if override:
        return Path(override).expanduser().resolve()
    return Path(__file__).resolve().parents[1] / "logs"


def _resolve_level(verbose: bool) -> str:
    if verbose:
        return "DEBUG"
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    return level if isinstance(logging.getLevelName(level), int) else "INFO"


def _logging_dict(level: str, log_dir: Path) -> dict[str, Any]:
    def _file(name: str, file_level: str) -> dict[str, Any]:
        return {
            "class": "logging.FileHandler",
            "level": file_level,
            "filename": str(log_dir / name),
            "encoding": "utf-8",
            "formatter": "json",
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": "pythonjsonlogger.jsonlogger.JsonFormatter", "fmt": JSON_FORMAT},
        },
        "handlers": {
            "console": {"class": "logging.StreamHandler", "level": level, "formatter": "json"},
            "run_file": _file("crawler.log", "INFO"),
            "error_file": _file("error.log", "ERROR"),
        },
        "loggers": {
            LOGGER_NAME: {
                "handlers": ["console", "run_file", "error_file"],
                "level": level,
                "propagate": False,
            },
        },
    }


def _configure_structlog() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            # rendered by the JSON formatter of each stdlib handler
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging(verbose: bool = False) -> structlog.BoundLogger:
    """Install handlers once per process and return the application logger.

    Writes ``crawler.log`` (INFO and up) and ``error.log`` (ERROR and up)
    under :func:`default_log_dir`, plus one file per spider in ``spiders/``.
    ``LOG_LEVEL`` sets the console level unless ``verbose`` forces DEBUG.
    """

    global _configured
    with _SETUP_LOCK:
        if not _configured:
            log_dir = default_log_dir()
            (log_dir / "spiders").mkdir(parents=True, exist_ok=True)
            logging.config.dictConfig(_logging_dict(_resolve_level(verbose), log_dir))
            _configure_structlog()
            _configured = True
    return structlog.get_logger(LOGGER_NAME)


def spider_logger(spider_name: str, verbose: bool = False) -> structlog.BoundLogger:
    """Return a logger bound to ``spider_name`` that also writes ``spiders/<name>.log``."""

    configure_logging(verbose)
    logger_name = f"{SPIDER_LOGGER_PREFIX}.{spider_name}"
    with _SETUP_LOCK:
        if spider_name not in _spider_handlers:
            path = default_log_dir() / "spiders" / f"{spider_name}.log"
            path.parent.mkdir(parents=True, exist_ok=True)
            handler = logging.FileHandler(path, encoding="utf-8")
            handler.setLevel(logging.INFO)
            app_handlers = logging.getLogger(LOGGER_NAME).handlers
            if app_handlers:
                handler.setFormatter(app_handlers[0].formatter)
            logging.getLogger(logger_name).addHandler(handler)
            _spider_handlers[spider_name] = handler
    return structlog.get_logger(logger_name).bind(spider=spider_name)


def tail_log(path: Path, line_count: int = 100) -> list[str]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="ignore") as stream:
        return list(deque(stream, maxlen=line_count))


def available_spider_logs() -> Iterable[Path]:
    spiders_dir = default_log_dir() / "spiders"
    if not spiders_dir.exists():
        return []
    return sorted(spiders_dir.glob("*.log"))


__all__ = [
    "LOGGER_NAME",
    "available_spider_logs",
    "configure_logging",
    "default_log_dir",
    "spider_logger",
    "tail_log",
]
