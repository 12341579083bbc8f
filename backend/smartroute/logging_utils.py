from __future__ import annotations

import logging
from pathlib import Path
from tempfile import gettempdir
from typing import Any

from pythonjsonlogger import jsonlogger

from .settings import settings

LOGGER_NAME = "smartroute"
LOG_FILE_NAME = "planner.log.jsonl"

# Attributes set by logging.LogRecord itself; passing them through `extra`
# raises KeyError, so colliding fields are prefixed instead.
_RESERVED_FIELDS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_logger: logging.Logger | None = None


def _level_from_name(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def _writable_log_dir(out_dir: str) -> Path | None:
    for candidate in (
        Path(out_dir) / "logs",
        Path(gettempdir()) / LOGGER_NAME / "logs",
    ):
        try:
            candidate.mkdir(parents=True, exist_ok=True)
            probe = candidate / ".probe"
            probe.touch(exist_ok=True)
            probe.unlink(missing_ok=True)
        except OSError:
            continue
        return candidate
    return None


def configure_logging(*, level: str | None = None, to_file: bool = True) -> logging.Logger:
    """(Re)build the planner logger.

    Records go to stderr as JSON and, when a writable directory under
    OUT_DIR (or the temp dir) exists, to a JSONL file as well.
    """
    global _logger
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(_level_from_name(level or settings.log_level))
    logger.propagate = False

    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={"levelname": "level", "asctime": "ts"},
    )
    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    logger.addHandler(stream)

    log_dir = _writable_log_dir(settings.out_dir) if to_file else None
    if log_dir is not None:
        try:
            file_handler = logging.FileHandler(log_dir / LOG_FILE_NAME, encoding="utf-8")
        except OSError:
            file_handler = None
        if file_handler is not None:
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    return _logger if _logger is not None else configure_logging()


def _extra(event: str, fields: dict[str, Any]) -> dict[str, Any]:
    extra: dict[str, Any] = {"event": event}
    for key, value in fields.items():
        extra[f"field_{key}" if key in _RESERVED_FIELDS else key] = value
    return extra


def log_event(event: str, **fields: Any) -> None:
    get_logger().info(event, extra=_extra(event, fields))


def log_warning(event: str, **fields: Any) -> None:
    get_logger().warning(event, extra=_extra(event, fields))
