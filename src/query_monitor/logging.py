"""
Logging configuration for the monitoring engine.

Module loggers hang below the ``query_monitor`` package logger, which owns the
console/file handlers. Level, format and file path come from a
MonitoringSettings instance and can be re-applied at runtime.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from functools import cache
from pathlib import Path

from .config import MonitoringSettings, get_settings

PACKAGE_LOGGER = "query_monitor"
TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Attributes every LogRecord carries; anything else arrived through `extra=`
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, extras included as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        payload.update({
            key: value for key, value in vars(record).items()
            if key not in _RECORD_ATTRS
        })
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


class ColoredFormatter(logging.Formatter):
    """Text formatter colouring the level name for terminals."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        original = record.levelname
        color = self.COLORS.get(original)
        if color:
            record.levelname = f"{color}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


class _ManagedHandler:
    """Marker mixin for handlers installed by setup_logging."""


class _ConsoleHandler(_ManagedHandler, logging.StreamHandler):
    pass


class _FileHandler(_ManagedHandler, logging.FileHandler):
    pass


def build_formatter(use_json: bool, tty: bool = False) -> logging.Formatter:
    if use_json:
        return JSONFormatter()
    if tty:
        return ColoredFormatter(TEXT_FORMAT)
    return logging.Formatter(TEXT_FORMAT)


def resolve_level(level: str) -> int:
    value = logging.getLevelName(level.upper())
    return value if isinstance(value, int) else logging.INFO


def _build_handlers(config: MonitoringSettings) -> list[logging.Handler]:
    use_json = config.log_format == "json"

    console = _ConsoleHandler(sys.stdout)
    console.setFormatter(build_formatter(use_json, tty=sys.stdout.isatty()))
    handlers: list[logging.Handler] = [console]

    if config.log_file_path:
        log_file = Path(config.log_file_path)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = _FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(build_formatter(use_json))
        handlers.append(file_handler)

    return handlers


def setup_logging(
    config: MonitoringSettings | None = None,
    name: str = PACKAGE_LOGGER,
) -> logging.Logger:
    """
    Configure ``name`` and every logger below it from settings.

    Handlers installed by an earlier call are closed and replaced, so the call
    can be repeated whenever the logging settings change.

    Args:
        config: Settings to apply (default: the cached global settings)
        name: Logger that owns the handlers

    Returns:
        The configured logger
    """
    config = config or get_settings()
    level = resolve_level(config.log_level)
    logger = logging.getLogger(name)

    for handler in [h for h in logger.handlers if isinstance(h, _ManagedHandler)]:
        logger.removeHandler(handler)
        handler.close()

    for handler in _build_handlers(config):
        handler.setLevel(level)
        logger.addHandler(handler)

    logger.setLevel(level)
    logger.propagate = False

    prefix = f"{name}."
    for child_name, child in list(logging.Logger.manager.loggerDict.items()):
        if child_name.startswith(prefix) and isinstance(child, logging.Logger):
            child.setLevel(level)

    return logger


def _package_logger() -> logging.Logger:
    package = logging.getLogger(PACKAGE_LOGGER)
    if not any(isinstance(h, _ManagedHandler) for h in package.handlers):
        package = setup_logging()
    return package


@cache
def get_logger(name: str) -> logging.Logger:
    """
    Get a module logger. Loggers inside the package inherit the package
    logger's handlers and follow its level.
    """
    package = _package_logger()
    logger = logging.getLogger(name)
    if name.startswith(f"{PACKAGE_LOGGER}."):
        logger.setLevel(package.level)
    return logger
