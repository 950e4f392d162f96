"""Logging setup shared by the docsite CLI and service."""

from __future__ import annotations

import logging
from pathlib import Path

_LOGGER_NAME = "docsite"

CONSOLE_FORMAT = "[docsite] %(levelname)s %(message)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(threadName)s]: %(message)s"
LEVEL_NAMES = ("DEBUG", "INFO", "WARNING", "ERROR")


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the docsite hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


def resolve_level(level: int | str | None, *, verbose: bool = False) -> int:
    """Translate a level name or number; ``verbose`` wins over an unset level."""
    if level is None:
        return logging.DEBUG if verbose else logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name not in LEVEL_NAMES:
        raise ValueError(f"Unknown log level '{level}' (expected one of {', '.join(LEVEL_NAMES)})")
    return getattr(logging, name)


def configure_logging(
    *,
    verbose: bool = False,
    log_file: Path | None = None,
    level: int | str | None = None,
    console_format: str = CONSOLE_FORMAT,
) -> logging.Logger:
    """Configure the docsite logger with console output and an optional file sink.

    Page generation logs from worker threads, so the file sink records the
    thread name alongside each message.
    """
    resolved = resolve_level(level, verbose=verbose)
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(resolved)
    logger.propagate = False

    # Reset handlers to avoid duplicate output when the CLI is invoked repeatedly.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(resolved)
    stream_handler.setFormatter(logging.Formatter(console_format))
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        # The file keeps debug detail even when the console is quiet.
        file_handler.setLevel(min(resolved, logging.DEBUG))
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)
        logger.setLevel(min(resolved, logging.DEBUG))

    return logger


__all__ = ["CONSOLE_FORMAT", "LEVEL_NAMES", "configure_logging", "get_logger", "resolve_level"]
