"""Tests for docsite.logging."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from docsite.logging import CONSOLE_FORMAT, configure_logging, get_logger, resolve_level


def test_get_logger_nests_under_docsite() -> None:
    assert get_logger().name == "docsite"
    assert get_logger("scanner").name == "docsite.scanner"


@pytest.mark.parametrize(
    ("level", "verbose", "expected"),
    [
        (None, False, logging.INFO),
        (None, True, logging.DEBUG),
        ("warning", True, logging.WARNING),
        (" error ", False, logging.ERROR),
        (logging.DEBUG, False, logging.DEBUG),
    ],
)
def test_resolve_level(level, verbose, expected) -> None:
    assert resolve_level(level, verbose=verbose) == expected


def test_resolve_level_rejects_unknown_names() -> None:
    with pytest.raises(ValueError, match="Unknown log level 'loud'"):
        resolve_level("loud")


def test_configure_logging_uses_level_and_console_format() -> None:
    logger = configure_logging(level="WARNING", console_format="%(levelname)s|%(message)s")

    assert logger.level == logging.WARNING
    assert logger.propagate is False
    [handler] = logger.handlers
    assert handler.level == logging.WARNING
    assert handler.formatter._fmt == "%(levelname)s|%(message)s"


def test_configure_logging_is_idempotent() -> None:
    configure_logging()
    logger = configure_logging(verbose=True)

    assert len(logger.handlers) == 1
    assert logger.handlers[0].formatter._fmt == CONSOLE_FORMAT
    assert logger.level == logging.DEBUG


def test_log_file_captures_debug_while_console_stays_quiet(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "docsite.log"
    logger = configure_logging(level="ERROR", log_file=log_file)

    get_logger("generator").debug("dispatching index.md")
    for handler in logger.handlers:
        handler.flush()

    console, sink = logger.handlers
    assert console.level == logging.ERROR
    assert sink.level == logging.DEBUG
    text = log_file.read_text(encoding="utf-8")
    assert "DEBUG docsite.generator [MainThread]: dispatching index.md" in text
