"""Tests for budget_analytics.logging_setup."""

from __future__ import annotations

import io
import logging

import pytest

from budget_analytics.logging_setup import LOG_LEVEL_ENV, configure_logging, get_logger, resolve_level


@pytest.mark.parametrize(
    "level, expected",
    [(logging.DEBUG, logging.DEBUG), ("warning", logging.WARNING), (" Error ", logging.ERROR), ("15", 15), ("loud", logging.INFO)],
)
def test_resolve_level(level, expected) -> None:
    assert resolve_level(level) == expected


def test_resolve_level_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv(LOG_LEVEL_ENV, "debug")
    assert resolve_level() == logging.DEBUG

    monkeypatch.delenv(LOG_LEVEL_ENV)
    assert resolve_level() == logging.INFO


def test_library_logger_is_silent_until_configured() -> None:
    get_logger("budget_analytics.parsing")

    handlers = logging.getLogger("budget_analytics").handlers
    assert handlers and all(isinstance(h, logging.NullHandler) for h in handlers)


def test_configure_logging_installs_one_handler(monkeypatch) -> None:
    monkeypatch.delenv(LOG_LEVEL_ENV, raising=False)
    first, second = io.StringIO(), io.StringIO()

    logger = configure_logging("DEBUG", stream=first)
    configure_logging("ERROR", stream=second)
    get_logger("budget_analytics.caps_store").debug("caps loaded for %s", "2024-02")

    assert logger.level == logging.DEBUG
    assert not logger.propagate
    assert [type(h) for h in logger.handlers] == [logging.StreamHandler]
    assert "DEBUG   budget_analytics.caps_store: caps loaded for 2024-02" in first.getvalue()
    assert second.getvalue() == ""
