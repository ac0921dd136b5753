"""Tests for the package logger configuration."""

from __future__ import annotations

import logging

import pytest

import jeongsim_erp


@pytest.fixture
def console_handler():
    [handler] = [h for h in jeongsim_erp.log.handlers if h.get_name() == "console"]
    original = handler.level
    yield handler
    handler.setLevel(original)


def test_package_logger_is_configured_once():
    first = jeongsim_erp._configure_logging()

    assert first is jeongsim_erp.log
    assert len([h for h in first.handlers if h.get_name() == "console"]) == 1


def test_set_console_level_leaves_file_handler_alone(console_handler):
    file_levels = [h.level for h in jeongsim_erp.log.handlers if h is not console_handler]

    jeongsim_erp.set_console_level(logging.ERROR)

    assert console_handler.level == logging.ERROR
    assert [h.level for h in jeongsim_erp.log.handlers if h is not console_handler] == file_levels


@pytest.mark.parametrize(
    ("value", "expected"),
    [("debug", logging.DEBUG), ("WARNING", logging.WARNING), ("", logging.INFO), ("chatty", logging.INFO)],
)
def test_level_from_env(monkeypatch, value, expected):
    monkeypatch.setenv("JEONGSIM_LOG_LEVEL", value)

    assert jeongsim_erp._level_from_env(logging.INFO) == expected
