"""Tests for kiln.server.terminal_errors — render error formatting."""

import logging

import pytest

from kiln.server.terminal_errors import (
    format_compact_traceback,
    format_minimal_error,
    format_template_error,
    log_error,
)


def _raise() -> None:
    raise KeyError("price")


def _caught() -> BaseException:
    try:
        _raise()
    except KeyError as exc:
        return exc
    raise AssertionError("unreachable")


class TestFormatting:
    def test_compact_lists_app_frames(self) -> None:
        text = format_compact_traceback(_caught())
        assert text.startswith("KeyError: 'price'")
        assert "in _raise" in text

    def test_minimal_is_one_line(self) -> None:
        text = format_minimal_error(_caught())
        assert "\n" not in text
        assert text.startswith("KeyError at ")

    def test_template_error_banner(self) -> None:
        text = format_template_error(ValueError("bad block"), "POST /")
        assert "Template Error" in text
        assert "bad block" in text
        assert "Render: POST /" in text


class TestLogError:
    @pytest.mark.parametrize("style", ["compact", "full", "minimal"])
    def test_styles(self, style: str, monkeypatch, caplog) -> None:
        monkeypatch.setenv("KILN_TRACEBACK", style)

        with caplog.at_level(logging.ERROR, logger="kiln.server"):
            log_error(_caught(), "POST /options")

        assert "Render error in POST /options" in caplog.text
        assert "price" in caplog.text
