"""Tests for kiln.render.routes — page pattern matching."""

import pytest

from kiln.render.routes import PageTable, split_pattern


class TestSplitPattern:
    def test_static_and_params(self) -> None:
        segments = split_pattern("/orders/{id:int}/{tab}")

        assert [s.text for s in segments] == ["orders", "{id:int}", "{tab}"]
        assert [(s.param, s.kind) for s in segments] == [(None, "str"), ("id", "int"), ("tab", "str")]

    def test_unknown_converter(self) -> None:
        with pytest.raises(ValueError, match="Unknown converter"):
            split_pattern("/x/{id:uuid}")

    def test_path_capture_must_be_last(self) -> None:
        with pytest.raises(ValueError, match="last segment"):
            split_pattern("/docs/{rest:path}/edit")


class TestPageTable:
    def test_root_and_static(self) -> None:
        table = PageTable({"/": "home.html", "/options": "options.html"})

        assert table.match("/").template == "home.html"
        assert table.match("/options/").template == "options.html"
        assert table.match("/options").path_args == {}
        assert table.match("/missing") is None

    def test_param_capture(self) -> None:
        table = PageTable({"/ticker/{symbol}": "ticker.html"})

        page = table.match("/ticker/AAPL")

        assert page.pattern == "/ticker/{symbol}"
        assert page.path_args == {"symbol": "AAPL"}
        assert table.match("/ticker") is None
        assert table.match("/ticker/AAPL/extra") is None

    def test_typed_param_converted(self) -> None:
        table = PageTable({"/orders/{id:int}": "order.html"})

        assert table.match("/orders/42").path_args == {"id": 42}
        assert table.match("/orders/abc") is None

    def test_static_wins_over_param(self) -> None:
        table = PageTable({"/ticker/{symbol}": "ticker.html", "/ticker/new": "new.html"})

        assert table.match("/ticker/new").template == "new.html"
        assert table.match("/ticker/MSFT").template == "ticker.html"

    def test_path_capture(self) -> None:
        table = PageTable({"/docs/{rest:path}": "docs.html", "/docs/index": "index.html"})

        assert table.match("/docs/guide/streaming").path_args == {"rest": "guide/streaming"}
        assert table.match("/docs/index").template == "index.html"

    def test_conflicting_param_names(self) -> None:
        with pytest.raises(ValueError, match="conflicts"):
            PageTable({"/ticker/{symbol}": "a.html", "/ticker/{code}/news": "b.html"})
