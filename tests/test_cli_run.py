"""Tests for kiln.cli._run — ``kiln run`` subcommand."""

import types
from unittest.mock import MagicMock, patch

import pytest

from kiln.app import App
from kiln.cli import main
from kiln.config import KilnConfig


async def _render(store, hooks):
    yield "<html><head></head></html>"


@pytest.fixture
def fake_app(monkeypatch: pytest.MonkeyPatch) -> App:
    """Register a fake module with a kiln App instance."""
    app = App(_render, KilnConfig(host="127.0.0.1", port=8000, debug=True))
    mod = types.ModuleType("_run_test_app")
    mod.app = app  # type: ignore[attr-defined]
    mod.bad_config = App(_render, KilnConfig(render_timeout=0))  # type: ignore[attr-defined]
    monkeypatch.setitem(__import__("sys").modules, "_run_test_app", mod)
    return app


class TestKilnRun:
    @patch("kiln.server.dev.run_server")
    def test_defaults_left_to_config(self, mock_server: MagicMock, fake_app: App) -> None:
        """Omitted --host/--port/--reload fall back to the app config."""
        main(["run", "_run_test_app:app"])
        mock_server.assert_called_once()
        args = mock_server.call_args[0]
        assert args[0] is fake_app
        assert args[1] is None
        assert args[2] is None
        assert mock_server.call_args[1]["reload"] is None

    @patch("kiln.server.dev.run_server")
    def test_overrides(self, mock_server: MagicMock, fake_app: App) -> None:
        main(["run", "_run_test_app:app", "--host", "0.0.0.0", "--port", "3000", "--reload"])
        args = mock_server.call_args[0]
        assert args[1] == "0.0.0.0"
        assert args[2] == 3000
        assert mock_server.call_args[1]["reload"] is True

    @patch("kiln.server.dev.run_server")
    def test_app_path_forwarded(self, mock_server: MagicMock, fake_app: App) -> None:
        """The original import string is passed as app_path for reload."""
        main(["run", "_run_test_app:app"])
        assert mock_server.call_args[1]["app_path"] == "_run_test_app:app"

    @patch("kiln.server.dev.run_server")
    def test_invalid_config_exits(
        self, mock_server: MagicMock, fake_app: App, capsys: pytest.CaptureFixture[str]
    ) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["run", "_run_test_app:bad_config"])

        assert exc_info.value.code == 1
        assert "render_timeout" in capsys.readouterr().err
        mock_server.assert_not_called()

    @patch("kiln.server.dev.run_server")
    def test_missing_module_exits(self, mock_server: MagicMock, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["run", "nonexistent_module_xyz:app"])

        assert exc_info.value.code == 1
        assert "Error:" in capsys.readouterr().err


class TestServerDev:
    @patch("pounce.server.Server")
    def test_single_worker_config(self, mock_server_cls: MagicMock) -> None:
        from kiln.server.dev import run_server

        app = App(_render, KilnConfig(log_level="debug"))
        run_server(app, "0.0.0.0", 9000, reload=True, app_path="mod:app")

        config = mock_server_cls.call_args[0][0]
        assert mock_server_cls.call_args[0][1] is app
        assert mock_server_cls.call_args[1]["app_path"] == "mod:app"
        assert config.host == "0.0.0.0"
        assert config.port == 9000
        assert config.workers == 1
        assert config.reload is True
        assert config.log_level == "debug"
        mock_server_cls.return_value.run.assert_called_once()

    @patch("pounce.server.Server")
    def test_defaults_from_config(self, mock_server_cls: MagicMock) -> None:
        from kiln.server.dev import run_server

        run_server(App(_render, KilnConfig(host="127.0.0.1", port=8123, debug=True)))

        config = mock_server_cls.call_args[0][0]
        assert (config.host, config.port) == ("127.0.0.1", 8123)
        assert config.reload is True

    @patch("kiln.server.dev.run_server")
    def test_app_run(self, mock_server: MagicMock) -> None:
        app = App(_render)
        app.run(port=9001)

        assert mock_server.call_args[0] == (app, None, 9001)
        with pytest.raises(RuntimeError):
            app.add_reducer("late", lambda state, action: state)
