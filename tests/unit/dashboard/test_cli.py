"""Tests for the hank-dash command line."""

from __future__ import annotations

import os
import signal
import socket
import threading
import time
from pathlib import Path
from typing import Any, Iterator

import pytest
import uvicorn

from src.config_schema import DashboardConfig
from src.dashboard import cli
from src.dashboard.registry import ConfigurationError
from src.dashboard.server import DashboardServer, DashboardStartupError, create_app, run_dashboard


@pytest.fixture
def no_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Isolate from PORT/HANK_DASH_CONFIG and any .env in the working directory."""
    monkeypatch.delenv(cli.PORT_ENV_VAR, raising=False)
    monkeypatch.delenv(cli.CONFIG_ENV_VAR, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def captured_run(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    calls: list[dict[str, Any]] = []

    def fake_run(project_paths, config=None, **kwargs: Any) -> None:
        calls.append({"paths": list(project_paths), "config": config})

    monkeypatch.setattr(cli, "run_dashboard", fake_run)
    return calls


class TestResolvePort:
    """Port precedence: flag, then PORT, then config."""

    def test_flag_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PORT", "9000")
        assert cli.resolve_port(8000, 3274) == 8000

    def test_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PORT", "9000")
        assert cli.resolve_port(None, 3274) == 9000

    def test_config_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("PORT", raising=False)
        assert cli.resolve_port(None, 3274) == 3274

    @pytest.mark.parametrize("raw", ["abc", "0", "70000"])
    def test_invalid_env(self, monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
        monkeypatch.setenv("PORT", raw)
        with pytest.raises(ConfigurationError):
            cli.resolve_port(None, 3274)


class TestMain:
    """Tests for main()."""

    def test_defaults_to_current_directory(self, no_env, captured_run, tmp_path: Path) -> None:
        assert cli.main([]) == 0

        (call,) = captured_run
        assert [Path(p) for p in call["paths"]] == [Path.cwd()]
        assert call["config"].port == 3274
        assert call["config"].open_browser is True

    def test_flags(self, no_env, captured_run, tmp_path: Path) -> None:
        assert cli.main(["a", "b", "--port", "8080", "--host", "0.0.0.0", "--no-open"]) == 0

        (call,) = captured_run
        assert call["paths"] == ["a", "b"]
        assert call["config"].port == 8080
        assert call["config"].host == "0.0.0.0"
        assert call["config"].open_browser is False

    def test_port_env(self, no_env, captured_run, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PORT", "4321")

        assert cli.main([]) == 0
        assert captured_run[0]["config"].port == 4321

    def test_config_env(self, no_env, captured_run, monkeypatch, tmp_path: Path) -> None:
        path = tmp_path / "dash.yaml"
        path.write_text("dashboard:\n  port: 5555\n")
        monkeypatch.setenv(cli.CONFIG_ENV_VAR, str(path))

        assert cli.main([]) == 0
        assert captured_run[0]["config"].port == 5555

    def test_invalid_config_exits_1(self, no_env, captured_run, tmp_path: Path, capsys) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("dashboard:\n  prot: 1\n")

        assert cli.main(["--config", str(path)]) == 1
        assert captured_run == []
        assert "hank-dash:" in capsys.readouterr().err

    def test_missing_config_exits_1(self, no_env, captured_run, tmp_path: Path) -> None:
        assert cli.main(["--config", str(tmp_path / "missing.yaml")]) == 1

    def test_invalid_port_env_exits_1(self, no_env, captured_run, monkeypatch) -> None:
        monkeypatch.setenv("PORT", "not-a-port")

        assert cli.main([]) == 1

    def test_duplicate_project_names_exit_1(self, no_env, tmp_path: Path) -> None:
        (tmp_path / "a" / "app").mkdir(parents=True)
        (tmp_path / "b" / "app").mkdir(parents=True)

        code = cli.main([
            str(tmp_path / "a" / "app"),
            str(tmp_path / "b" / "app"),
            "--no-open",
        ])

        assert code == 1

    def test_broken_yaml_exits_1(self, no_env, captured_run, tmp_path: Path, capsys) -> None:
        path = tmp_path / "broken.yaml"
        path.write_text("dashboard: [port: 1\n")

        assert cli.main(["--config", str(path)]) == 1
        assert captured_run == []
        assert "hank-dash:" in capsys.readouterr().err

    def test_startup_failure_exits_1(self, no_env, monkeypatch: pytest.MonkeyPatch) -> None:
        def fail(*args: Any, **kwargs: Any) -> None:
            raise DashboardStartupError("Could not start server on 127.0.0.1:3274")

        monkeypatch.setattr(cli, "run_dashboard", fail)

        assert cli.main(["--no-open"]) == 1


@pytest.fixture
def busy_port() -> Iterator[int]:
    """A port with another listener already bound to it."""
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        sock.listen()
        yield sock.getsockname()[1]


@pytest.fixture
def free_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def _signal_when_listening(port: int, sig: int, timeout: float = 10.0) -> threading.Thread:
    """Send ``sig`` to this process once something accepts on ``port``."""

    def run() -> None:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            try:
                with socket.create_connection(("127.0.0.1", port), timeout=0.2):
                    break
            except OSError:
                time.sleep(0.05)
        os.kill(os.getpid(), sig)

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    return thread


class TestServerLifecycle:
    """Startup failure and signal handling of the real uvicorn server."""

    def test_port_in_use_raises(self, make_project, busy_port: int, tmp_path: Path) -> None:
        project = make_project("api")
        config = DashboardConfig(
            port=busy_port, open_browser=False, static_dir=str(tmp_path / "no-static")
        )

        with pytest.raises(DashboardStartupError):
            run_dashboard([project.project_dir], config=config)

    def test_main_exits_1_when_port_in_use(self, no_env, make_project, busy_port: int) -> None:
        project = make_project("api")

        code = cli.main([str(project.project_dir), "--port", str(busy_port), "--no-open"])

        assert code == 1

    def test_handle_exit_does_not_reraise_signal(self, make_project) -> None:
        app = create_app(
            [make_project("api").project_dir], config=DashboardConfig(open_browser=False)
        )
        server = DashboardServer(uvicorn.Config(app), app.state.dashboard)

        server.handle_exit(signal.SIGTERM, None)

        assert server.should_exit
        assert not server.force_exit
        assert server.signalled
        assert getattr(server, "_captured_signals", []) == []

        server.handle_exit(signal.SIGINT, None)

        assert server.force_exit

    @pytest.mark.slow
    @pytest.mark.parametrize("sig", [signal.SIGTERM, signal.SIGINT])
    def test_shutdown_signal_exits_0(self, no_env, make_project, free_port: int, sig: int) -> None:
        project = make_project("api")
        sender = _signal_when_listening(free_port, sig)

        code = cli.main([str(project.project_dir), "--port", str(free_port), "--no-open"])

        sender.join(timeout=5)
        assert code == 0
