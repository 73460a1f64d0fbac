"""Pytest fixtures for hank-dash tests.

Common fixtures for building project directories with agent state files.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest

from src.config import reset_config
from src.config_schema import DashboardConfig
from src.dashboard.models import ProcessSnapshot
from src.dashboard.snapshot import SnapshotBuilder


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "slow: mark test as relying on real filesystem notifications"
    )


class StateDir:
    """Writes agent state files into ``<project>/.hank``."""

    def __init__(self, project_dir: Path, name: str = ".hank") -> None:
        self.project_dir = project_dir
        self.path = project_dir / name

    def create(self) -> StateDir:
        self.path.mkdir(parents=True, exist_ok=True)
        return self

    def write_json(self, filename: str, data: Any) -> Path:
        self.create()
        target = self.path / filename
        target.write_text(json.dumps(data))
        return target

    def write_jsonl(self, filename: str, records: list[Any]) -> Path:
        self.create()
        target = self.path / filename
        target.write_text("".join(json.dumps(r) + "\n" for r in records))
        return target

    def write_text(self, filename: str, text: str) -> Path:
        self.create()
        target = self.path / filename
        target.write_text(text)
        return target


@pytest.fixture
def make_project(tmp_path: Path) -> Callable[..., StateDir]:
    """Factory for project roots under tmp_path.

    The state directory is created on first write (or explicitly with
    ``create()``), so tests can also start from a project without one.
    """

    def factory(name: str = "project") -> StateDir:
        project_dir = tmp_path / name
        project_dir.mkdir(parents=True, exist_ok=True)
        return StateDir(project_dir)

    return factory


@pytest.fixture
def state_dir(make_project: Callable[..., StateDir]) -> StateDir:
    """A single project with an existing, empty state directory."""
    return make_project().create()


@pytest.fixture
def no_processes() -> Callable[[], ProcessSnapshot]:
    """Process source that never shells out."""
    return lambda: ProcessSnapshot()


@pytest.fixture
def snapshot_builder(no_processes: Callable[[], ProcessSnapshot]) -> SnapshotBuilder:
    return SnapshotBuilder(processes=no_processes)


@pytest.fixture
def dashboard_config(tmp_path: Path) -> DashboardConfig:
    """Dashboard settings with short timings for tests."""
    return DashboardConfig(
        debounce_delay_ms=50,
        keepalive_seconds=0.2,
        open_browser=False,
        static_dir=str(tmp_path / "no-static"),
    )


@pytest.fixture(autouse=True)
def _reset_config() -> Iterator[None]:
    """Every test starts from an unloaded configuration."""
    reset_config()
    yield
    reset_config()
