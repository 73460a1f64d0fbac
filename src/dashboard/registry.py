"""Project registry: the set of monitored projects and their runtime state.

Each project owns its watcher and its viewer set exclusively; nothing is
shared across projects, so several registries can coexist in one process.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Iterator

from .hub import SubscriberSet

if TYPE_CHECKING:
    from .watcher import StateDirectoryWatcher

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR_NAME = ".hank"


class ConfigurationError(Exception):
    """Invalid startup configuration."""


class DuplicateProjectError(ConfigurationError):
    """Two project roots share the same directory name."""

    def __init__(self, name: str, first: Path, second: Path) -> None:
        super().__init__(
            f"Projects {first} and {second} share the name {name!r}; "
            "project names must be unique"
        )
        self.name = name
        self.paths = (first, second)


@dataclass(frozen=True)
class Project:
    """A monitored project root and the agent state directory inside it."""

    name: str
    directory_path: Path
    state_directory: Path

    @classmethod
    def from_path(cls, path: str | Path, state_dir_name: str = DEFAULT_STATE_DIR_NAME) -> Project:
        resolved = Path(path).expanduser().resolve()
        return cls(
            name=resolved.name,
            directory_path=resolved,
            state_directory=resolved / state_dir_name,
        )

    def summary(self) -> dict[str, Any]:
        """Listing entry for /api/projects."""
        return {"name": self.name, "path": str(self.directory_path)}


@dataclass
class ProjectRuntime:
    """Mutable per-project state: the change watcher and the live viewers.

    ``broadcast_lock`` orders snapshot builds with their delivery, so frames
    reach viewers in the order the state was read.
    """

    project: Project
    subscribers: SubscriberSet = field(default_factory=SubscriberSet)
    watcher: StateDirectoryWatcher | None = None
    broadcast_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def name(self) -> str:
        return self.project.name

    def stop(self) -> None:
        """Release the watch, drop any pending broadcast and end every viewer stream.

        Safe to call repeatedly and when watching never started.
        """
        if self.watcher is not None:
            self.watcher.stop()
            self.watcher = None
        closed = self.subscribers.close_all()
        if closed:
            logger.info("Closed %d viewer(s) of %s", closed, self.name)


class ProjectRegistry:
    """Ordered, immutable set of projects keyed by unique name."""

    def __init__(self, projects: Iterable[Project]) -> None:
        self._runtimes: dict[str, ProjectRuntime] = {}
        for project in projects:
            existing = self._runtimes.get(project.name)
            if existing is not None:
                raise DuplicateProjectError(
                    project.name, existing.project.directory_path, project.directory_path
                )
            self._runtimes[project.name] = ProjectRuntime(project)
        if not self._runtimes:
            raise ConfigurationError("At least one project path is required")

    @classmethod
    def from_paths(
        cls,
        paths: Iterable[str | Path],
        state_dir_name: str = DEFAULT_STATE_DIR_NAME,
    ) -> ProjectRegistry:
        """Build a registry from project root paths (names are the basenames).

        Raises:
            DuplicateProjectError: If two roots have the same basename.
            ConfigurationError: If no paths are given.
        """
        return cls(Project.from_path(p, state_dir_name) for p in paths)

    def __len__(self) -> int:
        return len(self._runtimes)

    def __iter__(self) -> Iterator[Project]:
        return (rt.project for rt in self._runtimes.values())

    def __contains__(self, name: object) -> bool:
        return name in self._runtimes

    @property
    def names(self) -> list[str]:
        return list(self._runtimes)

    def projects(self) -> list[Project]:
        return [rt.project for rt in self._runtimes.values()]

    def runtimes(self) -> list[ProjectRuntime]:
        return list(self._runtimes.values())

    def get(self, name: str) -> Project | None:
        """Look up a project by name; None if it is not registered."""
        runtime = self._runtimes.get(name)
        return runtime.project if runtime else None

    def runtime(self, name: str) -> ProjectRuntime | None:
        return self._runtimes.get(name)

    def primary_project(self) -> Project:
        """The project used when a request names none (the first registered)."""
        return next(iter(self._runtimes.values())).project

    def resolve(self, name: str | None) -> ProjectRuntime | None:
        """Runtime for ``name``, the primary project's for an empty name, else None."""
        if not name:
            return self._runtimes[self.primary_project().name]
        return self._runtimes.get(name)

    def stop_all(self) -> None:
        for runtime in self._runtimes.values():
            runtime.stop()
