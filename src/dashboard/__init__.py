"""Read-only live dashboard for Hank agent runs."""

from .models import Snapshot
from .registry import ConfigurationError, DuplicateProjectError, Project, ProjectRegistry
from .server import DashboardStartupError, create_app, run_dashboard
from .snapshot import SnapshotBuilder, build_snapshot
from .watcher import StateDirectoryWatcher

__all__ = [
    "ConfigurationError",
    "DashboardStartupError",
    "DuplicateProjectError",
    "Project",
    "ProjectRegistry",
    "Snapshot",
    "SnapshotBuilder",
    "StateDirectoryWatcher",
    "build_snapshot",
    "create_app",
    "run_dashboard",
]
