"""Parser for multi-repo orchestration state.

.orchestration_state holds per-repo status; .repos.json is the optional
repo configuration and is passed through as decoded.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ..models import OrchestrationState, RepoWindow
from .base import read_json, validate_record

logger = logging.getLogger(__name__)

ORCHESTRATION_STATE_FILE = ".orchestration_state"
REPOS_CONFIG_FILE = ".repos.json"


def parse_orchestration(state_dir: str | Path) -> OrchestrationState | None:
    """Parse orchestration state; None when orchestration is not active."""
    state_dir = Path(state_dir)
    state = read_json(state_dir / ORCHESTRATION_STATE_FILE)
    if not isinstance(state, dict) or not isinstance(state.get("repos"), list):
        if state is not None:
            logger.warning("Ignoring %s: expected an object with a repos list", ORCHESTRATION_STATE_FILE)
        return None

    repos: list[RepoWindow] = []
    for item in state["repos"]:
        repo = validate_record(RepoWindow, item, ORCHESTRATION_STATE_FILE)
        if repo is not None:
            repos.append(repo)

    return OrchestrationState(
        repos=repos,
        total_repos=len(repos),
        completed_repos=sum(1 for r in repos if r.status == "completed"),
        in_progress_repos=sum(1 for r in repos if r.status == "in_progress"),
        blocked_repos=sum(1 for r in repos if r.status == "blocked"),
        config=read_json(state_dir / REPOS_CONFIG_FILE),
    )
