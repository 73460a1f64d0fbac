"""Snapshot aggregation: every parser over one state directory, merged.

build_snapshot() keeps no memory between calls; each call re-reads the
whole directory, so two calls over an unchanged directory produce equal
snapshots (apart from the live process listing).
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from ..config_schema import DashboardConfig
from .models import ProcessSnapshot, Snapshot
from .parsers import (
    ProcessInspector,
    filter_to_latest_session,
    parse_audit_log,
    parse_circuit_breaker_history,
    parse_circuit_breaker_state,
    parse_cost_log,
    parse_cost_session,
    parse_error_catalog,
    parse_exit_signals,
    parse_implementation_plan,
    parse_live_log,
    parse_orchestration,
    parse_progress,
    parse_response_analysis,
    parse_retry_log,
    parse_session_history,
    parse_status,
)
from .parsers.audit_log import DEFAULT_RECENT_EVENTS
from .parsers.live_log import DEFAULT_TAIL_LINES


ProcessSource = Callable[[], ProcessSnapshot]


@dataclass(frozen=True)
class SnapshotOptions:
    """Tunables for snapshot building (from the dashboard config section)."""

    live_log_lines: int = DEFAULT_TAIL_LINES
    audit_recent_events: int = DEFAULT_RECENT_EVENTS

    @classmethod
    def from_config(cls, config: DashboardConfig) -> SnapshotOptions:
        return cls(
            live_log_lines=config.live_log_lines,
            audit_recent_events=config.audit_recent_events,
        )


def build_snapshot(
    state_dir: str | Path,
    options: SnapshotOptions | None = None,
    processes: ProcessSource | None = None,
) -> Snapshot:
    """Read every state file in ``state_dir`` and merge the results.

    The cost log is restricted to the session of its most recent entry.

    Args:
        state_dir: The agent's state directory for one project.
        options: Tail lengths; defaults when omitted.
        processes: Source of the process listing; a ProcessInspector with
            default timeouts when omitted.
    """
    state_dir = Path(state_dir)
    options = options or SnapshotOptions()
    processes = processes or ProcessInspector()

    return Snapshot(
        cost_log=filter_to_latest_session(parse_cost_log(state_dir)),
        cost_session=parse_cost_session(state_dir),
        circuit_breaker=parse_circuit_breaker_state(state_dir),
        circuit_breaker_history=parse_circuit_breaker_history(state_dir),
        response_analysis=parse_response_analysis(state_dir),
        exit_signals=parse_exit_signals(state_dir),
        status=parse_status(state_dir),
        progress=parse_progress(state_dir),
        implementation_plan=parse_implementation_plan(state_dir),
        live_log=parse_live_log(state_dir, options.live_log_lines),
        session_history=parse_session_history(state_dir),
        error_catalog=parse_error_catalog(state_dir),
        retry_log=parse_retry_log(state_dir),
        audit_log=parse_audit_log(state_dir, options.audit_recent_events),
        orchestration=parse_orchestration(state_dir),
        processes=processes(),
    )


class SnapshotBuilder:
    """build_snapshot() bound to fixed options and process source.

    Holds configuration only, never file state, so one builder can serve
    every project concurrently.
    """

    def __init__(
        self,
        options: SnapshotOptions | None = None,
        processes: ProcessSource | None = None,
    ) -> None:
        self.options = options or SnapshotOptions()
        self.processes = processes or ProcessInspector()

    @classmethod
    def from_config(cls, config: DashboardConfig) -> SnapshotBuilder:
        return cls(
            options=SnapshotOptions.from_config(config),
            processes=ProcessInspector(
                timeout=config.process_timeout_seconds,
                lookup_timeout=config.process_lookup_timeout_seconds,
            ),
        )

    def __call__(self, state_dir: str | Path) -> Snapshot:
        return build_snapshot(state_dir, self.options, self.processes)
