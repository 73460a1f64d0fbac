"""Parser for audit_log.jsonl, the agent's structured event timeline.

Besides the most recent events, the parse groups every event by session
(for session replay) and derives per-repo execution windows from the
orchestration lifecycle events.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from ..models import AuditEvent, AuditLog, TimelineWindow, Timestamp, first_present
from .base import parse_json_lines

AUDIT_LOG_FILE = "audit_log.jsonl"
DEFAULT_RECENT_EVENTS = 100

ORCHESTRATION_START = "orchestration_start"
ORCHESTRATION_REPO_START = "orchestration_repo_start"
ORCHESTRATION_REPO_COMPLETE = "orchestration_repo_complete"
ORCHESTRATION_COMPLETE = "orchestration_complete"
ORCHESTRATION_EVENT_TYPES = frozenset({
    ORCHESTRATION_START,
    ORCHESTRATION_REPO_START,
    ORCHESTRATION_REPO_COMPLETE,
    ORCHESTRATION_COMPLETE,
})


def parse_audit_log(state_dir: str | Path, recent: int = DEFAULT_RECENT_EVENTS) -> AuditLog:
    """Parse the audit log into recent events, per-session groups and the orchestration timeline."""
    all_events = parse_json_lines(Path(state_dir) / AUDIT_LOG_FILE, AuditEvent)
    if not all_events:
        return AuditLog()

    sessions: dict[str, list[AuditEvent]] = {}
    for event in all_events:
        if event.session_id:
            sessions.setdefault(event.session_id, []).append(event)

    return AuditLog(
        events=all_events[-recent:] if recent > 0 else [],
        sessions=sessions,
        orchestration_timeline=build_orchestration_timeline(all_events),
    )


def build_orchestration_timeline(events: list[AuditEvent]) -> list[TimelineWindow]:
    """Build one window per repo from orchestration lifecycle events.

    Windows are ordered by ascending priority, then ascending start time;
    windows without a start time sort after those with one. Each window
    also carries the start and end of the whole orchestration run.
    """
    orchestration_start: Timestamp = None
    orchestration_end: Timestamp = None
    windows: dict[str, TimelineWindow] = {}

    for event in events:
        if event.type not in ORCHESTRATION_EVENT_TYPES:
            continue
        if event.type == ORCHESTRATION_START:
            orchestration_start = event.timestamp
            continue
        if event.type == ORCHESTRATION_COMPLETE:
            orchestration_end = event.timestamp
            continue

        repo = event.repo_name or first_present(event.details, ("repo",)) or "unknown"
        repo = str(repo)
        window = windows.get(repo)
        if event.type == ORCHESTRATION_REPO_START:
            if window is None:
                window = windows[repo] = TimelineWindow(
                    name=repo, status="in_progress", priority=_priority(event)
                )
            window.start = event.timestamp
        else:
            if window is None:
                window = windows[repo] = TimelineWindow(
                    name=repo, status="completed", priority=_priority(event)
                )
            window.end = event.timestamp
            window.status = str(event.details.get("status") or "completed")

    timeline = sorted(windows.values(), key=_timeline_sort_key)
    for window in timeline:
        window.orchestration_start = orchestration_start
        window.orchestration_end = orchestration_end
    return timeline


def _priority(event: AuditEvent) -> int | float:
    value = event.details.get("priority")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return 0


def _timeline_sort_key(window: TimelineWindow) -> tuple[int | float, bool, float]:
    started = parse_timestamp(window.start)
    return (window.priority, started is None, started.timestamp() if started else 0.0)


def parse_timestamp(value: Timestamp) -> datetime | None:
    """Parse an ISO-8601 string or epoch seconds; None if unparseable."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value)
        except (OverflowError, OSError, ValueError):
            return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None
