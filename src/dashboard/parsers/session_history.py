"""Parser for .hank_session_history.

The file comes in two shapes:

1. Legacy: a JSON array of session summaries, returned as-is.
2. Transition log: a JSON array of ``{timestamp, from_state, to_state,
   reason, loop_number}`` entries, aggregated here into one summary per
   ``session_start`` ... terminal-state span.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from ..models import SessionHistoryRecord
from .audit_log import parse_timestamp
from .base import read_json, validate_record

logger = logging.getLogger(__name__)

SESSION_HISTORY_FILE = ".hank_session_history"
TERMINAL_STATES = frozenset({"reset", "completed", "stopped"})


def parse_session_history(state_dir: str | Path) -> list[SessionHistoryRecord]:
    data = read_json(Path(state_dir) / SESSION_HISTORY_FILE)
    if not isinstance(data, list):
        return []

    if is_transition_log(data):
        return aggregate_transitions([t for t in data if isinstance(t, dict)])

    records: list[SessionHistoryRecord] = []
    for item in data:
        record = validate_record(SessionHistoryRecord, item, SESSION_HISTORY_FILE)
        if record is not None:
            records.append(record)
    return records


def is_transition_log(data: list[Any]) -> bool:
    return bool(data) and isinstance(data[0], dict) and "from_state" in data[0]


def aggregate_transitions(transitions: list[dict[str, Any]]) -> list[SessionHistoryRecord]:
    """Group transitions into sessions.

    A ``session_start`` opens a session (closing any open one as-is); a
    transition into a terminal state closes it. A trailing open session is
    reported with exit reason ``in_progress``.
    """
    sessions: list[dict[str, Any]] = []
    current: dict[str, Any] | None = None

    for t in transitions:
        reason = t.get("reason")
        if reason == "session_start":
            if current is not None:
                sessions.append(current)
            current = {
                "started_at": t.get("timestamp"),
                "loops": 0,
                "exit_reason": None,
                "total_duration_seconds": None,
            }
            continue
        if current is None:
            continue

        if reason == "loop_completed":
            current["loops"] = _loop_number(t) or current["loops"] + 1

        if t.get("to_state") in TERMINAL_STATES:
            current["exit_reason"] = reason
            current["total_duration_seconds"] = _elapsed(current["started_at"], t.get("timestamp"))
            sessions.append(current)
            current = None

    if current is not None:
        last_loop = _loop_number(transitions[-1])
        if last_loop:
            current["loops"] = last_loop
        current["exit_reason"] = "in_progress"
        sessions.append(current)

    records: list[SessionHistoryRecord] = []
    for session in sessions:
        record = validate_record(SessionHistoryRecord, session, SESSION_HISTORY_FILE)
        if record is not None:
            records.append(record)
    return records


def _loop_number(transition: dict[str, Any]) -> int | None:
    value = transition.get("loop_number")
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _elapsed(start: Any, end: Any) -> float | None:
    if not isinstance(start, (str, int, float)) or not isinstance(end, (str, int, float)):
        return None
    started = parse_timestamp(start)
    ended = parse_timestamp(end)
    if started is None or ended is None:
        return None
    try:
        return (ended - started).total_seconds()
    except TypeError:
        # naive vs aware timestamps
        logger.debug("Cannot compare timestamps %r and %r", start, end)
        return None
