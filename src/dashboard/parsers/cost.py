"""Parsers for per-loop cost records and the session cost totals."""

from __future__ import annotations

from pathlib import Path

from ..models import CostLogEntry, CostSession
from .base import parse_json_lines, parse_json_record

COST_LOG_FILE = "cost_log.jsonl"
COST_SESSION_FILE = ".cost_session"


def parse_cost_log(state_dir: str | Path) -> list[CostLogEntry]:
    """Parse cost_log.jsonl, one entry per loop, in append order."""
    return parse_json_lines(Path(state_dir) / COST_LOG_FILE, CostLogEntry)


def parse_cost_session(state_dir: str | Path) -> CostSession | None:
    """Parse .cost_session; None when absent or unreadable."""
    return parse_json_record(Path(state_dir) / COST_SESSION_FILE, CostSession)


def filter_to_latest_session(entries: list[CostLogEntry]) -> list[CostLogEntry]:
    """Keep only the entries from the session of the most recent entry.

    No filtering happens when the log is empty or its last entry carries
    no session id.
    """
    if not entries:
        return entries
    latest = entries[-1].session_id
    if not latest:
        return entries
    return [e for e in entries if e.session_id == latest]
