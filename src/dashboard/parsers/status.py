"""Parsers for the small single-object status files the agent rewrites each loop.

- status.json: loop count, API call budget, last action
- progress.json: elapsed time and last output of the running loop
- .exit_signals: completion tracking
- .response_analysis: analysis of the latest loop response
"""

from __future__ import annotations

from pathlib import Path

from ..models import ExitSignals, Progress, ResponseAnalysis, Status
from .base import parse_json_record

STATUS_FILE = "status.json"
PROGRESS_FILE = "progress.json"
EXIT_SIGNALS_FILE = ".exit_signals"
RESPONSE_ANALYSIS_FILE = ".response_analysis"


def parse_status(state_dir: str | Path) -> Status | None:
    return parse_json_record(Path(state_dir) / STATUS_FILE, Status)


def parse_progress(state_dir: str | Path) -> Progress | None:
    return parse_json_record(Path(state_dir) / PROGRESS_FILE, Progress)


def parse_exit_signals(state_dir: str | Path) -> ExitSignals | None:
    return parse_json_record(Path(state_dir) / EXIT_SIGNALS_FILE, ExitSignals)


def parse_response_analysis(state_dir: str | Path) -> ResponseAnalysis | None:
    return parse_json_record(Path(state_dir) / RESPONSE_ANALYSIS_FILE, ResponseAnalysis)
