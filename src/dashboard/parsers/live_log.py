"""Parser for live.log, the agent's plain-text console output."""

from __future__ import annotations

from pathlib import Path

from .base import read_text

LIVE_LOG_FILE = "live.log"
DEFAULT_TAIL_LINES = 200


def parse_live_log(state_dir: str | Path, max_lines: int = DEFAULT_TAIL_LINES) -> list[str]:
    """Return the last ``max_lines`` lines of live.log."""
    text = read_text(Path(state_dir) / LIVE_LOG_FILE)
    if not text or max_lines <= 0:
        return []
    return text.splitlines()[-max_lines:]
