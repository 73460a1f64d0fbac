"""Parser for .retry_log (JSONL): one line per retry attempt."""

from __future__ import annotations

from pathlib import Path

from ..models import RetryLogEntry
from .base import parse_json_lines

RETRY_LOG_FILE = ".retry_log"


def parse_retry_log(state_dir: str | Path) -> list[RetryLogEntry]:
    return parse_json_lines(Path(state_dir) / RETRY_LOG_FILE, RetryLogEntry)
