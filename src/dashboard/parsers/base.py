"""Shared readers for the agent's state files.

Every reader is total: a missing, unreadable, empty or corrupt file maps
to ``None`` (or an empty sequence of lines) instead of an exception.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterator, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)


def read_text(path: Path) -> str | None:
    """Read a state file as text, or None if it cannot be read.

    Undecodable bytes are replaced so that one bad byte does not hide the
    rest of an append-only log.
    """
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.warning("Cannot read %s: %s", path, e)
        return None


def read_json(path: Path) -> Any | None:
    """Decode a whole-file JSON document; empty or malformed files are None."""
    text = read_text(path)
    if text is None or not text.strip():
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("Failed to parse %s: %s", path.name, e)
        return None


def iter_json_lines(path: Path) -> Iterator[dict[str, Any]]:
    """Yield each decodable JSON object line of a JSONL file, in file order.

    Blank lines are ignored. Lines that fail to decode, or decode to
    something other than an object, are skipped; a half-written trailing
    line is normal while the agent is appending.
    """
    text = read_text(path)
    if text is None:
        return
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed line %d of %s", lineno, path.name)
            continue
        if not isinstance(data, dict):
            logger.debug("Skipping non-object line %d of %s", lineno, path.name)
            continue
        yield data


def validate_record(model: type[RecordT], data: Any, source: str) -> RecordT | None:
    """Validate one decoded value into ``model``; wrong shapes yield None."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.debug("Invalid %s record in %s: %s", model.__name__, source, e.error_count())
        return None


def parse_json_lines(path: Path, model: type[RecordT]) -> list[RecordT]:
    """Parse a JSONL file into records, dropping lines that do not validate."""
    records: list[RecordT] = []
    for data in iter_json_lines(path):
        record = validate_record(model, data, path.name)
        if record is not None:
            records.append(record)
    return records


def parse_json_record(path: Path, model: type[RecordT]) -> RecordT | None:
    """Parse a whole-file JSON object into one record, or None."""
    data = read_json(path)
    if data is None:
        return None
    record = validate_record(model, data, path.name)
    if record is None:
        logger.warning("Ignoring %s: unexpected shape", path.name)
    return record


def parse_json_array(path: Path, model: type[RecordT]) -> list[RecordT]:
    """Parse a whole-file JSON array into records, skipping invalid items."""
    data = read_json(path)
    if not isinstance(data, list):
        if data is not None:
            logger.warning("Ignoring %s: expected a JSON array", path.name)
        return []
    records: list[RecordT] = []
    for item in data:
        record = validate_record(model, item, path.name)
        if record is not None:
            records.append(record)
    return records
