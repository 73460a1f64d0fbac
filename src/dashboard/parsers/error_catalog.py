"""Parser for .error_catalog: deduplicated error signatures with counters."""

from __future__ import annotations

import logging
from pathlib import Path

from ..models import ErrorCatalogEntry
from .base import read_json, validate_record

logger = logging.getLogger(__name__)

ERROR_CATALOG_FILE = ".error_catalog"


def parse_error_catalog(state_dir: str | Path) -> list[ErrorCatalogEntry]:
    """Parse ``{"errors": [...]}``; any other shape is an empty catalog."""
    path = Path(state_dir) / ERROR_CATALOG_FILE
    data = read_json(path)
    if not isinstance(data, dict) or not isinstance(data.get("errors"), list):
        if data is not None:
            logger.warning("Ignoring %s: expected an object with an errors list", path.name)
        return []

    entries: list[ErrorCatalogEntry] = []
    for item in data["errors"]:
        entry = validate_record(ErrorCatalogEntry, item, path.name)
        if entry is not None:
            entries.append(entry)
    return entries
