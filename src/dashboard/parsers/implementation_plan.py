"""Parser for IMPLEMENTATION_PLAN.md checklists."""

from __future__ import annotations

import re
from pathlib import Path

from ..models import ImplementationPlan, PlanTask
from .base import read_text

PLAN_FILE = "IMPLEMENTATION_PLAN.md"

# "- [ ] task", "* [x] task", "- [X] task"
_CHECKBOX_RE = re.compile(r"^[-*]\s+\[([ xX])\]\s+(.+)$")


def parse_implementation_plan(state_dir: str | Path) -> ImplementationPlan:
    """Extract checkbox items; every other line is ignored."""
    text = read_text(Path(state_dir) / PLAN_FILE)
    if not text:
        return ImplementationPlan()

    tasks: list[PlanTask] = []
    for line in text.splitlines():
        match = _CHECKBOX_RE.match(line)
        if match:
            tasks.append(PlanTask(completed=match.group(1) != " ", text=match.group(2).strip()))

    return ImplementationPlan(
        tasks=tasks,
        completed_count=sum(1 for t in tasks if t.completed),
        total_count=len(tasks),
    )
