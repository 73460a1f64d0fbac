"""Process inspection: tmux sessions, claude instances and hank loop processes.

Unlike the other parsers this runs external commands rather than reading
state files. Every command runs with a timeout; a missing tool, non-zero
exit or timeout yields an empty list for that category.
"""

from __future__ import annotations

import logging
import re
import subprocess
from typing import Callable, Iterable

from ..models import ProcessInfo, ProcessSnapshot, TmuxSession

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 3.0
DEFAULT_LOOKUP_TIMEOUT_SECONDS = 2.0

PS_LIST_COMMAND = ["ps", "-eo", "pid,ppid,etime,command"]
TMUX_LIST_COMMAND = ["tmux", "list-sessions"]
HANK_LOOP_PATTERN = "hank_loop"

# "session-name: N windows (created ...)" optionally followed by "(attached)"
_TMUX_SESSION_RE = re.compile(
    r"^([^:]+):\s+(\d+)\s+windows?\s+\(created[^)]*\)\s*(\(attached\))?"
)
# The claude binary itself, not a path that merely contains "Claude"
_CLAUDE_COMMAND_RE = re.compile(r"(?:^|/)claude(?:\s|$)", re.IGNORECASE)
_CLAUDE_DESKTOP_MARKERS = ("Claude.app", "Claude Extensions", "Claude Helper")

# (argv, timeout) -> stdout; raises on failure
CommandRunner = Callable[[list[str], float], str]


def run_command(argv: list[str], timeout: float) -> str:
    """Run a command and return its stdout.

    Raises:
        OSError: If the tool is not installed.
        subprocess.SubprocessError: On timeout or non-zero exit.
    """
    result = subprocess.run(
        argv,
        capture_output=True,
        text=True,
        timeout=timeout,
        check=True,
    )
    return result.stdout


class ProcessInspector:
    """Collects the process snapshot shown next to each project.

    Args:
        runner: Executes a command; injectable for tests.
        timeout: Timeout for the listing commands, in seconds.
        lookup_timeout: Timeout for each parent-pid lookup, in seconds.
    """

    def __init__(
        self,
        runner: CommandRunner = run_command,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        lookup_timeout: float = DEFAULT_LOOKUP_TIMEOUT_SECONDS,
    ) -> None:
        self._runner = runner
        self._timeout = timeout
        self._lookup_timeout = lookup_timeout

    def __call__(self) -> ProcessSnapshot:
        return self.inspect()

    def inspect(self) -> ProcessSnapshot:
        rows = self._process_table()
        claude = [p for p in rows if is_claude_command(p.command)]
        hank = [p for p in rows if HANK_LOOP_PATTERN in p.command.lower()]
        return ProcessSnapshot(
            tmux_sessions=self.tmux_sessions(),
            claude_processes=claude,
            hank_processes=hank,
            orphans=self.detect_orphans(claude, hank, rows),
        )

    def tmux_sessions(self) -> list[TmuxSession]:
        output = self._run(TMUX_LIST_COMMAND, self._timeout)
        if output is None:
            return []
        return [parse_tmux_line(line) for line in output.splitlines() if "hank" in line]

    def detect_orphans(
        self,
        claude: list[ProcessInfo],
        hank: list[ProcessInfo],
        rows: Iterable[ProcessInfo],
    ) -> list[ProcessInfo]:
        """Claude instances supervised by neither a hank loop nor tmux.

        A process counts as supervised when its parent or grandparent is a
        hank loop or tmux process. Best effort only: processes can exit
        between the listing and the parent lookup, and a failed lookup
        counts as orphaned.
        """
        if not claude:
            return []
        supervisors = {p.pid for p in hank}
        supervisors.update(p.pid for p in rows if "tmux" in p.command)

        orphans: list[ProcessInfo] = []
        for proc in claude:
            if proc.ppid in supervisors:
                continue
            grandparent = self.parent_pid(proc.ppid)
            if grandparent is not None and grandparent in supervisors:
                continue
            orphans.append(proc)
        return orphans

    def parent_pid(self, pid: int) -> int | None:
        output = self._run(["ps", "-o", "ppid=", "-p", str(pid)], self._lookup_timeout)
        if output is None:
            return None
        try:
            return int(output.strip())
        except ValueError:
            return None

    def _process_table(self) -> list[ProcessInfo]:
        output = self._run(PS_LIST_COMMAND, self._timeout)
        if output is None:
            return []
        rows: list[ProcessInfo] = []
        for line in output.splitlines():
            proc = parse_ps_line(line)
            if proc is not None:
                rows.append(proc)
        return rows

    def _run(self, argv: list[str], timeout: float) -> str | None:
        try:
            return self._runner(argv, timeout)
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug("%s failed: %s", argv[0], e)
            return None


def parse_ps_line(line: str) -> ProcessInfo | None:
    """Parse one ``pid ppid etime command`` row; the header and junk give None."""
    parts = line.split(None, 3)
    if len(parts) < 4:
        return None
    try:
        pid, ppid = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    return ProcessInfo(pid=pid, ppid=ppid, elapsed=parts[2], command=parts[3].strip())


def parse_tmux_line(line: str) -> TmuxSession:
    match = _TMUX_SESSION_RE.match(line)
    if not match:
        return TmuxSession(raw=line)
    return TmuxSession(
        name=match.group(1).strip(),
        windows=int(match.group(2)),
        attached=match.group(3) is not None,
    )


def is_claude_command(command: str) -> bool:
    if any(marker in command for marker in _CLAUDE_DESKTOP_MARKERS):
        return False
    return _CLAUDE_COMMAND_RE.search(command) is not None


def parse_processes(
    runner: CommandRunner = run_command,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    lookup_timeout: float = DEFAULT_LOOKUP_TIMEOUT_SECONDS,
) -> ProcessSnapshot:
    """Inspect processes once with the given runner."""
    return ProcessInspector(runner, timeout, lookup_timeout).inspect()
