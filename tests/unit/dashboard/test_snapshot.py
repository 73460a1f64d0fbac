"""Tests for snapshot aggregation."""

from __future__ import annotations

import json
from pathlib import Path

from src.config_schema import DashboardConfig
from src.dashboard.models import ProcessInfo, ProcessSnapshot
from src.dashboard.snapshot import SnapshotBuilder, SnapshotOptions, build_snapshot


def _empty_processes() -> ProcessSnapshot:
    return ProcessSnapshot()


class TestBuildSnapshot:
    """Tests for build_snapshot()."""

    def test_missing_directory(self, tmp_path: Path) -> None:
        snapshot = build_snapshot(tmp_path / ".hank", processes=_empty_processes)
        wire = snapshot.to_wire()

        assert wire["costLog"] == []
        assert wire["costSession"] is None
        assert wire["circuitBreaker"] is None
        assert wire["status"] is None
        assert wire["implementationPlan"] == {"tasks": [], "completedCount": 0, "totalCount": 0}
        assert wire["auditLog"] == {"events": [], "sessions": {}, "orchestrationTimeline": []}
        assert wire["processes"] == {
            "tmuxSessions": [],
            "claudeProcesses": [],
            "hankProcesses": [],
            "orphans": [],
        }

    def test_wire_has_every_entity(self, tmp_path: Path) -> None:
        wire = build_snapshot(tmp_path, processes=_empty_processes).to_wire()

        assert set(wire) == {
            "costLog",
            "costSession",
            "circuitBreaker",
            "circuitBreakerHistory",
            "responseAnalysis",
            "exitSignals",
            "status",
            "progress",
            "implementationPlan",
            "liveLog",
            "sessionHistory",
            "errorCatalog",
            "retryLog",
            "auditLog",
            "orchestration",
            "processes",
        }

    def test_cost_log_filtered_to_latest_session(self, state_dir) -> None:
        state_dir.write_jsonl("cost_log.jsonl", [
            {"session_id": s, "loop": i} for i, s in enumerate("AABBB")
        ])

        snapshot = build_snapshot(state_dir.path, processes=_empty_processes)

        assert [e.loop_number for e in snapshot.cost_log] == [2, 3, 4]

    def test_cost_log_unfiltered_without_latest_session(self, state_dir) -> None:
        state_dir.write_jsonl("cost_log.jsonl", [
            {"session_id": "A", "loop": 1},
            {"session_id": "A", "loop": 2},
            {"session_id": None, "loop": 3},
        ])

        snapshot = build_snapshot(state_dir.path, processes=_empty_processes)

        assert len(snapshot.cost_log) == 3

    def test_idempotent(self, state_dir) -> None:
        state_dir.write_jsonl("cost_log.jsonl", [{"session_id": "s", "loop": 1, "cost_usd": 0.1}])
        state_dir.write_json("status.json", {"loop_count": 1})
        state_dir.write_text("live.log", "hello\n")
        state_dir.write_jsonl("audit_log.jsonl", [{"type": "loop_start", "session_id": "s"}])

        first = build_snapshot(state_dir.path, processes=_empty_processes)
        second = build_snapshot(state_dir.path, processes=_empty_processes)

        assert first == second
        assert first.to_json() == second.to_json()

    def test_json_frame_is_camel_case(self, state_dir) -> None:
        state_dir.write_json("status.json", {"loop_count": 5})

        data = json.loads(build_snapshot(state_dir.path, processes=_empty_processes).to_json())

        assert data["status"]["loopCount"] == 5

    def test_options_limit_tails(self, state_dir) -> None:
        state_dir.write_text("live.log", "\n".join(str(i) for i in range(10)))
        state_dir.write_jsonl("audit_log.jsonl", [{"type": "tick", "loop": i} for i in range(10)])

        snapshot = build_snapshot(
            state_dir.path,
            SnapshotOptions(live_log_lines=3, audit_recent_events=2),
            processes=_empty_processes,
        )

        assert snapshot.live_log == ["7", "8", "9"]
        assert [e.loop for e in snapshot.audit_log.events] == [8, 9]


class TestSnapshotBuilder:
    """Tests for SnapshotBuilder."""

    def test_uses_process_source(self, tmp_path: Path) -> None:
        proc = ProcessInfo(pid=1, ppid=0, elapsed="00:01", command="claude")
        builder = SnapshotBuilder(processes=lambda: ProcessSnapshot(claude_processes=[proc]))

        snapshot = builder(tmp_path)

        assert snapshot.processes.claude_processes == [proc]

    def test_from_config(self) -> None:
        config = DashboardConfig(
            live_log_lines=7,
            audit_recent_events=9,
            process_timeout_seconds=1.0,
            process_lookup_timeout_seconds=0.5,
        )

        builder = SnapshotBuilder.from_config(config)

        assert builder.options == SnapshotOptions(live_log_lines=7, audit_recent_events=9)
