"""Pydantic models for the dashboard snapshot and the records it is built from.

Records are validated from the agent's on-disk (snake_case) field names and
serialized with camelCase keys, which is what the viewer consumes. Where
older and newer agent versions spell the same concept differently, the
field carries an ordered ``AliasChoices``; the first spelling present with
a non-null value wins.
"""

from __future__ import annotations

from typing import Any, Union

from pydantic import (
    AliasChoices,
    AliasGenerator,
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)
from pydantic.alias_generators import to_camel

# Agents write ISO-8601 strings; a few older writers used epoch seconds.
Timestamp = Union[str, float, None]


def first_present(data: dict[str, Any], keys: tuple[str, ...], default: Any = None) -> Any:
    """Return the value of the first key in ``keys`` that is present and not None."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return default


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=AliasGenerator(serialization_alias=to_camel),
        populate_by_name=True,
        extra="ignore",
    )


class StateRecord(CamelModel):
    """A record decoded from one of the agent's state files.

    A JSON null is treated as an absent field so that alias chains and
    defaults apply to it.
    """

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


# =============================================================================
# COST
# =============================================================================

class CostLogEntry(StateRecord):
    """One agent loop iteration from cost_log.jsonl."""

    timestamp: Timestamp = None
    loop_number: int | None = Field(
        default=None, validation_alias=AliasChoices("loop", "loop_number")
    )
    cost_usd: float = 0.0
    total_cost_usd: float | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = Field(
        default=0,
        validation_alias=AliasChoices("cache_read_input_tokens", "cache_read_tokens"),
    )
    cache_write_tokens: int = Field(
        default=0,
        validation_alias=AliasChoices("cache_creation_input_tokens", "cache_write_tokens"),
    )
    duration_seconds: float | None = None
    session_id: str | None = None
    issue_number: int | str | None = None
    model: str = "unknown"
    repo_name: str | None = Field(
        default=None, validation_alias=AliasChoices("repo_name", "repoName")
    )

    @model_validator(mode="before")
    @classmethod
    def _duration_from_ms(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        duration_ms = data.get("duration_ms")
        if isinstance(duration_ms, (int, float)) and not isinstance(duration_ms, bool):
            return {**data, "duration_seconds": duration_ms / 1000}
        return data


class CostSession(StateRecord):
    """Running totals for the current session from .cost_session."""

    session_id: str | None = None
    total_cost_usd: float | None = None
    total_input_tokens: int | None = None
    total_output_tokens: int | None = None
    total_cache_read_tokens: int = 0
    total_cache_write_tokens: int = 0
    total_duration_seconds: float | None = None
    total_loops: int | None = None


# =============================================================================
# CIRCUIT BREAKER
# =============================================================================

class CircuitBreakerState(StateRecord):
    """Current circuit breaker state (CLOSED, OPEN or HALF_OPEN)."""

    state: str | None = None
    last_change: Timestamp = None
    consecutive_no_progress: int | None = None
    consecutive_same_error: int | None = None
    consecutive_permission_denials: int | None = None
    last_progress_loop: int | None = None
    total_opens: int | None = None
    reason: str | None = None


class CircuitBreakerTransition(StateRecord):
    timestamp: Timestamp = None
    from_state: str | None = None
    to_state: str | None = None
    reason: str | None = None
    loop: int | None = Field(
        default=None, validation_alias=AliasChoices("loop", "loop_number")
    )


# =============================================================================
# ERRORS AND RETRIES
# =============================================================================

class ErrorCatalogEntry(StateRecord):
    """A deduplicated error class with its occurrence counter."""

    category: str = "unknown"
    signature: str = ""
    count: int = 0
    first_seen: Timestamp = None
    last_seen: Timestamp = None
    sample_message: str = ""


class RetryLogEntry(StateRecord):
    """One retry attempt; outcome is success, failure or exhausted."""

    timestamp: Timestamp = None
    strategy: str = "unknown"
    attempt_number: int = 0
    outcome: str = "unknown"
    error_type: str | None = None
    delay_ms: int | float = 0
    session_id: str | None = None
    loop: int | None = None


# =============================================================================
# LOOP STATUS
# =============================================================================

class Status(StateRecord):
    """Live loop status from status.json."""

    timestamp: Timestamp = None
    loop_count: int | None = None
    calls_made_this_hour: int | None = None
    max_calls_per_hour: int | None = None
    last_action: str | None = None
    status: str | None = None
    exit_reason: str | None = None
    next_reset: Timestamp = None


class Progress(StateRecord):
    elapsed_seconds: float | None = None
    last_output: str | None = None
    current_loop: int | None = None
    started_at: Timestamp = None


class ExitSignals(StateRecord):
    test_only_loops: list[Any] = Field(default_factory=list)
    done_signals: list[Any] = Field(default_factory=list)
    completion_indicators: list[Any] = Field(default_factory=list)


class ResponseAnalysis(StateRecord):
    """Analysis of the latest loop response."""

    confidence: float | str | None = None
    files_changed: list[Any] = Field(default_factory=list)
    signals: dict[str, Any] = Field(default_factory=dict)
    summary: str = ""
    loop: int | None = None


# =============================================================================
# AUDIT LOG
# =============================================================================

class AuditEvent(StateRecord):
    """One structured event from audit_log.jsonl."""

    type: str = "info"
    timestamp: Timestamp = None
    session_id: str | None = Field(
        default=None, validation_alias=AliasChoices("session_id", "sessionId")
    )
    loop: int | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    message: str = ""
    repo_name: str | None = Field(
        default=None, validation_alias=AliasChoices("repo_name", "repoName")
    )

    @model_validator(mode="before")
    @classmethod
    def _repo_name_from_details(cls, data: Any) -> Any:
        # Orchestration events may carry the repo only inside details.
        if not isinstance(data, dict):
            return data
        if first_present(data, ("repo_name", "repoName")) is not None:
            return data
        details = data.get("details")
        if isinstance(details, dict):
            nested = first_present(details, ("repo_name", "repoName"))
            if nested is not None:
                return {**data, "repo_name": nested}
        return data


class TimelineWindow(CamelModel):
    """Execution window of one repo during an orchestration run."""

    name: str
    start: Timestamp = None
    end: Timestamp = None
    status: str = "in_progress"
    priority: int | float = 0
    orchestration_start: Timestamp = None
    orchestration_end: Timestamp = None


class AuditLog(CamelModel):
    events: list[AuditEvent] = Field(default_factory=list)
    sessions: dict[str, list[AuditEvent]] = Field(default_factory=dict)
    orchestration_timeline: list[TimelineWindow] = Field(default_factory=list)


# =============================================================================
# ORCHESTRATION
# =============================================================================

class RepoWindow(StateRecord):
    """Status of one repo in multi-repo orchestration mode."""

    name: str = "unknown"
    status: str = "pending"
    loops: int = 0
    cost: float = Field(default=0.0, validation_alias=AliasChoices("cost_usd", "costUsd"))
    dependencies: list[str] = Field(default_factory=list)
    blocked_by: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("blocked_by", "blockedBy")
    )


class OrchestrationState(CamelModel):
    repos: list[RepoWindow] = Field(default_factory=list)
    total_repos: int = 0
    completed_repos: int = 0
    in_progress_repos: int = 0
    blocked_repos: int = 0
    config: Any = None


# =============================================================================
# IMPLEMENTATION PLAN AND SESSION HISTORY
# =============================================================================

class PlanTask(CamelModel):
    completed: bool
    text: str


class ImplementationPlan(CamelModel):
    tasks: list[PlanTask] = Field(default_factory=list)
    completed_count: int = 0
    total_count: int = 0


class SessionHistoryRecord(BaseModel):
    """One past or running session.

    Keeps the agent's snake_case keys; unknown keys of direct summaries
    are preserved as-is.
    """

    model_config = ConfigDict(extra="allow")

    session_id: str | None = None
    started_at: Timestamp = None
    loops: int | None = None
    total_cost_usd: float | None = None
    total_duration_seconds: float | None = None
    exit_reason: str | None = None


# =============================================================================
# PROCESSES
# =============================================================================

class TmuxSession(CamelModel):
    """A tmux session line; ``raw`` is set when the line could not be parsed."""

    name: str | None = None
    windows: int | None = None
    attached: bool = False
    raw: str | None = None


class ProcessInfo(CamelModel):
    pid: int
    ppid: int
    elapsed: str
    command: str


class ProcessSnapshot(CamelModel):
    tmux_sessions: list[TmuxSession] = Field(default_factory=list)
    claude_processes: list[ProcessInfo] = Field(default_factory=list)
    hank_processes: list[ProcessInfo] = Field(default_factory=list)
    orphans: list[ProcessInfo] = Field(default_factory=list)


# =============================================================================
# SNAPSHOT
# =============================================================================

class Snapshot(CamelModel):
    """Everything the viewer shows for one project at one read instant."""

    cost_log: list[CostLogEntry] = Field(default_factory=list)
    cost_session: CostSession | None = None
    circuit_breaker: CircuitBreakerState | None = None
    circuit_breaker_history: list[CircuitBreakerTransition] = Field(default_factory=list)
    response_analysis: ResponseAnalysis | None = None
    exit_signals: ExitSignals | None = None
    status: Status | None = None
    progress: Progress | None = None
    implementation_plan: ImplementationPlan = Field(default_factory=ImplementationPlan)
    live_log: list[str] = Field(default_factory=list)
    session_history: list[SessionHistoryRecord] = Field(default_factory=list)
    error_catalog: list[ErrorCatalogEntry] = Field(default_factory=list)
    retry_log: list[RetryLogEntry] = Field(default_factory=list)
    audit_log: AuditLog = Field(default_factory=AuditLog)
    orchestration: OrchestrationState | None = None
    processes: ProcessSnapshot = Field(default_factory=ProcessSnapshot)

    def to_wire(self) -> dict[str, Any]:
        """JSON-compatible dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)
