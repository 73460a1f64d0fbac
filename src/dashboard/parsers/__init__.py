"""Parsers for the files the agent writes into a project's state directory.

Each parser takes the state directory and returns a normalized record
(or the record's neutral empty value); none of them raises for missing,
empty or corrupt files.
"""

from .audit_log import build_orchestration_timeline, parse_audit_log
from .circuit_breaker import parse_circuit_breaker_history, parse_circuit_breaker_state
from .cost import filter_to_latest_session, parse_cost_log, parse_cost_session
from .error_catalog import parse_error_catalog
from .implementation_plan import parse_implementation_plan
from .live_log import parse_live_log
from .orchestration import parse_orchestration
from .processes import ProcessInspector, parse_processes
from .retry_log import parse_retry_log
from .session_history import parse_session_history
from .status import parse_exit_signals, parse_progress, parse_response_analysis, parse_status

__all__ = [
    "ProcessInspector",
    "build_orchestration_timeline",
    "filter_to_latest_session",
    "parse_audit_log",
    "parse_circuit_breaker_history",
    "parse_circuit_breaker_state",
    "parse_cost_log",
    "parse_cost_session",
    "parse_error_catalog",
    "parse_exit_signals",
    "parse_implementation_plan",
    "parse_live_log",
    "parse_orchestration",
    "parse_processes",
    "parse_progress",
    "parse_response_analysis",
    "parse_retry_log",
    "parse_session_history",
    "parse_status",
]
