"""Parsers for the circuit breaker state file and its transition history."""

from __future__ import annotations

from pathlib import Path

from ..models import CircuitBreakerState, CircuitBreakerTransition
from .base import parse_json_array, parse_json_record

STATE_FILE = ".circuit_breaker_state"
HISTORY_FILE = ".circuit_breaker_history"


def parse_circuit_breaker_state(state_dir: str | Path) -> CircuitBreakerState | None:
    return parse_json_record(Path(state_dir) / STATE_FILE, CircuitBreakerState)


def parse_circuit_breaker_history(state_dir: str | Path) -> list[CircuitBreakerTransition]:
    """Parse the transition log (a JSON array, oldest first)."""
    return parse_json_array(Path(state_dir) / HISTORY_FILE, CircuitBreakerTransition)
