"""Hank dashboard source package.

This package contains the dashboard components:
- config: Configuration loading and management
- dashboard: State-file parsers, snapshot aggregation, change detection,
  broadcast hub and the HTTP/SSE server
"""

from __future__ import annotations

__all__: list[str] = []
