"""hank-dash command line entry point.

Usage:
    hank-dash                         # Monitor the current directory
    hank-dash ../api ../web           # Monitor several projects
    hank-dash --port 8080 --no-open   # Custom port, no browser
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Sequence

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from ..config import get_validated_config, load_config, set_config_value
from .registry import ConfigurationError
from .server import DashboardStartupError, run_dashboard

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "HANK_DASH_CONFIG"
PORT_ENV_VAR = "PORT"


def build_parser() -> argparse.ArgumentParser:
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="hank-dash",
        description="Live dashboard for Hank agent runs",
    )
    parser.add_argument(
        "projects",
        nargs="*",
        help="Project root directories to monitor (default: current directory)",
    )
    parser.add_argument("--port", type=int, default=None, help="Port to listen on (default: 3274)")
    parser.add_argument("--host", default=None, help="Host to bind")
    parser.add_argument(
        "--no-open", action="store_true", help="Do not open a browser after startup"
    )
    parser.add_argument(
        "--config",
        default=None,
        help=f"Path to config file (default: ${CONFIG_ENV_VAR} or config/config.yaml)",
    )
    parser.add_argument("--log-level", default=None, help="Override logging.level")
    return parser


def resolve_port(cli_port: int | None, configured: int) -> int:
    """Command line beats the PORT environment variable, which beats the config.

    Raises:
        ConfigurationError: If PORT is set but is not a valid port number.
    """
    if cli_port is not None:
        return cli_port
    raw = os.environ.get(PORT_ENV_VAR)
    if not raw:
        return configured
    try:
        port = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{PORT_ENV_VAR}={raw!r} is not a port number") from e
    if not 0 < port < 65536:
        raise ConfigurationError(f"{PORT_ENV_VAR}={raw!r} is out of range")
    return port


def configure_logging(level: str, fmt: str) -> None:
    logging.basicConfig(level=level, format=fmt)
    # Watchdog's per-event debug output drowns everything else.
    logging.getLogger("watchdog").setLevel(max(logging.INFO, logging.getLogger().level))


def main(argv: Sequence[str] | None = None) -> int:
    """Run hank-dash; returns the process exit code."""
    load_dotenv()
    args: argparse.Namespace = build_parser().parse_args(argv)

    try:
        load_config(args.config or os.environ.get(CONFIG_ENV_VAR) or None)
        if args.log_level:
            set_config_value("logging.level", args.log_level)
        port = resolve_port(args.port, get_validated_config().dashboard.port)
        set_config_value("dashboard.port", port)
        if args.host:
            set_config_value("dashboard.host", args.host)
        if args.no_open:
            set_config_value("dashboard.open_browser", False)
    except (ConfigurationError, ValidationError, FileNotFoundError, yaml.YAMLError) as e:
        print(f"hank-dash: {e}", file=sys.stderr)
        return 1

    config = get_validated_config()
    configure_logging(config.logging.level, config.logging.format)

    project_paths = args.projects or [Path.cwd()]
    try:
        run_dashboard(project_paths, config=config.dashboard)
    except (ConfigurationError, DashboardStartupError) as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
