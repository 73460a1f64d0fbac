#!/usr/bin/env python3
"""
Hank dashboard - launcher script

Usage:
    python run.py                     # Monitor the current directory on port 3274
    python run.py ../api ../web       # Monitor several projects
    python run.py --port 8080 --no-open
"""

from __future__ import annotations

import sys

from src.dashboard.cli import main

if __name__ == "__main__":
    sys.exit(main())
