#!/usr/bin/env python3
"""Nightly scoring-drift audit, for cron.

Usage:
    python backend/scripts/run_nightly_audit.py
    python backend/scripts/run_nightly_audit.py --categories ai-ml --per-category 10
"""

from __future__ import annotations

import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from arena_audit.cli import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
