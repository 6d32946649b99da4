#!/usr/bin/env python3
"""
Re-resolve robot description paths in docs/robots.json against live GitHub trees.

Usage:
  python scripts/reconcile_robots.py --mode backfill
  python scripts/reconcile_robots.py --mode refresh --only acme/arm,acme/leg
  python scripts/reconcile_robots.py --mode backfill --limit 10 --write
"""

from __future__ import annotations

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from urdf_gallery.workers.reconcile_runner import main  # noqa: E402


if __name__ == "__main__":
    raise SystemExit(main())
