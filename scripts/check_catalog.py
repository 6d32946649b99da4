#!/usr/bin/env python3
"""
Check repoKey and fileBase invariants in docs/robots.json.

Usage:
  python scripts/check_catalog.py
  python scripts/check_catalog.py --preview-keys docs/backfill-preview-keys.txt
"""

from __future__ import annotations

import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from urdf_gallery.workers.catalog_check import main  # noqa: E402


if __name__ == "__main__":
    raise SystemExit(main())
