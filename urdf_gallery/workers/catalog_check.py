"""Check catalog key invariants and, optionally, a stale preview key list."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path

from urdf_gallery.core.catalog import CatalogEntry, CatalogError, check_catalog, load_catalog
from urdf_gallery.core.preview_keys import derive_file_base, preview_key
from urdf_gallery.core.report import read_preview_keys

LOGGER = logging.getLogger(__name__)


def known_preview_keys(entries: list[CatalogEntry]) -> set[str]:
    keys: set[str] = set()
    for entry in entries:
        repo_key = entry.normalized_repo_key
        for robot in entry.robots:
            if robot.file:
                keys.add(preview_key(repo_key, derive_file_base(robot.file)))
    return keys


def unknown_preview_keys(entries: list[CatalogEntry], keys: list[str]) -> list[str]:
    """Keys in a regeneration list that no catalog reference produces."""
    known = known_preview_keys(entries)
    return [key for key in keys if key not in known]


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Check robots.json key invariants.")
    parser.add_argument("--catalog", default=str(Path("docs") / "robots.json"))
    parser.add_argument(
        "--preview-keys",
        default=None,
        help="Also verify a comma-separated preview key list against the catalog.",
    )
    return parser.parse_args(argv)


def run(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        entries = load_catalog(Path(args.catalog))
    except CatalogError as exc:
        LOGGER.error("Failed: %s", exc)
        return 1

    errors = check_catalog(entries)
    if args.preview_keys:
        for key in unknown_preview_keys(entries, read_preview_keys(Path(args.preview_keys))):
            errors.append(f'Preview key "{key}" does not match any catalog reference.')

    if errors:
        LOGGER.error("Catalog check failed:")
        for error in errors:
            LOGGER.error("- %s", error)
        return 1
    LOGGER.info("Catalog check OK (%d entries)", len(entries))
    return 0


def main() -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    return run()


if __name__ == "__main__":
    raise SystemExit(main())
