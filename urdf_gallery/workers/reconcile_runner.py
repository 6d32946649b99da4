"""Command-line runner for the backfill and refresh reconciliation passes."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from pathlib import Path

import httpx

from urdf_gallery.core.catalog import CatalogError, load_catalog
from urdf_gallery.core.config import (
    DEFAULT_CONCURRENCY,
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT_SECONDS,
    config_from_options,
)
from urdf_gallery.core.reconciler import Reconciler
from urdf_gallery.core.report import commit_catalog, write_preview_keys, write_report
from urdf_gallery.fetchers.github_tree_client import GitHubTreeClient

LOGGER = logging.getLogger(__name__)

DEFAULT_CATALOG = Path("docs") / "robots.json"
DEFAULT_META = Path("docs") / "robots.meta.json"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Re-resolve robot description paths in the catalog against live GitHub trees."
    )
    parser.add_argument(
        "--mode",
        choices=["backfill", "refresh"],
        default="backfill",
        help="backfill only upgrades paths; refresh also drops empty repos and adds new files.",
    )
    parser.add_argument("--catalog", default=str(DEFAULT_CATALOG), help="Catalog JSON path.")
    parser.add_argument("--meta", default=str(DEFAULT_META), help="Catalog metadata JSON path.")
    parser.add_argument(
        "--only",
        default="",
        help="Comma-separated owner/repo keys to process (default: all).",
    )
    parser.add_argument("--limit", type=int, default=0, help="Max entries to process (0 = all).")
    parser.add_argument(
        "--concurrency",
        type=int,
        default=DEFAULT_CONCURRENCY,
        help="Repositories processed at once.",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=DEFAULT_MAX_RETRIES,
        help="Retries for throttled or failing requests.",
    )
    parser.add_argument(
        "--retry-delay-ms",
        type=int,
        default=1000,
        help="Base backoff delay in milliseconds (doubles per retry).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT_SECONDS,
        help="Per-request timeout in seconds.",
    )
    parser.add_argument(
        "--rate-limit",
        type=float,
        default=None,
        help="Optional requests-per-second cap.",
    )
    parser.add_argument(
        "--write",
        action="store_true",
        help="Persist the updated catalog and metadata (default: dry run).",
    )
    parser.add_argument("--report", default=None, help="Report JSON path.")
    parser.add_argument("--preview-keys", default=None, help="Stale preview key list path.")
    parser.add_argument(
        "--token",
        default=None,
        help="GitHub token (default: GITHUB_TOKEN or GH_TOKEN).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level.",
    )
    return parser.parse_args(argv)


async def run(argv: list[str] | None = None, http_client: httpx.AsyncClient | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level), format=LOG_FORMAT)

    catalog_path = Path(args.catalog)
    docs_dir = catalog_path.parent
    report_path = Path(args.report or docs_dir / f"{args.mode}-report.json")
    keys_path = Path(args.preview_keys or docs_dir / f"{args.mode}-preview-keys.txt")
    only = [value for value in args.only.split(",") if value.strip()]

    config = config_from_options(
        concurrency=args.concurrency,
        retries=args.retries,
        retry_delay_ms=args.retry_delay_ms,
        timeout_seconds=args.timeout,
        rate_limit=args.rate_limit,
        token=args.token,
    )

    try:
        entries = load_catalog(catalog_path)
    except CatalogError as exc:
        LOGGER.error("Failed: %s", exc)
        return 1

    async with GitHubTreeClient(config, client=http_client) as client:
        result = await Reconciler(config, client).run(
            entries,
            mode=args.mode,
            only=only,
            limit=args.limit,
        )

    try:
        write_report(result.report, report_path)
        write_preview_keys(result.report, keys_path)
    except OSError as exc:
        LOGGER.error("Failed writing report: %s", exc)
        return 1

    if args.write:
        try:
            commit_catalog(result.entries, catalog_path, Path(args.meta))
        except OSError as exc:
            LOGGER.error("Failed writing catalog: %s", exc)
            return 1
    else:
        LOGGER.info("Dry run (use --write to apply changes).")

    print(json.dumps({"summary": result.report.summary()}, ensure_ascii=False))
    return 0


def main() -> int:
    return asyncio.run(run())


if __name__ == "__main__":
    raise SystemExit(main())
