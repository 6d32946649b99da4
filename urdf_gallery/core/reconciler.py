"""Backfill and refresh passes that re-resolve catalog references against live trees."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from posixpath import basename

from urdf_gallery.core.catalog import CatalogEntry, RobotReference, parse_github_repo_url
from urdf_gallery.core.config import ReconcileConfig
from urdf_gallery.core.matching import CandidateIndex
from urdf_gallery.core.preview_keys import derive_file_base, preview_key, strip_extension
from urdf_gallery.core.report import EntryOutcome, Mode, ReconciliationReport, now_iso
from urdf_gallery.fetchers.github_tree_client import FetchError, GitHubTreeClient
from urdf_gallery.workers.pool import run_pool

LOGGER = logging.getLogger(__name__)

REASON_INVALID_REPO_URL = "invalid repository url"


@dataclass(slots=True)
class ReconcileResult:
    report: ReconciliationReport
    entries: list[CatalogEntry]


def select_entries(
    entries: list[CatalogEntry],
    only: Iterable[str] | None = None,
    limit: int = 0,
) -> list[int]:
    """Indices of entries with a repo key, narrowed by allow-list then capped."""
    allowed = {value.strip().lower() for value in (only or []) if value.strip()}
    selected: list[int] = []
    for index, entry in enumerate(entries):
        repo_key = entry.normalized_repo_key
        if not repo_key:
            continue
        if allowed and repo_key not in allowed:
            continue
        selected.append(index)
    return selected[:limit] if limit > 0 else selected


class Reconciler:
    """Runs one reconciliation pass over a loaded catalog.

    Entries are mutated in memory only; persisting them is the caller's
    decision once the report is written.
    """

    def __init__(
        self,
        config: ReconcileConfig,
        client: GitHubTreeClient,
        clock: Callable[[], str] = now_iso,
    ) -> None:
        self.config = config
        self.client = client
        self.clock = clock

    def file_base(self, file: str) -> str:
        return derive_file_base(file, self.config.extension, self.config.hash_text)

    def _rewrite(self, robot: RobotReference, path: str) -> RobotReference:
        update: dict[str, object] = {"file": path}
        if robot.file_base:
            update["file_base"] = self.file_base(path)
        return robot.model_copy(update=update)

    def _find_collisions(
        self,
        repo_key: str,
        robots: list[RobotReference],
        index: CandidateIndex,
    ) -> list[dict[str, object]]:
        files_by_key: dict[str, list[str]] = {}
        for robot in robots:
            if robot.file.lower() not in index.by_path:
                continue
            key = preview_key(repo_key, self.file_base(robot.file))
            files_by_key.setdefault(key, []).append(robot.file)
        return [
            {"key": key, "files": files}
            for key, files in files_by_key.items()
            if len(files) > 1
        ]

    async def reconcile_entry(self, entry: CatalogEntry, mode: Mode) -> EntryOutcome:
        repo_key = entry.normalized_repo_key
        parsed = parse_github_repo_url(entry.repo_url)
        if parsed is None:
            return EntryOutcome(repo_key, "fetch-failed", reason=REASON_INVALID_REPO_URL)
        owner, repo = parsed

        try:
            tree = await self.client.resolve_tree(owner, repo, entry.scoped_path)
        except FetchError as exc:
            LOGGER.warning("Skipping %s: %s", repo_key, exc)
            return EntryOutcome(repo_key, "fetch-failed", reason=str(exc))
        if tree.truncated:
            LOGGER.warning("Tree listing truncated for %s@%s, skipping", repo_key, tree.branch)
            return EntryOutcome(repo_key, "truncated")

        index = CandidateIndex(tree.paths, self.config.extension)
        if mode == "refresh" and len(index) == 0:
            LOGGER.info("No %s files left in %s, removing entry", self.config.extension, repo_key)
            return EntryOutcome(repo_key, "removed")

        outcome = EntryOutcome(repo_key, "reconciled")
        robots: list[RobotReference] = []
        claimed: set[str] = set()
        for robot in entry.robots:
            result = index.match(robot.file, entry.scoped_path)
            if result.path is None:
                outcome.missing.append(
                    {"repoKey": repo_key, "file": robot.file, "reason": result.reason or ""}
                )
                robots.append(robot)
                continue
            claimed.add(result.path)
            if result.path == robot.file:
                robots.append(robot)
                continue
            LOGGER.debug("%s: %s -> %s", repo_key, robot.file, result.path)
            robots.append(self._rewrite(robot, result.path))
            outcome.stale_keys.append(preview_key(repo_key, self.file_base(result.path)))
            outcome.updated = True

        if mode == "refresh":
            for path in index.paths:
                if path in claimed:
                    continue
                name = strip_extension(basename(path), self.config.extension)
                robots.append(RobotReference(name=name, file=path))
                outcome.stale_keys.append(preview_key(repo_key, self.file_base(path)))
                outcome.updated = True

        outcome.collisions = self._find_collisions(repo_key, robots, index)
        for collision in outcome.collisions:
            LOGGER.warning("Preview key collision %s: %s", collision["key"], collision["files"])

        if outcome.updated:
            entry.robots = robots
            entry.updated_at = self.clock()
        return outcome

    async def run(
        self,
        entries: list[CatalogEntry],
        mode: Mode,
        only: Iterable[str] | None = None,
        limit: int = 0,
    ) -> ReconcileResult:
        """Reconcile the selected entries with a bounded pool of workers."""
        report = ReconciliationReport(mode=mode)
        selected = select_entries(entries, only=only, limit=limit)
        removed: set[int] = set()
        LOGGER.info(
            "Reconciling %d of %d entries (%s, concurrency=%d)",
            len(selected),
            len(entries),
            mode,
            self.config.concurrency,
        )

        async def handle(position: int) -> EntryOutcome:
            return await self.reconcile_entry(entries[selected[position]], mode)

        def on_result(position: int, outcome: EntryOutcome) -> None:
            outcome.order = selected[position]
            report.add(outcome)
            if outcome.state == "removed":
                removed.add(selected[position])

        def on_error(position: int, exc: Exception) -> None:
            entry = entries[selected[position]]
            LOGGER.error(
                "Unexpected failure for %s", entry.normalized_repo_key, exc_info=exc
            )
            report.add(
                EntryOutcome(
                    entry.normalized_repo_key,
                    "fetch-failed",
                    reason=f"unexpected error: {exc}",
                    order=selected[position],
                )
            )

        await run_pool(len(selected), self.config.concurrency, handle, on_result, on_error)

        kept = [entry for index, entry in enumerate(entries) if index not in removed]
        return ReconcileResult(report=report, entries=kept)
