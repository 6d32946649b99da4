"""Run report accumulation plus the report, key-list and catalog writers."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

from urdf_gallery.core.catalog import CatalogEntry, dump_catalog

LOGGER = logging.getLogger(__name__)

Mode = Literal["backfill", "refresh"]
EntryState = Literal["fetch-failed", "truncated", "removed", "reconciled"]

META_VERSION = 1


@dataclass(slots=True)
class EntryOutcome:
    repo_key: str
    state: EntryState
    updated: bool = False
    reason: str | None = None
    missing: list[dict[str, str]] = field(default_factory=list)
    stale_keys: list[str] = field(default_factory=list)
    collisions: list[dict[str, Any]] = field(default_factory=list)
    # Position of the entry in the catalog.
    order: int = 0


@dataclass(slots=True)
class ReconciliationReport:
    mode: Mode
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    removed: int = 0
    updated_repos: list[str] = field(default_factory=list)
    truncated: list[str] = field(default_factory=list)
    preview_keys: set[str] = field(default_factory=set)
    removed_repos: list[str] = field(default_factory=list)
    # (entry order, position within entry, record)
    _missing: list[tuple[int, int, dict[str, str]]] = field(
        default_factory=list, init=False, repr=False
    )
    _collisions: list[tuple[int, int, dict[str, Any]]] = field(
        default_factory=list, init=False, repr=False
    )

    @property
    def missing(self) -> list[dict[str, str]]:
        return [record for _, _, record in self._missing]

    @property
    def collisions(self) -> list[dict[str, Any]]:
        return [record for _, _, record in self._collisions]

    def add(self, outcome: EntryOutcome) -> None:
        """Fold one finished entry into the run totals."""
        missing = list(outcome.missing)
        if outcome.state == "fetch-failed":
            missing.append({"repoKey": outcome.repo_key, "reason": outcome.reason or ""})
        self._missing.extend(
            (outcome.order, position, record) for position, record in enumerate(missing)
        )
        self._collisions.extend(
            (outcome.order, position, record)
            for position, record in enumerate(outcome.collisions)
        )
        self.preview_keys.update(outcome.stale_keys)
        if outcome.state == "fetch-failed":
            self.skipped += 1
        elif outcome.state == "truncated":
            self.skipped += 1
            self.truncated.append(outcome.repo_key)
        elif outcome.state == "removed":
            self.removed += 1
            self.removed_repos.append(outcome.repo_key)
        elif outcome.updated:
            self.updated += 1
            self.updated_repos.append(outcome.repo_key)
        else:
            self.unchanged += 1

    def to_dict(self) -> dict[str, Any]:
        # Workers finish in any order; catalog position keeps equal runs byte-identical.
        payload: dict[str, Any] = {
            "mode": self.mode,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "removed": self.removed,
            "updatedRepos": sorted(self.updated_repos),
            "missing": _sorted_records(self._missing, "repoKey"),
            "truncated": sorted(self.truncated),
            "collisions": _sorted_records(self._collisions, "key"),
            "previewKeys": sorted(self.preview_keys),
        }
        if self.mode == "refresh":
            payload["removedRepos"] = sorted(self.removed_repos)
        return payload

    def summary(self) -> dict[str, int]:
        return {
            "updated": self.updated,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "removed": self.removed,
            "missing": len(self.missing),
            "collisions": len(self.collisions),
            "preview_keys": len(self.preview_keys),
        }


def _sorted_records(
    ranked: list[tuple[int, int, dict[str, Any]]],
    record_key: str,
) -> list[dict[str, Any]]:
    ordered = sorted(ranked, key=lambda item: (item[2][record_key], item[0], item[1]))
    return [record for _, _, record in ordered]


def now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def write_report(report: ReconciliationReport, report_path: Path) -> None:
    _write_text(report_path, json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
    LOGGER.info("Report written: %s", report_path)


def write_preview_keys(report: ReconciliationReport, keys_path: Path) -> None:
    """Comma-delimited key list for the preview regeneration tool."""
    _write_text(keys_path, ",".join(sorted(report.preview_keys)))
    LOGGER.info("Preview keys written: %s", keys_path)


def read_preview_keys(keys_path: Path) -> list[str]:
    raw = keys_path.read_text(encoding="utf-8")
    return [value.strip() for value in raw.split(",") if value.strip()]


def commit_catalog(
    entries: list[CatalogEntry],
    catalog_path: Path,
    meta_path: Path,
    generated_at: str | None = None,
) -> None:
    """Rewrite the catalog store and its metadata record."""
    _write_text(catalog_path, dump_catalog(entries))
    LOGGER.info("Updated %s", catalog_path)
    meta = {
        "version": META_VERSION,
        "generatedAt": generated_at or now_iso(),
        "count": len(entries),
    }
    _write_text(meta_path, json.dumps(meta, indent=2))
    LOGGER.info("Updated %s", meta_path)
