"""Catalog models plus load/dump helpers for docs/robots.json."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ModelWrapValidatorHandler,
    PrivateAttr,
    ValidationError,
    model_validator,
)

from urdf_gallery.core.preview_keys import (
    DEFAULT_EXTENSION,
    FILE_BASE_RE,
    derive_file_base,
)

GITHUB_URL_PREFIX_RE = re.compile(r"^https?://github\.com/", re.IGNORECASE)


class CatalogError(Exception):
    """Raised when the catalog store cannot be read or parsed."""


class RobotReference(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    file: str = ""
    name: str | None = None
    file_base: str | None = Field(default=None, alias="fileBase")
    # Legacy catalogs store a reference as a bare string.
    bare: bool = Field(default=False, exclude=True)

    _key_order: list[str] = PrivateAttr(default_factory=list)

    @model_validator(mode="wrap")
    @classmethod
    def _read_reference(cls, value: Any, handler: ModelWrapValidatorHandler[Any]) -> Any:
        if isinstance(value, str):
            return handler({"file": value, "bare": True})
        model = handler(value)
        if isinstance(value, dict):
            model._key_order = list(value)
        return model

    def to_json(self) -> Any:
        if self.bare:
            return self.file
        return _dump_as_read(self)


class CatalogEntry(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    repo_url: str | None = Field(default=None, alias="repo")
    repo_key: str | None = Field(default=None, alias="repoKey")
    scoped_path: str | None = Field(default=None, alias="path")
    robots: list[RobotReference] = Field(default_factory=list)
    updated_at: str | None = Field(default=None, alias="updatedAt")

    _key_order: list[str] = PrivateAttr(default_factory=list)

    @model_validator(mode="wrap")
    @classmethod
    def _read_entry(cls, value: Any, handler: ModelWrapValidatorHandler[Any]) -> Any:
        if isinstance(value, dict) and "robots" in value:
            robots = value["robots"]
            # A null list or null items only cost this entry its references.
            kept = [item for item in robots if item] if isinstance(robots, list) else []
            value = {**value, "robots": kept}
        model = handler(value)
        if isinstance(value, dict):
            model._key_order = list(value)
        return model

    @property
    def normalized_repo_key(self) -> str:
        return normalize_repo_key(self.repo_url or self.repo_key or "")

    def to_json(self) -> dict[str, Any]:
        return _dump_as_read(self, robots=[robot.to_json() for robot in self.robots])


def _dump_as_read(model: BaseModel, **overrides: Any) -> dict[str, Any]:
    """Dump only the keys that were read or later assigned, in their original order.

    Keys added after loading go last, so a rewrite of one reference leaves
    the rest of the catalog text untouched.
    """
    payload = model.model_dump(by_alias=True, exclude=set(overrides))
    payload.update(overrides)
    present = {
        field.alias or name
        for name, field in type(model).model_fields.items()
        if name in model.model_fields_set
    }
    present.update(model.model_extra or {})
    present.intersection_update(payload)
    ordered = [key for key in model._key_order if key in present]
    ordered += [key for key in payload if key in present and key not in ordered]
    return {key: payload[key] for key in ordered}


def normalize_repo_key(value: str) -> str:
    """Lowercase `owner/repo` from a GitHub URL or an existing key."""
    if not value:
        return ""
    cleaned = GITHUB_URL_PREFIX_RE.sub("", value.strip())
    return "/".join(cleaned.split("/")[:2]).lower()


def parse_github_repo_url(repository_url: str) -> tuple[str, str] | None:
    """Parse owner/repo from a GitHub URL, or None when it has neither."""
    cleaned = GITHUB_URL_PREFIX_RE.sub("", (repository_url or "").strip())
    if cleaned.lower().endswith(".git"):
        cleaned = cleaned[:-4]
    parts = cleaned.split("/")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        return None
    return parts[0], parts[1]


def parse_catalog(raw: Any) -> list[CatalogEntry]:
    if not isinstance(raw, list):
        raise CatalogError("robots.json must be an array")
    try:
        return [CatalogEntry.model_validate(item) for item in raw]
    except ValidationError as exc:
        raise CatalogError(f"Invalid catalog entry: {exc}") from exc


def load_catalog(catalog_path: Path) -> list[CatalogEntry]:
    """Load and validate the catalog store."""
    try:
        raw = json.loads(catalog_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise CatalogError(f"Unable to read catalog {catalog_path}: {exc}") from exc
    return parse_catalog(raw)


def dump_catalog(entries: list[CatalogEntry]) -> str:
    return json.dumps([entry.to_json() for entry in entries], indent=2, ensure_ascii=False)


def check_catalog(
    entries: list[CatalogEntry],
    extension: str = DEFAULT_EXTENSION,
) -> list[str]:
    """Return human-readable violations of the catalog key invariants."""
    errors: list[str] = []
    for index, entry in enumerate(entries):
        label = entry.repo_key or entry.repo_url
        expected = normalize_repo_key(entry.repo_url or entry.repo_key or "")
        if entry.repo_key and expected and entry.repo_key.lower() != expected:
            errors.append(
                f'Entry {index}: repoKey "{entry.repo_key}" does not match repo '
                f'"{entry.repo_url}". Expected "{expected}".'
            )

        seen_bases: set[str] = set()
        for robot in entry.robots:
            if not robot.file or not robot.file_base:
                continue
            if not FILE_BASE_RE.match(robot.file_base):
                errors.append(
                    f'Entry {index} ({label}): fileBase "{robot.file_base}" is not in '
                    "the expected slug--hash format."
                )
            derived = derive_file_base(robot.file, extension)
            if robot.file_base != derived:
                errors.append(
                    f'Entry {index} ({label}): fileBase "{robot.file_base}" does not match '
                    f'file "{robot.file}". Expected "{derived}".'
                )
            base_key = robot.file_base.lower()
            if base_key in seen_bases:
                errors.append(f'Entry {index} ({label}): duplicate fileBase "{robot.file_base}".')
            seen_bases.add(base_key)
    return errors
