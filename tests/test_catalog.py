from __future__ import annotations

import json
from pathlib import Path

import pytest

from urdf_gallery.core.catalog import (
    CatalogError,
    check_catalog,
    dump_catalog,
    load_catalog,
    normalize_repo_key,
    parse_catalog,
    parse_github_repo_url,
)
from urdf_gallery.core.preview_keys import derive_file_base
from urdf_gallery.core.report import read_preview_keys


def _write(tmp_path: Path, payload: object) -> Path:
    path = tmp_path / "robots.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_load_catalog_rejects_non_array(tmp_path: Path) -> None:
    with pytest.raises(CatalogError, match="must be an array"):
        load_catalog(_write(tmp_path, {"repo": "x"}))


def test_load_catalog_reports_unreadable_store(tmp_path: Path) -> None:
    broken = tmp_path / "robots.json"
    broken.write_text("[{", encoding="utf-8")
    with pytest.raises(CatalogError, match="Unable to read catalog"):
        load_catalog(broken)
    with pytest.raises(CatalogError):
        load_catalog(tmp_path / "missing.json")


def test_unknown_fields_and_bare_strings_survive_a_dump(tmp_path: Path) -> None:
    raw = [
        {
            "repo": "https://github.com/acme/arm",
            "repoKey": "acme/arm",
            "path": "robots",
            "tags": ["arm", "6dof"],
            "robots": [
                "arm.urdf",
                {"name": "Leg", "file": "leg.urdf", "fileBase": "leg--1", "license": "MIT"},
            ],
        }
    ]
    entries = load_catalog(_write(tmp_path, raw))

    assert entries[0].scoped_path == "robots"
    assert entries[0].robots[0].bare is True
    assert entries[0].robots[1].file_base == "leg--1"
    assert dump_catalog(entries) == json.dumps(raw, indent=2, ensure_ascii=False)


def test_normalize_repo_key() -> None:
    assert normalize_repo_key("https://github.com/Acme/Arm") == "acme/arm"
    assert normalize_repo_key("HTTP://GitHub.com/acme/arm/tree/main/urdf") == "acme/arm"
    assert normalize_repo_key(" Acme/Arm ") == "acme/arm"
    assert normalize_repo_key("") == ""


def test_parse_github_repo_url() -> None:
    assert parse_github_repo_url("https://github.com/acme/arm.git") == ("acme", "arm")
    assert parse_github_repo_url("https://github.com/Acme/Arm/tree/main") == ("Acme", "Arm")
    assert parse_github_repo_url("https://github.com/acme") is None
    assert parse_github_repo_url("") is None


def test_check_catalog_accepts_consistent_entries() -> None:
    entries = parse_catalog(
        [
            {
                "repo": "https://github.com/acme/arm",
                "repoKey": "acme/arm",
                "robots": [
                    {"file": "urdf/arm.urdf", "fileBase": derive_file_base("urdf/arm.urdf")},
                    {"file": "legacy.urdf"},
                ],
            }
        ]
    )
    assert check_catalog(entries) == []


def test_check_catalog_reports_every_violation() -> None:
    stale = derive_file_base("old/arm.urdf")
    entries = parse_catalog(
        [
            {
                "repo": "https://github.com/acme/arm",
                "repoKey": "acme/leg",
                "robots": [
                    {"file": "urdf/arm.urdf", "fileBase": stale},
                    {"file": "old/arm.urdf", "fileBase": stale},
                    {"file": "x.urdf", "fileBase": "Not A Base"},
                ],
            }
        ]
    )

    errors = check_catalog(entries)

    assert any('repoKey "acme/leg" does not match' in error for error in errors)
    assert any(f'fileBase "{stale}" does not match file "urdf/arm.urdf"' in error for error in errors)
    assert any("duplicate fileBase" in error for error in errors)
    assert any("slug--hash format" in error for error in errors)


def test_read_preview_keys_ignores_blanks(tmp_path: Path) -> None:
    path = tmp_path / "keys.txt"
    path.write_text("acme/arm::a--1, acme/arm::b--2,,\n", encoding="utf-8")
    assert read_preview_keys(path) == ["acme/arm::a--1", "acme/arm::b--2"]


def test_null_robots_list_is_read_as_empty() -> None:
    entries = parse_catalog([{"repo": "https://github.com/acme/arm", "robots": None}])
    assert entries[0].robots == []


def test_null_robot_items_are_skipped() -> None:
    entries = parse_catalog(
        [{"repo": "https://github.com/acme/arm", "robots": [None, {"file": "arm.urdf"}, ""]}]
    )
    assert [robot.file for robot in entries[0].robots] == ["arm.urdf"]


def test_null_repo_falls_back_to_repo_key() -> None:
    entries = parse_catalog(
        [
            {"repo": None, "repoKey": "Acme/Arm", "robots": []},
            {"repo": "https://github.com/acme/leg", "robots": []},
        ]
    )
    assert entries[0].normalized_repo_key == "acme/arm"
    assert parse_github_repo_url(entries[0].repo_url) is None
    assert entries[1].normalized_repo_key == "acme/leg"


def test_dump_keeps_key_order_and_explicit_nulls() -> None:
    raw = [
        {
            "name": "Arm",
            "robots": [{"name": "Arm", "file": "arm.urdf", "notes": None}],
            "repo": "https://github.com/acme/arm",
            "description": None,
            "path": None,
        }
    ]
    entries = parse_catalog(raw)

    assert dump_catalog(entries) == json.dumps(raw, indent=2, ensure_ascii=False)


def test_rewritten_reference_keeps_its_place() -> None:
    raw = [
        {
            "name": "Arm",
            "robots": [{"name": "Arm", "file": "arm.urdf", "fileBase": derive_file_base("arm.urdf")}],
            "repo": "https://github.com/acme/arm",
        }
    ]
    entries = parse_catalog(raw)
    robot = entries[0].robots[0]
    entries[0].robots = [
        robot.model_copy(
            update={"file": "urdf/arm.urdf", "file_base": derive_file_base("urdf/arm.urdf")}
        )
    ]
    entries[0].updated_at = "2026-01-01T00:00:00+00:00"

    payload = json.loads(dump_catalog(entries))

    assert list(payload[0]) == ["name", "robots", "repo", "updatedAt"]
    assert list(payload[0]["robots"][0]) == ["name", "file", "fileBase"]
    assert payload[0]["robots"][0]["file"] == "urdf/arm.urdf"
