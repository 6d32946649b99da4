"""Stable preview keys for cached gallery assets."""

from __future__ import annotations

import re
from collections.abc import Callable
from pathlib import Path

DEFAULT_EXTENSION = ".urdf"
FNV_OFFSET_BASIS = 2166136261
FNV_PRIME = 16777619
BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"
FILE_BASE_RE = re.compile(r"^[a-z0-9][a-z0-9._-]*--[a-z0-9]+$", re.IGNORECASE)
_SLUG_INVALID_RE = re.compile(r"[^a-zA-Z0-9._-]+")
_HYPHEN_RUN_RE = re.compile(r"-+")


def to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(BASE36_DIGITS[rem])
    return "".join(reversed(digits))


def fnv1a_base36(value: str) -> str:
    """32-bit FNV-1a over UTF-16 code units, rendered in base 36.

    Iterating UTF-16 units keeps keys identical to the ones the gallery
    front end already uses for its cached previews.
    """
    data = value.encode("utf-16-le")
    hash_value = FNV_OFFSET_BASIS
    for i in range(0, len(data), 2):
        hash_value ^= data[i] | (data[i + 1] << 8)
        hash_value = (hash_value * FNV_PRIME) & 0xFFFFFFFF
    return to_base36(hash_value)


def strip_extension(value: str, extension: str = DEFAULT_EXTENSION) -> str:
    if extension and value.lower().endswith(extension.lower()):
        return value[: -len(extension)]
    return value


def normalize_file_path(file: str, extension: str = DEFAULT_EXTENSION) -> str:
    """Normalize separators, drop a leading slash and the tracked extension."""
    normalized = file.replace("\\", "/").lstrip("/")
    return strip_extension(normalized, extension)


def slugify(value: str, extension: str = DEFAULT_EXTENSION) -> str:
    slug = _SLUG_INVALID_RE.sub("-", strip_extension(value.strip(), extension))
    return _HYPHEN_RUN_RE.sub("-", slug).strip("-").lower()


def derive_file_base(
    file: str,
    extension: str = DEFAULT_EXTENSION,
    hash_text: Callable[[str], str] = fnv1a_base36,
) -> str:
    """Build `<slug>--<hash>` for one description file path.

    The slug comes from the basename only; the hash covers the whole
    normalized path so same-named files in different folders get
    different keys.
    """
    normalized = normalize_file_path(file, extension)
    name = Path(normalized).name or normalized
    slug = slugify(name, extension) or "robot"
    return f"{slug}--{hash_text(normalized)}"


def preview_key(repo_key: str, file_base: str) -> str:
    return f"{repo_key}::{file_base}"
