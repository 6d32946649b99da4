"""Immutable run configuration for the reconciliation engine."""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, field

from dotenv import load_dotenv

from urdf_gallery.core.preview_keys import DEFAULT_EXTENSION, fnv1a_base36

GITHUB_API_BASE = "https://api.github.com"
DEFAULT_BRANCH = "main"
DEFAULT_CONCURRENCY = 2
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_SECONDS = 1.0
MIN_RETRY_DELAY_SECONDS = 0.25
DEFAULT_TIMEOUT_SECONDS = 20.0
USER_AGENT = "urdf-gallery reconciler (+https://github.com/urdf-gallery/urdf-gallery)"


@dataclass(frozen=True, slots=True)
class ReconcileConfig:
    extension: str = DEFAULT_EXTENSION
    default_branch: str = DEFAULT_BRANCH
    api_base: str = GITHUB_API_BASE
    concurrency: int = DEFAULT_CONCURRENCY
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_base_delay: float = DEFAULT_RETRY_DELAY_SECONDS
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    rate_limit: float | None = None
    token: str = ""
    user_agent: str = USER_AGENT
    hash_text: Callable[[str], str] = field(default=fnv1a_base36, repr=False)

    def __post_init__(self) -> None:
        if not self.extension.startswith("."):
            raise ValueError(f"extension must start with '.': {self.extension!r}")
        if self.concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.retry_base_delay < 0:
            raise ValueError("retry_base_delay must be >= 0")


def resolve_token(explicit: str | None = None) -> str:
    """Pick the API token from the flag, then GITHUB_TOKEN, then GH_TOKEN."""
    if explicit and explicit.strip():
        return explicit.strip()
    load_dotenv()
    for name in ("GITHUB_TOKEN", "GH_TOKEN"):
        value = os.getenv(name, "").strip()
        if value:
            return value
    return ""


def config_from_options(
    concurrency: int = DEFAULT_CONCURRENCY,
    retries: int = DEFAULT_MAX_RETRIES,
    retry_delay_ms: int = int(DEFAULT_RETRY_DELAY_SECONDS * 1000),
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    rate_limit: float | None = None,
    token: str | None = None,
) -> ReconcileConfig:
    """Clamp command-line values into a valid config."""
    return ReconcileConfig(
        concurrency=max(1, concurrency),
        max_retries=max(0, retries),
        retry_base_delay=max(MIN_RETRY_DELAY_SECONDS, retry_delay_ms / 1000.0),
        timeout_seconds=max(1.0, timeout_seconds),
        rate_limit=rate_limit if rate_limit and rate_limit > 0 else None,
        token=resolve_token(token),
    )
