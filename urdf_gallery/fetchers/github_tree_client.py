"""GitHub REST client that lists repository trees with rate-limit recovery."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx

from urdf_gallery.core.config import ReconcileConfig
from urdf_gallery.core.matching import normalize_scoped_path

LOGGER = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})
RATE_LIMIT_REMAINING_HEADER = "x-ratelimit-remaining"
RATE_LIMIT_RESET_HEADER = "x-ratelimit-reset"


class FetchError(Exception):
    """Raised when a provider request fails for good."""


class HttpError(FetchError):
    """Non-2xx response from the provider."""

    def __init__(self, status: int, headers: Mapping[str, str], url: str) -> None:
        super().__init__(f"GitHub API {status} for {url}")
        self.status = status
        self.headers = dict(headers)
        self.url = url


class TreeFetchError(FetchError):
    """Repository metadata or tree listing could not be fetched."""


class AsyncRateLimiter:
    """Spaces request starts at least `1 / rate_per_second` apart."""

    def __init__(
        self,
        rate_per_second: float,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.interval = 1.0 / max(rate_per_second, 0.001)
        self._sleep = sleep
        self._clock = clock
        self._next_time = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            wait_for = self._next_time - self._clock()
            if wait_for > 0:
                await self._sleep(wait_for)
            self._next_time = max(self._clock(), self._next_time) + self.interval


@dataclass(slots=True)
class TreePath:
    path: str
    type: str

    @property
    def is_blob(self) -> bool:
        return self.type == "blob"


@dataclass(slots=True)
class RepoTree:
    branch: str
    paths: list[str] = field(default_factory=list)
    truncated: bool = False


def rate_limit_reset(error: HttpError) -> float | None:
    """Return the reset epoch when a 403 means the hourly quota is spent."""
    if error.status != 403:
        return None
    headers = {key.lower(): value for key, value in error.headers.items()}
    try:
        remaining = int(headers.get(RATE_LIMIT_REMAINING_HEADER, ""))
        reset = float(headers.get(RATE_LIMIT_RESET_HEADER, ""))
    except ValueError:
        return None
    if remaining != 0 or reset <= 0:
        return None
    return reset


def apply_scoped_path(paths: list[str], scoped_path: str | None) -> list[str]:
    """Prefix every path with the scope unless the tree already carries it."""
    prefix = normalize_scoped_path(scoped_path)
    if not prefix:
        return paths
    if any(path.startswith(f"{prefix}/") for path in paths):
        return paths
    return [f"{prefix}/{path}" for path in paths]


class GitHubTreeClient:
    """Fetches repository metadata and recursive trees for one run."""

    def __init__(
        self,
        config: ReconcileConfig,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep
        self._clock = clock
        self._limiter = (
            AsyncRateLimiter(config.rate_limit, sleep=sleep) if config.rate_limit else None
        )

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": self.config.user_agent,
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self.config.token:
            headers["Authorization"] = f"Bearer {self.config.token}"
        return headers

    async def __aenter__(self) -> GitHubTreeClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.config.timeout_seconds))
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get_once(self, url: str) -> Any:
        if self._client is None:
            raise RuntimeError("GitHubTreeClient used outside 'async with'")
        if self._limiter is not None:
            await self._limiter.acquire()
        response = await self._client.get(url, headers=self._headers())
        if not 200 <= response.status_code < 300:
            raise HttpError(response.status_code, response.headers, url)
        try:
            return response.json()
        except ValueError as exc:
            raise FetchError(f"Malformed JSON body for {url}: {exc}") from exc

    async def fetch_json(self, url: str) -> Any:
        """GET a JSON document, waiting out rate limits and retrying transient errors."""
        max_retries = self.config.max_retries
        base_delay = self.config.retry_base_delay
        attempt = 0
        while True:
            try:
                return await self._get_once(url)
            except HttpError as exc:
                reset = rate_limit_reset(exc)
                if reset is not None:
                    wait_for = max(reset + 1 - self._clock(), base_delay)
                    LOGGER.warning("Rate limit hit for %s, waiting %ds", url, math.ceil(wait_for))
                    await self._sleep(wait_for)
                    continue
                attempt += 1
                if exc.status not in RETRYABLE_STATUSES or attempt > max_retries:
                    raise
                status_label = str(exc.status)
            except httpx.TransportError as exc:
                attempt += 1
                if attempt > max_retries:
                    raise FetchError(f"Request failed for {url}: {exc!r}") from exc
                status_label = type(exc).__name__
            delay = base_delay * (2 ** (attempt - 1))
            LOGGER.warning(
                "Retry %d/%d for %s after %.2fs (%s)",
                attempt,
                max_retries,
                url,
                delay,
                status_label,
            )
            await self._sleep(delay)

    async def get_default_branch(self, owner: str, repo: str) -> str:
        payload = await self.fetch_json(f"{self.config.api_base}/repos/{owner}/{repo}")
        if not isinstance(payload, dict):
            raise FetchError(f"Invalid repository payload for {owner}/{repo}")
        branch = payload.get("default_branch")
        if not isinstance(branch, str) or not branch:
            return self.config.default_branch
        return branch

    async def get_tree(self, owner: str, repo: str, ref: str) -> tuple[list[TreePath], bool]:
        payload = await self.fetch_json(
            f"{self.config.api_base}/repos/{owner}/{repo}/git/trees/"
            f"{quote(ref, safe='')}?recursive=1"
        )
        if not isinstance(payload, dict):
            raise FetchError(f"Invalid tree payload for {owner}/{repo}@{ref}")
        truncated = bool(payload.get("truncated"))
        tree = payload.get("tree") or []
        if not isinstance(tree, list):
            raise FetchError(f"Invalid tree payload for {owner}/{repo}@{ref}")
        nodes = [
            TreePath(path=str(node["path"]), type=str(node.get("type") or ""))
            for node in tree
            if isinstance(node, dict) and node.get("path")
        ]
        return nodes, truncated

    async def resolve_tree(
        self,
        owner: str,
        repo: str,
        scoped_path: str | None = None,
    ) -> RepoTree:
        """Default branch plus its blob paths; empty when GitHub truncated the listing.

        Raises TreeFetchError naming the failed step once retries are spent.
        """
        try:
            branch = await self.get_default_branch(owner, repo)
        except FetchError as exc:
            raise TreeFetchError(f"repo fetch failed: {exc}") from exc
        try:
            nodes, truncated = await self.get_tree(owner, repo, branch)
        except FetchError as exc:
            raise TreeFetchError(f"tree fetch failed: {exc}") from exc
        if truncated:
            return RepoTree(branch=branch, paths=[], truncated=True)
        blobs = [node.path for node in nodes if node.is_blob]
        return RepoTree(branch=branch, paths=apply_scoped_path(blobs, scoped_path))
