from __future__ import annotations

import asyncio
from posixpath import dirname
from typing import Any

import httpx
import pytest

from urdf_gallery.core.config import ReconcileConfig
from urdf_gallery.core.reconciler import Reconciler
from urdf_gallery.fetchers.github_tree_client import GitHubTreeClient

FIXED_NOW = "2026-01-01T00:00:00+00:00"


class FakeSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeGitHub:
    """In-memory stand-in for the two GitHub endpoints the client uses."""

    def __init__(self) -> None:
        self.repos: dict[str, dict[str, Any]] = {}
        self.queued: dict[str, list[httpx.Response]] = {}
        self.requests: list[httpx.Request] = []

    def add_repo(
        self,
        key: str,
        paths: list[str],
        branch: str | None = "main",
        truncated: bool = False,
    ) -> None:
        self.repos[key.lower()] = {"branch": branch, "paths": paths, "truncated": truncated}

    def queue(self, path: str, *responses: httpx.Response) -> None:
        self.queued.setdefault(path, []).extend(responses)

    def _tree(self, paths: list[str]) -> list[dict[str, str]]:
        nodes: list[dict[str, str]] = []
        dirs: set[str] = set()
        for path in paths:
            parent = dirname(path)
            while parent and parent not in dirs:
                dirs.add(parent)
                nodes.append({"path": parent, "type": "tree"})
                parent = dirname(parent)
            nodes.append({"path": path, "type": "blob"})
        return nodes

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        pending = self.queued.get(path)
        if pending:
            return pending.pop(0)
        parts = path.strip("/").split("/")
        repo = self.repos.get(f"{parts[1]}/{parts[2]}".lower())
        if repo is None:
            return httpx.Response(404, json={"message": "Not Found"})
        if len(parts) == 3:
            payload: dict[str, Any] = {"full_name": f"{parts[1]}/{parts[2]}"}
            if repo["branch"]:
                payload["default_branch"] = repo["branch"]
            return httpx.Response(200, json=payload)
        if repo["truncated"]:
            return httpx.Response(200, json={"sha": "abc", "tree": [], "truncated": True})
        return httpx.Response(
            200,
            json={"sha": "abc", "tree": self._tree(repo["paths"]), "truncated": False},
        )

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def fake_github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def reconcile(fake_github: FakeGitHub, fake_sleep: FakeSleep):
    """Run a Reconciler against the fake GitHub and return its result."""

    def _run(entries, mode="backfill", config: ReconcileConfig | None = None, **kwargs):
        cfg = config or ReconcileConfig()

        async def go():
            async with fake_github.client() as http:
                async with GitHubTreeClient(cfg, client=http, sleep=fake_sleep) as client:
                    reconciler = Reconciler(cfg, client, clock=lambda: FIXED_NOW)
                    return await reconciler.run(entries, mode, **kwargs)

        return asyncio.run(go())

    return _run
