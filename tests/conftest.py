"""Shared test fixtures for Fundboard."""

from __future__ import annotations

import base64
import hashlib
import json
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from fundboard.config import Settings
from fundboard.main import create_app
from fundboard.services.document_sync import build_engine
from fundboard.storage.remote_content import RemoteContentClient, RemoteCredentials

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

TEST_OWNER = "acme"
TEST_REPO = "donations"
TEST_BRANCH = "main"
TEST_TOKEN = "test-token"


def _wrap_base64(data: bytes) -> str:
    """Encode like the Contents API does: base64 with a newline every 60 columns."""
    encoded = base64.b64encode(data).decode("ascii")
    return "\n".join(encoded[i : i + 60] for i in range(0, len(encoded), 60)) + "\n"


class FakeContentsApi:
    """In-memory Contents API for one repository, served through httpx.MockTransport.

    ``fail(method, path, response)`` queues a one-shot response (or exception)
    for the next matching request; ``path=None`` matches any path.
    """

    def __init__(
        self,
        owner: str = TEST_OWNER,
        repo: str = TEST_REPO,
        branch: str = TEST_BRANCH,
        token: str = TEST_TOKEN,
    ) -> None:
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self.token = token
        self.files: dict[str, tuple[bytes, str]] = {}
        self.requests: list[httpx.Request] = []
        self.commits: list[tuple[str, str]] = []
        self._failures: list[tuple[str, str | None, httpx.Response | Exception]] = []

    # ── Test helpers ─────────────────────────────────────

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def fail(self, method: str, path: str | None, response: httpx.Response | Exception) -> None:
        self._failures.append((method, path, response))

    def put_bytes(self, path: str, data: bytes) -> str:
        sha = hashlib.sha1(data).hexdigest()
        self.files[path] = (data, sha)
        return sha

    def put_document(self, path: str, value: Any) -> str:
        return self.put_bytes(path, json.dumps(value, indent=2).encode("utf-8"))

    def document(self, path: str) -> Any:
        return json.loads(self.files[path][0].decode("utf-8"))

    def revision(self, path: str) -> str:
        return self.files[path][1]

    def requests_for(self, method: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method]

    # ── Transport ────────────────────────────────────────

    def _take_failure(self, method: str, path: str) -> httpx.Response | Exception | None:
        for index, (f_method, f_path, response) in enumerate(self._failures):
            if f_method == method and f_path in (None, path):
                del self._failures[index]
                return response
        return None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.headers.get("Authorization") != f"token {self.token}":
            return httpx.Response(401, json={"message": "Bad credentials"})

        prefix = f"/repos/{self.owner}/{self.repo}/contents/"
        if not request.url.path.startswith(prefix):
            return httpx.Response(404, json={"message": "Not Found"})
        path = request.url.path[len(prefix) :]

        failure = self._take_failure(request.method, path)
        if isinstance(failure, Exception):
            raise failure
        if failure is not None:
            return failure

        if request.method == "GET":
            return self._get(path, request)
        if request.method == "PUT":
            return self._put(path, request)
        return httpx.Response(405, json={"message": "Method Not Allowed"})

    def _get(self, path: str, request: httpx.Request) -> httpx.Response:
        if request.url.params.get("ref") != self.branch or path not in self.files:
            return httpx.Response(404, json={"message": "Not Found"})
        data, sha = self.files[path]
        return httpx.Response(
            200,
            json={
                "type": "file",
                "path": path,
                "sha": sha,
                "encoding": "base64",
                "content": _wrap_base64(data),
            },
        )

    def _put(self, path: str, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if body.get("branch") != self.branch:
            return httpx.Response(404, json={"message": "Branch not found"})
        existing = self.files.get(path)
        supplied = body.get("sha")
        if existing is not None and supplied is None:
            return httpx.Response(
                422, json={"message": 'Invalid request.\n\n"sha" wasn\'t supplied.'}
            )
        if existing is not None and supplied != existing[1]:
            return httpx.Response(409, json={"message": f"{path} does not match {supplied}"})
        sha = self.put_bytes(path, base64.b64decode(body["content"]))
        self.commits.append((path, body["message"]))
        commit_sha = hashlib.sha1(f"{len(self.commits)}:{path}".encode()).hexdigest()
        return httpx.Response(
            201 if existing is None else 200,
            json={"content": {"path": path, "sha": sha}, "commit": {"sha": commit_sha}},
        )


class FakeClock:
    """Millisecond clock that advances by ``step`` on every call."""

    def __init__(self, start: int = 1_760_000_000_000, step: int = 1) -> None:
        self.value = start
        self.step = step

    def __call__(self) -> int:
        current = self.value
        self.value += self.step
        return current


@asynccontextmanager
async def create_test_client(
    settings: Settings, transport: httpx.AsyncBaseTransport | None = None
) -> AsyncGenerator[AsyncClient]:
    """Create an HTTP test client with the sync engine in app state.

    ASGITransport does not run the lifespan, so the engine is built here.
    """
    app = create_app(settings)
    engine = build_engine(settings, transport=transport)
    app.state.engine = engine
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    await engine.aclose()


@pytest.fixture
def fake_api() -> FakeContentsApi:
    return FakeContentsApi()


@pytest.fixture
def credentials() -> RemoteCredentials:
    return RemoteCredentials(owner=TEST_OWNER, repo=TEST_REPO, branch=TEST_BRANCH, token=TEST_TOKEN)


@pytest.fixture
async def remote_client(
    credentials: RemoteCredentials, fake_api: FakeContentsApi
) -> AsyncGenerator[RemoteContentClient]:
    client = RemoteContentClient(credentials, transport=fake_api.transport())
    yield client
    await client.aclose()


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture
def remote_settings(cache_dir: Path) -> Settings:
    """Settings with complete repository credentials."""
    return Settings(
        _env_file=None,
        github_owner=TEST_OWNER,
        github_repo=TEST_REPO,
        github_branch=TEST_BRANCH,
        github_token=TEST_TOKEN,
        cache_dir=cache_dir,
    )


@pytest.fixture
def local_settings(cache_dir: Path) -> Settings:
    """Settings without a token: the local cache is the only store."""
    return Settings(
        _env_file=None,
        github_owner=TEST_OWNER,
        github_repo=TEST_REPO,
        github_token="",
        cache_dir=cache_dir,
    )
