"""Client for a git-hosted repository's REST Contents API.

Reads and writes single files addressed by ``(owner, repo, branch, path)``.
Writes are revision-checked: the current blob sha is fetched first and sent
back with the new content, so the remote rejects the write if the file
changed in between.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from fundboard.exceptions import (
    AuthError,
    ConflictError,
    NotFoundError,
    RemoteContentError,
    TransientError,
)

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.github.com"
DEFAULT_RAW_BASE_URL = "https://raw.githubusercontent.com"
DEFAULT_ACCEPT = "application/vnd.github.v3+json"


@dataclass(frozen=True)
class RemoteCredentials:
    """Repository coordinates plus access token for one session."""

    owner: str
    repo: str
    branch: str = "main"
    token: str = field(default="", repr=False)

    @property
    def is_complete(self) -> bool:
        return all(value.strip() for value in (self.owner, self.repo, self.branch, self.token))


@dataclass(frozen=True)
class RemoteDocument:
    """A file as stored on the remote: base64 content plus its revision handle."""

    path: str
    content: str
    revision: str


@dataclass(frozen=True)
class WriteResult:
    """Outcome of a successful create-or-update."""

    path: str
    revision: str
    commit: str | None = None


def quote_path(path: str) -> str:
    """Percent-encode each segment of a store-relative POSIX path."""
    segments = path.strip("/").split("/")
    if not segments or any(s in ("", ".", "..") for s in segments):
        msg = f"Invalid content path: {path!r}"
        raise ValueError(msg)
    return "/".join(quote(segment, safe="") for segment in segments)


def _json_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _error_message(response: httpx.Response) -> str:
    body = _json_body(response)
    if isinstance(body, dict):
        message = body.get("message")
        if isinstance(message, str) and message:
            return message
    return f"GitHub API error {response.status_code}"


def _raise_for_status(response: httpx.Response, path: str) -> None:
    """Translate a non-2xx response into the storage error taxonomy."""
    status = response.status_code
    if 200 <= status < 300:
        return
    message = _error_message(response)
    if status == 401:
        raise AuthError(message)
    if status == 403:
        # 403 doubles as the rate-limit response once the quota is spent.
        if response.headers.get("x-ratelimit-remaining") == "0":
            raise TransientError(f"Rate limit exceeded: {message}")
        raise AuthError(message)
    if status == 404:
        raise NotFoundError(f"{path}: {message}")
    if status == 409 or (status == 422 and "sha" in message.lower()):
        raise ConflictError(f"{path} changed on the remote: {message}")
    if status == 429 or status >= 500:
        raise TransientError(message)
    raise RemoteContentError(message, status_code=status)


class RemoteContentClient:
    """Reads and writes named paths in one remote repository branch.

    The credentials live on this object for the session's lifetime and are
    never written anywhere. Read-then-write for a given path is serialized,
    so two writes from this session cannot race each other's revision check.
    """

    def __init__(
        self,
        credentials: RemoteCredentials,
        *,
        api_base_url: str = DEFAULT_API_BASE_URL,
        raw_base_url: str = DEFAULT_RAW_BASE_URL,
        accept: str = DEFAULT_ACCEPT,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not credentials.is_complete:
            msg = "Remote credentials are incomplete"
            raise ValueError(msg)
        self.credentials = credentials
        self.raw_base_url = raw_base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=api_base_url.rstrip("/"),
            headers={
                "Authorization": f"token {credentials.token}",
                "Accept": accept,
            },
            timeout=timeout,
            transport=transport,
        )
        self._path_locks: dict[str, asyncio.Lock] = {}

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> RemoteContentClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    def _contents_url(self, path: str) -> str:
        owner = quote(self.credentials.owner, safe="")
        repo = quote(self.credentials.repo, safe="")
        return f"/repos/{owner}/{repo}/contents/{quote_path(path)}"

    def raw_url(self, path: str) -> str:
        """Public raw-content URL for a path on the session's branch."""
        owner = quote(self.credentials.owner, safe="")
        repo = quote(self.credentials.repo, safe="")
        branch = quote(self.credentials.branch, safe="/")
        return f"{self.raw_base_url}/{owner}/{repo}/{branch}/{quote_path(path)}"

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self.client.request(method, self._contents_url(path), **kwargs)
        except httpx.TransportError as exc:
            logger.warning("%s %s failed: %s", method, path, exc.__class__.__name__)
            msg = f"Could not reach the remote repository ({exc.__class__.__name__})"
            raise TransientError(msg) from exc

    async def read(self, path: str) -> RemoteDocument:
        """Fetch a file and its current revision from the session's branch.

        Raises NotFoundError when the path does not exist on the branch.
        """
        response = await self._send("GET", path, params={"ref": self.credentials.branch})
        _raise_for_status(response, path)
        data = _json_body(response)
        if (
            not isinstance(data, dict)
            or not isinstance(data.get("content"), str)
            or not isinstance(data.get("sha"), str)
        ):
            msg = f"Remote path is not a readable file: {path}"
            raise RemoteContentError(msg, status_code=response.status_code)
        return RemoteDocument(path=path, content=data["content"], revision=data["sha"])

    async def _current_revision(self, path: str) -> str | None:
        try:
            existing = await self.read(path)
        except NotFoundError:
            return None
        return existing.revision

    async def write(self, path: str, content: str, commit_message: str) -> WriteResult:
        """Create or update ``path`` with base64 ``content`` in one commit."""
        key = quote_path(path)
        lock = self._path_locks.setdefault(key, asyncio.Lock())
        async with lock:
            revision = await self._current_revision(path)
            body: dict[str, str] = {
                "message": commit_message,
                "content": content,
                "branch": self.credentials.branch,
            }
            if revision is not None:
                body["sha"] = revision
            logger.debug(
                "Writing %s (%s)", path, f"update of {revision}" if revision else "create"
            )
            response = await self._send("PUT", path, json=body)
            _raise_for_status(response, path)

        data = _json_body(response)
        content_info = data.get("content") if isinstance(data, dict) else None
        if not isinstance(content_info, dict) or not isinstance(content_info.get("sha"), str):
            msg = f"Remote accepted {path} but returned no revision"
            raise RemoteContentError(msg, status_code=response.status_code)
        commit_info = data.get("commit")
        commit = commit_info.get("sha") if isinstance(commit_info, dict) else None
        logger.info("Wrote %s at revision %s", path, content_info["sha"])
        return WriteResult(path=path, revision=content_info["sha"], commit=commit)
