"""Persistence targets for the project collection document.

The remote store and the local store share one small protocol; which one a
session uses is decided once, from whether its credentials are complete.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from fundboard.exceptions import DocumentValidationError
from fundboard.storage import blob_codec

if TYPE_CHECKING:
    from fundboard.storage.local_cache import LocalCacheStore
    from fundboard.storage.remote_content import RemoteContentClient

logger = logging.getLogger(__name__)

PROJECTS_CACHE_KEY = "projects"
DEFAULT_PROJECTS_PATH = "data/projects.json"
DEFAULT_COMMIT_MESSAGE = "Update projects.json via web app"


def serialize_collection(projects: list[dict[str, Any]]) -> str:
    """Render the collection the way it is stored: pretty-printed UTF-8 JSON."""
    return json.dumps(projects, indent=2, ensure_ascii=False)


@runtime_checkable
class CollectionStore(Protocol):
    """Where the project collection document is loaded from and saved to."""

    mode: str

    async def load(self) -> Any | None:
        """Return the stored JSON value, or None when nothing is stored yet."""
        ...

    async def save(self, projects: list[dict[str, Any]]) -> str:
        """Persist the collection and return a human-readable status."""
        ...

    async def aclose(self) -> None:
        """Release any held resources."""
        ...


class LocalCollectionStore:
    """Collection stored under a single key of the local cache."""

    mode = "local"

    def __init__(self, cache: LocalCacheStore, key: str = PROJECTS_CACHE_KEY) -> None:
        self.cache = cache
        self.key = key

    async def load(self) -> Any | None:
        try:
            return self.cache.read(self.key)
        except ValueError as exc:
            msg = f"Local cache entry {self.key!r} is not valid UTF-8 JSON: {exc}"
            raise DocumentValidationError(msg) from exc

    async def save(self, projects: list[dict[str, Any]]) -> str:
        self.cache.write(self.key, projects)
        return "Saved locally (no remote credentials)."

    async def aclose(self) -> None:
        return None


class RemoteCollectionStore:
    """Collection stored as one JSON file in the remote repository.

    A successful save is mirrored into the local cache so a later session
    without credentials still sees the last-known state.
    """

    mode = "remote"

    def __init__(
        self,
        client: RemoteContentClient,
        mirror: LocalCollectionStore,
        *,
        path: str = DEFAULT_PROJECTS_PATH,
        commit_message: str = DEFAULT_COMMIT_MESSAGE,
    ) -> None:
        self.client = client
        self.mirror = mirror
        self.path = path
        self.commit_message = commit_message

    async def load(self) -> Any:
        document = await self.client.read(self.path)
        try:
            return json.loads(blob_codec.decode_text(document.content))
        except ValueError as exc:
            msg = f"{self.path} in the repository is not valid JSON: {exc}"
            raise DocumentValidationError(msg) from exc

    async def save(self, projects: list[dict[str, Any]]) -> str:
        encoded = blob_codec.encode_text(serialize_collection(projects))
        result = await self.client.write(self.path, encoded, self.commit_message)
        await self.mirror.save(projects)
        logger.debug("Mirrored %d projects to local cache", len(projects))
        return f"Saved {self.path} to the remote repository (revision {result.revision[:7]})."

    async def aclose(self) -> None:
        await self.client.aclose()
