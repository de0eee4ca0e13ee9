"""Document sync: owns the canonical project collection for one session.

The collection is loaded once (remote first, local cache as fallback),
mutated in memory, and written back as a whole document. A failed write
never rolls back the in-memory mutation; the caller gets a status message
and may retry with ``persist()``. A conflicting write instead requires a
reload, which picks up the remote changes and drops the unsaved ones.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from fundboard.exceptions import (
    ConflictError,
    DocumentValidationError,
    NotFoundError,
    ProjectNotFoundError,
    StorageError,
)
from fundboard.schemas.project import Project
from fundboard.services.datetime_service import now_ms
from fundboard.services.image_upload import ImageUploadCoordinator
from fundboard.storage.collection_store import LocalCollectionStore, RemoteCollectionStore
from fundboard.storage.local_cache import LocalCacheStore
from fundboard.storage.remote_content import RemoteContentClient

if TYPE_CHECKING:
    from collections.abc import Callable

    import httpx

    from fundboard.config import Settings
    from fundboard.schemas.project import PendingFile, ProjectCreate, ProjectUpdate
    from fundboard.storage.collection_store import CollectionStore

logger = logging.getLogger(__name__)

_PROJECT_ID_RE = re.compile(r"^p_(\d+)$")

_RELOAD_HINT = (
    "The repository copy changed; reload the projects and apply the change again."
)


class SyncState(StrEnum):
    UNINITIALIZED = "uninitialized"
    LOADED = "loaded"
    DIRTY = "dirty"


@dataclass
class MutationResult:
    """New collection state plus the status message for the caller."""

    projects: list[Project]
    status: str
    project: Project | None = None
    changed: bool = True
    persisted: bool = False
    conflict: bool = False
    warnings: list[str] = field(default_factory=list)


def parse_collection(raw: Any) -> list[Project]:
    """Validate a stored collection document.

    Raises DocumentValidationError instead of returning a partial list.
    """
    if not isinstance(raw, list):
        msg = f"Expected a list of projects, got {type(raw).__name__}"
        raise DocumentValidationError(msg)
    projects: list[Project] = []
    seen: set[str] = set()
    for position, item in enumerate(raw):
        try:
            project = Project.model_validate(item)
        except ValueError as exc:
            msg = f"Invalid project at position {position}: {exc}"
            raise DocumentValidationError(msg) from exc
        if project.id in seen:
            msg = f"Duplicate project id {project.id!r}"
            raise DocumentValidationError(msg)
        seen.add(project.id)
        projects.append(project)
    return projects


class DocumentSyncEngine:
    """Loads, mutates, and persists the project collection.

    Concurrency: all persists go through one ``asyncio.Lock``, so only one
    write of the collection is in flight at a time. Mutations themselves run
    without awaiting between reading and updating the list, except for the
    image upload, after which the project is looked up again by id.
    """

    def __init__(
        self,
        store: CollectionStore,
        cache_store: LocalCollectionStore,
        *,
        uploader: ImageUploadCoordinator | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.store = store
        self.cache_store = cache_store
        self.uploader = uploader
        self._clock = clock
        self._projects: list[Project] = []
        self._persist_lock = asyncio.Lock()
        self._load_lock = asyncio.Lock()
        self._generation = 0
        self._last_id_ms = 0
        self.state = SyncState.UNINITIALIZED
        self.source: str | None = None
        self.load_status = ""
        self.conflicted = False

    @property
    def mode(self) -> str:
        """``remote`` or ``local``: the store chosen for this session."""
        return self.store.mode

    @property
    def projects(self) -> list[Project]:
        """Snapshot of the in-memory collection, most recent first."""
        return [p.model_copy() for p in self._projects]

    async def aclose(self) -> None:
        await self.store.aclose()

    # ── Loading ──────────────────────────────────────────

    async def load(self, *, force: bool = False) -> str:
        """Populate the collection on first access and return the load status.

        ``force=True`` reloads even when already loaded, discarding unsaved
        in-memory changes (the caller's reload-and-retry after a conflict).
        """
        async with self._load_lock:
            if self.state is not SyncState.UNINITIALIZED and not force:
                return self.load_status
            try:
                projects, self.source, status = await self._load_from_stores()
            except DocumentValidationError as exc:
                logger.error("Stored project collection is malformed: %s", exc)
                projects, self.source = [], None
                status = f"Failed to parse stored projects: {exc}"
            self._projects = projects
            self._seed_id_counter()
            self._generation += 1
            self.state = SyncState.LOADED
            self.load_status = status
            self.conflicted = False
            logger.info("Loaded %d projects (source=%s)", len(projects), self.source)
            return status

    async def _load_from_stores(self) -> tuple[list[Project], str | None, str]:
        notice = ""
        if self.store is not self.cache_store:
            try:
                raw = await self.store.load()
            except NotFoundError:
                notice = (
                    "No projects file found in the repository; "
                    "using the local cache until you save."
                )
            except DocumentValidationError:
                raise
            except StorageError as exc:
                logger.warning("Remote load failed, falling back to local cache: %s", exc)
                notice = (
                    f"Could not load projects from the repository ({exc}); using the local cache."
                )
            else:
                status = "Loaded projects from the remote repository."
                return parse_collection(raw), "remote", status

        raw = await self.cache_store.load()
        if raw is None:
            return [], None, notice or "No saved projects yet."
        return parse_collection(raw), "local", notice or "Loaded projects from the local cache."

    async def _ensure_loaded(self) -> None:
        if self.state is SyncState.UNINITIALIZED:
            await self.load()

    def _seed_id_counter(self) -> None:
        for project in self._projects:
            match = _PROJECT_ID_RE.match(project.id)
            if match:
                self._last_id_ms = max(self._last_id_ms, int(match.group(1)))

    # ── Mutations ────────────────────────────────────────

    def _next_id(self, now: int) -> str:
        candidate = max(now, self._last_id_ms + 1)
        existing = {p.id for p in self._projects}
        while f"p_{candidate}" in existing:
            candidate += 1
        self._last_id_ms = candidate
        return f"p_{candidate}"

    def _index_of(self, project_id: str) -> int:
        for index, project in enumerate(self._projects):
            if project.id == project_id:
                return index
        raise ProjectNotFoundError(project_id)

    def _mark_dirty(self) -> None:
        self._generation += 1
        self.state = SyncState.DIRTY

    async def _upload_image(
        self, file: PendingFile | None, project_id: str, warnings: list[str]
    ) -> str | None:
        if file is None:
            return None
        if self.uploader is None:
            warnings.append("No remote credentials: image was not uploaded.")
            return None
        try:
            return await self.uploader.upload(file, project_id)
        except StorageError as exc:
            logger.warning("Image upload for %s failed: %s", project_id, exc)
            warnings.append(f"Image upload failed: {exc}")
            return None

    async def add(self, data: ProjectCreate, image: PendingFile | None = None) -> MutationResult:
        """Insert a new project at the head of the collection and persist."""
        await self._ensure_loaded()
        now = self._clock()
        project = Project(
            id=self._next_id(now),
            title=data.title,
            target=data.target,
            description=data.description,
            collected=data.collected,
            image=None,
            created_at=now,
            updated_at=now,
        )
        self._projects.insert(0, project)
        self._mark_dirty()
        logger.info("Added project %s", project.id)

        warnings: list[str] = []
        image_url = await self._upload_image(image, project.id, warnings)
        if image_url is not None:
            project = self._replace(project.id, image=image_url)
        return await self._finish(project, warnings)

    async def update(
        self,
        project_id: str,
        changes: ProjectUpdate,
        image: PendingFile | None = None,
    ) -> MutationResult:
        """Replace the supplied editable fields of a project and persist.

        Raises ProjectNotFoundError when ``project_id`` is not in the collection.
        """
        await self._ensure_loaded()
        self._index_of(project_id)
        project = self._replace(project_id, **changes.changes(), updated_at=self._clock())
        self._mark_dirty()
        logger.info("Updated project %s", project_id)

        warnings: list[str] = []
        image_url = await self._upload_image(image, project_id, warnings)
        if image_url is not None:
            project = self._replace(project_id, image=image_url)
        return await self._finish(project, warnings)

    async def delete(self, project_id: str, *, confirmed: bool) -> MutationResult:
        """Remove a project and persist; a no-op unless ``confirmed``."""
        await self._ensure_loaded()
        if not confirmed:
            return MutationResult(
                projects=self.projects,
                status="Deletion not confirmed; nothing changed.",
                changed=False,
            )
        index = self._index_of(project_id)
        removed = self._projects.pop(index)
        self._mark_dirty()
        logger.info("Deleted project %s", project_id)
        return await self._finish(removed, [])

    def _replace(self, project_id: str, **fields: Any) -> Project:
        index = self._index_of(project_id)
        updated = self._projects[index].model_copy(update=fields)
        self._projects[index] = updated
        return updated

    async def _finish(self, project: Project, warnings: list[str]) -> MutationResult:
        result = await self.persist()
        result.project = project.model_copy()
        result.warnings = warnings
        if warnings:
            result.status = " ".join([*warnings, result.status])
        return result

    # ── Persistence ──────────────────────────────────────

    async def persist(self) -> MutationResult:
        """Write the whole collection to the session's store.

        On failure the in-memory collection is kept as is and the state
        stays DIRTY until a later persist succeeds. After a conflict, no
        further write is attempted until ``load(force=True)`` picks up the
        remote changes; retrying would overwrite them.
        """
        await self._ensure_loaded()
        async with self._persist_lock:
            if self.conflicted:
                return MutationResult(
                    projects=self.projects,
                    status=f"Not saved: {_RELOAD_HINT}",
                    persisted=False,
                    conflict=True,
                )
            generation = self._generation
            snapshot = [p.to_document() for p in self._projects]
            try:
                status = await self.store.save(snapshot)
            except ConflictError as exc:
                self.state = SyncState.DIRTY
                self.conflicted = True
                logger.warning("Saving projects conflicted: %s", exc)
                return MutationResult(
                    projects=self.projects,
                    status=f"Failed to save projects: {exc}. {_RELOAD_HINT}",
                    persisted=False,
                    conflict=True,
                )
            except StorageError as exc:
                self.state = SyncState.DIRTY
                logger.warning("Saving projects failed: %s", exc)
                return MutationResult(
                    projects=self.projects,
                    status=f"Failed to save projects: {exc}",
                    persisted=False,
                )
            # A mutation that landed while the write was in flight is still unsaved.
            if generation == self._generation:
                self.state = SyncState.LOADED
            self.source = self.store.mode
            logger.info("Persisted %d projects (%s)", len(snapshot), self.store.mode)
            return MutationResult(projects=self.projects, status=status, persisted=True)


def build_engine(
    settings: Settings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> DocumentSyncEngine:
    """Create the session engine, choosing the remote or local store once.

    The remote store is used only when the configured credentials are
    complete; otherwise the local cache is the sole store.
    """
    cache_store = LocalCollectionStore(LocalCacheStore(settings.cache_dir))
    credentials = settings.remote_credentials()
    if not credentials.is_complete:
        logger.info("Remote credentials incomplete; using local cache only")
        return DocumentSyncEngine(cache_store, cache_store)

    client = RemoteContentClient(
        credentials,
        api_base_url=settings.api_base_url,
        raw_base_url=settings.raw_base_url,
        accept=settings.api_accept,
        timeout=settings.request_timeout_seconds,
        transport=transport,
    )
    store = RemoteCollectionStore(
        client,
        cache_store,
        path=settings.projects_path,
        commit_message=settings.commit_message,
    )
    uploader = ImageUploadCoordinator(client, image_dir=settings.image_dir)
    logger.info(
        "Using remote repository %s/%s@%s",
        credentials.owner,
        credentials.repo,
        credentials.branch,
    )
    return DocumentSyncEngine(store, cache_store, uploader=uploader)
