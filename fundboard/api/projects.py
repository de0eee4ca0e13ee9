"""Project API endpoints: list, create, update, delete, retry persist, and reload."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from pydantic import BaseModel, Field

from fundboard.api.deps import get_engine, get_settings
from fundboard.config import Settings
from fundboard.schemas.project import PendingFile, Project, ProjectCreate, ProjectUpdate
from fundboard.services.document_sync import DocumentSyncEngine

if TYPE_CHECKING:
    from fundboard.services.document_sync import MutationResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/projects", tags=["projects"])


class ProjectListResponse(BaseModel):
    """Current collection with the status of the last load."""

    projects: list[Project]
    status: str
    storage: str
    sync_state: str


class MutationResponse(BaseModel):
    """Collection after a mutation, with the caller-facing status message."""

    projects: list[Project]
    project: Project | None = None
    status: str
    changed: bool = True
    persisted: bool = False
    conflict: bool = False
    warnings: list[str] = Field(default_factory=list)


def _to_response(result: MutationResult) -> MutationResponse:
    return MutationResponse(
        projects=result.projects,
        project=result.project,
        status=result.status,
        changed=result.changed,
        persisted=result.persisted,
        conflict=result.conflict,
        warnings=result.warnings,
    )


def _amount(value: float | None) -> int | float | None:
    """Keep whole amounts as integers in the stored document."""
    if value is not None and value.is_integer():
        return int(value)
    return value


async def _read_image(image: UploadFile | None, max_bytes: int) -> PendingFile | None:
    """Read an optional uploaded image, enforcing the size limit."""
    if image is None or not image.filename:
        return None
    content = await image.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise HTTPException(status_code=413, detail=f"Image too large: {image.filename}")
    if not content:
        raise HTTPException(status_code=422, detail=f"Image is empty: {image.filename}")
    return PendingFile(filename=image.filename, content=content)


@router.get("", response_model=ProjectListResponse)
async def list_projects(
    engine: Annotated[DocumentSyncEngine, Depends(get_engine)],
) -> ProjectListResponse:
    """List projects, most recently created first."""
    status = await engine.load()
    return ProjectListResponse(
        projects=engine.projects,
        status=status,
        storage=engine.mode,
        sync_state=str(engine.state),
    )


@router.post("", response_model=MutationResponse, status_code=201)
async def create_project(
    engine: Annotated[DocumentSyncEngine, Depends(get_engine)],
    settings: Annotated[Settings, Depends(get_settings)],
    title: Annotated[str, Form()],
    target: Annotated[str, Form()],
    description: Annotated[str, Form()],
    collected: Annotated[float, Form(ge=0)] = 0,
    image: UploadFile | None = File(default=None),
) -> MutationResponse:
    """Create a project, uploading the optional image first."""
    data = ProjectCreate(
        title=title,
        target=target,
        description=description,
        collected=_amount(collected) or 0,
    )
    pending = await _read_image(image, settings.max_image_bytes)
    result = await engine.add(data, pending)
    return _to_response(result)


@router.post("/persist", response_model=MutationResponse)
async def persist_projects(
    engine: Annotated[DocumentSyncEngine, Depends(get_engine)],
) -> MutationResponse:
    """Retry saving the current collection after a failed write."""
    return _to_response(await engine.persist())


@router.post("/reload", response_model=ProjectListResponse)
async def reload_projects(
    engine: Annotated[DocumentSyncEngine, Depends(get_engine)],
) -> ProjectListResponse:
    """Reload the collection from storage, dropping unsaved changes.

    This is how a caller recovers from a conflicting save.
    """
    status = await engine.load(force=True)
    logger.info("Projects reloaded: %s", status)
    return ProjectListResponse(
        projects=engine.projects,
        status=status,
        storage=engine.mode,
        sync_state=str(engine.state),
    )


@router.put("/{project_id}", response_model=MutationResponse)
async def update_project(
    project_id: str,
    engine: Annotated[DocumentSyncEngine, Depends(get_engine)],
    settings: Annotated[Settings, Depends(get_settings)],
    title: Annotated[str | None, Form()] = None,
    target: Annotated[str | None, Form()] = None,
    description: Annotated[str | None, Form()] = None,
    collected: Annotated[float | None, Form(ge=0)] = None,
    image: UploadFile | None = File(default=None),
) -> MutationResponse:
    """Update the supplied fields of a project; a new image replaces the old one."""
    changes = ProjectUpdate(
        title=title,
        target=target,
        description=description,
        collected=_amount(collected),
    )
    pending = await _read_image(image, settings.max_image_bytes)
    result = await engine.update(project_id, changes, pending)
    return _to_response(result)


@router.delete("/{project_id}", response_model=MutationResponse)
async def delete_project(
    project_id: str,
    engine: Annotated[DocumentSyncEngine, Depends(get_engine)],
    confirm: bool = Query(False),
) -> MutationResponse:
    """Delete a project. Without ``confirm=true`` nothing is removed."""
    result = await engine.delete(project_id, confirmed=confirm)
    if not result.changed:
        logger.info("Delete of %s not confirmed", project_id)
    return _to_response(result)
