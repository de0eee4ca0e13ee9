"""Health check endpoint."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from fundboard.api.deps import get_engine
from fundboard.services.document_sync import DocumentSyncEngine, SyncState

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    storage: str
    sync_state: str


@router.get("/api/health", response_model=HealthResponse)
async def health_check(
    engine: Annotated[DocumentSyncEngine, Depends(get_engine)],
) -> HealthResponse:
    """Health check endpoint for monitoring and load balancers.

    Reports ``degraded`` while the collection holds changes that have not
    been saved.
    """
    return HealthResponse(
        status="degraded" if engine.state is SyncState.DIRTY else "ok",
        version="0.1.0",
        storage=engine.mode,
        sync_state=str(engine.state),
    )
