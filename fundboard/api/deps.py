"""Shared API dependencies: settings and the session's sync engine."""

from __future__ import annotations

from fastapi import Request

from fundboard.config import Settings
from fundboard.services.document_sync import DocumentSyncEngine


def get_settings(request: Request) -> Settings:
    """Get application settings from app state."""
    settings: Settings = request.app.state.settings
    return settings


def get_engine(request: Request) -> DocumentSyncEngine:
    """Get the document sync engine from app state."""
    engine: DocumentSyncEngine = request.app.state.engine
    return engine
