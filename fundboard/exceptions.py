"""Storage-level exception types.

Convention:
- Every failure of the remote content store or of the stored collection
  document is a ``StorageError`` subclass. ``DocumentSyncEngine`` converts
  these into status messages for its callers; it never retries on its own.
- ``ValueError`` stays reserved for bad caller input (negative amounts,
  invalid cache keys, etc.). The API layer maps it to 422.
"""

from __future__ import annotations


class StorageError(Exception):
    """Base class for persistence failures."""


class AuthError(StorageError):
    """Credential is invalid, expired, or lacks the required scope. Not retried."""


class NotFoundError(StorageError):
    """The requested path does not exist on the configured branch."""


class ProjectNotFoundError(NotFoundError):
    """No project with the given id exists in the loaded collection."""

    def __init__(self, project_id: str) -> None:
        super().__init__(f"Project not found: {project_id}")
        self.project_id = project_id


class ConflictError(StorageError):
    """The remote rejected a write because the revision no longer matches."""


class TransientError(StorageError):
    """Network failure, timeout, rate limit, or remote service outage."""


class DocumentValidationError(StorageError):
    """The stored collection document is malformed."""


class RemoteContentError(StorageError):
    """The remote rejected a request for a reason outside the other categories."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
