"""Project-related schemas."""

from __future__ import annotations

import math

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _require_finite(value: int | float | None) -> int | float | None:
    if value is not None and not math.isfinite(value):
        raise ValueError("Collected amount must be a finite number")
    return value


class Project(BaseModel):
    """A fundraising project as stored in the collection document.

    Timestamps are epoch milliseconds under the camelCase keys used by the
    stored JSON document.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1)
    title: str
    target: str
    description: str
    collected: int | float = Field(default=0, ge=0)
    image: str | None = None
    created_at: int = Field(alias="createdAt", ge=0)
    updated_at: int = Field(alias="updatedAt", ge=0)

    @field_validator("collected")
    @classmethod
    def collected_must_be_finite(cls, v: int | float) -> int | float:
        _ = cls
        return _require_finite(v)

    def to_document(self) -> dict[str, object]:
        """Serialize with the stored document's key names."""
        return self.model_dump(by_alias=True)


class ProjectCreate(BaseModel):
    """Editable fields for a new project."""

    title: str = Field(min_length=1, max_length=500)
    target: str = Field(min_length=1, max_length=100)
    description: str = Field(min_length=1, max_length=20_000)
    collected: int | float = Field(default=0, ge=0)

    @field_validator("collected")
    @classmethod
    def collected_must_be_finite(cls, v: int | float) -> int | float:
        """Reject infinity and NaN, which have no JSON representation."""
        _ = cls
        return _require_finite(v)


class ProjectUpdate(BaseModel):
    """Partial update; only fields explicitly set are applied."""

    title: str | None = Field(default=None, min_length=1, max_length=500)
    target: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = Field(default=None, min_length=1, max_length=20_000)
    collected: int | float | None = Field(default=None, ge=0)

    @field_validator("collected")
    @classmethod
    def collected_must_be_finite(cls, v: int | float | None) -> int | float | None:
        _ = cls
        return _require_finite(v)

    def changes(self) -> dict[str, object]:
        """Return the explicitly supplied, non-null fields."""
        return {
            name: value
            for name, value in self.model_dump(exclude_unset=True).items()
            if value is not None
        }


class PendingFile(BaseModel):
    """A file attached to a mutation, not yet uploaded."""

    filename: str
    content: bytes
