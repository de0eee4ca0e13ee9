"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from fundboard.storage.remote_content import RemoteCredentials


class Settings(BaseSettings):
    """Fundboard application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    debug: bool = False

    # Remote repository (held in memory only, never written back)
    github_owner: str = ""
    github_repo: str = ""
    github_branch: str = "main"
    github_token: str = Field(default="", repr=False)

    # Remote content API
    api_base_url: str = "https://api.github.com"
    raw_base_url: str = "https://raw.githubusercontent.com"
    api_accept: str = "application/vnd.github.v3+json"
    request_timeout_seconds: float = Field(default=30.0, gt=0)

    # Storage layout
    cache_dir: Path = Path("./data/cache")
    projects_path: str = "data/projects.json"
    image_dir: str = "image"
    commit_message: str = "Update projects.json via web app"
    max_image_bytes: int = Field(default=10 * 1024 * 1024, ge=1)

    # Server
    host: str = "127.0.0.1"
    port: int = Field(default=8000, ge=1, le=65535)

    def remote_credentials(self) -> RemoteCredentials:
        """Build the session credentials from the configured repository fields."""
        return RemoteCredentials(
            owner=self.github_owner.strip(),
            repo=self.github_repo.strip(),
            branch=self.github_branch.strip() or "main",
            token=self.github_token.strip(),
        )
