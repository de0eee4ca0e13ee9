"""Image upload: stores a pending file as a blob in the repository."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from fundboard.services.datetime_service import now_ms
from fundboard.storage import blob_codec

if TYPE_CHECKING:
    from collections.abc import Callable

    from fundboard.schemas.project import PendingFile
    from fundboard.storage.remote_content import RemoteContentClient

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def sanitize_filename(filename: str) -> str:
    """Replace every character outside ``[A-Za-z0-9._-]`` with ``_``.

    >>> sanitize_filename("my photo!.png")
    'my_photo_.png'
    """
    return _UNSAFE_FILENAME_CHARS.sub("_", filename) or "upload"


class ImageUploadCoordinator:
    """Uploads images under collision-resistant paths and returns their public URLs.

    Identical content uploaded twice lands at two paths; nothing is
    deduplicated.
    """

    def __init__(
        self,
        client: RemoteContentClient,
        *,
        image_dir: str = "image",
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.client = client
        self.image_dir = image_dir.strip("/")
        self._clock = clock
        self._last_stamp = 0

    def _next_stamp(self) -> int:
        # Strictly increasing, so two uploads in the same millisecond get distinct paths.
        stamp = max(self._clock(), self._last_stamp + 1)
        self._last_stamp = stamp
        return stamp

    def build_path(self, filename: str) -> str:
        """Return a fresh ``image/<millis>_<sanitized-name>`` path."""
        return f"{self.image_dir}/{self._next_stamp()}_{sanitize_filename(filename)}"

    async def upload(self, file: PendingFile, target_id: str) -> str:
        """Upload ``file`` for project ``target_id`` and return its raw-content URL.

        Raises the same storage errors as ``RemoteContentClient.write``.
        """
        path = self.build_path(file.filename)
        await self.client.write(path, blob_codec.encode(file.content), f"Upload image {path}")
        url = self.client.raw_url(path)
        logger.info("Uploaded image for %s to %s (%d bytes)", target_id, path, len(file.content))
        return url
