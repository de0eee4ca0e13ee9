"""On-device key-value cache: one JSON file per key."""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class LocalCacheStore:
    """Flat JSON key-value store under a cache directory.

    Used as the only store when remote credentials are incomplete, and as a
    mirror of the last successful remote write otherwise. Disk errors are not
    handled here; they propagate as ``OSError``.
    """

    def __init__(self, cache_dir: Path) -> None:
        self.cache_dir = cache_dir

    def _entry_path(self, key: str) -> Path:
        if not _KEY_RE.match(key) or key.startswith("."):
            msg = f"Invalid cache key: {key!r}"
            raise ValueError(msg)
        return self.cache_dir / f"{key}.json"

    def read(self, key: str) -> Any | None:
        """Return the stored value for ``key``, or None when absent."""
        entry_path = self._entry_path(key)
        if not entry_path.exists():
            return None
        return json.loads(entry_path.read_text(encoding="utf-8"))

    def write(self, key: str, value: Any) -> None:
        """Overwrite the value for ``key``."""
        entry_path = self._entry_path(key)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(value, indent=2, ensure_ascii=False)
        fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                tmp.write(payload)
            os.replace(tmp_name, entry_path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.debug("Cached %s in %s", key, entry_path)
