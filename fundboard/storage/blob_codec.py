"""Base64 transport encoding for blobs embedded in JSON request bodies."""

from __future__ import annotations

import base64


def encode(data: bytes) -> str:
    """Encode raw bytes as standard base64 text."""
    return base64.b64encode(data).decode("ascii")


def decode(text: str) -> bytes:
    """Decode base64 text back to bytes.

    Line breaks are dropped first: the Contents API wraps the ``content``
    field at 60 columns.
    """
    compact = "".join(text.split())
    return base64.b64decode(compact, validate=True)


def encode_text(text: str) -> str:
    """Encode a UTF-8 string as base64 text."""
    return encode(text.encode("utf-8"))


def decode_text(text: str) -> str:
    """Decode base64 text holding a UTF-8 string."""
    return decode(text).decode("utf-8")
