"""Shared utility helpers for the bbq toolkit."""

from __future__ import annotations

import re
from typing import Union
from urllib.parse import urlparse

from .constants import BINARY_SNIFF_BYTES

__all__ = [
    "is_binary",
    "decode_payload",
    "format_size",
    "validate_url",
    "validate_issue_key",
]

_ISSUE_KEY_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_]*-\d+$|^\d+$")


def is_binary(data: bytes) -> bool:
    """Guess whether ``data`` is binary content.

    A NUL byte in the leading window, or bytes that are not valid UTF-8,
    mark the payload as binary.

    Args:
        data: Raw payload

    Returns:
        True if the payload should be kept as bytes
    """
    if b"\x00" in data[:BINARY_SNIFF_BYTES]:
        return True
    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        return True
    return False


def decode_payload(data: bytes) -> Union[str, bytes]:
    """Decode ``data`` to text unless it sniffs as binary."""
    if is_binary(data):
        return data
    return data.decode("utf-8")


def format_size(n_bytes: int) -> str:
    """Format a byte count for humans (e.g. ``1.5 MB``).

    Args:
        n_bytes: Size in bytes

    Returns:
        Human-readable size string
    """
    n = max(int(n_bytes or 0), 0)
    if n < 1024:
        return f"{n} B"
    size = float(n)
    for unit in ("KB", "MB", "GB", "TB"):
        size /= 1024
        if size < 1024 or unit == "TB":
            text = f"{size:.0f}" if size >= 10 else f"{size:.1f}"
            return f"{text.replace('.0', '')} {unit}"
    return f"{n} B"


def validate_url(url: str, name: str = "URL") -> None:
    """Validate URL format.

    Args:
        url: The URL to validate.
        name: Name of the URL field for error messages.

    Raises:
        ValueError: If the URL format is invalid.
    """
    if not url or not url.strip():
        raise ValueError(f"{name} cannot be empty")

    result = urlparse(url.strip())
    if result.scheme not in ("http", "https"):
        raise ValueError(f"{name} must use http or https scheme")
    if not result.netloc:
        raise ValueError(f"{name} must include a hostname")


def validate_issue_key(key: str) -> None:
    """Validate a Jira issue key (``PROJ-123``) or numeric id.

    Raises:
        ValueError: If the key is malformed.
    """
    if not key or not _ISSUE_KEY_PATTERN.match(key.strip()):
        raise ValueError(f"Invalid issue key '{key}': expected e.g. 'PROJ-123'")

