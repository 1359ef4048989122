"""On-disk response cache.

Blobs are addressed by a resource id, an optional discriminator (the hash of
the query parameters) and a handler-chosen filename. Every id segment except
the last becomes two directories, the segment itself followed by a fixed shard
label, so that listings such as ``repositories/<ws>`` never share a directory
with the children of ``repositories/<ws>/<repo>``.
"""

from __future__ import annotations

import errno
import logging
import os
import shutil
from pathlib import Path
from typing import Optional, Sequence, Union

from .constants import CACHE_DIR, CACHE_DIR_ENV, CACHE_LAYOUT
from .utils import decode_payload

logger = logging.getLogger(__name__)

Blob = Union[str, bytes]


def default_cache_dir() -> Path:
    """Return the cache root, honouring the ``BBQ_CACHE_DIR`` override."""
    override = os.environ.get(CACHE_DIR_ENV)
    return Path(override).expanduser() if override else CACHE_DIR


def _check_segment(segment: str) -> None:
    if not segment or segment in (".", "..") or "/" in segment or os.sep in segment:
        raise ValueError(f"Unsafe cache path segment: {segment!r}")


class Cache:
    """Key/blob store rooted at a directory on disk."""

    def __init__(self, root: Optional[Path] = None):
        """Initialize the cache.

        Args:
            root: Cache root directory (defaults to ``~/.cache/bbq``)
        """
        self.root = Path(root) if root is not None else default_cache_dir()

    def path_for(self, resource_id: Sequence[str], discriminator: Optional[str] = None) -> Path:
        """Directory holding the entries of ``resource_id``.

        Args:
            resource_id: Resource path segments
            discriminator: Parameter hash, or None

        Returns:
            Leaf directory path

        Raises:
            ValueError: If the id is empty or contains unsafe segments
        """
        if not resource_id:
            raise ValueError("Resource id must contain at least one segment")
        for segment in resource_id:
            _check_segment(segment)

        parts: list[str] = []
        for segment in resource_id[:-1]:
            parts.extend((segment, CACHE_LAYOUT['shard_label']))
        leaf = resource_id[-1]
        if discriminator:
            leaf = f"{leaf}{CACHE_LAYOUT['discriminator_separator']}{discriminator}"
        parts.append(leaf)
        return self.root.joinpath(*parts)

    def read(
        self,
        resource_id: Sequence[str],
        discriminator: Optional[str],
        filename: str,
    ) -> Optional[Blob]:
        """Read a stored blob.

        Returns:
            Decoded text, raw bytes for binary content, or None when absent
        """
        try:
            data_path = self.path_for(resource_id, discriminator) / filename
        except ValueError as exc:
            logger.warning(f"cache: {exc}")
            return None

        if not data_path.is_file():
            logger.debug(f"cache: {data_path} does not exist")
            return None

        try:
            raw = data_path.read_bytes()
        except OSError as exc:
            logger.warning(f"cache: could not read {data_path}: {exc}")
            return None

        logger.debug(f"cache: read {len(raw)} bytes from {data_path}")
        return decode_payload(raw)

    def write(
        self,
        resource_id: Sequence[str],
        discriminator: Optional[str],
        blob: Blob,
        filename: str,
    ) -> bool:
        """Store ``blob``, replacing any previous entry.

        Errors are logged and reported as False rather than raised.

        Returns:
            True if the blob was written
        """
        try:
            cache_path = self.path_for(resource_id, discriminator)
        except ValueError as exc:
            logger.warning(f"cache: {exc}")
            return False

        data = blob.encode("utf-8") if isinstance(blob, str) else blob
        data_path = cache_path / filename
        try:
            cache_path.mkdir(parents=True, exist_ok=True)
            data_path.write_bytes(data)
        except PermissionError as exc:
            logger.warning(f"cache: permission denied writing {data_path}: {exc}")
            return False
        except OSError as exc:
            if exc.errno == errno.ENOSPC:
                logger.warning(f"cache: no space left on device for {data_path}")
            else:
                logger.warning(f"cache: could not write to {data_path}: {exc}")
            return False

        logger.debug(f"cache: saved {len(data)} bytes to {data_path}")
        return True

    def exists(self) -> bool:
        """Whether the cache root exists."""
        return self.root.is_dir()

    def total_size(self) -> int:
        """Sum of the sizes of all files below the cache root."""
        if not self.root.exists():
            return 0
        total = 0
        for path in self.root.rglob("*"):
            try:
                if path.is_file():
                    total += path.stat().st_size
            except OSError:
                continue
        return total

    def clear(self) -> bool:
        """Delete the whole cache root.

        Callers are responsible for confirming with the user first.

        Returns:
            True if something was removed
        """
        if not self.root.exists():
            logger.info(f"cache: nothing to clear at {self.root}")
            return False
        shutil.rmtree(self.root)
        logger.info(f"cache: cleared {self.root}")
        return True
