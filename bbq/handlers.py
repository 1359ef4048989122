"""Data handlers: per-response-shape accumulators and cache codecs.

A handler is created for one fetch. The resource manager feeds it every HTTP
response and the handler answers with a continuation directive telling the
fetch loop whether to stop, follow a link, or repeat the request with extra
parameters.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar, Union

import requests

from .constants import CACHE_FILENAMES, ERROR_BODY_PREVIEW
from .exceptions import ApiError, CacheCorruptionError
from .utils import decode_payload

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Continuation Directives
# =============================================================================


@dataclass(frozen=True)
class Done:
    """No further request is needed."""


@dataclass(frozen=True)
class NextRequest:
    """Fetch ``url`` next, with the server credentials reapplied."""

    url: str


@dataclass(frozen=True)
class Repeat:
    """Reissue the same resource with ``parameters`` merged over the old ones."""

    parameters: Dict[str, str] = field(default_factory=dict)


ContinuationDirective = Union[Done, NextRequest, Repeat]

DONE = Done()


# =============================================================================
# Base Handlers
# =============================================================================


class DataHandler(ABC, Generic[T]):
    """Contract between the resource manager and a response shape."""

    filename: str = CACHE_FILENAMES['json']

    @abstractmethod
    def add(self, response: requests.Response) -> ContinuationDirective:
        """Fold one response into the accumulated state."""

    @abstractmethod
    def get(self) -> T:
        """Return the accumulated value."""

    @abstractmethod
    def serialize(self, data: T) -> bytes:
        """Encode a value for the cache."""

    @abstractmethod
    def deserialize(self, blob: Union[str, bytes]) -> T:
        """Decode a cached blob.

        Raises:
            CacheCorruptionError: If the blob cannot be decoded
        """

    def reset(self) -> None:
        """Discard accumulated state before a new fetch."""

    def cache_filename(self) -> str:
        """File name used for this handler's cache entries."""
        return self.filename


class _JsonCodecHandler(DataHandler[T]):
    """Shared JSON encoding for handlers whose values are JSON documents."""

    filename = CACHE_FILENAMES['json']

    @staticmethod
    def _parse(response: requests.Response) -> Any:
        if not response.content or not response.content.strip():
            return None
        try:
            return response.json()
        except ValueError as exc:
            logger.error(
                f"Failed to decode JSON from {response.url}. "
                f"Status: {response.status_code}, "
                f"Content-Type: {response.headers.get('content-type', 'unknown')}, "
                f"Content preview: {response.text[:ERROR_BODY_PREVIEW]}"
            )
            raise ApiError(
                f"Invalid JSON response from {response.url}: {exc}",
                status_code=response.status_code,
                body=response.text[:ERROR_BODY_PREVIEW],
            ) from exc

    def serialize(self, data: T) -> bytes:
        return json.dumps(data, ensure_ascii=False).encode("utf-8")

    def deserialize(self, blob: Union[str, bytes]) -> T:
        try:
            return json.loads(blob)
        except (TypeError, ValueError) as exc:
            raise CacheCorruptionError(f"Cached JSON could not be parsed: {exc}", blob) from exc


# =============================================================================
# Handler Variants
# =============================================================================


class JsonHandler(_JsonCodecHandler[Any]):
    """Single JSON document; one response is always enough."""

    def __init__(self) -> None:
        self.json: Any = None

    def reset(self) -> None:
        self.json = None

    def add(self, response: requests.Response) -> ContinuationDirective:
        self.json = self._parse(response)
        return DONE

    def get(self) -> Any:
        return self.json


class JsonListHandler(_JsonCodecHandler[List[Any]]):
    """List endpoint wrapped in an envelope, paginated through ``next`` links.

    Args:
        max_pages: Maximum number of pages to fetch (0 means unbounded).
            Reaching the cap silently truncates the result.
        values_field: Envelope field holding the page items
        next_field: Envelope field holding the next page URL
    """

    def __init__(
        self,
        max_pages: int = 0,
        values_field: str = "values",
        next_field: str = "next",
    ) -> None:
        if max_pages < 0:
            raise ValueError(f"max_pages must not be negative, got {max_pages}")
        self.max_pages = max_pages
        self.values_field = values_field
        self.next_field = next_field
        self.list: List[Any] = []
        self.page_index = 0

    def reset(self) -> None:
        self.list = []
        self.page_index = 0

    def add(self, response: requests.Response) -> ContinuationDirective:
        body = self._parse(response) or {}
        if not isinstance(body, dict):
            raise ApiError(
                f"Expected a JSON object envelope from {response.url}, "
                f"got {type(body).__name__}",
                status_code=response.status_code,
            )
        self.list.extend(body.get(self.values_field) or [])
        self.page_index += 1

        next_page = body.get(self.next_field)
        if not next_page or body.get("isLast"):
            return DONE
        if self.max_pages and self.page_index >= self.max_pages:
            logger.debug(f"Page cap of {self.max_pages} reached for {response.url}")
            return DONE
        return NextRequest(next_page)

    def get(self) -> List[Any]:
        return self.list


class IssueSearchHandler(_JsonCodecHandler[List[Any]]):
    """Offset paginated search bounded by a target result count.

    The server reports ``total``, ``startAt`` and ``maxResults``; the handler
    keeps asking for the next offset until it holds ``num_issues`` items or
    everything the server has, whichever is smaller.

    Args:
        num_issues: Number of issues wanted (0 means all of them)
        issues_field: Envelope field holding the page items
    """

    def __init__(self, num_issues: int = 0, issues_field: str = "issues") -> None:
        if num_issues < 0:
            raise ValueError(f"num_issues must not be negative, got {num_issues}")
        self.num_issues = num_issues
        self.issues_field = issues_field
        self.list: List[Any] = []
        self.total: Optional[int] = None

    def reset(self) -> None:
        self.list = []
        self.total = None

    def _target(self) -> int:
        total = self.total or 0
        if self.num_issues <= 0:
            return total
        return min(self.num_issues, total)

    def add(self, response: requests.Response) -> ContinuationDirective:
        body = self._parse(response) or {}
        if not isinstance(body, dict):
            raise ApiError(
                f"Expected a JSON object envelope from {response.url}, "
                f"got {type(body).__name__}",
                status_code=response.status_code,
            )
        page = body.get(self.issues_field) or []
        self.list.extend(page)
        total = body.get("total", len(self.list))
        try:
            self.total = int(total)
        except (TypeError, ValueError) as exc:
            raise ApiError(
                f"Invalid total {total!r} in search response from {response.url}",
                status_code=response.status_code,
            ) from exc

        target = self._target()
        accumulated = len(self.list)
        if not page or accumulated >= target:
            del self.list[max(target, 0):]
            return DONE

        page_size = int(body.get("maxResults") or len(page))
        remaining = target - accumulated
        return Repeat({
            "startAt": str(accumulated),
            "maxResults": str(min(remaining, page_size)),
        })

    def get(self) -> List[Any]:
        return self.list


class RawHandler(DataHandler[Union[str, bytes]]):
    """Raw payload, decoded to text only when it does not look binary."""

    filename = CACHE_FILENAMES['raw']

    def __init__(self) -> None:
        self.content: Union[str, bytes, None] = None

    def reset(self) -> None:
        self.content = None

    def add(self, response: requests.Response) -> ContinuationDirective:
        self.content = decode_payload(response.content)
        return DONE

    def get(self) -> Union[str, bytes]:
        return self.content

    def serialize(self, data: Union[str, bytes]) -> bytes:
        return data.encode("utf-8") if isinstance(data, str) else data

    def deserialize(self, blob: Union[str, bytes]) -> Union[str, bytes]:
        if isinstance(blob, bytes):
            return decode_payload(blob)
        return blob


class TextHandler(RawHandler):
    """Text payload; undecodable bytes are replaced."""

    filename = CACHE_FILENAMES['text']

    def add(self, response: requests.Response) -> ContinuationDirective:
        self.content = response.content.decode("utf-8", errors="replace")
        return DONE

    def deserialize(self, blob: Union[str, bytes]) -> str:
        if isinstance(blob, bytes):
            return blob.decode("utf-8", errors="replace")
        return blob


class StatusCodeHandler(DataHandler[int]):
    """Keeps only the HTTP status code, for calls with empty responses."""

    filename = CACHE_FILENAMES['raw']

    def __init__(self) -> None:
        self.status_code: Optional[int] = None

    def reset(self) -> None:
        self.status_code = None

    def add(self, response: requests.Response) -> ContinuationDirective:
        self.status_code = response.status_code
        return DONE

    def get(self) -> int:
        return self.status_code

    def serialize(self, data: int) -> bytes:
        return str(data).encode("ascii")

    def deserialize(self, blob: Union[str, bytes]) -> int:
        text = blob.decode("ascii", errors="replace") if isinstance(blob, bytes) else blob
        try:
            return int(text.strip())
        except ValueError as exc:
            raise CacheCorruptionError(f"Cached status code is not a number: {text!r}", blob) from exc
