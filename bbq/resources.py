"""Resource identifiers, server descriptors and cache eligibility."""

from __future__ import annotations

import base64
import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple

import requests

ResourceId = Tuple[str, ...]
CachePattern = Tuple[str, ...]

SINGLE_WILDCARD = "*"
TRAILING_WILDCARD = "**"


@dataclass(frozen=True)
class Resource:
    """One logical request: server, path segments, query parameters and body."""

    server: str
    id: ResourceId
    parameters: Mapping[str, str] = field(default_factory=dict)
    body: Any = None

    def __post_init__(self) -> None:
        segments = tuple(str(segment) for segment in self.id)
        if not segments:
            raise ValueError("Resource id must contain at least one segment")
        object.__setattr__(self, "id", segments)
        object.__setattr__(
            self,
            "parameters",
            {str(key): str(value) for key, value in (self.parameters or {}).items()},
        )

    @property
    def path(self) -> str:
        """Slash-joined resource id."""
        return "/".join(self.id)

    def with_parameters(self, extra: Mapping[str, Any]) -> "Resource":
        """Return a copy whose parameters are merged with ``extra``.

        Keys in ``extra`` replace keys of the same name.
        """
        merged: Dict[str, str] = dict(self.parameters)
        merged.update({str(key): str(value) for key, value in extra.items()})
        return Resource(server=self.server, id=self.id, parameters=merged, body=self.body)

    def parameter_hash(self) -> Optional[str]:
        """Stable hash of the parameter set, or None when there are none."""
        if not self.parameters:
            return None
        payload = json.dumps(sorted(self.parameters.items()), ensure_ascii=False)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def key(self) -> str:
        """Memoization key for this resource and its parameters."""
        digest = self.parameter_hash()
        base = f"{self.server}:{self.path}"
        return f"{base}?{digest}" if digest else base


def _identity(request: requests.Request) -> requests.Request:
    return request


@dataclass
class ServerDescriptor:
    """Per-backend configuration registered with a resource manager."""

    base_url: str
    cache_patterns: Sequence[CachePattern] = field(default_factory=list)
    attach_credentials: Callable[[requests.Request], requests.Request] = _identity
    trailing_slash: bool = False

    def url_for(self, resource_id: Sequence[str]) -> str:
        """Build the absolute URL for ``resource_id``."""
        url = f"{self.base_url.rstrip('/')}/{'/'.join(resource_id)}"
        return f"{url}/" if self.trailing_slash else url

    def resource_id_from_url(self, url: str) -> Optional[ResourceId]:
        """Map an absolute URL below ``base_url`` back to a resource id.

        Returns:
            The resource id, or None if the URL belongs to another host
        """
        base = self.base_url.rstrip("/") + "/"
        if not url.startswith(base):
            return None
        path = url[len(base):].split("?", 1)[0].strip("/")
        if not path:
            return None
        return tuple(path.split("/"))


def matches_pattern(resource_id: Sequence[str], pattern: Sequence[str]) -> bool:
    """Check ``resource_id`` against a single cache pattern.

    ``*`` matches exactly one segment; ``**`` matches whatever remains once
    it is reached. A pattern longer than the id never matches, so
    ``("src", "**")`` does not match ``("src",)``.
    """
    for index, segment in enumerate(resource_id):
        if index >= len(pattern):
            return False
        expected = pattern[index]
        if expected == TRAILING_WILDCARD:
            return True
        if expected == SINGLE_WILDCARD:
            continue
        if expected != segment:
            return False
    return len(pattern) == len(resource_id)


def is_cachable(resource_id: Sequence[str], server: ServerDescriptor) -> bool:
    """True iff ``resource_id`` matches any cache pattern of ``server``."""
    return any(matches_pattern(resource_id, pattern) for pattern in server.cache_patterns)


def basic_credentials(username: str, secret: str) -> str:
    """Encode ``username:secret`` for a Basic authorization header."""
    return base64.b64encode(f"{username}:{secret}".encode("utf-8")).decode("ascii")


def basic_auth(credential: str) -> Callable[[requests.Request], requests.Request]:
    """Build an ``attach_credentials`` callable for a pre-encoded credential.

    Args:
        credential: Base64 encoded ``username:secret``

    Returns:
        Function that sets the authorization headers on a request
    """

    def attach(request: requests.Request) -> requests.Request:
        request.headers["Content-Type"] = "application/json"
        request.headers["Accept"] = "application/json"
        request.headers["Authorization"] = f"Basic {credential}"
        return request

    return attach
