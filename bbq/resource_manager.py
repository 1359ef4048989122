"""Resource manager: the single path between domain clients and the network.

Resolution order for a read is memoization table, then on-disk cache (only for
resources matching one of the server's cache patterns), then the network. The
network fetch loop is driven by the data handler's continuation directives.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, TypeVar

import requests

from .cache import Cache
from .constants import API_DEFAULTS, ERROR_BODY_PREVIEW, HTTP_STATUS
from .exceptions import ApiError, CacheCorruptionError, ServerNotRegisteredError
from .handlers import DataHandler, Done, NextRequest, Repeat
from .resources import Resource, ServerDescriptor, is_cachable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ManagerOptions:
    """Behaviour switches for a resource manager."""

    verbose: bool = False
    force_synchronize: bool = False
    timeout: int = API_DEFAULTS['timeout']


class ResourceManager:
    """Resolve resources through memoization, the disk cache and the network.

    This class handles:
    - Server registration
    - Cache eligibility and cache reads/writes
    - The request/continuation loop
    - Per-process memoization of resolved resources
    """

    def __init__(
        self,
        options: Optional[ManagerOptions] = None,
        cache: Optional[Cache] = None,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the manager.

        Args:
            options: Manager options (defaults to ``ManagerOptions()``)
            cache: Disk cache (defaults to the user cache directory)
            session: Optional requests session for connection pooling
        """
        self.options = options or ManagerOptions()
        self.cache = cache if cache is not None else Cache()
        self.session = session
        self.servers: Dict[str, ServerDescriptor] = {}
        self.request_count = 0
        self._memo: Dict[str, Any] = {}

    def _get_session(self) -> requests.Session:
        if self.session is None:
            self.session = requests.Session()
        return self.session

    def register_server(self, name: str, descriptor: ServerDescriptor) -> None:
        """Register ``descriptor`` under ``name``."""
        self.servers[name] = descriptor

    def _server_for(self, resource: Resource) -> ServerDescriptor:
        server = self.servers.get(resource.server)
        if server is None:
            raise ServerNotRegisteredError(resource.server)
        return server

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve(self, resource: Resource, handler: DataHandler[T]) -> Optional[T]:
        """Resolve a read-only resource.

        Args:
            resource: Resource to resolve
            handler: Handler matching the response shape

        Returns:
            The resolved value, or None if it could not be obtained
        """
        key = resource.key()
        if key in self._memo:
            logger.debug(f"rm: memoized {resource.path}")
            return self._memo[key]

        try:
            server = self._server_for(resource)
        except ServerNotRegisteredError as exc:
            logger.error(str(exc))
            return None

        cachable = is_cachable(resource.id, server)
        result: Optional[T] = None
        if cachable and not self.options.force_synchronize:
            logger.debug(f"rm: cachable {resource.path}")
            result = self._read_cache(resource, handler)

        if result is None:
            try:
                result = self._fetch(resource, server, handler, "GET")
            except ApiError as exc:
                self._report_failure(resource, exc)
                return None
            if result is None:
                logger.error(f"Could not get {resource.path}: empty response")
                return None
            if cachable:
                self._write_cache(resource, handler, result)

        self._memo[key] = result
        return result

    def mutate(
        self,
        resource: Resource,
        handler: DataHandler[T],
        method: str = "POST",
    ) -> Optional[T]:
        """Issue a state-changing call (POST/PUT/DELETE).

        Mutations never read or write the cache and are never memoized.

        Returns:
            The handler's value, or None on failure
        """
        try:
            server = self._server_for(resource)
        except ServerNotRegisteredError as exc:
            logger.error(str(exc))
            return None

        try:
            return self._fetch(resource, server, handler, method.upper())
        except ApiError as exc:
            self._report_failure(resource, exc)
            return None

    def close(self) -> None:
        """Close the requests session and release resources."""
        if self.session is not None:
            self.session.close()
            self.session = None

    def __enter__(self) -> "ResourceManager":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - close session."""
        self.close()

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def _read_cache(self, resource: Resource, handler: DataHandler[T]) -> Optional[T]:
        blob = self.cache.read(resource.id, resource.parameter_hash(), handler.cache_filename())
        if blob is None:
            return None
        try:
            return handler.deserialize(blob)
        except CacheCorruptionError as exc:
            logger.warning(f"cache: ignoring corrupt entry for {resource.path}: {exc}")
            return None

    def _write_cache(self, resource: Resource, handler: DataHandler[T], value: T) -> None:
        try:
            blob = handler.serialize(value)
        except (TypeError, ValueError) as exc:
            logger.warning(f"cache: could not serialize {resource.path}: {exc}")
            return
        written = self.cache.write(
            resource.id, resource.parameter_hash(), blob, handler.cache_filename()
        )
        if not written:
            logger.warning(f"cache: {resource.path} was not updated")

    # ------------------------------------------------------------------
    # Network
    # ------------------------------------------------------------------

    def _build_request(
        self,
        method: str,
        url: str,
        parameters: Optional[Dict[str, str]] = None,
        body: Any = None,
    ) -> requests.Request:
        return requests.Request(
            method=method,
            url=url,
            params=dict(parameters or {}),
            json=body,
        )

    def _send(
        self,
        server: ServerDescriptor,
        request: requests.Request,
        resource: Resource,
    ) -> requests.Response:
        """Apply credentials, send one request and check its status.

        Raises:
            ApiError: On transport failure or a non-2xx status
        """
        request = server.attach_credentials(request)
        session = self._get_session()
        prepared = session.prepare_request(request)
        log = logger.info if self.options.verbose else logger.debug
        log(f"{resource.server}: fetching {prepared.method} {prepared.url}")
        self.request_count += 1

        try:
            response = session.send(prepared, timeout=self.options.timeout)
        except requests.RequestException as exc:
            raise ApiError(f"Network error for {resource.path}: {exc}", resource=resource.path) from exc

        if not 200 <= response.status_code < 300:
            snippet = response.text[:ERROR_BODY_PREVIEW] if response.content else ""
            if response.status_code == HTTP_STATUS['unauthorized']:
                logger.error("Server rejected the configured credentials")
            raise ApiError(
                f"API request failed: {prepared.method} {prepared.url}",
                status_code=response.status_code,
                body=snippet,
                resource=resource.path,
            )
        return response

    def _fetch(
        self,
        resource: Resource,
        server: ServerDescriptor,
        handler: DataHandler[T],
        method: str,
    ) -> Optional[T]:
        """Run the request loop until the handler answers ``Done``.

        Any failure aborts the whole loop; partial results are discarded.

        Raises:
            ApiError: If any request fails
        """
        handler.reset()
        url = server.url_for(resource.id)
        current = resource
        request = self._build_request(method, url, current.parameters, current.body)

        while True:
            response = self._send(server, request, resource)
            directive = handler.add(response)
            if isinstance(directive, Done):
                break
            if isinstance(directive, NextRequest):
                request = self._build_request("GET", directive.url)
            elif isinstance(directive, Repeat):
                current = current.with_parameters(directive.parameters)
                request = self._build_request(method, url, current.parameters, current.body)
            else:
                raise TypeError(f"Unknown continuation directive: {directive!r}")

        return handler.get()

    @staticmethod
    def _report_failure(resource: Resource, exc: ApiError) -> None:
        if exc.status_code is not None:
            logger.error(f"{resource.server}: {exc.status_code} {exc.body or ''}".rstrip())
        else:
            logger.error(f"{resource.server}: {exc}")
        logger.error(f"Could not get {resource.path}")

