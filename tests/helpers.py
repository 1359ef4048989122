"""Offline requests session and canned responses shared by the tests."""

from __future__ import annotations

import json
from collections import deque
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import parse_qs, urlsplit

import requests

from bbq.resources import basic_credentials

BASE_URL = "https://api.example.test/2.0"
CREDENTIALS = basic_credentials("user@example.com", "s3cret")


def make_response(
    status_code: int = 200,
    json_body: Any = None,
    content: Optional[bytes] = None,
    url: str = "",
) -> requests.Response:
    """Build a ``requests.Response`` without touching the network."""
    response = requests.Response()
    response.status_code = status_code
    if json_body is not None:
        content = json.dumps(json_body).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
    response._content = content if content is not None else b""
    response.encoding = "utf-8"
    response.url = url
    return response


def query_of(request: requests.PreparedRequest) -> Dict[str, str]:
    """Single-valued query parameters of a prepared request."""
    return {key: values[-1] for key, values in parse_qs(urlsplit(request.url).query).items()}


def path_of(request: requests.PreparedRequest) -> str:
    return urlsplit(request.url).path


class FakeSession(requests.Session):
    """Session whose ``send`` asks a responder instead of the network."""

    def __init__(self, responder: Callable[[requests.PreparedRequest], requests.Response]):
        super().__init__()
        self.trust_env = False
        self.responder = responder
        self.sent: List[requests.PreparedRequest] = []
        self.timeouts: List[Any] = []

    def send(self, request, **kwargs):  # type: ignore[override]
        self.sent.append(request)
        self.timeouts.append(kwargs.get("timeout"))
        response = self.responder(request)
        response.request = request
        if not response.url:
            response.url = request.url
        return response


def queued(responses: Iterable[requests.Response]) -> Callable[[requests.PreparedRequest], requests.Response]:
    """Responder returning ``responses`` in order."""
    pending = deque(responses)

    def respond(request: requests.PreparedRequest) -> requests.Response:
        if not pending:
            raise AssertionError(f"Unexpected request to {request.url}")
        return pending.popleft()

    return respond


def failing(exc: Exception) -> Callable[[requests.PreparedRequest], requests.Response]:
    def respond(request: requests.PreparedRequest) -> requests.Response:
        raise exc

    return respond


def routed(routes: Dict[str, Any]) -> Callable[[requests.PreparedRequest], requests.Response]:
    """Responder keyed by URL path; bytes are sent raw, anything else as JSON."""

    def respond(request: requests.PreparedRequest) -> requests.Response:
        path = path_of(request)
        if path not in routes:
            return make_response(status_code=404, content=b'{"error": "not found"}')
        payload = routes[path]
        if isinstance(payload, bytes):
            return make_response(content=payload)
        return make_response(json_body=payload)

    return respond
