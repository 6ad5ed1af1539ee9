"""Fake Snappy API served through httpx.MockTransport for unit testing."""

import inspect
import json
from collections.abc import Awaitable, Callable
from typing import Any

import httpx


RouteHandler = Callable[[httpx.Request], httpx.Response | Awaitable[httpx.Response]]

API_PREFIX = "/api"


class FakeApi:
    """Scriptable stand-in for the Snappy API, served through httpx.MockTransport.

    Routes are keyed by (method, path) with the /api prefix stripped. The CSRF
    endpoint answers with a fresh token on every call unless overridden.
    Setting `offline` makes every request fail with a connection error.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], RouteHandler] = {}
        self.offline = False
        self._csrf_issued = 0

    def route(self, method: str, path: str, handler: RouteHandler) -> None:
        self.routes[(method.upper(), path)] = handler

    def respond(self, method: str, path: str, status_code: int = 200, body: Any = None, **kwargs: Any) -> None:
        """Register a static response."""
        self.route(method, path, lambda _request: httpx.Response(status_code, json=body, **kwargs))

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and _strip_prefix(r) == path]

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.offline:
            msg = "Connection refused"
            raise httpx.ConnectError(msg, request=request)

        key = (request.method, _strip_prefix(request))
        handler = self.routes.get(key)
        if handler is None and key == ("GET", "/auth/csrf-token"):
            self._csrf_issued += 1
            return httpx.Response(200, json={"csrfToken": f"csrf-{self._csrf_issued}"})
        if handler is None:
            return httpx.Response(404, json={"message": "Not found"})

        response = handler(request)
        if inspect.isawaitable(response):
            response = await response
        return response


def _strip_prefix(request: httpx.Request) -> str:
    return request.url.path.removeprefix(API_PREFIX)


def request_json(request: httpx.Request) -> Any:
    """Decode the JSON body of a captured request."""
    return json.loads(request.content) if request.content else None
