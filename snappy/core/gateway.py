"""HTTP gateway with credential injection, single-flight session refresh and CSRF recovery."""

import asyncio
import logging
import math
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from snappy.core.config import Settings, constants
from snappy.core.config import settings as default_settings
from snappy.core.errors import ErrorKind, GatewayError
from snappy.core.secure_storage import SecureStorage


logger = logging.getLogger(__name__)


AuthFailureHandler = Callable[[str], None]


@dataclass
class GatewayState:
    """Mutable credential state owned by one gateway instance."""

    csrf_token: str | None = None
    refresh_task: asyncio.Task[str] | None = None
    refresh_count: int = 0
    queued_count: int = 0
    csrf_lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def is_refreshing(self) -> bool:
        return self.refresh_task is not None and not self.refresh_task.done()


@dataclass
class OutboundRequest:
    """A request as issued by a caller, plus its per-request retry flags."""

    method: str
    path: str
    json: Any = None
    params: dict[str, Any] | None = None
    auth_retried: bool = False
    csrf_retried: bool = False


def _log_auth_failure(login_route: str) -> None:
    logger.warning("Session ended, login required", extra={"login_route": login_route})


def _safe_json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _server_message(response: httpx.Response) -> str:
    body = _safe_json(response)
    if isinstance(body, dict):
        message = body.get("message") or body.get("error")
        if isinstance(message, str):
            return message
    return response.reason_phrase or ""


def _mentions_csrf(response: httpx.Response) -> bool:
    body = _safe_json(response)
    if not isinstance(body, dict):
        return False
    markers = (body.get("message"), body.get("code"))
    return any(isinstance(marker, str) and "csrf" in marker.lower() for marker in markers)


def classify_response(response: httpx.Response) -> ErrorKind:
    """Classify a non-2xx response into its failure class."""
    status = response.status_code
    if status == constants.HTTP_UNAUTHORIZED:
        return ErrorKind.AUTH_EXPIRED
    if status == constants.HTTP_FORBIDDEN and _mentions_csrf(response):
        return ErrorKind.CSRF_INVALID
    if status == constants.HTTP_TOO_MANY_REQUESTS:
        return ErrorKind.RATE_LIMITED
    return ErrorKind.REJECTED


def parse_retry_after(value: str | None) -> int | None:
    """Parse a Retry-After header given as delta-seconds or an HTTP-date."""
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return int(value)
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug("Unparseable Retry-After header", extra={"retry_after": value})
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=UTC)
    return max(0, math.ceil((retry_at - datetime.now(UTC)).total_seconds()))


def rate_limit_message(retry_after: int | None) -> str:
    if retry_after is None:
        return constants.RATE_LIMIT_MESSAGE
    return constants.RATE_LIMIT_RETRY_MESSAGE.format(seconds=retry_after)


def _parse_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    body = _safe_json(response)
    return body if body is not None else response.text


class HttpGateway:
    """Single outbound channel for all API calls.

    Attaches bearer and CSRF credentials, transparently refreshes an expired
    session (one refresh in flight at a time, concurrent callers wait on it)
    and replays a request at most once per recoverable failure class.
    """

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        storage: SecureStorage | None = None,
        state: GatewayState | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        on_auth_failure: AuthFailureHandler | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.storage = storage if storage is not None else SecureStorage()
        self.state = state if state is not None else GatewayState()
        self.on_auth_failure = on_auth_failure or _log_auth_failure
        self._client = httpx.AsyncClient(
            base_url=self.settings.api_url,
            timeout=self.settings.request_timeout_seconds,
            transport=transport,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )

    async def __aenter__(self) -> "HttpGateway":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        task = self.state.refresh_task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        await self._client.aclose()

    async def send(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        """Send a request and return the parsed body of a 2xx response.

        Raises:
            GatewayError: Once local recovery (session refresh, CSRF refresh) is exhausted
        """
        request = OutboundRequest(method=method.upper(), path=path, json=json, params=params)
        return await self._dispatch(request)

    async def get(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        return await self.send("GET", path, params=params)

    async def post(self, path: str, *, json: Any = None) -> Any:
        return await self.send("POST", path, json=json)

    async def put(self, path: str, *, json: Any = None) -> Any:
        return await self.send("PUT", path, json=json)

    async def patch(self, path: str, *, json: Any = None) -> Any:
        return await self.send("PATCH", path, json=json)

    async def delete(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        return await self.send("DELETE", path, params=params)

    async def refresh_csrf_token(self) -> str | None:
        """Force a new CSRF token from the server."""
        return await self._fetch_csrf_token(force=True)

    async def _dispatch(self, request: OutboundRequest) -> Any:
        token = self.storage.get_token()
        headers = await self._build_headers(request, token)

        try:
            response = await self._client.request(
                request.method,
                request.path,
                json=request.json,
                params=request.params,
                headers=headers,
            )
        except httpx.RequestError as e:
            logger.warning(
                "Request failed without response",
                extra={"method": request.method, "path": request.path, "error": str(e)},
            )
            raise GatewayError(
                ErrorKind.NETWORK,
                detail=str(e) or type(e).__name__,
                user_message=constants.NETWORK_ERROR_MESSAGE,
            ) from e

        if response.is_success:
            if self.storage.has_valid_token():
                self.storage.extend_session(self.settings.session_extension_seconds)
            return _parse_body(response)

        kind = classify_response(response)
        match kind:
            case ErrorKind.AUTH_EXPIRED if not request.auth_retried:
                return await self._recover_session(request, sent_token=token)
            case ErrorKind.CSRF_INVALID if not request.csrf_retried:
                request.csrf_retried = True
                logger.info("CSRF token rejected, refreshing", extra={"path": request.path})
                await self._fetch_csrf_token(force=True)
                return await self._dispatch(request)
            case _:
                raise self._terminal_error(kind, request, response)

    async def _build_headers(self, request: OutboundRequest, token: str | None) -> dict[str, str]:
        headers = {constants.HEADER_REQUEST_TIME: str(int(time.time() * 1000))}
        if token:
            headers[constants.HEADER_AUTHORIZATION] = f"Bearer {token}"

        if request.method in constants.STATE_CHANGING_METHODS:
            csrf_token = self.state.csrf_token or await self._fetch_csrf_token()
            if csrf_token:
                headers[constants.HEADER_CSRF] = csrf_token
        return headers

    async def _recover_session(self, request: OutboundRequest, *, sent_token: str | None) -> Any:
        request.auth_retried = True

        # Another refresh finished while this request was in flight
        current_token = self.storage.get_token()
        if current_token and current_token != sent_token:
            return await self._dispatch(request)

        if self.state.is_refreshing and self.state.refresh_task is not None:
            task = self.state.refresh_task
            self.state.queued_count += 1
            logger.debug("Waiting for in-flight session refresh", extra={"path": request.path})
        else:
            task = self._start_refresh()

        # A cancelled caller must not cancel the refresh other callers wait on
        await asyncio.shield(task)
        return await self._dispatch(request)

    def _start_refresh(self) -> asyncio.Task[str]:
        task = asyncio.get_running_loop().create_task(self._refresh_session(), name="snappy-session-refresh")
        self.state.refresh_task = task
        task.add_done_callback(self._finish_refresh)
        return task

    def _finish_refresh(self, task: asyncio.Task[str]) -> None:
        if self.state.refresh_task is task:
            self.state.refresh_task = None
            self.state.queued_count = 0
        # Waiters get the error through shield(); nobody may be left to retrieve it
        if not task.cancelled():
            task.exception()

    async def _refresh_session(self) -> str:
        """Exchange the refresh token for a new access token.

        Runs as its own task so that it settles exactly once regardless of
        which callers are cancelled while waiting on it.
        """
        try:
            new_token, rotated_refresh_token = await self._request_new_token()
        except GatewayError as error:
            self.storage.remove_token()
            logger.warning("Session refresh failed", extra={"error": str(error)})
            self.on_auth_failure(self.settings.login_route)
            raise

        self.storage.set_token(new_token, self.settings.token_ttl_seconds)
        if rotated_refresh_token:
            self.storage.set_refresh_token(rotated_refresh_token)
        logger.info("Session refreshed", extra={"queued_requests": self.state.queued_count})
        return new_token

    async def _request_new_token(self) -> tuple[str, str | None]:
        refresh_token = self.storage.get_refresh_token()
        if not refresh_token:
            raise GatewayError(
                ErrorKind.AUTH_UNRECOVERABLE,
                status_code=constants.HTTP_UNAUTHORIZED,
                detail="No refresh token available",
                user_message=constants.SESSION_EXPIRED_MESSAGE,
            )

        self.state.refresh_count += 1
        try:
            response = await self._client.post(constants.REFRESH_PATH, json={"refreshToken": refresh_token})
            response.raise_for_status()
            data = response.json()
            return data["token"], data.get("refreshToken")
        except httpx.HTTPStatusError as e:
            raise GatewayError(
                ErrorKind.AUTH_UNRECOVERABLE,
                status_code=e.response.status_code,
                detail=_server_message(e.response),
                user_message=constants.SESSION_EXPIRED_MESSAGE,
            ) from e
        except (httpx.RequestError, KeyError, TypeError, ValueError) as e:
            raise GatewayError(
                ErrorKind.AUTH_UNRECOVERABLE,
                detail=f"Refresh failed: {e!s}",
                user_message=constants.SESSION_EXPIRED_MESSAGE,
            ) from e

    async def _fetch_csrf_token(self, *, force: bool = False) -> str | None:
        stale_token = self.state.csrf_token
        async with self.state.csrf_lock:
            # Someone else fetched while we waited for the lock
            if self.state.csrf_token and (not force or self.state.csrf_token != stale_token):
                return self.state.csrf_token

            try:
                response = await self._client.get(constants.CSRF_TOKEN_PATH)
                response.raise_for_status()
                self.state.csrf_token = response.json()["csrfToken"]
            except (httpx.HTTPError, KeyError, TypeError, ValueError) as e:
                logger.error("Failed to fetch CSRF token", extra={"error": str(e)})
                return None
            return self.state.csrf_token

    def _terminal_error(self, kind: ErrorKind, request: OutboundRequest, response: httpx.Response) -> GatewayError:
        detail = _server_message(response)
        logger.info(
            "Request failed",
            extra={
                "method": request.method,
                "path": request.path,
                "status_code": response.status_code,
                "kind": kind.value,
            },
        )

        match kind:
            case ErrorKind.RATE_LIMITED:
                retry_after = parse_retry_after(response.headers.get(constants.HEADER_RETRY_AFTER))
                return GatewayError(
                    kind,
                    status_code=response.status_code,
                    detail=detail,
                    user_message=rate_limit_message(retry_after),
                    retry_after=retry_after,
                )
            case ErrorKind.AUTH_EXPIRED | ErrorKind.AUTH_UNRECOVERABLE:
                return GatewayError(
                    kind,
                    status_code=response.status_code,
                    detail=detail,
                    user_message=constants.SESSION_EXPIRED_MESSAGE,
                )
            case ErrorKind.CSRF_INVALID | ErrorKind.REJECTED | ErrorKind.NETWORK:
                return GatewayError(kind, status_code=response.status_code, detail=detail, user_message=detail or None)
