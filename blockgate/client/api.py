"""Async client for the account status API, with the blocked-account interceptor.

Key design properties:
  - One shared httpx.AsyncClient per session - never instantiated per call.
  - Request hook: attaches ``Authorization: Bearer <token>`` from the Mirror
    Store and a fresh ``X-Request-ID`` ULID (also bound into the log context).
  - Response hook: runs on EVERY response. If the response is a blocked
    signal (see blockgate.models.blocked.is_blocked_signal) the registered
    blocked handler is invoked with the response body. The handler fires once;
    further blocked responses are ignored until reset_blocked_flag() is called
    (BlockedStateController.clear() does this through its on-cleared hook).

Failure mapping:
  - httpx.TransportError / timeout        → APIError (status_code=None)
  - body that is not JSON where JSON is required → APIError
  - blocked 403                          → AccountBlockedError (after the hook ran)
  - other non-2xx on logout / profile     → APIError(status_code=...)
  - check_user_status() never raises for HTTP status codes: a non-2xx answer
    is an inconclusive PollResult (success=False).
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional

import httpx

from blockgate.client.storage import MirrorStore
from blockgate.constants import (
    API_REQUEST_TIMEOUT_S,
    API_SLOW_CALL_MS,
    LOGOUT_PATH,
    PROFILE_PATH,
    REQUEST_ID_HEADER,
    STATUS_PATH,
)
from blockgate.models.blocked import is_blocked_signal
from blockgate.models.state import PollResult
from blockgate.utils.logger import PerformanceLogger, get_logger, set_request_id
from blockgate.utils.ulid import generate_ulid

logger = get_logger(__name__)

BlockedHandler = Callable[[Mapping[str, Any]], None]

POOL_MAX_CONNECTIONS: int = 10
POOL_KEEPALIVE_EXPIRY: float = 30.0


# ─── Exceptions ───────────────────────────────────────────────────────────────


class APIError(Exception):
    """A status API call failed or returned an unusable answer."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AccountBlockedError(APIError):
    """The server refused the call because the account is blocked."""

    def __init__(self, payload: Mapping[str, Any]) -> None:
        super().__init__(str(payload.get("message") or "Account blocked"), status_code=403)
        self.payload = dict(payload)


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


# ─── StatusAPIClient ──────────────────────────────────────────────────────────


class StatusAPIClient:
    """Account status API client.

    Usage::

        api = StatusAPIClient("http://localhost:5000", mirror)
        api.set_blocked_handler(controller.handle_blocked)
        result = await api.check_user_status()
        await api.aclose()

    ``transport`` is forwarded to httpx (tests pass httpx.MockTransport or
    httpx.ASGITransport).
    """

    def __init__(
        self,
        base_url: str,
        mirror: MirrorStore,
        *,
        timeout_s: float = API_REQUEST_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._mirror = mirror
        self._blocked_handler: Optional[BlockedHandler] = None
        self._blocked_flag = False
        self._client = httpx.AsyncClient(
            base_url=base_url,
            transport=transport,
            limits=httpx.Limits(
                max_connections=POOL_MAX_CONNECTIONS,
                keepalive_expiry=POOL_KEEPALIVE_EXPIRY,
            ),
            timeout=httpx.Timeout(timeout_s),
            follow_redirects=False,
            event_hooks={
                "request": [self._attach_credentials],
                "response": [self._intercept_blocked],
            },
        )

    # ── Interceptor ───────────────────────────────────────────────────────────

    def set_blocked_handler(self, handler: Optional[BlockedHandler]) -> None:
        """Register (or with None, unregister) the global blocked handler."""
        self._blocked_handler = handler

    def reset_blocked_flag(self) -> None:
        """Re-arm the interceptor so the next blocked response fires the handler."""
        self._blocked_flag = False

    @property
    def blocked_flag(self) -> bool:
        return self._blocked_flag

    async def _attach_credentials(self, request: httpx.Request) -> None:
        request_id = generate_ulid()
        set_request_id(request_id)
        request.headers[REQUEST_ID_HEADER] = request_id

        token = self._mirror.read_token()
        if token and "Authorization" not in request.headers:
            request.headers["Authorization"] = f"Bearer {token}"

    async def _intercept_blocked(self, response: httpx.Response) -> None:
        if response.status_code != 403:
            return
        await response.aread()
        body = _json_or_none(response)
        if not is_blocked_signal(response.status_code, response.headers, body):
            return

        if self._blocked_flag:
            logger.debug("Blocked response ignored - handler already notified", path=response.request.url.path)
            return
        self._blocked_flag = True

        logger.warning("Blocked account signal received", path=response.request.url.path)
        if self._blocked_handler is not None:
            self._blocked_handler(body if isinstance(body, Mapping) else {})

    # ── Calls ─────────────────────────────────────────────────────────────────

    async def _send(self, method: str, path: str) -> httpx.Response:
        try:
            with PerformanceLogger(f"{method} {path}", logger, slow_ms=API_SLOW_CALL_MS):
                return await self._client.request(method, path)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise APIError(f"{method} {path} failed: {type(exc).__name__}: {exc}") from exc

    def _raise_for_status(self, response: httpx.Response, body: Any) -> None:
        if is_blocked_signal(response.status_code, response.headers, body):
            raise AccountBlockedError(body if isinstance(body, Mapping) else {})
        if response.is_error:
            message = body.get("message") if isinstance(body, Mapping) else None
            raise APIError(
                message or f"HTTP {response.status_code} from {response.request.url.path}",
                status_code=response.status_code,
            )

    async def check_user_status(self) -> PollResult:
        """GET the account status. Returns an inconclusive result on non-2xx.

        A blocked 403 on this route still yields a conclusive blocked result.

        Raises:
            APIError: Transport failure or a 2xx body that is not JSON.
        """
        response = await self._send("GET", STATUS_PATH)
        body = _json_or_none(response)

        if is_blocked_signal(response.status_code, response.headers, body):
            details = body if isinstance(body, Mapping) else {}
            return PollResult(
                success=True,
                is_blocked=True,
                block_reason=details.get("blockReason"),
                blocked_at=details.get("blockedAt"),
            )
        if response.is_error:
            logger.info("Status check inconclusive", status_code=response.status_code)
            return PollResult.failure()
        if body is None:
            raise APIError("Status response is not JSON", status_code=response.status_code)
        return PollResult.from_body(body)

    async def logout(self) -> None:
        """POST logout (clears the server-side session and cookie).

        Raises:
            APIError: On transport failure or a non-2xx answer.
        """
        response = await self._send("POST", LOGOUT_PATH)
        self._raise_for_status(response, _json_or_none(response))

    async def get_profile(self) -> dict[str, Any]:
        """GET the signed-in user's profile (``data`` field of the response).

        Raises:
            AccountBlockedError: The account is blocked (interceptor already ran).
            APIError: Transport failure, non-2xx, or an unusable body.
        """
        response = await self._send("GET", PROFILE_PATH)
        body = _json_or_none(response)
        self._raise_for_status(response, body)
        if not isinstance(body, Mapping) or not isinstance(body.get("data"), Mapping):
            raise APIError("Profile response has no data object", status_code=response.status_code)
        return dict(body["data"])

    async def aclose(self) -> None:
        await self._client.aclose()
