"""Async HTTP client for the DingTalk open API.

Provides the five remote operations the login flows need: access token
retrieval, login code exchange, temporary (scan) code exchange, unionid to
userid resolution and full profile lookup. Every call carries an explicit
timeout, and every failure -- non-zero ``errcode``, HTTP error status,
undecodable body, timeout or transport error -- surfaces as
:class:`~dingtalk_auth.exceptions.ProviderError` with the provider's code and
message verbatim. httpx exceptions never escape this module.

The :class:`DingTalkClient` protocol is the seam the login flows depend on;
tests substitute an in-memory fake.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from dingtalk_auth.exceptions import TRANSPORT_ERRCODE, ProviderError

if TYPE_CHECKING:
    from types import TracebackType

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://oapi.dingtalk.com"
_DEFAULT_TIMEOUT = 10.0

# Envelope fields present on every DingTalk response
_ENVELOPE_FIELDS = frozenset({"errcode", "errmsg"})


@dataclass(frozen=True, slots=True)
class CodeIdentity:
    """Identity returned by the login code exchange (``/user/getuserinfo``).

    Attributes:
        user_id: Corp userid of the logged-in user.
        sys_level: Administrator level (1 main admin, 2 sub admin, 100 boss, 0 other).
        is_sys: Whether the user is an administrator.
    """

    user_id: str | None
    sys_level: int | None = None
    is_sys: bool | None = None


@dataclass(frozen=True, slots=True)
class UnionIdentity:
    """Identity returned by the temporary code exchange (``/sns/getuserinfo_bycode``).

    Attributes:
        union_id: Identifier stable across the DingTalk ecosystem.
        open_id: Identifier scoped to the application.
        nick: User nickname.
    """

    union_id: str | None
    open_id: str | None = None
    nick: str | None = None


class DingTalkClient(Protocol):
    """Remote operations the login flows depend on."""

    async def fetch_access_token(self, app_key: str, app_secret: str) -> str: ...

    async def exchange_code_for_identity(self, code: str, access_token: str) -> CodeIdentity: ...

    async def exchange_tmp_code_for_union_identity(
        self, tmp_code: str, app_key: str, app_secret: str
    ) -> UnionIdentity: ...

    async def resolve_user_id_by_union_id(self, union_id: str, access_token: str) -> str | None: ...

    async def fetch_full_profile(self, user_id: str, access_token: str) -> dict[str, Any]: ...


def sign_timestamp(timestamp: str, app_secret: str) -> str:
    """Compute the request signature for ``/sns/getuserinfo_bycode``.

    DingTalk expects ``Base64(HmacSHA256(timestamp, key=app_secret))``.

    Args:
        timestamp: Millisecond Unix timestamp as a string.
        app_secret: Application secret used as the HMAC key.

    Returns:
        Base64-encoded signature (httpx URL-encodes it as a query parameter).
    """
    digest = hmac.new(
        app_secret.encode("utf-8"), timestamp.encode("utf-8"), hashlib.sha256
    ).digest()
    return base64.b64encode(digest).decode("ascii")


class HttpDingTalkClient:
    """DingTalk open API client backed by httpx.AsyncClient.

    Supports both shared and owned httpx.AsyncClient modes:
    - If ``client`` is provided, it is reused across calls (caller manages lifecycle).
    - If ``client`` is omitted, an internal client is created lazily on first use.
      Call :meth:`aclose` (or use ``async with``) to release it.

    Args:
        base_url: DingTalk open API base URL.
        timeout: Per-request timeout in seconds.
        client: Optional shared httpx.AsyncClient instance.
    """

    def __init__(
        self,
        base_url: str = _DEFAULT_BASE_URL,
        timeout: float = _DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._external_client = client is not None
        self._client: httpx.AsyncClient | None = client

    @property
    def timeout(self) -> float:
        return self._timeout

    async def fetch_access_token(self, app_key: str, app_secret: str) -> str:
        """Obtain an access token for an application (``GET /gettoken``).

        Raises:
            ProviderError: On failure, or when the response carries no token.
        """
        body = await self._request(
            "gettoken",
            "GET",
            "/gettoken",
            params={"appkey": app_key, "appsecret": app_secret},
        )
        token = body.get("access_token")
        if not token:
            raise ProviderError("gettoken", TRANSPORT_ERRCODE, "response carried no access_token")
        return str(token)

    async def exchange_code_for_identity(self, code: str, access_token: str) -> CodeIdentity:
        """Exchange an in-app login code for the user's corp identity.

        Raises:
            ProviderError: If DingTalk rejects the code.
        """
        body = await self._request(
            "user/getuserinfo",
            "GET",
            "/user/getuserinfo",
            params={"access_token": access_token, "code": code},
        )
        return CodeIdentity(
            user_id=_optional_str(body.get("userid")),
            sys_level=body.get("sys_level"),
            is_sys=body.get("is_sys"),
        )

    async def exchange_tmp_code_for_union_identity(
        self, tmp_code: str, app_key: str, app_secret: str
    ) -> UnionIdentity:
        """Exchange a one-time scan code for the user's union identity.

        Signed with the application's raw key and secret; no access token is
        involved.

        Raises:
            ProviderError: If DingTalk rejects the code or the signature.
        """
        timestamp = str(int(time.time() * 1000))
        body = await self._request(
            "sns/getuserinfo_bycode",
            "POST",
            "/sns/getuserinfo_bycode",
            params={
                "accessKey": app_key,
                "timestamp": timestamp,
                "signature": sign_timestamp(timestamp, app_secret),
            },
            json={"tmp_auth_code": tmp_code},
        )
        user_info = body.get("user_info") or {}
        return UnionIdentity(
            union_id=_optional_str(user_info.get("unionid")),
            open_id=_optional_str(user_info.get("openid")),
            nick=_optional_str(user_info.get("nick")),
        )

    async def resolve_user_id_by_union_id(self, union_id: str, access_token: str) -> str | None:
        """Resolve a unionid to the corp userid (``GET /user/getUseridByUnionid``).

        Raises:
            ProviderError: If the unionid does not belong to the corp.
        """
        body = await self._request(
            "user/getUseridByUnionid",
            "GET",
            "/user/getUseridByUnionid",
            params={"access_token": access_token, "unionid": union_id},
        )
        return _optional_str(body.get("userid"))

    async def fetch_full_profile(self, user_id: str, access_token: str) -> dict[str, Any]:
        """Fetch the full user profile (``GET /user/get``).

        Returns:
            Profile fields as returned by DingTalk, without the errcode/errmsg envelope.

        Raises:
            ProviderError: If the userid is unknown or the token is invalid.
        """
        body = await self._request(
            "user/get",
            "GET",
            "/user/get",
            params={"access_token": access_token, "userid": user_id},
        )
        return {k: v for k, v in body.items() if k not in _ENVELOPE_FIELDS}

    def _get_client(self) -> httpx.AsyncClient:
        """Return the shared or lazily-created httpx.AsyncClient."""
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def aclose(self) -> None:
        """Close the internal httpx.AsyncClient if we own it.

        No-op if the client was provided externally or not yet created.
        """
        if self._client is not None and not self._external_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpDingTalkClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        params: dict[str, str],
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send a request and unwrap the DingTalk response envelope.

        Args:
            operation: Operation name used in errors and logs.
            method: HTTP method.
            path: Path relative to the base URL.
            params: Query parameters.
            json: Optional JSON body.

        Returns:
            Decoded response body with ``errcode == 0``.

        Raises:
            ProviderError: On any failure.
        """
        client = self._get_client()
        try:
            response = await client.request(
                method,
                f"{self._base_url}{path}",
                params=params,
                json=json,
                timeout=self._timeout,
            )
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            logger.warning("dingtalk_request_timeout", extra={"operation": operation})
            raise ProviderError(operation, TRANSPORT_ERRCODE, f"timeout: {exc}") from exc
        except httpx.HTTPStatusError as exc:
            errcode, errmsg = _error_from_status(exc.response)
            logger.warning(
                "dingtalk_request_http_error",
                extra={"operation": operation, "status": exc.response.status_code},
            )
            raise ProviderError(operation, errcode, errmsg) from exc
        except httpx.HTTPError as exc:
            logger.warning("dingtalk_request_transport_error", extra={"operation": operation})
            raise ProviderError(operation, TRANSPORT_ERRCODE, str(exc) or type(exc).__name__) from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderError(operation, TRANSPORT_ERRCODE, "invalid JSON response") from exc
        if not isinstance(body, dict):
            raise ProviderError(operation, TRANSPORT_ERRCODE, "unexpected response shape")

        errcode = _errcode(body)
        if errcode != 0:
            errmsg = str(body.get("errmsg", ""))
            logger.warning(
                "dingtalk_request_rejected",
                extra={"operation": operation, "errcode": errcode, "errmsg": errmsg},
            )
            raise ProviderError(operation, errcode, errmsg)

        logger.debug("dingtalk_request_ok", extra={"operation": operation})
        return body


def _errcode(body: dict[str, Any]) -> int:
    raw = body.get("errcode", 0)
    try:
        return int(raw)
    except (TypeError, ValueError):
        return TRANSPORT_ERRCODE


def _error_from_status(response: httpx.Response) -> tuple[int, str]:
    """Extract errcode/errmsg from an HTTP error response, falling back to the status."""
    content_type = response.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and "errcode" in body:
            return _errcode(body), str(body.get("errmsg", ""))
    return response.status_code, response.reason_phrase or f"HTTP {response.status_code}"


def _optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)
