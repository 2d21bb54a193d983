"""Login request variants and the flows that resolve them.

Each inbound login is one variant of :data:`LoginRequest`:

- :class:`CodeLogin` -- in-app free login of an internal corp app.
- :class:`TmpCodeLogin` -- one-time scan code, resolved to a full corp profile.
- :class:`MiniAppLogin` -- mini-program auth code, deferred to the repository.
- :class:`ScanCodeLogin` -- one-time scan code, resolved to a union identity only.

:class:`LoginFlowResolver` runs the DingTalk call sequence for a variant.
Steps are strictly sequential because each consumes the previous step's
output. The first failure aborts the flow with one classified error; no
partial principal is ever returned.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from dingtalk_auth.exceptions import (
    IdentityResolutionFailedError,
    InvalidCodeError,
    MappingError,
    ProfileFetchFailedError,
    ProviderError,
    RequestValidationError,
)
from dingtalk_auth.mapper import UNION_ID_FIELD, USER_ID_FIELD, map_principal
from dingtalk_auth.principal import NormalizedPrincipal

if TYPE_CHECKING:
    from collections.abc import Mapping

    from dingtalk_auth.client import DingTalkClient, UnionIdentity
    from dingtalk_auth.token_cache import TokenCache

logger = logging.getLogger(__name__)

# Inbound body field names
KEY_PARAMETER = "key"
CODE_PARAMETER = "code"
TMP_CODE_PARAMETER = "loginTmpCode"
AUTH_CODE_PARAMETER = "authCode"


@dataclass(frozen=True, slots=True)
class CodeLogin:
    """Internal corp app free login with an in-app login code."""

    app_key: str
    code: str = field(repr=False)
    host: str | None = None

    flow_name = "code"
    code_field = CODE_PARAMETER


@dataclass(frozen=True, slots=True)
class TmpCodeLogin:
    """Scan login of third-party or mobile apps, resolved to a corp profile."""

    app_key: str
    tmp_auth_code: str = field(repr=False)
    host: str | None = None

    flow_name = "tmp_code"
    code_field = TMP_CODE_PARAMETER


@dataclass(frozen=True, slots=True)
class MiniAppLogin:
    """Mini-program login. The flow attaches an access token and defers to the repository."""

    app_key: str
    auth_code: str = field(repr=False)
    access_token: str | None = field(default=None, repr=False)
    host: str | None = None

    flow_name = "mini_app"
    code_field = AUTH_CODE_PARAMETER


@dataclass(frozen=True, slots=True)
class ScanCodeLogin:
    """Scan login resolved only to the union identity; the repository maps it to a user."""

    app_key: str
    tmp_auth_code: str = field(repr=False)
    union_id: str | None = None
    open_id: str | None = None
    nick: str | None = None
    host: str | None = None

    flow_name = "scan_code"
    code_field = TMP_CODE_PARAMETER


LoginRequest = CodeLogin | TmpCodeLogin | MiniAppLogin | ScanCodeLogin

# What a flow hands to the principal repository.
LoginSubject = NormalizedPrincipal | MiniAppLogin | ScanCodeLogin


def login_code(request: LoginRequest) -> str:
    """Return the flow-specific code carried by a request."""
    match request:
        case CodeLogin(code=code):
            return code
        case TmpCodeLogin(tmp_auth_code=code) | ScanCodeLogin(tmp_auth_code=code):
            return code
        case MiniAppLogin(auth_code=code):
            return code
    raise TypeError(f"Unsupported login request: {type(request).__name__}")


def _has_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def validate_login_request(request: LoginRequest) -> None:
    """Check that the app key and the flow's code are present and non-blank.

    Raises:
        RequestValidationError: If either field is missing or blank.
    """
    if not _has_text(request.app_key):
        raise RequestValidationError(KEY_PARAMETER, "application key is required")
    if not _has_text(login_code(request)):
        raise RequestValidationError(request.code_field, "login code is required")


def parse_login_request(payload: Mapping[str, Any], host: str | None = None) -> LoginRequest:
    """Build a login request variant from a parsed request body.

    When several codes are present, ``code`` takes precedence over
    ``loginTmpCode``, which takes precedence over ``authCode``.

    Args:
        payload: Parsed body with ``key`` and one of ``code``,
            ``loginTmpCode`` or ``authCode``.
        host: Client host, passed through unmodified.

    Returns:
        CodeLogin, TmpCodeLogin or MiniAppLogin.

    Raises:
        RequestValidationError: If the key or every code is missing or blank.
    """
    key = payload.get(KEY_PARAMETER)
    if not _has_text(key):
        raise RequestValidationError(KEY_PARAMETER, "application key is required")

    code = payload.get(CODE_PARAMETER)
    if _has_text(code):
        return CodeLogin(app_key=key, code=code, host=host)

    tmp_code = payload.get(TMP_CODE_PARAMETER)
    if _has_text(tmp_code):
        return TmpCodeLogin(app_key=key, tmp_auth_code=tmp_code, host=host)

    auth_code = payload.get(AUTH_CODE_PARAMETER)
    if _has_text(auth_code):
        return MiniAppLogin(app_key=key, auth_code=auth_code, host=host)

    raise RequestValidationError(CODE_PARAMETER, "no code, loginTmpCode or authCode found in request")


class LoginFlowResolver:
    """Runs the DingTalk call sequence for each login variant.

    Args:
        client: DingTalk remote operations.
        token_cache: Access token cache shared across requests.
    """

    def __init__(self, client: DingTalkClient, token_cache: TokenCache) -> None:
        self._client = client
        self._token_cache = token_cache

    async def resolve(self, request: LoginRequest, app_secret: str) -> LoginSubject:
        """Resolve a validated login request.

        Args:
            request: Login request variant.
            app_secret: Secret registered for ``request.app_key``.

        Returns:
            NormalizedPrincipal for code and tmp-code logins; the enriched
            request for mini-app and scan-code logins.

        Raises:
            ProviderUnavailableError: If no access token can be obtained.
            InvalidCodeError: If DingTalk rejects the login code.
            IdentityResolutionFailedError: If the unionid has no corp userid.
            ProfileFetchFailedError: If the profile cannot be fetched.
            MappingError: If a mandatory field is missing from a response.
        """
        logger.debug(
            "login_flow_started",
            extra={"flow": request.flow_name, "app_key": request.app_key},
        )
        match request:
            case CodeLogin():
                return await self._resolve_code(request, app_secret)
            case TmpCodeLogin():
                return await self._resolve_tmp_code(request, app_secret)
            case MiniAppLogin():
                return await self._resolve_mini_app(request, app_secret)
            case ScanCodeLogin():
                return await self._resolve_scan_code(request, app_secret)
        raise TypeError(f"Unsupported login request: {type(request).__name__}")

    async def _resolve_code(self, request: CodeLogin, app_secret: str) -> NormalizedPrincipal:
        access_token = await self._token_cache.get_token(request.app_key, app_secret)

        try:
            identity = await self._client.exchange_code_for_identity(request.code, access_token)
        except ProviderError as exc:
            raise InvalidCodeError.wrap(exc) from exc
        if not identity.user_id:
            raise MappingError(USER_ID_FIELD)

        profile = await self._fetch_profile(identity.user_id, access_token)
        # Identity fields go last so the profile cannot override them.
        return map_principal(profile, {USER_ID_FIELD: identity.user_id})

    async def _resolve_tmp_code(self, request: TmpCodeLogin, app_secret: str) -> NormalizedPrincipal:
        access_token = await self._token_cache.get_token(request.app_key, app_secret)

        # The tmp-code exchange is signed with the raw key/secret, not the token.
        union_id, union = await self._exchange_tmp_code(
            request.tmp_auth_code, request.app_key, app_secret
        )

        try:
            user_id = await self._client.resolve_user_id_by_union_id(union_id, access_token)
        except ProviderError as exc:
            raise IdentityResolutionFailedError.wrap(exc) from exc
        if not user_id:
            raise MappingError(USER_ID_FIELD)

        profile = await self._fetch_profile(user_id, access_token)
        return map_principal(
            profile,
            {
                "openid": union.open_id,
                "nick": union.nick,
                USER_ID_FIELD: user_id,
                UNION_ID_FIELD: union_id,
            },
        )

    async def _resolve_mini_app(self, request: MiniAppLogin, app_secret: str) -> MiniAppLogin:
        access_token = await self._token_cache.get_token(request.app_key, app_secret)
        return dataclasses.replace(request, access_token=access_token)

    async def _resolve_scan_code(self, request: ScanCodeLogin, app_secret: str) -> ScanCodeLogin:
        union_id, union = await self._exchange_tmp_code(
            request.tmp_auth_code, request.app_key, app_secret
        )
        return dataclasses.replace(
            request, union_id=union_id, open_id=union.open_id, nick=union.nick
        )

    async def _exchange_tmp_code(
        self, tmp_code: str, app_key: str, app_secret: str
    ) -> tuple[str, UnionIdentity]:
        try:
            union = await self._client.exchange_tmp_code_for_union_identity(
                tmp_code, app_key, app_secret
            )
        except ProviderError as exc:
            raise InvalidCodeError.wrap(exc) from exc
        if not union.union_id:
            raise MappingError(UNION_ID_FIELD)
        return union.union_id, union

    async def _fetch_profile(self, user_id: str, access_token: str) -> dict[str, Any]:
        try:
            return await self._client.fetch_full_profile(user_id, access_token)
        except ProviderError as exc:
            raise ProfileFetchFailedError.wrap(exc) from exc

