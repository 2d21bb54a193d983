"""Authentication coordinator for DingTalk logins.

Orchestrates one authentication attempt:
1. Validate the login request (no remote call on failure)
2. Resolve the application secret from the credential registry
3. Run the variant's login flow (token cache + DingTalk calls + mapping)
4. Hand the resulting subject to the principal repository
5. Notify listeners exactly once, then return the result or re-raise

Every failure surfaces as the single classified error that ended the
attempt; nothing is logged and swallowed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

import structlog

from dingtalk_auth.client import HttpDingTalkClient
from dingtalk_auth.exceptions import DingTalkAuthError, RepositoryError
from dingtalk_auth.flows import LoginFlowResolver, validate_login_request
from dingtalk_auth.registry import CredentialRegistry
from dingtalk_auth.token_cache import TokenCache

if TYPE_CHECKING:
    from collections.abc import Iterable

    from dingtalk_auth.client import DingTalkClient
    from dingtalk_auth.flows import LoginRequest, LoginSubject
    from dingtalk_auth.settings import DingTalkSettings

logger = logging.getLogger(__name__)

DEFAULT_REALM = "dingtalk"


@dataclass(frozen=True, slots=True)
class AuthenticationInfo:
    """Result of a successful authentication, produced by the repository.

    Attributes:
        subject: Local account identifier.
        realm: Name of the realm that authenticated the subject.
        principal: The login subject the repository was given.
        attributes: Extra data for session or token issuance.
    """

    subject: str
    realm: str
    principal: Any = None
    attributes: dict[str, Any] = field(default_factory=dict, hash=False)


class PrincipalRepository(Protocol):
    """Turns a resolved login subject into a local account.

    Implementations raise :class:`RepositoryError` to reject a subject.
    """

    async def get_authentication_info(self, subject: LoginSubject) -> AuthenticationInfo: ...


class AuthenticationListener(Protocol):
    """Observer of authentication outcomes."""

    def on_success(self, realm: str, info: AuthenticationInfo) -> None: ...

    def on_failure(self, realm: str, request: LoginRequest, error: Exception) -> None: ...


class AuthenticationCoordinator:
    """Runs DingTalk authentication attempts end to end.

    Args:
        registry: Frozen application credential registry.
        token_cache: Shared access token cache.
        client: DingTalk remote operations.
        repository: Principal repository collaborator.
        listeners: Listeners notified in order after each attempt.
        realm: Realm name reported to listeners and the repository.
    """

    def __init__(
        self,
        registry: CredentialRegistry,
        token_cache: TokenCache,
        client: DingTalkClient,
        repository: PrincipalRepository,
        listeners: Iterable[AuthenticationListener] = (),
        realm: str = DEFAULT_REALM,
    ) -> None:
        self._registry = registry
        self._token_cache = token_cache
        self._client = client
        self._repository = repository
        self._listeners = tuple(listeners)
        self._realm = realm
        self._resolver = LoginFlowResolver(client, token_cache)

    @property
    def realm(self) -> str:
        return self._realm

    @property
    def client(self) -> DingTalkClient:
        return self._client

    @property
    def registry(self) -> CredentialRegistry:
        return self._registry

    @property
    def token_cache(self) -> TokenCache:
        return self._token_cache

    async def authenticate(self, request: LoginRequest) -> AuthenticationInfo:
        """Authenticate one login request.

        Args:
            request: Parsed login request variant.

        Returns:
            AuthenticationInfo from the principal repository.

        Raises:
            RequestValidationError: If the key or code is missing or blank.
            UnknownApplicationError: If the app key is not registered.
            ProviderError: Or a subclass, if a DingTalk call fails.
            MappingError: If a mandatory provider field is missing.
            RepositoryError: If the repository rejects the subject.
        """
        with structlog.contextvars.bound_contextvars(
            login_flow=getattr(request, "flow_name", None),
            app_key=getattr(request, "app_key", None),
        ):
            try:
                info = await self._authenticate(request)
            except Exception as exc:
                logger.info(
                    "dingtalk_login_failed",
                    extra={
                        "app_key": getattr(request, "app_key", None),
                        "error_code": getattr(exc, "error_code", type(exc).__name__),
                    },
                )
                self._notify_failure(request, exc)
                raise

            logger.info(
                "dingtalk_login_succeeded",
                extra={"app_key": request.app_key, "subject": info.subject},
            )
            self._notify_success(info)
            return info

    async def _authenticate(self, request: LoginRequest) -> AuthenticationInfo:
        validate_login_request(request)
        app_secret = self._registry.resolve_secret(request.app_key)
        subject = await self._resolver.resolve(request, app_secret)
        return await self._load_authentication_info(subject)

    async def _load_authentication_info(self, subject: LoginSubject) -> AuthenticationInfo:
        try:
            info = await self._repository.get_authentication_info(subject)
        except DingTalkAuthError:
            raise
        except Exception as exc:
            raise RepositoryError(
                f"Principal repository failed: {exc}",
                {"cause": type(exc).__name__},
            ) from exc

        if info is None:
            raise RepositoryError("Principal repository returned no authentication info")
        return info

    def _notify_success(self, info: AuthenticationInfo) -> None:
        for listener in self._listeners:
            listener.on_success(self._realm, info)

    def _notify_failure(self, request: LoginRequest, error: Exception) -> None:
        for listener in self._listeners:
            listener.on_failure(self._realm, request, error)


def build_coordinator(
    settings: DingTalkSettings,
    repository: PrincipalRepository,
    listeners: Iterable[AuthenticationListener] = (),
    client: DingTalkClient | None = None,
) -> AuthenticationCoordinator:
    """Wire a coordinator from settings.

    Args:
        settings: Loaded DingTalk settings.
        repository: Principal repository collaborator.
        listeners: Authentication listeners.
        client: Optional DingTalk client; an HttpDingTalkClient is created
            from settings when omitted.

    Returns:
        Ready-to-use AuthenticationCoordinator.

    Raises:
        ValueError: If the settings are enabled but incomplete.
    """
    settings.validate_enabled_config()

    if client is None:
        client = HttpDingTalkClient(base_url=settings.base_url, timeout=settings.request_timeout)

    token_cache = TokenCache(
        client.fetch_access_token,
        ttl=settings.token_cache_ttl,
        maxsize=settings.token_cache_maxsize,
        timeout=settings.request_timeout,
    )
    return AuthenticationCoordinator(
        registry=CredentialRegistry.from_settings(settings),
        token_cache=token_cache,
        client=client,
        repository=repository,
        listeners=listeners,
    )
