"""DingTalk Auth -- federated DingTalk login for Python services.

Provides the application credential registry, a single-flight access token
cache, the DingTalk HTTP client, login flow resolvers, principal mapping,
the authentication coordinator and FastAPI login endpoints.
"""

from dingtalk_auth.client import (
    CodeIdentity,
    DingTalkClient,
    HttpDingTalkClient,
    UnionIdentity,
    sign_timestamp,
)
from dingtalk_auth.coordinator import (
    AuthenticationCoordinator,
    AuthenticationInfo,
    AuthenticationListener,
    PrincipalRepository,
    build_coordinator,
)
from dingtalk_auth.error_handlers import register_exception_handlers
from dingtalk_auth.exceptions import (
    DingTalkAuthError,
    IdentityResolutionFailedError,
    InvalidCodeError,
    MappingError,
    ProfileFetchFailedError,
    ProviderError,
    ProviderUnavailableError,
    RepositoryError,
    RequestValidationError,
    UnknownApplicationError,
)
from dingtalk_auth.flows import (
    CodeLogin,
    LoginFlowResolver,
    LoginRequest,
    MiniAppLogin,
    ScanCodeLogin,
    TmpCodeLogin,
    parse_login_request,
)
from dingtalk_auth.lifespan import dingtalk_lifespan
from dingtalk_auth.mapper import map_principal
from dingtalk_auth.principal import NormalizedPrincipal
from dingtalk_auth.registry import AppCategory, ApplicationCredential, CredentialRegistry
from dingtalk_auth.routes import router
from dingtalk_auth.settings import DingTalkSettings, get_dingtalk_settings
from dingtalk_auth.token_cache import TokenCache

__all__ = [
    "AppCategory",
    "ApplicationCredential",
    "AuthenticationCoordinator",
    "AuthenticationInfo",
    "AuthenticationListener",
    "CodeIdentity",
    "CodeLogin",
    "CredentialRegistry",
    "DingTalkAuthError",
    "DingTalkClient",
    "DingTalkSettings",
    "HttpDingTalkClient",
    "IdentityResolutionFailedError",
    "InvalidCodeError",
    "LoginFlowResolver",
    "LoginRequest",
    "MappingError",
    "MiniAppLogin",
    "NormalizedPrincipal",
    "PrincipalRepository",
    "ProfileFetchFailedError",
    "ProviderError",
    "ProviderUnavailableError",
    "RepositoryError",
    "RequestValidationError",
    "ScanCodeLogin",
    "TmpCodeLogin",
    "TokenCache",
    "UnionIdentity",
    "UnknownApplicationError",
    "build_coordinator",
    "dingtalk_lifespan",
    "get_dingtalk_settings",
    "map_principal",
    "parse_login_request",
    "register_exception_handlers",
    "router",
]
