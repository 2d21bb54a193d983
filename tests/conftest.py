"""Shared fixtures: an in-memory DingTalk client and recording collaborators."""

from __future__ import annotations

from typing import Any

import pytest

from dingtalk_auth.client import CodeIdentity, UnionIdentity
from dingtalk_auth.coordinator import AuthenticationCoordinator, AuthenticationInfo
from dingtalk_auth.exceptions import ProviderError
from dingtalk_auth.flows import MiniAppLogin, ScanCodeLogin
from dingtalk_auth.principal import NormalizedPrincipal
from dingtalk_auth.registry import AppCategory, CredentialRegistry
from dingtalk_auth.token_cache import TokenCache


class FakeDingTalkClient:
    """In-memory DingTalkClient with call recording and injectable failures.

    Defaults describe one internal app ``app1``/``s1`` whose code ``abc123``
    logs in user ``u1`` (Alice, departments 10 and 20, admin), and a scan
    code ``tmp1`` that resolves to the same user through ``union1``.
    """

    def __init__(self) -> None:
        self.tokens: dict[str, str] = {"app1": "tok1", "scan1": "tok-scan", "mini1": "tok-mini"}
        self.code_identities: dict[str, CodeIdentity] = {"abc123": CodeIdentity(user_id="u1")}
        self.union_identities: dict[str, UnionIdentity] = {
            "tmp1": UnionIdentity(union_id="union1", open_id="open1", nick="ali"),
        }
        self.union_to_user: dict[str, str] = {"union1": "u1"}
        self.profiles: dict[str, dict[str, Any]] = {
            "u1": {"userid": "u1", "name": "Alice", "department": [10, 20], "isAdmin": True},
        }
        self.failures: dict[str, ProviderError] = {}
        self.calls: list[tuple[str, ...]] = []
        self.closed = False

    def fail(self, operation: str, errcode: int, errmsg: str) -> None:
        self.failures[operation] = ProviderError(operation, errcode, errmsg)

    def count(self, operation: str) -> int:
        return sum(1 for call in self.calls if call[0] == operation)

    def _record(self, operation: str, *args: str) -> None:
        self.calls.append((operation, *args))
        if operation in self.failures:
            raise self.failures[operation]

    async def fetch_access_token(self, app_key: str, app_secret: str) -> str:
        self._record("gettoken", app_key, app_secret)
        return self.tokens.get(app_key, f"tok-{app_key}")

    async def exchange_code_for_identity(self, code: str, access_token: str) -> CodeIdentity:
        self._record("user/getuserinfo", code, access_token)
        identity = self.code_identities.get(code)
        if identity is None:
            raise ProviderError("user/getuserinfo", 40078, "invalid code")
        return identity

    async def exchange_tmp_code_for_union_identity(
        self, tmp_code: str, app_key: str, app_secret: str
    ) -> UnionIdentity:
        self._record("sns/getuserinfo_bycode", tmp_code, app_key, app_secret)
        identity = self.union_identities.get(tmp_code)
        if identity is None:
            raise ProviderError("sns/getuserinfo_bycode", 40078, "invalid tmp auth code")
        return identity

    async def resolve_user_id_by_union_id(self, union_id: str, access_token: str) -> str | None:
        self._record("user/getUseridByUnionid", union_id, access_token)
        return self.union_to_user.get(union_id)

    async def fetch_full_profile(self, user_id: str, access_token: str) -> dict[str, Any]:
        self._record("user/get", user_id, access_token)
        profile = self.profiles.get(user_id)
        if profile is None:
            raise ProviderError("user/get", 60121, "user not found")
        return dict(profile)

    async def aclose(self) -> None:
        self.closed = True


class RecordingRepository:
    """Principal repository that records subjects and maps them to accounts."""

    def __init__(self) -> None:
        self.subjects: list[Any] = []
        self.error: Exception | None = None
        self.return_none = False

    async def get_authentication_info(self, subject: Any) -> AuthenticationInfo | None:
        self.subjects.append(subject)
        if self.error is not None:
            raise self.error
        if self.return_none:
            return None

        match subject:
            case NormalizedPrincipal(provider_user_id=user_id):
                account = f"account-{user_id}"
            case MiniAppLogin(auth_code=auth_code):
                account = f"mini-{auth_code}"
            case ScanCodeLogin(union_id=union_id):
                account = f"union-{union_id}"
            case _:
                account = "unknown"
        return AuthenticationInfo(
            subject=account,
            realm="dingtalk",
            principal=subject,
            attributes={"source": type(subject).__name__},
        )


class RecordingListener:
    """Authentication listener that records every notification."""

    def __init__(self) -> None:
        self.successes: list[tuple[str, AuthenticationInfo]] = []
        self.failures: list[tuple[str, Any, Exception]] = []

    def on_success(self, realm: str, info: AuthenticationInfo) -> None:
        self.successes.append((realm, info))

    def on_failure(self, realm: str, request: Any, error: Exception) -> None:
        self.failures.append((realm, request, error))


@pytest.fixture()
def fake_client() -> FakeDingTalkClient:
    return FakeDingTalkClient()


@pytest.fixture()
def registry() -> CredentialRegistry:
    """Frozen registry with one app per exercised category."""
    registry = CredentialRegistry()
    registry.register("app1", "s1", AppCategory.INTERNAL_APP)
    registry.register("mini1", "ms1", AppCategory.PERSONAL_MINI_APP)
    registry.register("scan1", "ss1", AppCategory.SCAN_LOGIN_APP)
    registry.freeze()
    return registry


@pytest.fixture()
def token_cache(fake_client: FakeDingTalkClient) -> TokenCache:
    return TokenCache(fake_client.fetch_access_token, ttl=6000, maxsize=10, timeout=1.0)


@pytest.fixture()
def repository() -> RecordingRepository:
    return RecordingRepository()


@pytest.fixture()
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture()
def coordinator(
    registry: CredentialRegistry,
    token_cache: TokenCache,
    fake_client: FakeDingTalkClient,
    repository: RecordingRepository,
    listener: RecordingListener,
) -> AuthenticationCoordinator:
    return AuthenticationCoordinator(
        registry=registry,
        token_cache=token_cache,
        client=fake_client,
        repository=repository,
        listeners=[listener],
    )
