"""Tests for HttpDingTalkClient with mocked httpx."""

from __future__ import annotations

import base64
import hashlib
import hmac
from typing import Any

import httpx
import pytest

from dingtalk_auth.client import HttpDingTalkClient, sign_timestamp
from dingtalk_auth.exceptions import ProviderError

BASE_URL = "https://oapi.example.com"


class RecordedRequest:
    def __init__(self, method: str, url: str, kwargs: dict[str, Any]) -> None:
        self.method = method
        self.url = url
        self.params: dict[str, str] = kwargs.get("params") or {}
        self.json: dict[str, Any] | None = kwargs.get("json")
        self.timeout = kwargs.get("timeout")


def install_response(
    monkeypatch: pytest.MonkeyPatch,
    status: int = 200,
    json: Any = None,
    content: bytes | None = None,
    headers: dict[str, str] | None = None,
) -> list[RecordedRequest]:
    """Patch httpx.AsyncClient.request to return a canned response."""
    recorded: list[RecordedRequest] = []

    async def mock_request(self_client: httpx.AsyncClient, method: str, url: str, **kwargs):  # type: ignore[no-untyped-def]
        recorded.append(RecordedRequest(method, url, kwargs))
        request = httpx.Request(method, url)
        if content is not None:
            return httpx.Response(status, content=content, headers=headers, request=request)
        return httpx.Response(status, json=json, headers=headers, request=request)

    monkeypatch.setattr(httpx.AsyncClient, "request", mock_request)
    return recorded


def install_error(monkeypatch: pytest.MonkeyPatch, error: Exception) -> None:
    async def mock_request(self_client: httpx.AsyncClient, method: str, url: str, **kwargs):  # type: ignore[no-untyped-def]
        raise error

    monkeypatch.setattr(httpx.AsyncClient, "request", mock_request)


@pytest.fixture()
def client() -> HttpDingTalkClient:
    return HttpDingTalkClient(base_url=BASE_URL, timeout=3.0)


@pytest.mark.unit
class TestFetchAccessToken:
    @pytest.mark.asyncio
    async def test_success(self, client: HttpDingTalkClient, monkeypatch: pytest.MonkeyPatch) -> None:
        recorded = install_response(
            monkeypatch, json={"errcode": 0, "errmsg": "ok", "access_token": "tok1", "expires_in": 7200}
        )

        token = await client.fetch_access_token("app1", "s1")

        assert token == "tok1"
        assert recorded[0].method == "GET"
        assert recorded[0].url == f"{BASE_URL}/gettoken"
        assert recorded[0].params == {"appkey": "app1", "appsecret": "s1"}
        assert recorded[0].timeout == 3.0

    @pytest.mark.asyncio
    async def test_nonzero_errcode_raises(
        self, client: HttpDingTalkClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        install_response(monkeypatch, json={"errcode": 40089, "errmsg": "invalid appkey or appsecret"})

        with pytest.raises(ProviderError) as exc_info:
            await client.fetch_access_token("app1", "bad")

        assert exc_info.value.operation == "gettoken"
        assert exc_info.value.errcode == 40089
        assert exc_info.value.errmsg == "invalid appkey or appsecret"

    @pytest.mark.asyncio
    async def test_missing_token_raises(
        self, client: HttpDingTalkClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        install_response(monkeypatch, json={"errcode": 0, "errmsg": "ok"})
        with pytest.raises(ProviderError, match="access_token"):
            await client.fetch_access_token("app1", "s1")


@pytest.mark.unit
class TestIdentityCalls:
    @pytest.mark.asyncio
    async def test_exchange_code(self, client: HttpDingTalkClient, monkeypatch: pytest.MonkeyPatch) -> None:
        recorded = install_response(
            monkeypatch,
            json={"errcode": 0, "errmsg": "ok", "userid": "u1", "sys_level": 1, "is_sys": True},
        )

        identity = await client.exchange_code_for_identity("abc123", "tok1")

        assert identity.user_id == "u1"
        assert identity.sys_level == 1
        assert identity.is_sys is True
        assert recorded[0].url == f"{BASE_URL}/user/getuserinfo"
        assert recorded[0].params == {"access_token": "tok1", "code": "abc123"}

    @pytest.mark.asyncio
    async def test_exchange_tmp_code_is_signed(
        self, client: HttpDingTalkClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        recorded = install_response(
            monkeypatch,
            json={
                "errcode": 0,
                "errmsg": "ok",
                "user_info": {"unionid": "union1", "openid": "open1", "nick": "ali"},
            },
        )

        identity = await client.exchange_tmp_code_for_union_identity("tmp1", "scan1", "ss1")

        assert identity.union_id == "union1"
        assert identity.open_id == "open1"
        assert identity.nick == "ali"
        sent = recorded[0]
        assert sent.method == "POST"
        assert sent.url == f"{BASE_URL}/sns/getuserinfo_bycode"
        assert sent.json == {"tmp_auth_code": "tmp1"}
        assert sent.params["accessKey"] == "scan1"
        assert sent.params["signature"] == sign_timestamp(sent.params["timestamp"], "ss1")
        assert "access_token" not in sent.params

    @pytest.mark.asyncio
    async def test_resolve_user_id(self, client: HttpDingTalkClient, monkeypatch: pytest.MonkeyPatch) -> None:
        recorded = install_response(
            monkeypatch, json={"errcode": 0, "errmsg": "ok", "contactType": 0, "userid": "u1"}
        )

        assert await client.resolve_user_id_by_union_id("union1", "tok1") == "u1"
        assert recorded[0].params == {"access_token": "tok1", "unionid": "union1"}

    @pytest.mark.asyncio
    async def test_fetch_profile_strips_envelope(
        self, client: HttpDingTalkClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        install_response(
            monkeypatch,
            json={"errcode": 0, "errmsg": "ok", "userid": "u1", "name": "Alice", "department": [10, 20]},
        )

        profile = await client.fetch_full_profile("u1", "tok1")

        assert profile == {"userid": "u1", "name": "Alice", "department": [10, 20]}

    @pytest.mark.asyncio
    async def test_fetch_profile_error_keeps_provider_payload(
        self, client: HttpDingTalkClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        install_response(monkeypatch, json={"errcode": 40001, "errmsg": "invalid userid"})

        with pytest.raises(ProviderError) as exc_info:
            await client.fetch_full_profile("ghost", "tok1")

        assert exc_info.value.operation == "user/get"
        assert exc_info.value.errcode == 40001
        assert exc_info.value.errmsg == "invalid userid"


@pytest.mark.unit
class TestTransportFailures:
    @pytest.mark.asyncio
    async def test_timeout(self, client: HttpDingTalkClient, monkeypatch: pytest.MonkeyPatch) -> None:
        install_error(monkeypatch, httpx.ReadTimeout("read timed out"))

        with pytest.raises(ProviderError) as exc_info:
            await client.fetch_access_token("app1", "s1")

        assert exc_info.value.errcode == -1
        assert exc_info.value.errmsg.startswith("timeout")

    @pytest.mark.asyncio
    async def test_connection_error(self, client: HttpDingTalkClient, monkeypatch: pytest.MonkeyPatch) -> None:
        install_error(monkeypatch, httpx.ConnectError("connection refused"))

        with pytest.raises(ProviderError) as exc_info:
            await client.fetch_full_profile("u1", "tok1")

        assert exc_info.value.errcode == -1
        assert "connection refused" in exc_info.value.errmsg

    @pytest.mark.asyncio
    async def test_http_error_status(self, client: HttpDingTalkClient, monkeypatch: pytest.MonkeyPatch) -> None:
        install_response(monkeypatch, status=502, content=b"bad gateway", headers={"content-type": "text/plain"})

        with pytest.raises(ProviderError) as exc_info:
            await client.fetch_access_token("app1", "s1")

        assert exc_info.value.errcode == 502

    @pytest.mark.asyncio
    async def test_http_error_with_json_envelope(
        self, client: HttpDingTalkClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        install_response(monkeypatch, status=403, json={"errcode": 88, "errmsg": "ip not allowed"})

        with pytest.raises(ProviderError) as exc_info:
            await client.fetch_access_token("app1", "s1")

        assert exc_info.value.errcode == 88
        assert exc_info.value.errmsg == "ip not allowed"

    @pytest.mark.asyncio
    async def test_invalid_json(self, client: HttpDingTalkClient, monkeypatch: pytest.MonkeyPatch) -> None:
        install_response(monkeypatch, content=b"<html>not json</html>", headers={"content-type": "text/html"})

        with pytest.raises(ProviderError, match="invalid JSON"):
            await client.fetch_access_token("app1", "s1")


@pytest.mark.unit
class TestClientLifecycle:
    def test_sign_timestamp_matches_hmac_sha256(self) -> None:
        expected = base64.b64encode(
            hmac.new(b"secret", b"1546084445901", hashlib.sha256).digest()
        ).decode()
        assert sign_timestamp("1546084445901", "secret") == expected

    @pytest.mark.asyncio
    async def test_external_client_not_closed(self) -> None:
        external = httpx.AsyncClient()
        client = HttpDingTalkClient(base_url=BASE_URL, client=external)
        await client.aclose()
        assert external.is_closed is False
        await external.aclose()

    @pytest.mark.asyncio
    async def test_owned_client_closed_on_exit(self) -> None:
        async with HttpDingTalkClient(base_url=BASE_URL) as client:
            owned = client._get_client()
        assert owned.is_closed is True
