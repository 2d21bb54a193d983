"""FastAPI login endpoints for DingTalk authentication.

Thin adapter between parsed JSON bodies and
:class:`~dingtalk_auth.coordinator.AuthenticationCoordinator`. The
coordinator is read from ``app.state.dingtalk_coordinator`` (set by
:func:`dingtalk_auth.lifespan.dingtalk_lifespan`).

Endpoints:
    POST /auth/dingtalk/login      -- ``key`` + ``code``, ``loginTmpCode`` or ``authCode``
    POST /auth/dingtalk/tmp-code   -- ``key`` + ``loginTmpCode`` (full profile)
    POST /auth/dingtalk/mini-app   -- ``key`` + ``authCode``
    POST /auth/dingtalk/scan-code  -- ``key`` + ``loginTmpCode`` (union identity)
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from dingtalk_auth.coordinator import AuthenticationCoordinator, AuthenticationInfo
from dingtalk_auth.flows import (
    MiniAppLogin,
    ScanCodeLogin,
    TmpCodeLogin,
    parse_login_request,
)

router = APIRouter(prefix="/auth/dingtalk", tags=["dingtalk"])


class LoginBody(BaseModel):
    """Login request body using DingTalk's front-end field names."""

    model_config = ConfigDict(populate_by_name=True)

    key: str | None = None
    code: str | None = Field(default=None, repr=False)
    login_tmp_code: str | None = Field(default=None, alias="loginTmpCode", repr=False)
    auth_code: str | None = Field(default=None, alias="authCode", repr=False)


class LoginResponse(BaseModel):
    """Successful login result."""

    subject: str
    realm: str
    attributes: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_info(cls, info: AuthenticationInfo) -> LoginResponse:
        return cls(subject=info.subject, realm=info.realm, attributes=info.attributes)


def get_coordinator(request: Request) -> AuthenticationCoordinator:
    """Return the coordinator stored on app state.

    Raises:
        HTTPException: 503 if DingTalk authentication is not enabled.
    """
    coordinator: AuthenticationCoordinator | None = getattr(
        request.app.state, "dingtalk_coordinator", None
    )
    if coordinator is None:
        raise HTTPException(status_code=503, detail="DingTalk authentication is not enabled")
    return coordinator


Coordinator = Annotated[AuthenticationCoordinator, Depends(get_coordinator)]


def _client_host(request: Request) -> str | None:
    return request.client.host if request.client else None


@router.post("/login")
async def login(body: LoginBody, request: Request, coordinator: Coordinator) -> LoginResponse:
    """Log in with an in-app code, falling back to a scan code when no code is sent."""
    login_request = parse_login_request(
        body.model_dump(by_alias=True, exclude_none=True), host=_client_host(request)
    )
    info = await coordinator.authenticate(login_request)
    return LoginResponse.from_info(info)


@router.post("/tmp-code")
async def login_tmp_code(body: LoginBody, request: Request, coordinator: Coordinator) -> LoginResponse:
    login_request = TmpCodeLogin(
        app_key=body.key or "",
        tmp_auth_code=body.login_tmp_code or "",
        host=_client_host(request),
    )
    info = await coordinator.authenticate(login_request)
    return LoginResponse.from_info(info)


@router.post("/mini-app")
async def login_mini_app(body: LoginBody, request: Request, coordinator: Coordinator) -> LoginResponse:
    login_request = MiniAppLogin(
        app_key=body.key or "",
        auth_code=body.auth_code or "",
        host=_client_host(request),
    )
    info = await coordinator.authenticate(login_request)
    return LoginResponse.from_info(info)


@router.post("/scan-code")
async def login_scan_code(body: LoginBody, request: Request, coordinator: Coordinator) -> LoginResponse:
    login_request = ScanCodeLogin(
        app_key=body.key or "",
        tmp_auth_code=body.login_tmp_code or "",
        host=_client_host(request),
    )
    info = await coordinator.authenticate(login_request)
    return LoginResponse.from_info(info)
