"""DingTalk login configuration settings.

Loaded from environment variables with DINGTALK_ prefix.
Application lists are JSON arrays, e.g.
``DINGTALK_CORP_APPS='[{"app_key": "ding123", "app_secret": "s3cr3t"}]'``.

Environment Variables:
    DINGTALK_ENABLED: Enable DingTalk authentication
    DINGTALK_CORP_ID: Corp id of the organization
    DINGTALK_CORP_APPS: Internal corp apps (mini-programs, H5)
    DINGTALK_MINI_APPS: Third-party personal mini-apps
    DINGTALK_SUITES: Third-party corp suites
    DINGTALK_LOGINS: Mobile scan-login apps
    DINGTALK_BASE_URL: DingTalk open API base URL
    DINGTALK_REQUEST_TIMEOUT: Timeout for each DingTalk call in seconds
    DINGTALK_TOKEN_CACHE_TTL: Access token cache TTL in seconds
    DINGTALK_TOKEN_CACHE_MAXSIZE: Maximum number of cached access tokens
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from pydantic import BaseModel, Field, StringConstraints
from pydantic_settings import BaseSettings, SettingsConfigDict


# Keys are stripped and must not be blank.
NonBlankStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class CorpAppProperties(BaseModel):
    """Internal corp app (mini-program or H5) credentials."""

    app_key: NonBlankStr
    app_secret: str = Field(repr=False)
    agent_id: str | None = None


class PersonalMiniAppProperties(BaseModel):
    """Third-party personal mini-app credentials."""

    app_id: NonBlankStr
    app_secret: str = Field(repr=False)


class SuiteProperties(BaseModel):
    """Third-party corp suite credentials.

    The suite's ``app_id`` is the login key and ``suite_secret`` its secret.
    """

    app_id: NonBlankStr
    suite_id: str | None = None
    suite_key: str | None = None
    suite_secret: str = Field(repr=False)


class LoginAppProperties(BaseModel):
    """Mobile scan-login app credentials."""

    app_id: NonBlankStr
    app_secret: str = Field(repr=False)


class DingTalkSettings(BaseSettings):
    """DingTalk login configuration loaded from environment variables.

    Example:
        >>> settings = DingTalkSettings()
        >>> settings.enabled
        False
        >>> settings.token_cache_ttl
        6000
    """

    model_config = SettingsConfigDict(
        env_prefix="DINGTALK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    enabled: bool = Field(
        default=False,
        description="Enable DingTalk authentication",
    )
    corp_id: str = Field(
        default="",
        description="Corp id of the organization",
    )
    corp_apps: list[CorpAppProperties] = Field(
        default_factory=list,
        description="Internal corp apps (mini-programs, H5)",
    )
    mini_apps: list[PersonalMiniAppProperties] = Field(
        default_factory=list,
        description="Third-party personal mini-apps",
    )
    suites: list[SuiteProperties] = Field(
        default_factory=list,
        description="Third-party corp suites",
    )
    logins: list[LoginAppProperties] = Field(
        default_factory=list,
        description="Mobile scan-login apps",
    )
    base_url: str = Field(
        default="https://oapi.dingtalk.com",
        description="DingTalk open API base URL",
    )
    request_timeout: float = Field(
        default=10.0,
        ge=0.5,
        le=120.0,
        description="Timeout for each DingTalk call in seconds",
    )
    # DingTalk tokens live 7200s; refresh well before that.
    token_cache_ttl: int = Field(
        default=6000,
        ge=60,
        le=7000,
        description="Access token cache TTL in seconds",
    )
    token_cache_maxsize: int = Field(
        default=10,
        ge=1,
        le=1000,
        description="Maximum number of cached access tokens",
    )

    def has_applications(self) -> bool:
        """Check whether any application of any category is configured."""
        return bool(self.corp_apps or self.mini_apps or self.suites or self.logins)

    def validate_enabled_config(self) -> None:
        """Validate configuration completeness when the subsystem is enabled.

        Raises:
            ValueError: If enabled without any configured application or
                with a non-HTTP(S) base URL.
        """
        if not self.enabled:
            return

        if not self.has_applications():
            raise ValueError(
                "DINGTALK_ENABLED requires at least one of DINGTALK_CORP_APPS, "
                "DINGTALK_MINI_APPS, DINGTALK_SUITES or DINGTALK_LOGINS"
            )

        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError("DINGTALK_BASE_URL must be a valid HTTP(S) URL")


@lru_cache(maxsize=1)
def get_dingtalk_settings() -> DingTalkSettings:
    """Get singleton DingTalkSettings instance.

    Clear cache with ``get_dingtalk_settings.cache_clear()`` for testing.
    """
    return DingTalkSettings()
