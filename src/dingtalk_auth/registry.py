"""Application credential registry.

Maps a public DingTalk application key to its private secret across the
four application categories a deployment can configure. The registry is
populated once at startup (see :meth:`CredentialRegistry.from_settings`),
then frozen and shared read-only between requests.

Lookups are category-agnostic. When two categories configure the same key,
the first registration wins and the collision is logged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from dingtalk_auth.exceptions import UnknownApplicationError

if TYPE_CHECKING:
    from dingtalk_auth.settings import DingTalkSettings

logger = logging.getLogger(__name__)


class AppCategory(StrEnum):
    """Category of a configured DingTalk application, in registration order."""

    INTERNAL_APP = "internal_app"
    PERSONAL_MINI_APP = "personal_mini_app"
    THIRD_PARTY_SUITE = "third_party_suite"
    SCAN_LOGIN_APP = "scan_login_app"


@dataclass(frozen=True, slots=True)
class ApplicationCredential:
    """Key/secret pair for one configured application.

    Attributes:
        app_key: Public application key (appKey, appId or suite appId).
        app_secret: Private application secret. Hidden from repr.
        category: Category the credential was configured under.
    """

    app_key: str
    app_secret: str = field(repr=False)
    category: AppCategory = AppCategory.INTERNAL_APP


class CredentialRegistry:
    """Registry of application credentials keyed by app key.

    Example:
        >>> registry = CredentialRegistry()
        >>> registry.register("app1", "s1", AppCategory.INTERNAL_APP)
        >>> registry.freeze()
        >>> registry.resolve_secret("app1")
        's1'
    """

    def __init__(self) -> None:
        self._credentials: dict[str, ApplicationCredential] = {}
        self._frozen = False

    @classmethod
    def from_settings(cls, settings: DingTalkSettings) -> CredentialRegistry:
        """Build a frozen registry from every configured application.

        Categories are registered in a fixed order (internal apps, personal
        mini-apps, third-party suites, scan-login apps) so collisions resolve
        deterministically.

        Args:
            settings: Loaded DingTalk settings.

        Returns:
            Frozen CredentialRegistry.
        """
        registry = cls()
        for corp_app in settings.corp_apps:
            registry.register(corp_app.app_key, corp_app.app_secret, AppCategory.INTERNAL_APP)
        for mini_app in settings.mini_apps:
            registry.register(mini_app.app_id, mini_app.app_secret, AppCategory.PERSONAL_MINI_APP)
        for suite in settings.suites:
            registry.register(suite.app_id, suite.suite_secret, AppCategory.THIRD_PARTY_SUITE)
        for login in settings.logins:
            registry.register(login.app_id, login.app_secret, AppCategory.SCAN_LOGIN_APP)
        registry.freeze()

        logger.info(
            "credential_registry_loaded",
            extra={"app_keys": sorted(registry._credentials), "count": len(registry)},
        )
        return registry

    def register(self, app_key: str, app_secret: str, category: AppCategory) -> None:
        """Register an application credential (first write wins).

        Re-registering a key that is already present is a no-op; a differing
        secret or category is logged as a collision and ignored.

        Args:
            app_key: Public application key.
            app_secret: Private application secret.
            category: Application category.

        Raises:
            ValueError: If app_key is blank.
            RuntimeError: If the registry has been frozen.
        """
        if self._frozen:
            raise RuntimeError("CredentialRegistry is frozen; register() is only valid at startup")
        if not app_key or not app_key.strip():
            raise ValueError("app_key must not be blank")

        existing = self._credentials.get(app_key)
        if existing is None:
            self._credentials[app_key] = ApplicationCredential(app_key, app_secret, category)
            return

        if existing.category != category or existing.app_secret != app_secret:
            logger.warning(
                "credential_registry_key_collision",
                extra={
                    "app_key": app_key,
                    "kept_category": existing.category.value,
                    "ignored_category": category.value,
                },
            )

    def freeze(self) -> None:
        """Mark initialization complete; further registrations are rejected."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def has_key(self, app_key: str) -> bool:
        return app_key in self._credentials

    def get(self, app_key: str) -> ApplicationCredential | None:
        return self._credentials.get(app_key)

    def resolve_secret(self, app_key: str) -> str:
        """Return the secret registered for app_key.

        Raises:
            UnknownApplicationError: If app_key is not registered.
        """
        credential = self._credentials.get(app_key)
        if credential is None:
            raise UnknownApplicationError(app_key)
        return credential.app_secret

    def __contains__(self, app_key: object) -> bool:
        return app_key in self._credentials

    def __len__(self) -> int:
        return len(self._credentials)
