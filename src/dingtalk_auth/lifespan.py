"""DingTalk lifespan hook: coordinator wiring and HTTP client cleanup.

The host application puts its principal repository (and optionally a
sequence of listeners) on ``app.state`` before startup:

    app.state.dingtalk_repository = MyRepository()
    app.state.dingtalk_listeners = [AuditListener()]

The coordinator is then available as ``app.state.dingtalk_coordinator``.
Logging is left to the host: call
:func:`dingtalk_auth.observability.configure_logging` from the app factory.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from dingtalk_auth.coordinator import build_coordinator
from dingtalk_auth.settings import get_dingtalk_settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def dingtalk_lifespan(app: Any) -> AsyncIterator[None]:
    """Manage DingTalk login resources across the application lifecycle.

    Startup:
        1. Build the coordinator if DingTalk login is enabled.

    Shutdown:
        1. Close the DingTalk HTTP client.

    Args:
        app: The FastAPI application.

    Raises:
        RuntimeError: If login is enabled but no repository is configured.
        ValueError: If login is enabled but the settings are incomplete.
    """
    settings = get_dingtalk_settings()
    app.state.dingtalk_coordinator = None

    if not settings.enabled:
        logger.info("dingtalk_lifespan: disabled, skipping coordinator setup")
        yield
        return

    repository = getattr(app.state, "dingtalk_repository", None)
    if repository is None:
        msg = "app.state.dingtalk_repository must be set when DINGTALK_ENABLED is true"
        raise RuntimeError(msg)

    coordinator = build_coordinator(
        settings,
        repository,
        listeners=getattr(app.state, "dingtalk_listeners", ()),
    )
    app.state.dingtalk_coordinator = coordinator
    logger.info(
        "dingtalk_lifespan: coordinator ready",
        extra={"applications": len(coordinator.registry)},
    )

    try:
        yield
    finally:
        aclose = getattr(coordinator.client, "aclose", None)
        if aclose is not None:
            await aclose()
        app.state.dingtalk_coordinator = None
        logger.info("dingtalk_lifespan: shutdown complete")
