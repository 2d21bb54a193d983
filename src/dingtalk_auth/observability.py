"""Structured logging configuration using structlog.

Provides environment-aware structured logging for the DingTalk login stack:
- JSON output for production environments
- Console output for development
- Stdlib records from library modules rendered by the same processor chain
- Login context (``login_flow``, ``app_key``) merged from contextvars
- Redaction of secrets, tokens and one-time login codes

Usage:
    from dingtalk_auth.observability import configure_logging, get_logger
    configure_logging()
    logger = get_logger(__name__)
    logger.info("login_started", app_key="ding123")
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import IO, TYPE_CHECKING, Any

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from collections.abc import MutableMapping

Processor = structlog.types.Processor

# Field names whose values are never written to logs
SENSITIVE_FIELDS: frozenset[str] = frozenset(
    {
        "secret",
        "app_secret",
        "appsecret",
        "suite_secret",
        "token",
        "access_token",
        "authorization",
        "code",
        "auth_code",
        "tmp_auth_code",
        "logintmpcode",
        "authcode",
        "signature",
        "password",
    }
)

REDACTED_VALUE: str = "***REDACTED***"


class LoggingSettings(BaseSettings):
    """Logging configuration settings from environment variables.

    Attributes:
        log_level: Minimum log level to output (``LOG_LEVEL``). Default: INFO
        environment: Environment name for format selection (``ENVIRONMENT``).
            Default: development
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        extra="ignore",
        populate_by_name=True,
    )

    log_level: str = Field(
        default="INFO",
        alias="LOG_LEVEL",
        description="Minimum log level to output",
    )
    environment: str = Field(
        default="development",
        alias="ENVIRONMENT",
        description="Environment name for format selection",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> str:
        if isinstance(v, str):
            return v.upper()
        return str(v)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v not in valid_levels:
            msg = f"log_level must be one of {valid_levels}"
            raise ValueError(msg)
        return v

    @property
    def use_json_logs(self) -> bool:
        return self.environment == "production"

    @property
    def log_level_int(self) -> int:
        return getattr(logging, self.log_level, logging.INFO)


class SensitiveDataProcessor:
    """Structlog processor that redacts credentials and login codes.

    Redacts values for fields matching:
    1. Exact field names in SENSITIVE_FIELDS (case-insensitive)
    2. Field names containing "secret" or "token" as substrings

    Example:
        >>> processor = SensitiveDataProcessor()
        >>> result = processor(None, "info", {"event": "login", "app_secret": "s1"})
        >>> result["app_secret"]
        '***REDACTED***'
    """

    def __call__(
        self,
        logger: Any,
        method_name: str,
        event_dict: MutableMapping[str, Any],
    ) -> MutableMapping[str, Any]:
        for key in list(event_dict.keys()):
            if self._is_sensitive(key):
                event_dict[key] = REDACTED_VALUE
        return event_dict

    def _is_sensitive(self, key: str) -> bool:
        key_lower = key.lower()
        if key_lower in SENSITIVE_FIELDS:
            return True
        return "secret" in key_lower or "token" in key_lower


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached LoggingSettings instance.

    Clear cache with ``get_logging_settings.cache_clear()`` for testing.
    """
    return LoggingSettings()


# Name of the root handler installed by configure_logging(); replaced on reconfiguration.
HANDLER_NAME = "dingtalk_auth.structlog"


def _shared_processors() -> list[Processor]:
    """Processors applied to both stdlib records and structlog events."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        # Library modules log with ``extra={...}``; lift those into the event.
        structlog.stdlib.ExtraAdder(),
        SensitiveDataProcessor(),
    ]


def configure_logging(settings: LoggingSettings | None = None, stream: IO[str] | None = None) -> None:
    """Route stdlib and structlog events through one structlog renderer.

    The package's modules log with ``logging.getLogger(__name__)``. A root
    handler with :class:`structlog.stdlib.ProcessorFormatter` renders those
    records, so they get the login context bound by the coordinator
    (``login_flow``, ``app_key``) and credential redaction. Loggers from
    :func:`get_logger` feed the same handler.

    Call once from the host application's startup; calling again replaces
    the handler installed by the previous call.

    Args:
        settings: Optional LoggingSettings instance. If not provided,
            settings are loaded from environment variables.
        stream: Output stream for the handler. Default: ``sys.stderr``.
    """
    if settings is None:
        settings = get_logging_settings()

    shared = _shared_processors()
    renderer: Processor = (
        structlog.processors.JSONRenderer()
        if settings.use_json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )
    handler = logging.StreamHandler(stream)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == HANDLER_NAME]:
        root.removeHandler(existing)
    root.addHandler(handler)
    logging.getLogger("dingtalk_auth").setLevel(settings.log_level_int)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger backed by the stdlib logger ``name``.

    Args:
        name: Logger name (typically __name__ from calling module).

    Returns:
        Bound structlog logger rendered by the configure_logging() handler.
    """
    return structlog.stdlib.get_logger(name)
