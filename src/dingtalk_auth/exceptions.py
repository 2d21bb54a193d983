"""Exception hierarchy for DingTalk login failures.

Every authentication attempt ends in either a result or exactly one of the
classified errors below. Each error carries a machine-readable error code and
structured context so the HTTP layer and listeners can report it without
inspecting the message.

Example:
    >>> from dingtalk_auth.exceptions import UnknownApplicationError
    >>> raise UnknownApplicationError("ding-app-key")
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "DingTalkAuthError",
    "DomainError",
    "IdentityResolutionFailedError",
    "InvalidCodeError",
    "MappingError",
    "ProfileFetchFailedError",
    "ProviderError",
    "ProviderUnavailableError",
    "RepositoryError",
    "RequestValidationError",
    "UnknownApplicationError",
]

# errcode used when the provider could not be reached at all
TRANSPORT_ERRCODE = -1


class DomainError(Exception):
    """Base class for all errors raised by this package.

    Attributes:
        error_code: Machine-readable error code for client handling.
        message: Human-readable error description.
        context: Structured debugging information (app keys, field names).
    """

    error_code: str = "DOMAIN_ERROR"

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """String representation including context for logging."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class DingTalkAuthError(DomainError):
    """Raised when a DingTalk authentication attempt fails.

    Maps to HTTP 401 Unauthorized unless a subclass says otherwise.
    """

    error_code: str = "DINGTALK_AUTHENTICATION_ERROR"


class RequestValidationError(DingTalkAuthError):
    """Raised when the inbound login request lacks a required field.

    Detected before any remote call. Maps to HTTP 400 Bad Request.

    Attributes:
        field: Name of the missing or blank field.
        reason: Human-readable validation failure reason.

    Example:
        >>> raise RequestValidationError("key", "app key is required")
        RequestValidationError: Validation failed for 'key': app key is required
    """

    error_code: str = "REQUEST_VALIDATION_ERROR"

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(
            f"Validation failed for '{field}': {reason}",
            {"field": field, "reason": reason},
        )


class UnknownApplicationError(DingTalkAuthError):
    """Raised when the app key is not present in the credential registry."""

    error_code: str = "UNKNOWN_APPLICATION"

    def __init__(self, app_key: str) -> None:
        self.app_key = app_key
        super().__init__(f"Unknown application key: {app_key}", {"app_key": app_key})


class ProviderError(DingTalkAuthError):
    """Raised when a DingTalk API call fails.

    Covers non-zero ``errcode`` responses, HTTP error statuses, undecodable
    bodies, timeouts and transport failures. The provider's code and message
    are kept verbatim for diagnosis.

    Attributes:
        operation: Name of the remote operation (e.g. ``"user/get"``).
        errcode: Provider error code, or ``-1`` for transport failures.
        errmsg: Provider error message.
    """

    error_code: str = "PROVIDER_ERROR"

    def __init__(self, operation: str, errcode: int, errmsg: str) -> None:
        self.operation = operation
        self.errcode = errcode
        self.errmsg = errmsg
        super().__init__(
            f"DingTalk call {operation} failed: {errmsg} ({errcode})",
            {"operation": operation, "errcode": errcode, "errmsg": errmsg},
        )

    @classmethod
    def wrap(cls, exc: ProviderError) -> ProviderError:
        """Re-classify a raw provider error, keeping its payload."""
        return cls(exc.operation, exc.errcode, exc.errmsg)


class ProviderUnavailableError(ProviderError):
    """Raised when an access token cannot be obtained for an application."""

    error_code: str = "PROVIDER_UNAVAILABLE"


class InvalidCodeError(ProviderError):
    """Raised when DingTalk rejects a login code or temporary auth code."""

    error_code: str = "INVALID_CODE"


class IdentityResolutionFailedError(ProviderError):
    """Raised when a unionid cannot be resolved to a corp userid."""

    error_code: str = "IDENTITY_RESOLUTION_FAILED"


class ProfileFetchFailedError(ProviderError):
    """Raised when the full user profile cannot be fetched."""

    error_code: str = "PROFILE_FETCH_FAILED"


class MappingError(DingTalkAuthError):
    """Raised when a successful provider response lacks a mandatory field.

    Attributes:
        field: Provider field name that was missing or malformed.
    """

    error_code: str = "MAPPING_ERROR"

    def __init__(self, field: str, reason: str = "missing from provider response") -> None:
        self.field = field
        super().__init__(f"Provider field '{field}' {reason}", {"field": field})


class RepositoryError(DingTalkAuthError):
    """Raised when the principal repository rejects or fails a login subject."""

    error_code: str = "REPOSITORY_ERROR"
