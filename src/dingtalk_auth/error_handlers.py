"""RFC 7807 Problem Details handlers for DingTalk login failures.

Every classified login failure becomes an ``application/problem+json``
response carrying the machine-readable error code: 400 for malformed login
requests, 401 for everything else. Provider error codes are
kept in the context; secrets and codes never are.

Usage:
    from dingtalk_auth.error_handlers import register_exception_handlers

    app = FastAPI()
    register_exception_handlers(app)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from dingtalk_auth.exceptions import DingTalkAuthError, RequestValidationError

if TYPE_CHECKING:
    from fastapi import FastAPI, Request

logger = logging.getLogger(__name__)

PROBLEM_MEDIA_TYPE = "application/problem+json"

_SENSITIVE_KEYS = frozenset({"secret", "app_secret", "token", "access_token", "code", "signature"})


class ProblemDetail(BaseModel):
    """RFC 7807 Problem Details response model."""

    type: str = Field(..., description="URI reference identifying problem type")
    title: str = Field(..., description="Short human-readable summary")
    status: int = Field(..., ge=400, le=599, description="HTTP status code")
    detail: str = Field(..., description="Human-readable explanation")
    instance: str | None = Field(default=None, description="Request path")
    error_code: str | None = Field(default=None, description="Machine-readable error code")
    context: dict[str, Any] | None = Field(default=None, description="Structured debugging information")


def _sanitize_context(context: dict[str, Any]) -> dict[str, Any] | None:
    sanitized = {k: v for k, v in context.items() if k.lower() not in _SENSITIVE_KEYS}
    return sanitized or None


async def dingtalk_auth_error_handler(request: Request, exc: DingTalkAuthError) -> JSONResponse:
    """Translate a classified DingTalk login failure to a problem response.

    Args:
        request: FastAPI request object.
        exc: The classified error that ended the attempt.

    Returns:
        JSONResponse with 400 or 401 status and problem details.
    """
    if isinstance(exc, RequestValidationError):
        status, title = 400, "Bad Request"
    else:
        status, title = 401, "Unauthorized"

    logger.debug("dingtalk_problem_response", extra={"error_code": exc.error_code, "status": status})
    problem = ProblemDetail(
        type=f"/errors/{exc.error_code.lower().replace('_', '-')}",
        title=title,
        status=status,
        detail=exc.message,
        instance=str(request.url.path),
        error_code=exc.error_code,
        context=_sanitize_context(exc.context),
    )
    return JSONResponse(
        status_code=problem.status,
        content=problem.model_dump(exclude_none=True),
        media_type=PROBLEM_MEDIA_TYPE,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register the DingTalk login failure handler on a FastAPI application."""
    app.add_exception_handler(
        DingTalkAuthError,
        dingtalk_auth_error_handler,  # type: ignore[arg-type]
    )
