"""Planner error taxonomy and the FastAPI handlers that render it.

Every planner failure is a PlannerError subclass carrying its HTTP status and
a stable error_code. Provider and validation failures are retryable and are
rendered with a generic message; the details stay in the logs.
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger("lunaplan.errors")

RETRYABLE_MESSAGE = "We couldn't generate your plan right now. Please try again in a moment."
UPGRADE_MESSAGE = "Premium subscription required for AI features"


class PlannerError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "INTERNAL_ERROR"
    retryable: bool = False

    def __init__(self, detail: str = "Internal server error"):
        super().__init__(detail)
        self.detail = detail

    def public_message(self) -> str:
        return self.detail


class AuthenticationError(PlannerError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "UNAUTHORIZED"

    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(detail)


class EntitlementError(PlannerError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "UPGRADE_REQUIRED"

    def __init__(self, detail: str = UPGRADE_MESSAGE):
        super().__init__(detail)


class ValidationError(PlannerError):
    """Provider response could not be parsed or does not match the plan schema."""
    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "INVALID_AI_RESPONSE"
    retryable = True

    def public_message(self) -> str:
        return RETRYABLE_MESSAGE


class ProviderError(PlannerError):
    """Transport failure, rate limit or 5xx from the completion provider."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "AI_PROVIDER_UNAVAILABLE"
    retryable = True

    def __init__(self, detail: str = "AI provider unavailable", *, transient: bool = True):
        super().__init__(detail)
        self.transient = transient

    def public_message(self) -> str:
        return RETRYABLE_MESSAGE


class BadRequestError(PlannerError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "INVALID_REQUEST"


class ForbiddenError(PlannerError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "FORBIDDEN"


class NotFoundError(PlannerError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"

    def __init__(self, detail: str = "Not found", *, suggestion: Optional[str] = None):
        super().__init__(detail)
        self.suggestion = suggestion


class InternalError(PlannerError):
    pass


async def planner_error_handler(request: Request, exc: PlannerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} on {request.url.path}: {exc.detail}")

    content = {
        "success": False,
        "error": exc.public_message(),
        "error_code": exc.error_code,
    }
    if exc.retryable:
        content["retryable"] = True
    if isinstance(exc, NotFoundError) and exc.suggestion:
        content["suggestion"] = exc.suggestion

    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PlannerError, planner_error_handler)
