"""Error handling middleware mapping exceptions to the API error envelope."""

from typing import Callable
from uuid import UUID

from fastapi import Request, Response
from pydantic import ValidationError
from starlette.middleware.base import BaseHTTPMiddleware

from warden.api.schemas.errors import APIError, ErrorCode
from warden.authz.types import DenyReason
from warden.config.settings import Settings, get_settings
from warden.core.exceptions import AccessDeniedError, AuthenticationError, ContextNotSetError
from warden.core.logging import get_logger

logger = get_logger(__name__)

# Exception type -> (status_code, error_code, message)
EXCEPTION_MAP: dict[type[Exception], tuple[int, ErrorCode, str]] = {
    AuthenticationError: (401, ErrorCode.UNAUTHORIZED, "Not authenticated"),
    ValidationError: (422, ErrorCode.VALIDATION_ERROR, "Request validation failed"),
    ContextNotSetError: (
        500,
        ErrorCode.INTERNAL_ERROR,
        "Internal server error: context not initialized",
    ),
}


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Middleware that catches exceptions and returns standardized error responses.

    Denials never reveal their reason to the client; the reason is logged
    and audited by the decision engine.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            return self._handle_exception(request, exc)

    def _handle_exception(self, request: Request, exc: Exception) -> Response:
        request_id = self._get_request_id(request)
        settings = self._settings(request)

        if isinstance(exc, AccessDeniedError):
            status_code, error_code, message = self._map_denial(exc, settings)
            details = None
        elif isinstance(exc, tuple(EXCEPTION_MAP)):
            status_code, error_code, message = next(
                mapped for exc_type, mapped in EXCEPTION_MAP.items() if isinstance(exc, exc_type)
            )
            details = {"errors": exc.errors()} if isinstance(exc, ValidationError) else None
        else:
            status_code, error_code, message = 500, ErrorCode.INTERNAL_ERROR, "Internal server error"
            details = {"type": type(exc).__name__} if settings.DEBUG else None

        if status_code >= 500 and not isinstance(exc, AccessDeniedError):
            logger.exception(
                "unhandled_exception",
                error_type=type(exc).__name__,
                path=request.url.path,
                request_id=request_id,
            )

        error = APIError(
            error_code=error_code,
            message=message,
            details=details,
            request_id=request_id,
        )
        return error.to_response(status_code, headers={"X-Request-ID": request_id})

    @staticmethod
    def _map_denial(
        exc: AccessDeniedError, settings: Settings
    ) -> tuple[int, ErrorCode, str]:
        if (
            exc.reason == DenyReason.STORE_UNAVAILABLE.value
            and settings.store_unavailable_status == 503
        ):
            return 503, ErrorCode.SERVICE_UNAVAILABLE, "Authorization temporarily unavailable"
        return 403, ErrorCode.FORBIDDEN, "Access denied"

    @staticmethod
    def _get_request_id(request: Request) -> str:
        rid = getattr(request.state, "request_id", None)
        if rid is None:
            return "unknown"
        return str(rid) if isinstance(rid, UUID) else rid

    @staticmethod
    def _settings(request: Request) -> Settings:
        return getattr(request.app.state, "settings", None) or get_settings()
