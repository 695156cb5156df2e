"""Authentication middleware resolving Bearer tokens to principals."""

import re
from collections.abc import Mapping
from typing import Callable, Protocol, runtime_checkable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from warden.api.schemas.errors import APIError, ErrorCode
from warden.authz.types import Principal
from warden.core.logging import get_logger

logger = get_logger(__name__)

# Paths that don't require authentication
SKIP_AUTH_PATHS = {
    "/health",
    "/metrics",
    "/docs",
    "/redoc",
    "/openapi.json",
}

SKIP_AUTH_PREFIXES = (
    "/docs",
    "/redoc",
)

BEARER_PATTERN = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


@runtime_checkable
class Authenticator(Protocol):
    """Upstream identity provider: turns a credential into a principal."""

    async def authenticate(self, token: str) -> Principal | None:
        """Return the principal for ``token``, or None if it is not valid."""
        ...


class StaticTokenAuthenticator:
    """Authenticator over a fixed token to principal mapping.

    Intended for development and tests; production deployments plug in an
    authenticator backed by their identity provider.
    """

    def __init__(self, tokens: Mapping[str, Principal] | None = None):
        self._tokens = dict(tokens or {})

    async def authenticate(self, token: str) -> Principal | None:
        return self._tokens.get(token)


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Middleware that validates Bearer token authentication.

    Uses the authenticator stored on ``app.state.authenticator``.

    Sets:
        request.state.principal: The authenticated Principal
        request.state.actor_id: The principal's user id
        request.state.tenant_id: The principal's tenant id
    """

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> Response:
        """Process request and validate authentication."""
        if self._should_skip_auth(request.url.path):
            return await call_next(request)

        auth_header = request.headers.get("Authorization")
        if not auth_header:
            return self._unauthorized_response("Missing Authorization header")

        match = BEARER_PATTERN.match(auth_header)
        if not match:
            return self._unauthorized_response("Invalid Authorization header format")

        authenticator: Authenticator = request.app.state.authenticator
        principal = await authenticator.authenticate(match.group(1))
        if principal is None:
            logger.info("authentication_failed", path=request.url.path)
            return self._unauthorized_response("Invalid credentials")

        request.state.principal = principal
        request.state.actor_id = principal.user_id
        request.state.tenant_id = principal.tenant_id

        return await call_next(request)

    def _should_skip_auth(self, path: str) -> bool:
        """Check if path should skip authentication."""
        return path in SKIP_AUTH_PATHS or path.startswith(SKIP_AUTH_PREFIXES)

    def _unauthorized_response(self, message: str) -> Response:
        """Create a 401 unauthorized response."""
        # Request ID not yet assigned
        error = APIError(error_code=ErrorCode.UNAUTHORIZED, message=message, request_id="unknown")
        return error.to_response(401, headers={"WWW-Authenticate": "Bearer"})
