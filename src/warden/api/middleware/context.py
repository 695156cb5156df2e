"""Request context middleware for propagating context through the request lifecycle."""

from typing import Callable
from uuid import UUID, uuid4

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from warden.core.context import create_context, request_context


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware that sets up RequestContext for each authenticated request.

    Requires:
        request.state.principal: Set by AuthenticationMiddleware

    Sets:
        request.state.request_id: The generated request ID
        X-Request-ID response header: For client correlation
        X-Correlation-ID response header: Echoed or generated correlation ID
    """

    async def dispatch(
        self, request: Request, call_next: Callable
    ) -> Response:
        """Process request within a RequestContext."""
        request_id = uuid4()
        request.state.request_id = request_id

        principal = getattr(request.state, "principal", None)
        if principal is None:
            response = await call_next(request)
            response.headers["X-Request-ID"] = str(request_id)
            return response

        ctx = create_context(
            tenant_id=principal.tenant_id,
            actor_id=principal.user_id,
            request_id=request_id,
            correlation_id=self._parse_correlation_id(request.headers.get("X-Correlation-ID")),
        )

        with request_context(ctx):
            response = await call_next(request)

        response.headers["X-Request-ID"] = str(request_id)
        response.headers["X-Correlation-ID"] = str(ctx.correlation_id)

        return response

    def _parse_correlation_id(self, value: str | None) -> UUID | None:
        """Accept a client supplied correlation ID if it is a UUID."""
        if not value:
            return None
        try:
            return UUID(value)
        except ValueError:
            return None
