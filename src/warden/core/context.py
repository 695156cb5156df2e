"""Per-request identity carried through contextvars.

The context set by the HTTP layer is picked up by the log processors and by
audit events, so every decision can be traced back to the request that
triggered it::

    with request_context(create_context(tenant_id=tenant, actor_id=user)):
        decision = await engine.authorize(principal, "students", "read")
"""

from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from warden.core.exceptions import ContextNotSetError


class RequestContext(BaseModel):
    """Identity and correlation data for one request."""

    request_id: UUID = Field(default_factory=uuid4)
    tenant_id: UUID
    actor_id: UUID

    # Shared by every request of one client operation; echoed to the client
    correlation_id: UUID = Field(default_factory=uuid4)
    initiated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    model_config = {"frozen": True}

    def log_fields(self) -> dict[str, str]:
        """Fields added to every log entry emitted under this context."""
        return {
            "request_id": str(self.request_id),
            "correlation_id": str(self.correlation_id),
            "tenant_id": str(self.tenant_id),
            "actor_id": str(self.actor_id),
        }


_request_context: ContextVar[RequestContext | None] = ContextVar("request_context", default=None)


def get_current_context() -> RequestContext:
    """Return the active context.

    Raises:
        ContextNotSetError: Outside of request_context()
    """
    ctx = _request_context.get()
    if ctx is None:
        raise ContextNotSetError("No request context is set")
    return ctx


def get_current_context_or_none() -> RequestContext | None:
    return _request_context.get()


def set_context(ctx: RequestContext) -> Token[RequestContext | None]:
    """Low-level setter; pair with reset_context() or use request_context()."""
    return _request_context.set(ctx)


def reset_context(token: Token[RequestContext | None]) -> None:
    _request_context.reset(token)


@contextmanager
def request_context(ctx: RequestContext):
    """Make ``ctx`` the active context for the block.

    Tasks created inside the block inherit it.
    """
    token = set_context(ctx)
    try:
        yield ctx
    finally:
        reset_context(token)


def create_context(
    *,
    tenant_id: UUID,
    actor_id: UUID,
    request_id: UUID | None = None,
    correlation_id: UUID | None = None,
) -> RequestContext:
    """Build a RequestContext, generating any id that is not supplied."""
    return RequestContext(
        tenant_id=tenant_id,
        actor_id=actor_id,
        request_id=request_id or uuid4(),
        correlation_id=correlation_id or uuid4(),
    )
