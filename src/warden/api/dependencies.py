"""FastAPI dependencies for authorization.

Usage:
    @router.get("/students")
    async def list_students(
        scope: Annotated[ScopeFilter, Depends(require_permission("students", "read"))],
    ):
        stmt = scope.apply_to_statement(select(Student), Student.owner_id)
"""

from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends, Request

from warden.authz.engine import AuthorizationEngine
from warden.authz.routes import RoutePermissionMap
from warden.authz.scope_filter import ScopeFilter, scope_filter_for
from warden.authz.types import Operation, Principal
from warden.core.exceptions import AuthenticationError

# Operations declared through require_permission, checked against the catalog at startup
DECLARED_OPERATIONS: set[Operation] = set()


def get_engine(request: Request) -> AuthorizationEngine:
    """Get the application's authorization engine."""
    return request.app.state.engine


def get_route_map(request: Request) -> RoutePermissionMap:
    """Get the application's route permission map."""
    return request.app.state.route_map


def get_principal(request: Request) -> Principal:
    """Get the authenticated principal.

    Raises:
        AuthenticationError: If AuthenticationMiddleware did not set one
    """
    principal = getattr(request.state, "principal", None)
    if principal is None:
        raise AuthenticationError("Not authenticated")
    return principal


def require_permission(module: str, action: str) -> Callable[..., Awaitable[ScopeFilter]]:
    """Build a dependency that authorizes ``module.action`` for the caller.

    The dependency returns the ScopeFilter to apply to data access. A denial
    raises AccessDeniedError, which ErrorHandlingMiddleware turns into 403
    (or 503 when the role store is unavailable).
    """
    DECLARED_OPERATIONS.add(Operation(module, action))

    async def dependency(
        principal: Annotated[Principal, Depends(get_principal)],
        engine: Annotated[AuthorizationEngine, Depends(get_engine)],
    ) -> ScopeFilter:
        allow = await engine.require(principal, module, action)
        return scope_filter_for(allow)

    dependency.__name__ = f"require_{module}_{action}"
    return dependency
