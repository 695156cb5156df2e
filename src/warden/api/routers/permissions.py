"""Permission introspection endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from warden.api.dependencies import get_engine, get_principal, get_route_map, require_permission
from warden.api.schemas.permissions import (
    EffectivePermissionsResponse,
    ModuleActionsResponse,
    ModuleListResponse,
    RouteAccessResponse,
)
from warden.authz.engine import AuthorizationEngine
from warden.authz.routes import RoutePermissionMap
from warden.authz.scope_filter import ScopeFilter
from warden.authz.types import Principal

router = APIRouter(prefix="/permissions", tags=["permissions"])


@router.get(
    "/modules",
    response_model=ModuleListResponse,
    summary="List permission catalog",
)
async def list_modules(
    request: Request,
    _: Annotated[ScopeFilter, Depends(require_permission("user_management", "read"))],
) -> ModuleListResponse:
    """List every module with its actions, for role management screens."""
    modules = request.app.state.engine.catalog.list_modules()
    return ModuleListResponse(
        modules=[ModuleActionsResponse(module=m.module, actions=list(m.actions)) for m in modules],
        total=len(modules),
    )


@router.get(
    "/me",
    response_model=EffectivePermissionsResponse,
    summary="Effective permissions of the caller",
)
async def my_permissions(
    principal: Annotated[Principal, Depends(get_principal)],
    engine: Annotated[AuthorizationEngine, Depends(get_engine)],
) -> EffectivePermissionsResponse:
    """Every operation the caller may perform, with its scope.

    Inactive principals and role store outages yield an empty listing.
    """
    effective = await engine.effective_permissions(principal)
    return EffectivePermissionsResponse.from_effective(
        principal.tenant_id, principal.user_id, effective
    )


@router.get(
    "/routes",
    response_model=RouteAccessResponse,
    summary="UI routes accessible to the caller",
)
async def my_routes(
    principal: Annotated[Principal, Depends(get_principal)],
    engine: Annotated[AuthorizationEngine, Depends(get_engine)],
    route_map: Annotated[RoutePermissionMap, Depends(get_route_map)],
) -> RouteAccessResponse:
    """Route keys the caller's front end should display."""
    effective = await engine.effective_permissions(principal)
    return RouteAccessResponse(routes=route_map.accessible_routes(effective))
