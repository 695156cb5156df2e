"""Permission listing schemas."""

from uuid import UUID

from pydantic import BaseModel, Field

from warden.authz.types import EffectivePermissions, Scope


class ModuleActionsResponse(BaseModel):
    """One catalog module and its actions."""

    module: str
    actions: list[str]


class ModuleListResponse(BaseModel):
    """The permission catalog."""

    modules: list[ModuleActionsResponse]
    total: int = Field(..., description="Number of modules")


class EffectivePermissionsResponse(BaseModel):
    """Permissions held by the calling principal, grouped by module."""

    tenant_id: UUID
    user_id: UUID
    permissions: dict[str, dict[str, Scope]] = Field(
        default_factory=dict,
        description="module -> action -> scope",
    )

    @classmethod
    def from_effective(
        cls, tenant_id: UUID, user_id: UUID, effective: EffectivePermissions
    ) -> "EffectivePermissionsResponse":
        grouped: dict[str, dict[str, Scope]] = {}
        for operation in sorted(effective, key=lambda op: (op.module, op.action)):
            grouped.setdefault(operation.module, {})[operation.action] = effective[operation]
        return cls(tenant_id=tenant_id, user_id=user_id, permissions=grouped)


class RouteAccessResponse(BaseModel):
    """UI route keys the calling principal may open."""

    routes: list[str]
