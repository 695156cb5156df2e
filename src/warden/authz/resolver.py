"""Permission resolution across a principal's roles.

The resolver turns the roles assigned to a user into an effective scope for
one operation (or for every operation). Scopes only ever widen across roles:
the combined scope is the maximum of the individual grants, with ``full`` as
the top element.
"""

from collections.abc import Iterable
from uuid import UUID

from warden.authz.catalog import PermissionCatalog
from warden.authz.store import RoleStore, UserRoles, load_user_roles
from warden.authz.types import EffectivePermissions, Operation, PermissionGrant, Role, Scope
from warden.core.logging import get_logger
from warden.observability.metrics import record_malformed_grant

logger = get_logger(__name__)


def combine_scopes(scopes: Iterable[Scope]) -> Scope | None:
    """Combine the scopes granted for one operation by several roles.

    Returns None when nothing was granted, ``Scope.FULL`` when any role
    grants full access, and ``Scope.OWN`` otherwise.
    """
    combined: Scope | None = None
    for scope in scopes:
        if scope is Scope.FULL:
            return Scope.FULL
        combined = scope
    return combined


class PermissionResolver:
    """Computes effective permissions from the role store.

    The resolver holds no per-call state; every call reads the store through
    its own view, so one instance is shared by all concurrent requests and no
    call combines data from two versions of the store.

    Errors raised by the role store propagate to the caller.
    """

    def __init__(self, store: RoleStore, catalog: PermissionCatalog):
        self.store = store
        self.catalog = catalog

    async def resolve(
        self,
        user_id: UUID,
        module: str,
        action: str,
        tenant_id: UUID | None = None,
    ) -> Scope | None:
        """Resolve the scope a user holds for one operation.

        Args:
            user_id: The user being authorized
            module: Requested module
            action: Requested action
            tenant_id: The user's tenant; tenant roles of other tenants never apply

        Returns:
            The combined scope, or None when the operation is denied
        """
        if not self.catalog.is_valid_operation(module, action):
            return None

        user_roles = await self._load(user_id)
        if not user_roles.role_ids:
            return None

        operation = Operation(module, action)
        scopes = [
            grant.scope
            for grant in self._applicable_grants(user_roles, tenant_id)
            if grant.operation == operation and self._grant_is_valid(grant)
        ]
        return combine_scopes(scopes)

    async def effective_permissions(
        self,
        user_id: UUID,
        tenant_id: UUID | None = None,
    ) -> EffectivePermissions:
        """Resolve every operation the user may perform under ``tenant_id``.

        Returns:
            Mapping of operation to combined scope; operations without a
            grant are absent
        """
        user_roles = await self._load(user_id)

        by_operation: dict[Operation, list[Scope]] = {}
        for grant in self._applicable_grants(user_roles, tenant_id):
            if self._grant_is_valid(grant):
                by_operation.setdefault(grant.operation, []).append(grant.scope)

        effective: dict[Operation, Scope] = {}
        for operation, scopes in by_operation.items():
            scope = combine_scopes(scopes)
            if scope is not None:
                effective[operation] = scope
        return effective

    async def _load(self, user_id: UUID) -> UserRoles:
        async with self.store.view() as store:
            return await load_user_roles(store, user_id)

    def _applicable_grants(
        self, user_roles: UserRoles, tenant_id: UUID | None
    ) -> list[PermissionGrant]:
        return [
            grant
            for role in self._applicable(user_roles.active_roles(), tenant_id)
            for grant in user_roles.grants.get(role.role_id, frozenset())
        ]

    def _applicable(self, roles: Iterable[Role], tenant_id: UUID | None) -> list[Role]:
        applicable: list[Role] = []
        for role in roles:
            if not role.is_consistent:
                record_malformed_grant("role_tenant_mismatch")
                logger.warning(
                    "malformed_role_ignored",
                    role_id=str(role.role_id),
                    is_system_role=role.is_system_role,
                    role_tenant_id=str(role.tenant_id) if role.tenant_id else None,
                )
                continue
            if role.applies_to_tenant(tenant_id):
                applicable.append(role)
        return applicable

    def _grant_is_valid(self, grant: PermissionGrant) -> bool:
        if self.catalog.is_valid_operation(grant.module, grant.action):
            return True
        record_malformed_grant("unknown_operation")
        logger.warning(
            "malformed_grant_ignored",
            module=grant.module,
            action=grant.action,
        )
        return False
