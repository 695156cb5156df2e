"""Role store interface and in-memory reference implementation.

The role store is the read-only boundary between the authorization core and
whatever persists tenants, roles and assignments. The core treats it as a
queryable snapshot; it never writes through it.

Consistency contract: implementations may serve data that lags behind the
system of record, but the lag must be bounded and documented. The in-memory
store is exact; ``CachingRoleStore`` lags by at most its configured TTL.
Whatever the lag, every lookup made through one :meth:`RoleStore.view` sees
the same state, so a decision never combines assignments from one version of
the data with grants from another.
"""

import asyncio
from collections.abc import Mapping
from contextlib import AbstractAsyncContextManager, nullcontext
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Protocol, runtime_checkable
from uuid import UUID, uuid4

from warden.authz.types import PermissionGrant, Role, Scope
from warden.core.exceptions import SnapshotIntegrityError


@runtime_checkable
class RoleStore(Protocol):
    """Protocol for role store implementations.

    All lookups are async so that database or network backed stores can be
    awaited under the caller's deadline. Failures must be raised as
    ``RoleStoreError`` subclasses.
    """

    async def get_roles_for_user(self, user_id: UUID) -> frozenset[UUID]:
        """Return the ids of every role assigned to the user (any tenant)."""
        ...

    async def get_role(self, role_id: UUID) -> Role | None:
        """Return the role record, or None if the role does not exist."""
        ...

    async def get_grants(self, role_id: UUID) -> frozenset[PermissionGrant]:
        """Return every grant attached to the role."""
        ...

    async def is_role_active(self, role_id: UUID) -> bool:
        """Whether the role exists, is not deleted, and its tenant is active."""
        ...

    def view(self) -> AbstractAsyncContextManager["RoleStore"]:
        """Open a read view whose lookups all see one state of the data."""
        ...


def _freeze(mapping: Mapping) -> Mapping:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True, slots=True)
class UserRoles:
    """Everything a decision reads about one user's roles.

    Attributes:
        role_ids: Every assigned role id
        roles: Records of the assigned roles that exist
        active: Ids of the assigned roles that are active
        grants: Grants of the active roles
    """

    role_ids: frozenset[UUID] = frozenset()
    roles: Mapping[UUID, Role] = field(default_factory=lambda: MappingProxyType({}))
    active: frozenset[UUID] = frozenset()
    grants: Mapping[UUID, frozenset[PermissionGrant]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def active_roles(self) -> list[Role]:
        """Records of the active roles."""
        return [self.roles[role_id] for role_id in self.active if role_id in self.roles]


async def _load_role(
    store: RoleStore, role_id: UUID
) -> tuple[UUID, Role | None, bool, frozenset[PermissionGrant]]:
    role, active = await asyncio.gather(store.get_role(role_id), store.is_role_active(role_id))
    if role is None or not active:
        return role_id, role, False, frozenset()
    return role_id, role, True, await store.get_grants(role_id)


async def load_user_roles(store: RoleStore, user_id: UUID) -> UserRoles:
    """Read a user's roles, their activity and their grants.

    Pass a store obtained from :meth:`RoleStore.view` so every lookup sees the
    same state. Role lookups run concurrently.
    """
    role_ids = await store.get_roles_for_user(user_id)
    if not role_ids:
        return UserRoles()

    loaded = await asyncio.gather(*(_load_role(store, role_id) for role_id in role_ids))
    return UserRoles(
        role_ids=frozenset(role_ids),
        roles=_freeze({role_id: role for role_id, role, _, _ in loaded if role is not None}),
        active=frozenset(role_id for role_id, _, active, _ in loaded if active),
        grants=_freeze({role_id: grants for role_id, _, active, grants in loaded if active}),
    )


@dataclass(frozen=True, slots=True)
class RoleSnapshot:
    """Immutable point-in-time view of roles, grants and assignments.

    Attributes:
        roles: Role records by id
        grants: Grants by role id
        user_roles: Assigned role ids by user id
        inactive_tenants: Tenants whose roles are treated as inactive
    """

    roles: Mapping[UUID, Role] = field(default_factory=lambda: MappingProxyType({}))
    grants: Mapping[UUID, frozenset[PermissionGrant]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    user_roles: Mapping[UUID, frozenset[UUID]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    inactive_tenants: frozenset[UUID] = frozenset()

    def role_is_active(self, role_id: UUID) -> bool:
        """Whether the role exists, is active, and belongs to an active tenant."""
        role = self.roles.get(role_id)
        if role is None or not role.is_active:
            return False
        return role.tenant_id is None or role.tenant_id not in self.inactive_tenants


class RoleSnapshotBuilder:
    """Mutable builder that produces validated ``RoleSnapshot`` values.

    Enforces the role data model invariants while building:
    - (tenant_id, name) is unique among tenant roles
    - name is unique among system roles
    - at most one grant per (role, module, action); ``full`` wins over ``own``

    Example:
        builder = RoleSnapshotBuilder()
        teacher = builder.add_role("Teacher", tenant_id=tenant)
        builder.grant(teacher.role_id, "students", "read", Scope.OWN)
        builder.assign(user_id, teacher.role_id)
        store = InMemoryRoleStore(builder.build())
    """

    def __init__(self, snapshot: RoleSnapshot | None = None):
        snapshot = snapshot or RoleSnapshot()
        self._roles: dict[UUID, Role] = dict(snapshot.roles)
        self._grants: dict[UUID, dict[tuple[str, str], PermissionGrant]] = {
            role_id: {(g.module, g.action): g for g in grants}
            for role_id, grants in snapshot.grants.items()
        }
        self._user_roles: dict[UUID, set[UUID]] = {
            user_id: set(role_ids) for user_id, role_ids in snapshot.user_roles.items()
        }
        self._inactive_tenants: set[UUID] = set(snapshot.inactive_tenants)

    def add_role(
        self,
        name: str,
        tenant_id: UUID | None = None,
        *,
        role_id: UUID | None = None,
        is_system_role: bool | None = None,
        is_active: bool = True,
    ) -> Role:
        """Add a role.

        Args:
            name: Role name
            tenant_id: Owning tenant, None for a system role
            role_id: Explicit id (generated if omitted)
            is_system_role: Defaults to ``tenant_id is None``
            is_active: False to model a deleted role

        Raises:
            SnapshotIntegrityError: If the id or name is already taken
        """
        role = Role(
            role_id=role_id or uuid4(),
            name=name,
            tenant_id=tenant_id,
            is_system_role=tenant_id is None if is_system_role is None else is_system_role,
            is_active=is_active,
        )

        if role.role_id in self._roles:
            raise SnapshotIntegrityError("Duplicate role id", role_id=role.role_id)

        for existing in self._roles.values():
            if existing.name != name:
                continue
            if role.is_system_role and existing.is_system_role:
                raise SnapshotIntegrityError(
                    f"System role name '{name}' already exists", role_id=existing.role_id
                )
            if (
                not role.is_system_role
                and not existing.is_system_role
                and existing.tenant_id == role.tenant_id
            ):
                raise SnapshotIntegrityError(
                    f"Role name '{name}' already exists in tenant {tenant_id}",
                    role_id=existing.role_id,
                )

        self._roles[role.role_id] = role
        self._grants.setdefault(role.role_id, {})
        return role

    def grant(self, role_id: UUID, module: str, action: str, scope: Scope) -> PermissionGrant:
        """Attach a grant to a role, widening an existing grant if needed.

        Raises:
            SnapshotIntegrityError: If the role does not exist
        """
        self._require_role(role_id)
        key = (module, action)
        existing = self._grants[role_id].get(key)
        if existing is not None and existing.scope.covers(scope):
            return existing

        grant = PermissionGrant(module=module, action=action, scope=scope)
        self._grants[role_id][key] = grant
        return grant

    def revoke(self, role_id: UUID, module: str, action: str) -> None:
        """Remove a grant from a role if present."""
        self._require_role(role_id)
        self._grants[role_id].pop((module, action), None)

    def assign(self, user_id: UUID, role_id: UUID) -> None:
        """Assign a role to a user.

        Raises:
            SnapshotIntegrityError: If the role does not exist
        """
        self._require_role(role_id)
        self._user_roles.setdefault(user_id, set()).add(role_id)

    def unassign(self, user_id: UUID, role_id: UUID) -> None:
        """Remove a role assignment if present."""
        self._user_roles.get(user_id, set()).discard(role_id)

    def remove_role(self, role_id: UUID) -> None:
        """Delete a role together with its grants and assignments."""
        self._require_role(role_id)
        del self._roles[role_id]
        self._grants.pop(role_id, None)
        for role_ids in self._user_roles.values():
            role_ids.discard(role_id)

    def deactivate_tenant(self, tenant_id: UUID) -> None:
        """Mark every role of the tenant inactive."""
        self._inactive_tenants.add(tenant_id)

    def activate_tenant(self, tenant_id: UUID) -> None:
        """Undo ``deactivate_tenant``."""
        self._inactive_tenants.discard(tenant_id)

    def build(self) -> RoleSnapshot:
        """Freeze the current state into a snapshot."""
        return RoleSnapshot(
            roles=_freeze(self._roles),
            grants=_freeze(
                {role_id: frozenset(grants.values()) for role_id, grants in self._grants.items()}
            ),
            user_roles=_freeze(
                {user_id: frozenset(role_ids) for user_id, role_ids in self._user_roles.items()}
            ),
            inactive_tenants=frozenset(self._inactive_tenants),
        )

    def _require_role(self, role_id: UUID) -> None:
        if role_id not in self._roles:
            raise SnapshotIntegrityError("Unknown role", role_id=role_id)


class InMemoryRoleStore:
    """Role store backed by an immutable snapshot.

    Updates replace the whole snapshot with a single reference assignment.
    Each lookup reads the reference once; :meth:`view` pins the snapshot
    current when it is opened, so a decision taken through the view never
    mixes the old and the new snapshot.
    """

    def __init__(self, snapshot: RoleSnapshot | None = None):
        self._snapshot = snapshot or RoleSnapshot()

    @property
    def snapshot(self) -> RoleSnapshot:
        """The snapshot currently served."""
        return self._snapshot

    def replace_snapshot(self, snapshot: RoleSnapshot) -> None:
        """Atomically publish a new snapshot."""
        self._snapshot = snapshot

    def update(self, builder: RoleSnapshotBuilder) -> RoleSnapshot:
        """Publish the builder's state and return the new snapshot."""
        snapshot = builder.build()
        self.replace_snapshot(snapshot)
        return snapshot

    def view(self) -> AbstractAsyncContextManager["InMemoryRoleStore"]:
        """Open a view pinned to the current snapshot."""
        return nullcontext(InMemoryRoleStore(self._snapshot))

    async def get_roles_for_user(self, user_id: UUID) -> frozenset[UUID]:
        """Return the ids of every role assigned to the user."""
        return self._snapshot.user_roles.get(user_id, frozenset())

    async def get_role(self, role_id: UUID) -> Role | None:
        """Return the role record, or None."""
        return self._snapshot.roles.get(role_id)

    async def get_grants(self, role_id: UUID) -> frozenset[PermissionGrant]:
        """Return every grant attached to the role."""
        return self._snapshot.grants.get(role_id, frozenset())

    async def is_role_active(self, role_id: UUID) -> bool:
        """Whether the role is active and belongs to an active tenant."""
        return self._snapshot.role_is_active(role_id)
