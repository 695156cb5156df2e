"""Authorization types and data structures.

This module defines the typed values that flow through the authorization
core: scopes, decisions, principals, roles and permission grants.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, TypeAlias
from uuid import UUID

from pydantic import BaseModel, Field


class Scope(str, Enum):
    """Breadth of a granted action.

    ``FULL`` is the top element: it implies ``OWN``.
    """

    OWN = "own"  # Restricted to records the principal owns
    FULL = "full"  # Unrestricted within the tenant

    @property
    def rank(self) -> int:
        """Ordering used when combining scopes."""
        return 2 if self is Scope.FULL else 1

    def covers(self, other: "Scope") -> bool:
        """Whether this scope grants at least as much as ``other``."""
        return self.rank >= other.rank


class DenyReason(str, Enum):
    """Reason codes attached to a denial."""

    TENANT_INACTIVE = "tenant_inactive"
    USER_INACTIVE = "user_inactive"
    NO_GRANT = "no_grant"
    UNKNOWN_OPERATION = "unknown_operation"
    STORE_UNAVAILABLE = "store_unavailable"


class TenantStatus(str, Enum):
    """Lifecycle status of a tenant."""

    ACTIVE = "active"
    INACTIVE = "inactive"


class UserStatus(str, Enum):
    """Lifecycle status of a user."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


@dataclass(frozen=True, slots=True)
class Operation:
    """A (module, action) pair, e.g. ``students.read``.

    Attributes:
        module: Resource domain (e.g., "students")
        action: Operation on the module (e.g., "read")
    """

    module: str
    action: str

    def __str__(self) -> str:
        return f"{self.module}.{self.action}"

    @classmethod
    def parse(cls, value: str) -> "Operation":
        """Parse ``module:action`` or ``module.action``.

        Raises:
            ValueError: If the value has no separator or an empty part
        """
        for separator in (":", "."):
            module, sep, action = value.partition(separator)
            if sep:
                break
        else:
            raise ValueError(f"Invalid operation '{value}': expected 'module:action'")

        module, action = module.strip(), action.strip()
        if not module or not action:
            raise ValueError(f"Invalid operation '{value}': expected 'module:action'")
        return cls(module=module, action=action)


@dataclass(frozen=True, slots=True)
class PermissionGrant:
    """One (module, action, scope) entry attached to a role.

    Attributes:
        module: Granted module
        action: Granted action
        scope: Breadth of the grant
    """

    module: str
    action: str
    scope: Scope

    @property
    def operation(self) -> Operation:
        """The (module, action) this grant applies to."""
        return Operation(self.module, self.action)


@dataclass(frozen=True, slots=True)
class Role:
    """A named bundle of permissions.

    Attributes:
        role_id: Unique identifier
        name: Display name, unique per tenant (or among system roles)
        tenant_id: Owning tenant; None for system roles
        is_system_role: Whether the role applies across all tenants
        is_active: False for deleted roles or roles of a deactivated tenant
    """

    role_id: UUID
    name: str
    tenant_id: UUID | None = None
    is_system_role: bool = False
    is_active: bool = True

    @property
    def is_consistent(self) -> bool:
        """System roles have no tenant; tenant roles have exactly one."""
        return self.is_system_role == (self.tenant_id is None)

    def applies_to_tenant(self, tenant_id: UUID | None) -> bool:
        """Whether grants of this role may be evaluated under ``tenant_id``."""
        if self.is_system_role:
            return True
        return tenant_id is not None and self.tenant_id == tenant_id


class Principal(BaseModel):
    """The authenticated identity making a request.

    Produced by the upstream authentication collaborator. ``role_ids`` are
    the roles the credential claimed at issue time; decisions always use the
    role store so role changes apply without re-authentication.
    """

    tenant_id: UUID
    user_id: UUID
    role_ids: frozenset[UUID] = Field(default_factory=frozenset)
    tenant_status: TenantStatus = TenantStatus.ACTIVE
    user_status: UserStatus = UserStatus.ACTIVE

    model_config = {"frozen": True}


@dataclass(frozen=True, slots=True)
class Allow:
    """Permit the operation with the resolved scope.

    Attributes:
        scope: Resolved scope
        owner_id: The principal's user id when scope is OWN, else None
    """

    scope: Scope
    owner_id: UUID | None = None

    allowed: ClassVar[bool] = True

    def to_dict(self) -> dict[str, str]:
        """Serialize for the data-access collaborator."""
        if self.scope is Scope.OWN:
            return {"scope": self.scope.value, "owner_id": str(self.owner_id)}
        return {"scope": self.scope.value}


@dataclass(frozen=True, slots=True)
class Deny:
    """Refuse the operation.

    Attributes:
        reason: Why the operation was refused
    """

    reason: DenyReason

    allowed: ClassVar[bool] = False

    def to_dict(self) -> dict[str, str]:
        """Serialize for server-side logs and audit."""
        return {"reason": self.reason.value}


Decision: TypeAlias = Allow | Deny

EffectivePermissions: TypeAlias = Mapping[Operation, Scope]
