"""Role-based authorization core.

Answers "may principal P perform action A on module M, and with what
scope?" from roles stored in a :class:`RoleStore`.
"""

from warden.authz.audit import (
    AuditEmitter,
    AuditSink,
    AuthorizationAuditEvent,
    DatabaseAuditSink,
    LoggingAuditSink,
)
from warden.authz.cache import CacheStats, CachingRoleStore, RoleCacheConfig
from warden.authz.catalog import (
    DEFAULT_ACTIONS,
    DEFAULT_MODULES,
    ModuleActions,
    PermissionCatalog,
    get_catalog,
)
from warden.authz.engine import AuthorizationEngine
from warden.authz.resolver import PermissionResolver, combine_scopes
from warden.authz.routes import AUTHENTICATED, PUBLIC, RoutePermissionMap
from warden.authz.scope_filter import (
    FullAccess,
    OwnAccess,
    ScopeFilter,
    apply_scope_filter,
    scope_filter_for,
)
from warden.authz.store import (
    InMemoryRoleStore,
    RoleSnapshot,
    RoleSnapshotBuilder,
    RoleStore,
    UserRoles,
    load_user_roles,
)
from warden.authz.types import (
    Allow,
    Decision,
    Deny,
    DenyReason,
    EffectivePermissions,
    Operation,
    PermissionGrant,
    Principal,
    Role,
    Scope,
    TenantStatus,
    UserStatus,
)

__all__ = [
    # Types
    "Allow",
    "Decision",
    "Deny",
    "DenyReason",
    "EffectivePermissions",
    "Operation",
    "PermissionGrant",
    "Principal",
    "Role",
    "Scope",
    "TenantStatus",
    "UserStatus",
    # Catalog
    "DEFAULT_ACTIONS",
    "DEFAULT_MODULES",
    "ModuleActions",
    "PermissionCatalog",
    "get_catalog",
    # Store
    "InMemoryRoleStore",
    "RoleSnapshot",
    "RoleSnapshotBuilder",
    "RoleStore",
    "UserRoles",
    "load_user_roles",
    "CacheStats",
    "CachingRoleStore",
    "RoleCacheConfig",
    # Decisions
    "AuthorizationEngine",
    "PermissionResolver",
    "combine_scopes",
    # Scope filters
    "FullAccess",
    "OwnAccess",
    "ScopeFilter",
    "apply_scope_filter",
    "scope_filter_for",
    # Routes
    "AUTHENTICATED",
    "PUBLIC",
    "RoutePermissionMap",
    # Audit
    "AuditEmitter",
    "AuditSink",
    "AuthorizationAuditEvent",
    "DatabaseAuditSink",
    "LoggingAuditSink",
]
