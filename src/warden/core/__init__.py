"""Core services and utilities for Warden."""

from .audit import AuditLogger
from .context import (
    RequestContext,
    create_context,
    get_current_context,
    get_current_context_or_none,
    request_context,
    reset_context,
    set_context,
)
from .exceptions import (
    AccessDeniedError,
    AuthenticationError,
    ContextNotSetError,
    RoleStoreError,
    RoleStoreTimeoutError,
    RoleStoreUnavailableError,
    SnapshotIntegrityError,
)

__all__ = [
    # Audit
    "AuditLogger",
    # Context
    "RequestContext",
    "create_context",
    "get_current_context",
    "get_current_context_or_none",
    "request_context",
    "reset_context",
    "set_context",
    # Exceptions
    "AccessDeniedError",
    "AuthenticationError",
    "ContextNotSetError",
    "RoleStoreError",
    "RoleStoreTimeoutError",
    "RoleStoreUnavailableError",
    "SnapshotIntegrityError",
]
