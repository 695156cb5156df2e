"""Database models for Warden."""

from .audit import AuditEvent, AuditEventType, AuditSeverity
from .base import Base, PortableJSON, PortableUUID, TimestampMixin
from .rbac import RolePermission, RoleRecord, Tenant, User, UserRole

__all__ = [
    "Base",
    "PortableJSON",
    "PortableUUID",
    "TimestampMixin",
    "AuditEvent",
    "AuditEventType",
    "AuditSeverity",
    "RolePermission",
    "RoleRecord",
    "Tenant",
    "User",
    "UserRole",
]
