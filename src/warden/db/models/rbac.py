"""Tenant, user and role tables read by the SQL role store.

These tables are owned by the surrounding application; the authorization
core only reads them.
"""

from uuid import UUID, uuid4

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, PortableUUID, TimestampMixin


class Tenant(TimestampMixin, Base):
    """An isolated customer organization."""

    __tablename__ = "tenants"

    tenant_id: Mapped[UUID] = mapped_column(PortableUUID(), primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    def __repr__(self) -> str:
        return f"<Tenant(id={self.tenant_id}, name={self.name}, status={self.status})>"


class User(TimestampMixin, Base):
    """A principal within a tenant."""

    __tablename__ = "users"

    user_id: Mapped[UUID] = mapped_column(PortableUUID(), primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        PortableUUID(), ForeignKey("tenants.tenant_id"), nullable=False
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    __table_args__ = (Index("idx_users_tenant", "tenant_id"),)

    def __repr__(self) -> str:
        return f"<User(id={self.user_id}, tenant={self.tenant_id}, status={self.status})>"


class RoleRecord(TimestampMixin, Base):
    """A named bundle of permissions; ``tenant_id`` is NULL for system roles."""

    __tablename__ = "roles"

    role_id: Mapped[UUID] = mapped_column(PortableUUID(), primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID | None] = mapped_column(
        PortableUUID(), ForeignKey("tenants.tenant_id"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_system_role: Mapped[bool] = mapped_column(default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_roles_tenant_name"),
        # NULL tenant ids never collide in a unique constraint
        Index(
            "uq_roles_system_name",
            "name",
            unique=True,
            postgresql_where=text("tenant_id IS NULL"),
            sqlite_where=text("tenant_id IS NULL"),
        ),
    )

    def __repr__(self) -> str:
        return f"<RoleRecord(id={self.role_id}, name={self.name}, tenant={self.tenant_id})>"


class RolePermission(Base):
    """One (module, action, scope) grant attached to a role."""

    __tablename__ = "role_permissions"

    id: Mapped[UUID] = mapped_column(PortableUUID(), primary_key=True, default=uuid4)
    role_id: Mapped[UUID] = mapped_column(
        PortableUUID(), ForeignKey("roles.role_id", ondelete="CASCADE"), nullable=False
    )
    module: Mapped[str] = mapped_column(String(100), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    scope: Mapped[str] = mapped_column(String(20), nullable=False)

    __table_args__ = (
        UniqueConstraint("role_id", "module", "action", name="uq_role_permissions_grant"),
    )


class UserRole(Base):
    """Assignment of a role to a user."""

    __tablename__ = "user_roles"

    user_id: Mapped[UUID] = mapped_column(
        PortableUUID(), ForeignKey("users.user_id", ondelete="CASCADE"), primary_key=True
    )
    role_id: Mapped[UUID] = mapped_column(
        PortableUUID(), ForeignKey("roles.role_id", ondelete="CASCADE"), primary_key=True
    )
