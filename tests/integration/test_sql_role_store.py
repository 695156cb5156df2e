"""Integration tests for SqlRoleStore against SQLite."""

import asyncio
from unittest.mock import MagicMock
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from warden.authz.engine import AuthorizationEngine
from warden.authz.resolver import PermissionResolver
from warden.authz.store import load_user_roles
from warden.authz.types import Allow, Deny, DenyReason, PermissionGrant, Principal, Scope
from warden.core.exceptions import RoleStoreTimeoutError, RoleStoreUnavailableError
from warden.db.models import RolePermission, RoleRecord, Tenant, User, UserRole
from warden.db.role_store import SqlRoleStore


@pytest_asyncio.fixture
async def seeded(sessionmaker: async_sessionmaker[AsyncSession]) -> dict[str, UUID]:
    """Seed one school with a Teacher role and a system Admin role."""
    ids = {
        "tenant": uuid4(),
        "closed_tenant": uuid4(),
        "teacher": uuid4(),
        "admin": uuid4(),
        "teacher_role": uuid4(),
        "admin_role": uuid4(),
        "closed_role": uuid4(),
        "retired_role": uuid4(),
    }

    async with sessionmaker() as session:
        session.add_all(
            [
                Tenant(tenant_id=ids["tenant"], name="Springfield Elementary"),
                Tenant(tenant_id=ids["closed_tenant"], name="Shelbyville", status="suspended"),
            ]
        )
        await session.flush()
        session.add_all(
            [
                User(user_id=ids["teacher"], tenant_id=ids["tenant"], email="edna@example.org"),
                User(user_id=ids["admin"], tenant_id=ids["tenant"], email="seymour@example.org"),
                RoleRecord(role_id=ids["teacher_role"], tenant_id=ids["tenant"], name="Teacher"),
                RoleRecord(role_id=ids["admin_role"], name="Admin", is_system_role=True),
                RoleRecord(
                    role_id=ids["closed_role"], tenant_id=ids["closed_tenant"], name="Teacher"
                ),
                RoleRecord(
                    role_id=ids["retired_role"],
                    tenant_id=ids["tenant"],
                    name="Substitute",
                    is_active=False,
                ),
            ]
        )
        await session.flush()
        session.add_all(
            [
                RolePermission(
                    role_id=ids["teacher_role"], module="students", action="read", scope="own"
                ),
                RolePermission(
                    role_id=ids["teacher_role"],
                    module="attendance_students",
                    action="create",
                    scope="own",
                ),
                RolePermission(
                    role_id=ids["admin_role"], module="students", action="read", scope="full"
                ),
                RolePermission(
                    role_id=ids["admin_role"], module="students", action="delete", scope="full"
                ),
                UserRole(user_id=ids["teacher"], role_id=ids["teacher_role"]),
                UserRole(user_id=ids["teacher"], role_id=ids["retired_role"]),
                UserRole(user_id=ids["admin"], role_id=ids["admin_role"]),
            ]
        )
        await session.commit()

    return ids


@pytest.fixture
def store(sessionmaker: async_sessionmaker[AsyncSession]) -> SqlRoleStore:
    return SqlRoleStore(sessionmaker)


@pytest.mark.asyncio
class TestLookups:
    """Tests for the four RoleStore lookups."""

    async def test_roles_for_user(self, store: SqlRoleStore, seeded: dict[str, UUID]):
        roles = await store.get_roles_for_user(seeded["teacher"])

        assert roles == frozenset({seeded["teacher_role"], seeded["retired_role"]})

    async def test_roles_for_unknown_user(self, store: SqlRoleStore, seeded: dict[str, UUID]):
        assert await store.get_roles_for_user(uuid4()) == frozenset()

    async def test_get_role(self, store: SqlRoleStore, seeded: dict[str, UUID]):
        role = await store.get_role(seeded["admin_role"])

        assert role is not None
        assert role.name == "Admin"
        assert role.tenant_id is None
        assert role.is_system_role is True
        assert await store.get_role(uuid4()) is None

    async def test_get_grants(self, store: SqlRoleStore, seeded: dict[str, UUID]):
        grants = await store.get_grants(seeded["teacher_role"])

        assert grants == frozenset(
            {
                PermissionGrant("students", "read", Scope.OWN),
                PermissionGrant("attendance_students", "create", Scope.OWN),
            }
        )

    async def test_unknown_scope_is_skipped(
        self,
        store: SqlRoleStore,
        seeded: dict[str, UUID],
        sessionmaker: async_sessionmaker[AsyncSession],
    ):
        async with sessionmaker() as session:
            session.add(
                RolePermission(
                    role_id=seeded["admin_role"], module="fees", action="read", scope="everything"
                )
            )
            await session.commit()

        grants = await store.get_grants(seeded["admin_role"])

        assert {g.module for g in grants} == {"students"}

    async def test_role_activity(self, store: SqlRoleStore, seeded: dict[str, UUID]):
        assert await store.is_role_active(seeded["teacher_role"]) is True
        assert await store.is_role_active(seeded["admin_role"]) is True
        assert await store.is_role_active(seeded["retired_role"]) is False
        assert await store.is_role_active(seeded["closed_role"]) is False
        assert await store.is_role_active(uuid4()) is False


@pytest.mark.asyncio
class TestView:
    """Lookups through one view share a session."""

    async def test_user_roles_through_view(self, store: SqlRoleStore, seeded: dict[str, UUID]):
        async with store.view() as view:
            user_roles = await load_user_roles(view, seeded["teacher"])

        assert user_roles.role_ids == frozenset({seeded["teacher_role"], seeded["retired_role"]})
        assert user_roles.active == frozenset({seeded["teacher_role"]})
        assert PermissionGrant("students", "read", Scope.OWN) in user_roles.grants[
            seeded["teacher_role"]
        ]

    async def test_concurrent_lookups_in_one_view(
        self, store: SqlRoleStore, seeded: dict[str, UUID]
    ):
        async with store.view() as view:
            role, active, grants = await asyncio.gather(
                view.get_role(seeded["admin_role"]),
                view.is_role_active(seeded["closed_role"]),
                view.get_grants(seeded["admin_role"]),
            )

        assert role is not None and role.name == "Admin"
        assert active is False
        assert {g.module for g in grants} == {"students"}

    async def test_view_failure_surfaces_as_unavailable(self):
        engine = create_async_engine("sqlite+aiosqlite:///:memory:")
        store = SqlRoleStore(async_sessionmaker(engine, class_=AsyncSession))

        try:
            with pytest.raises(RoleStoreUnavailableError):
                async with store.view() as view:
                    await view.get_roles_for_user(uuid4())
        finally:
            await engine.dispose()


@pytest.mark.asyncio
class TestConstraints:
    """Schema constraints on roles."""

    async def test_system_role_names_unique(
        self, seeded: dict[str, UUID], sessionmaker: async_sessionmaker[AsyncSession]
    ):
        async with sessionmaker() as session:
            session.add(RoleRecord(name="Admin", is_system_role=True))
            with pytest.raises(IntegrityError):
                await session.commit()

    async def test_same_name_in_other_tenant_allowed(
        self, seeded: dict[str, UUID], sessionmaker: async_sessionmaker[AsyncSession]
    ):
        async with sessionmaker() as session:
            session.add(RoleRecord(tenant_id=seeded["closed_tenant"], name="Substitute"))
            await session.commit()


@pytest.mark.asyncio
class TestFailures:
    """Database errors surface as RoleStoreUnavailableError."""

    async def test_missing_schema(self):
        engine = create_async_engine("sqlite+aiosqlite:///:memory:")
        store = SqlRoleStore(async_sessionmaker(engine, class_=AsyncSession))

        try:
            with pytest.raises(RoleStoreUnavailableError) as exc_info:
                await store.get_roles_for_user(uuid4())
        finally:
            await engine.dispose()

        assert exc_info.value.operation == "get_roles_for_user"

    async def test_pool_timeout(self):
        store = SqlRoleStore(MagicMock(side_effect=PoolTimeoutError("QueuePool limit reached")))

        with pytest.raises(RoleStoreTimeoutError) as exc_info:
            await store.get_grants(uuid4())

        assert exc_info.value.operation == "get_grants"


@pytest.mark.asyncio
class TestDecisionsOverSql:
    """AuthorizationEngine decisions backed by the SQL store."""

    @pytest.fixture
    def sql_engine(self, store, catalog, test_settings) -> AuthorizationEngine:
        return AuthorizationEngine(PermissionResolver(store, catalog), catalog, settings=test_settings)

    async def test_teacher_reads_own_students(self, sql_engine, seeded):
        principal = Principal(tenant_id=seeded["tenant"], user_id=seeded["teacher"])

        decision = await sql_engine.authorize(principal, "students", "read")

        assert decision == Allow(Scope.OWN, owner_id=seeded["teacher"])

    async def test_teacher_cannot_delete(self, sql_engine, seeded):
        principal = Principal(tenant_id=seeded["tenant"], user_id=seeded["teacher"])

        decision = await sql_engine.authorize(principal, "students", "delete")

        assert decision == Deny(DenyReason.NO_GRANT)

    async def test_system_admin_has_full_scope(self, sql_engine, seeded):
        principal = Principal(tenant_id=seeded["tenant"], user_id=seeded["admin"])

        decision = await sql_engine.authorize(principal, "students", "delete")

        assert decision == Allow(Scope.FULL)

    async def test_effective_permissions(self, sql_engine, seeded):
        principal = Principal(tenant_id=seeded["tenant"], user_id=seeded["teacher"])

        effective = await sql_engine.effective_permissions(principal)

        assert {str(op): scope for op, scope in effective.items()} == {
            "students.read": Scope.OWN,
            "attendance_students.create": Scope.OWN,
        }
