"""Role store backed by the relational RBAC tables.

Every lookup opens a short-lived session; database failures surface as
:class:`RoleStoreUnavailableError` (:class:`RoleStoreTimeoutError` when the
connection pool is exhausted) so the decision engine can fail closed.
:meth:`SqlRoleStore.view` runs all lookups of one decision in a single
session and transaction instead. Wrap this store in
:class:`~warden.authz.cache.CachingRoleStore` to bound database load.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager, nullcontext
from typing import TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from warden.authz.types import PermissionGrant, Role, Scope, TenantStatus
from warden.core.exceptions import RoleStoreTimeoutError, RoleStoreUnavailableError
from warden.core.logging import get_logger, log_external_call
from warden.db.models.rbac import RolePermission, RoleRecord, Tenant, UserRole
from warden.observability.metrics import record_malformed_grant

logger = get_logger(__name__)

T = TypeVar("T")


class SqlRoleStore:
    """RoleStore implementation over SQLAlchemy async sessions."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self.sessionmaker = sessionmaker

    @asynccontextmanager
    async def view(self) -> AsyncIterator["SqlRoleStore"]:
        """Yield a store running every lookup in one shared transaction.

        On PostgreSQL the transaction is REPEATABLE READ, so all lookups see
        one snapshot of the tables. Other databases use their default
        isolation level.
        """
        async with self.sessionmaker() as session:
            yield _SessionRoleStore(session)

    async def get_roles_for_user(self, user_id: UUID) -> frozenset[UUID]:
        async def query(session: AsyncSession) -> frozenset[UUID]:
            result = await session.execute(
                select(UserRole.role_id).where(UserRole.user_id == user_id)
            )
            return frozenset(result.scalars().all())

        return await self._run("get_roles_for_user", query)

    async def get_role(self, role_id: UUID) -> Role | None:
        async def query(session: AsyncSession) -> Role | None:
            record = await session.get(RoleRecord, role_id)
            if record is None:
                return None
            return Role(
                role_id=record.role_id,
                name=record.name,
                tenant_id=record.tenant_id,
                is_system_role=record.is_system_role,
                is_active=record.is_active,
            )

        return await self._run("get_role", query)

    async def get_grants(self, role_id: UUID) -> frozenset[PermissionGrant]:
        async def query(session: AsyncSession) -> frozenset[PermissionGrant]:
            result = await session.execute(
                select(RolePermission).where(RolePermission.role_id == role_id)
            )
            grants = set()
            for row in result.scalars().all():
                try:
                    scope = Scope(row.scope)
                except ValueError:
                    record_malformed_grant("unknown_scope")
                    logger.warning(
                        "malformed_grant_ignored",
                        role_id=str(role_id),
                        module=row.module,
                        action=row.action,
                        scope=row.scope,
                    )
                    continue
                grants.add(PermissionGrant(module=row.module, action=row.action, scope=scope))
            return frozenset(grants)

        return await self._run("get_grants", query)

    async def is_role_active(self, role_id: UUID) -> bool:
        async def query(session: AsyncSession) -> bool:
            result = await session.execute(
                select(RoleRecord.is_active, Tenant.status)
                .outerjoin(Tenant, RoleRecord.tenant_id == Tenant.tenant_id)
                .where(RoleRecord.role_id == role_id)
            )
            row = result.one_or_none()
            if row is None:
                return False
            is_active, tenant_status = row
            if not is_active:
                return False
            # System roles have no tenant row
            return tenant_status is None or tenant_status == TenantStatus.ACTIVE.value

        return await self._run("is_role_active", query)

    async def _run(self, operation: str, query: Callable[[AsyncSession], Awaitable[T]]) -> T:
        start_time = time.perf_counter()
        try:
            async with self._session() as session:
                result = await query(session)
        except SQLAlchemyError as e:
            log_external_call(
                logger,
                service="role_store",
                operation=operation,
                duration_ms=(time.perf_counter() - start_time) * 1000,
                success=False,
                error=str(e),
            )
            if isinstance(e, PoolTimeoutError):
                raise RoleStoreTimeoutError(str(e), operation=operation) from e
            raise RoleStoreUnavailableError(str(e), operation=operation) from e

        log_external_call(
            logger,
            service="role_store",
            operation=operation,
            duration_ms=(time.perf_counter() - start_time) * 1000,
            success=True,
        )
        return result

    def _session(self) -> AbstractAsyncContextManager[AsyncSession]:
        return self.sessionmaker()


class _SessionRoleStore(SqlRoleStore):
    """SqlRoleStore bound to one open session.

    An AsyncSession must not run statements concurrently, so lookups are
    serialized on a lock.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self._lock = asyncio.Lock()
        self._begun = False

    def view(self) -> AbstractAsyncContextManager["SqlRoleStore"]:
        return nullcontext(self)

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        async with self._lock:
            if not self._begun:
                await self.session.connection(execution_options=self._isolation())
                self._begun = True
            yield self.session

    def _isolation(self) -> dict[str, str]:
        if self.session.get_bind().dialect.name == "postgresql":
            return {"isolation_level": "REPEATABLE READ"}
        return {}
