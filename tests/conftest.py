"""Pytest fixtures for Warden tests."""

from collections.abc import AsyncGenerator
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
import structlog
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from warden.authz.catalog import DEFAULT_MODULES, PermissionCatalog
from warden.authz.engine import AuthorizationEngine
from warden.authz.resolver import PermissionResolver
from warden.authz.store import InMemoryRoleStore, RoleSnapshotBuilder
from warden.authz.types import Principal, Scope
from warden.config.settings import Settings
from warden.db.models.base import Base


# =============================================================================
# Structlog Configuration Fixture
# =============================================================================


@pytest.fixture(scope="function", autouse=True)
def reset_structlog_after_test():
    """Reset structlog configuration after each test.

    This ensures tests that modify structlog global state
    don't affect other tests.
    """
    yield
    structlog.reset_defaults()
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


# =============================================================================
# Authorization fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Create settings for testing."""
    return Settings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        ENVIRONMENT="test",
        DEBUG=True,
        log_level="DEBUG",
        role_store_timeout_seconds=0.2,
        role_cache_enabled=False,
    )


@pytest.fixture
def catalog() -> PermissionCatalog:
    """The default permission catalog."""
    return PermissionCatalog.from_modules(DEFAULT_MODULES)


@pytest.fixture
def tenant_a() -> UUID:
    return uuid4()


@pytest.fixture
def tenant_b() -> UUID:
    return uuid4()


@pytest.fixture
def teacher_user() -> UUID:
    return uuid4()


@pytest.fixture
def admin_user() -> UUID:
    return uuid4()


@pytest.fixture
def school_builder(
    tenant_a: UUID, teacher_user: UUID, admin_user: UUID
) -> RoleSnapshotBuilder:
    """A tenant with a Teacher role and a system Admin role.

    - Teacher (tenant_a): students.read own, attendance_students.create own
    - Admin (system): students.* full, user_management.read full
    """
    builder = RoleSnapshotBuilder()

    teacher = builder.add_role("Teacher", tenant_id=tenant_a)
    builder.grant(teacher.role_id, "students", "read", Scope.OWN)
    builder.grant(teacher.role_id, "attendance_students", "create", Scope.OWN)
    builder.assign(teacher_user, teacher.role_id)

    admin = builder.add_role("Admin")
    for action in ("create", "read", "update", "delete"):
        builder.grant(admin.role_id, "students", action, Scope.FULL)
    builder.grant(admin.role_id, "user_management", "read", Scope.FULL)
    builder.assign(admin_user, admin.role_id)

    return builder


@pytest.fixture
def role_store(school_builder: RoleSnapshotBuilder) -> InMemoryRoleStore:
    return InMemoryRoleStore(school_builder.build())


@pytest.fixture
def resolver(role_store: InMemoryRoleStore, catalog: PermissionCatalog) -> PermissionResolver:
    return PermissionResolver(role_store, catalog)


@pytest.fixture
def engine(
    resolver: PermissionResolver,
    catalog: PermissionCatalog,
    test_settings: Settings,
) -> AuthorizationEngine:
    return AuthorizationEngine(resolver, catalog, settings=test_settings)


@pytest.fixture
def teacher_principal(tenant_a: UUID, teacher_user: UUID) -> Principal:
    return Principal(tenant_id=tenant_a, user_id=teacher_user)


@pytest.fixture
def admin_principal(tenant_a: UUID, admin_user: UUID) -> Principal:
    return Principal(tenant_id=tenant_a, user_id=admin_user)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest_asyncio.fixture
async def test_engine():
    """Create a test database engine with all tables."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def sessionmaker(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(
    sessionmaker: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with sessionmaker() as session:
        yield session
        await session.rollback()


# =============================================================================
# API fixtures
# =============================================================================

TEACHER_TOKEN = "teacher-token"
ADMIN_TOKEN = "admin-token"


@pytest.fixture
def test_app(
    test_settings: Settings,
    role_store: InMemoryRoleStore,
    catalog: PermissionCatalog,
    teacher_principal: Principal,
    admin_principal: Principal,
) -> FastAPI:
    """Create a FastAPI test application over the in-memory role store."""
    from warden.api.app import create_app
    from warden.api.middleware.auth import StaticTokenAuthenticator

    return create_app(
        settings=test_settings,
        role_store=role_store,
        catalog=catalog,
        authenticator=StaticTokenAuthenticator(
            {TEACHER_TOKEN: teacher_principal, ADMIN_TOKEN: admin_principal}
        ),
    )


@pytest_asyncio.fixture
async def test_client(test_app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for API testing.

    Runs the application lifespan so the audit emitter is started.
    """
    async with test_app.router.lifespan_context(test_app):
        async with AsyncClient(
            transport=ASGITransport(app=test_app),
            base_url="http://test",
        ) as client:
            yield client
