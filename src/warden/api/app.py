"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from warden import __version__
from warden.api.dependencies import DECLARED_OPERATIONS
from warden.api.middleware import (
    AuthenticationMiddleware,
    Authenticator,
    ErrorHandlingMiddleware,
    RequestContextMiddleware,
    RequestLoggingMiddleware,
    StaticTokenAuthenticator,
)
from warden.api.routers import health_router, v1_router
from warden.authz.audit import AuditEmitter, AuditSink, DatabaseAuditSink, LoggingAuditSink
from warden.authz.cache import CachingRoleStore, RoleCacheConfig
from warden.authz.catalog import PermissionCatalog, get_catalog
from warden.authz.engine import AuthorizationEngine
from warden.authz.resolver import PermissionResolver
from warden.authz.routes import RoutePermissionMap
from warden.authz.store import RoleStore
from warden.config.settings import Settings, get_settings
from warden.core.logging import get_logger, setup_logging
from warden.observability import get_metrics_manager

logger = get_logger("warden.api")


def create_app(
    settings: Settings | None = None,
    *,
    role_store: RoleStore | None = None,
    authenticator: Authenticator | None = None,
    audit_sink: AuditSink | None = None,
    catalog: PermissionCatalog | None = None,
    route_map: RoutePermissionMap | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings override (useful for testing)
        role_store: Role store; defaults to the SQL store on DATABASE_URL
        authenticator: Resolves Bearer tokens to principals
        audit_sink: Audit destination; defaults to the structured log
        catalog: Permission catalog; defaults to the process-wide catalog
        route_map: UI route map; defaults to the built-in routes

    Returns:
        Configured FastAPI application

    Example:
        # Run with uvicorn
        uvicorn warden.api.app:create_app --factory
    """
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="Warden API",
        description="Role-based authorization service",
        version=__version__,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
        lifespan=_lifespan,
    )

    app.state.settings = settings
    app.state.owns_database = role_store is None or (
        settings.audit_enabled and audit_sink is None and settings.audit_sink == "database"
    )
    if role_store is None:
        from warden.db.config import get_sessionmaker
        from warden.db.role_store import SqlRoleStore

        role_store = SqlRoleStore(get_sessionmaker(settings))

    if settings.role_cache_enabled:
        role_store = CachingRoleStore(role_store, RoleCacheConfig.from_settings(settings))

    catalog = catalog or get_catalog()
    app.state.audit_emitter = (
        AuditEmitter(
            audit_sink or _default_audit_sink(settings),
            max_queue_size=settings.audit_queue_size,
        )
        if settings.audit_enabled
        else None
    )
    app.state.role_store = role_store
    app.state.engine = AuthorizationEngine(
        PermissionResolver(role_store, catalog),
        catalog,
        audit=app.state.audit_emitter,
        settings=settings,
    )
    app.state.route_map = route_map or RoutePermissionMap()
    app.state.authenticator = authenticator or StaticTokenAuthenticator()

    _configure_middleware(app)
    _configure_routers(app)

    return app


def _default_audit_sink(settings: Settings) -> AuditSink:
    if settings.audit_sink == "database":
        from warden.db.config import get_sessionmaker

        return DatabaseAuditSink(get_sessionmaker(settings))
    return LoggingAuditSink()


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Validates declared operations against the catalog, then runs the audit
    emitter for the lifetime of the application.
    """
    settings: Settings = app.state.settings
    setup_logging(settings.log_level, json_format=settings.ENVIRONMENT == "production")
    logger.info("warden_api_starting", environment=settings.ENVIRONMENT)

    get_metrics_manager().initialize(
        service_name="warden",
        service_version=__version__,
        environment=settings.ENVIRONMENT,
    )

    catalog = app.state.engine.catalog
    _validate_operations(app, catalog)

    if app.state.owns_database:
        await _check_database(settings)

    emitter: AuditEmitter | None = app.state.audit_emitter
    if emitter is not None:
        await emitter.start()

    yield

    logger.info("warden_api_stopping")
    if emitter is not None:
        await emitter.stop()

    if app.state.owns_database:
        from warden.db.config import close_db

        await close_db()


async def _check_database(settings: Settings) -> None:
    """Verify the database at startup.

    An unreachable database does not stop the service: decisions fail closed
    with store_unavailable until it recovers.
    """
    from warden.db.config import init_db

    try:
        await init_db(create_schema=settings.ENVIRONMENT in ("development", "test"))
    except (SQLAlchemyError, OSError) as e:
        logger.warning("database_unavailable_at_startup", error_type=type(e).__name__, error=str(e))


def _validate_operations(app: FastAPI, catalog: PermissionCatalog) -> None:
    """Log operations referenced by endpoints or routes but missing from the catalog.

    Such operations are always denied.
    """
    for operation in catalog.validate_operations(sorted(DECLARED_OPERATIONS, key=str)):
        logger.error("unknown_operation_declared", operation=str(operation))

    for route in app.state.route_map.validate(catalog):
        logger.error(
            "unknown_operation_in_route_map",
            route=route,
            operation=str(app.state.route_map.requirement_for(route)),
        )


def _configure_middleware(app: FastAPI) -> None:
    """Configure middleware stack.

    Middleware order (outermost to innermost execution):
    1. RequestLoggingMiddleware - Logs all requests
    2. ErrorHandlingMiddleware - Converts exceptions to HTTP responses
    3. AuthenticationMiddleware - Resolves the Bearer token to a principal
    4. RequestContextMiddleware - Sets ContextVar for request context

    Note: Middleware is added in reverse order because Starlette
    processes them from last-added to first-added.
    """
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(AuthenticationMiddleware)
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestLoggingMiddleware)


def _configure_routers(app: FastAPI) -> None:
    """Configure API routers."""
    app.include_router(health_router)
    app.include_router(v1_router)
