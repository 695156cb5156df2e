"""Authorization decision engine.

The engine is the single entry point for "may this principal perform this
operation, and with what scope?". It fails closed: a role store that errors
or misses its deadline yields ``Deny(store_unavailable)``, never an allow.

Usage:
    engine = AuthorizationEngine(resolver, catalog, audit=emitter)
    decision = await engine.authorize(principal, "students", "read")
    if isinstance(decision, Allow):
        rows = apply_scope_filter(rows, scope_filter_for(decision), owner_of)
"""

import asyncio

from warden.authz.audit import AuditEmitter, AuthorizationAuditEvent
from warden.authz.catalog import PermissionCatalog
from warden.authz.resolver import PermissionResolver
from warden.authz.types import (
    Allow,
    Decision,
    Deny,
    DenyReason,
    EffectivePermissions,
    Principal,
    Scope,
    TenantStatus,
    UserStatus,
)
from warden.config.settings import Settings, get_settings
from warden.core.exceptions import AccessDeniedError, RoleStoreError
from warden.core.logging import LogContext, get_logger
from warden.observability.metrics import observe_decision_duration, record_decision

logger = get_logger(__name__)


class AuthorizationEngine:
    """Turns (principal, module, action) into an Allow or a Deny.

    Attributes:
        resolver: Computes scopes from the role store
        catalog: Declared (module, action) pairs
        audit: Optional emitter receiving one event per decision
        timeout_seconds: Deadline for the role store lookups of one decision
    """

    def __init__(
        self,
        resolver: PermissionResolver,
        catalog: PermissionCatalog,
        audit: AuditEmitter | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.resolver = resolver
        self.catalog = catalog
        self.audit = audit
        self.timeout_seconds = settings.role_store_timeout_seconds

    async def authorize(
        self,
        principal: Principal,
        module: str,
        action: str,
        *,
        timeout: float | None = None,
    ) -> Decision:
        """Decide whether ``principal`` may perform ``module.action``.

        Args:
            principal: Authenticated identity
            module: Requested module
            action: Requested action
            timeout: Deadline override in seconds

        Returns:
            Allow with the resolved scope, or Deny with a reason

        Raises:
            asyncio.CancelledError: If the calling task is cancelled
        """
        with (
            LogContext(module=module, action=action, user_id=str(principal.user_id)),
            observe_decision_duration() as metric,
        ):
            decision = await self._decide(principal, module, action, timeout)
            metric["decision"] = "allow" if decision.allowed else "deny"

        self._record(principal, module, action, decision)
        return decision

    async def require(self, principal: Principal, module: str, action: str) -> Allow:
        """Authorize and return the Allow.

        Raises:
            AccessDeniedError: If the decision is a Deny
        """
        decision = await self.authorize(principal, module, action)
        if isinstance(decision, Deny):
            raise AccessDeniedError(decision.reason.value, module, action)
        return decision

    async def effective_permissions(
        self,
        principal: Principal,
        *,
        timeout: float | None = None,
    ) -> EffectivePermissions:
        """Every operation the principal may perform, with its scope.

        Returns an empty mapping when the principal is inactive or the role
        store could not be consulted.
        """
        if self._status_denial(principal) is not None:
            return {}

        try:
            async with asyncio.timeout(self._deadline(timeout)):
                return await self.resolver.effective_permissions(
                    principal.user_id, principal.tenant_id
                )
        except (RoleStoreError, TimeoutError) as e:
            logger.warning(
                "role_store_error",
                operation="effective_permissions",
                user_id=str(principal.user_id),
                error_type=type(e).__name__,
                error=str(e),
            )
        except Exception as e:
            logger.exception(
                "role_store_unexpected_error",
                operation="effective_permissions",
                user_id=str(principal.user_id),
                error_type=type(e).__name__,
            )
        return {}

    async def _decide(
        self,
        principal: Principal,
        module: str,
        action: str,
        timeout: float | None,
    ) -> Decision:
        denial = self._status_denial(principal)
        if denial is not None:
            return denial

        if not self.catalog.is_valid_operation(module, action):
            return Deny(DenyReason.UNKNOWN_OPERATION)

        try:
            async with asyncio.timeout(self._deadline(timeout)):
                scope = await self.resolver.resolve(
                    principal.user_id, module, action, principal.tenant_id
                )
        except (RoleStoreError, TimeoutError) as e:
            logger.warning(
                "role_store_error",
                operation=f"{module}.{action}",
                user_id=str(principal.user_id),
                error_type=type(e).__name__,
                error=str(e),
            )
            return Deny(DenyReason.STORE_UNAVAILABLE)
        except Exception as e:
            logger.exception(
                "role_store_unexpected_error",
                operation=f"{module}.{action}",
                user_id=str(principal.user_id),
                error_type=type(e).__name__,
            )
            return Deny(DenyReason.STORE_UNAVAILABLE)

        if scope is None:
            return Deny(DenyReason.NO_GRANT)
        if scope is Scope.OWN:
            return Allow(scope=scope, owner_id=principal.user_id)
        return Allow(scope=scope)

    def _deadline(self, timeout: float | None) -> float:
        return timeout if timeout is not None else self.timeout_seconds

    @staticmethod
    def _status_denial(principal: Principal) -> Deny | None:
        if principal.tenant_status is not TenantStatus.ACTIVE:
            return Deny(DenyReason.TENANT_INACTIVE)
        if principal.user_status is not UserStatus.ACTIVE:
            return Deny(DenyReason.USER_INACTIVE)
        return None

    def _record(
        self,
        principal: Principal,
        module: str,
        action: str,
        decision: Decision,
    ) -> None:
        if isinstance(decision, Allow):
            record_decision("allow", decision.scope.value)
            logger.info(
                "authz_decision",
                decision="allow",
                module=module,
                action=action,
                user_id=str(principal.user_id),
                scope=decision.scope.value,
            )
        else:
            record_decision("deny", decision.reason.value)
            logger.info(
                "authz_decision",
                decision="deny",
                module=module,
                action=action,
                user_id=str(principal.user_id),
                reason=decision.reason.value,
            )

        if self.audit is not None:
            self.audit.emit_nowait(
                AuthorizationAuditEvent.from_decision(
                    decision,
                    module=module,
                    action=action,
                    user_id=principal.user_id,
                    tenant_id=principal.tenant_id,
                )
            )
