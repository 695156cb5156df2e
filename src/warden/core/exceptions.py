"""Core exceptions for Warden authorization and request context."""

from uuid import UUID

from warden.utils.exceptions import WardenError


class ContextNotSetError(WardenError):
    """Raised when attempting to access request context that is not set.

    This error indicates a programming error - operations requiring context
    are being called outside of a request_context() context manager.
    """

    def __init__(self, message: str = "Request context is not set"):
        super().__init__(message)


class RoleStoreError(WardenError):
    """Raised when the role store cannot answer a lookup.

    The decision engine converts every RoleStoreError into a
    ``store_unavailable`` denial.

    Attributes:
        operation: The store operation that failed (e.g., "get_grants")
    """

    def __init__(self, message: str, operation: str = "unknown"):
        super().__init__(message)
        self.operation = operation

    def __str__(self) -> str:
        return f"{type(self).__name__}({self.operation}): {self.args[0]}"


class RoleStoreUnavailableError(RoleStoreError):
    """Raised when the role store backend is unreachable or failing."""

    pass


class RoleStoreTimeoutError(RoleStoreError):
    """Raised when a role store lookup exceeds its deadline."""

    pass


class SnapshotIntegrityError(WardenError):
    """Raised when a role snapshot violates a data model invariant.

    Attributes:
        role_id: The role involved in the violation, if any
    """

    def __init__(self, message: str, role_id: UUID | str | None = None):
        super().__init__(message)
        self.role_id = role_id

    def __str__(self) -> str:
        return f"SnapshotIntegrityError: {self.args[0]} (role={self.role_id})"


class AccessDeniedError(WardenError):
    """Raised when an authorization decision is a denial.

    The reason is meant for server-side logs and audit only; it must not be
    returned to untrusted clients.

    Attributes:
        reason: The deny reason code (e.g., "no_grant")
        module: The requested module
        action: The requested action
    """

    def __init__(self, reason: str, module: str, action: str):
        super().__init__(f"Access denied to {module}.{action}")
        self.reason = reason
        self.module = module
        self.action = action

    def __str__(self) -> str:
        return f"AccessDeniedError: {self.args[0]} (reason={self.reason})"


class AuthenticationError(WardenError):
    """Raised when authentication fails.

    Attributes:
        reason: The specific reason authentication failed
    """

    def __init__(self, reason: str = "Authentication failed"):
        super().__init__(reason)
        self.reason = reason

    def __str__(self) -> str:
        return f"AuthenticationError: {self.args[0]}"
