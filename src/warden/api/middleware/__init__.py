"""API middleware components."""

from .auth import AuthenticationMiddleware, Authenticator, StaticTokenAuthenticator
from .context import RequestContextMiddleware
from .errors import ErrorHandlingMiddleware
from .logging import RequestLoggingMiddleware

__all__ = [
    "AuthenticationMiddleware",
    "Authenticator",
    "ErrorHandlingMiddleware",
    "RequestContextMiddleware",
    "RequestLoggingMiddleware",
    "StaticTokenAuthenticator",
]
