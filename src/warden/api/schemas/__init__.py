"""API request and response schemas."""

from .errors import APIError, ErrorCode
from .health import HealthResponse, HealthStatus
from .permissions import (
    EffectivePermissionsResponse,
    ModuleActionsResponse,
    ModuleListResponse,
    RouteAccessResponse,
)

__all__ = [
    "APIError",
    "ErrorCode",
    "HealthResponse",
    "HealthStatus",
    "EffectivePermissionsResponse",
    "ModuleActionsResponse",
    "ModuleListResponse",
    "RouteAccessResponse",
]
