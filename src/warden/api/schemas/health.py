"""Health check response schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"


class HealthResponse(BaseModel):
    """Liveness report.

    DEGRADED means decisions are served but audit events are not delivered.
    """

    status: HealthStatus
    version: str
    timestamp: datetime
    audit_running: bool = Field(default=False, description="Audit worker is delivering events")
    audit_dropped: int = Field(default=0, description="Audit events dropped since startup")
