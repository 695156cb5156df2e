"""Error envelope returned by every failing API call."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field


class ErrorCode(str, Enum):
    """Machine-readable error codes.

    Authorization denials always surface as FORBIDDEN (or SERVICE_UNAVAILABLE
    when the role store is down); the deny reason is never exposed.
    """

    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    VALIDATION_ERROR = "validation_error"
    INTERNAL_ERROR = "internal_error"
    SERVICE_UNAVAILABLE = "service_unavailable"


class APIError(BaseModel):
    """Standardized API error response format."""

    error_code: ErrorCode = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] | None = Field(default=None, description="Additional error context")
    request_id: str = Field(..., description="Request ID for tracing")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="When the error occurred"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "error_code": "forbidden",
                "message": "Access denied",
                "details": None,
                "request_id": "6f1c2f7e-3b1d-4a8e-9a53-0c8f1b0d9e21",
                "timestamp": "2026-01-30T12:00:00Z",
            }
        }
    }

    def to_response(
        self, status_code: int, headers: dict[str, str] | None = None
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status_code,
            content=self.model_dump(mode="json"),
            headers=headers,
        )
