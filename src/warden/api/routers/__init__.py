"""API routers."""

from fastapi import APIRouter

from .health import router as health_router
from .permissions import router as permissions_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(permissions_router)

__all__ = ["health_router", "permissions_router", "v1_router"]
