"""
Main API router
"""
from fastapi import APIRouter

from hr_access.api.v1 import (
    health,
    version,
    rbac,
    roles,
    maintenance,
)

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(version.router, tags=["version"])
api_router.include_router(rbac.router, prefix="/rbac", tags=["rbac"])
api_router.include_router(roles.router, prefix="/roles", tags=["roles"])
api_router.include_router(maintenance.router, prefix="/maintenance", tags=["maintenance"])
