"""
Version and metadata endpoint
"""
from fastapi import APIRouter
from hr_access.core.config import settings

router = APIRouter()


@router.get("/version")
async def get_version():
    """
    Get application version and metadata

    Returns:
        Version information including service name, version, environment and trigger mode
    """
    return {
        "service": "hr-access-backend",
        "version": settings.VERSION or "1.0.0",
        "env": settings.APP_ENV,
        "triggerMode": settings.TRIGGER_MODE,
    }
