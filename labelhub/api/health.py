"""
Health check API endpoints.
Provides service health monitoring and dependency status.
"""

from fastapi import APIRouter, Depends
from datetime import datetime, timezone
from typing import Dict, Any

from labelhub.api.deps import get_services
from labelhub.models.api import HealthResponse
from labelhub.config import settings
from labelhub.services.container import Services
from labelhub.utils.logging import logger


router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """
    Health check for the service and its dependencies.

    Checks connectivity and status of:
    - MongoDB database
    - Blob store (GridFS or local filesystem)
    """
    logger.debug("Performing health check")

    checks = await services.health()
    dependencies = {name: check.get("status", "unknown") for name, check in checks.items()}

    errors = [
        f"{name}: {check['error']}"
        for name, check in checks.items()
        if check.get("status") != "healthy" and check.get("error")
    ]
    overall_healthy = all(status == "healthy" for status in dependencies.values())

    response = {
        "status": "healthy" if overall_healthy else "unhealthy",
        "timestamp": datetime.now(timezone.utc),
        "version": settings.api_version,
        "dependencies": dependencies
    }

    if errors:
        response["errors"] = errors

    if overall_healthy:
        logger.debug("Health check passed")
    else:
        logger.warning(f"Health check failed: {errors}")

    return response
