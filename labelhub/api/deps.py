"""
Shared FastAPI dependencies.
"""

from typing import Optional

from fastapi import Header, Request

from labelhub.services.container import Services
from labelhub.utils.exceptions import DatabaseError


def get_services(request: Request) -> Services:
    """Services built during application startup."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise DatabaseError("Services not initialized")
    return services


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """
    Identity of the calling user.

    Authentication happens upstream; the gateway forwards the verified user
    id in the X-User-Id header.
    """
    if x_user_id and x_user_id.strip():
        return x_user_id.strip()
    return None
