"""
Request-scoped dependencies shared across routers.
"""

import logging
import secrets

from fastapi import Header, HTTPException, Request

from radar import settings

logger = logging.getLogger("radar-server")


def get_services(request: Request):
    """The RadarServices container built at app creation."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return services


def require_admin(request: Request, authorization: str = Header(default="")):
    """
    Bearer-token check for staff endpoints.

    Disabled when no token is configured (local development).
    """
    expected = getattr(request.app.state, "admin_token", settings.ADMIN_API_TOKEN)
    if not expected:
        return
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not secrets.compare_digest(authorization[len("Bearer "):], expected):
        logger.warning("Rejected admin request with invalid token")
        raise HTTPException(status_code=403, detail="Forbidden")
