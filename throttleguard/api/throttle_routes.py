"""
Login Throttle operator API

Read-only status for a source, engine stats, option metadata, and a
settings endpoint that applies a configuration refresh without restarting.

Endpoints require the X-Admin-Token header when ADMIN_API_TOKEN is set.
"""

import os
import secrets
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from pydantic import BaseModel, Field

from config.options import list_options
from throttleguard.middleware.login_guard import get_throttle_service
from throttleguard.services.throttle_service import ThrottleService
from throttleguard.utils.error_handler import safe_error_response

logger = logging.getLogger(__name__)


# ==================== Models ====================

class APIResponse(BaseModel):
    """Standard API response wrapper."""
    success: bool = True
    data: Optional[Any] = None
    message: Optional[str] = None


class SettingsUpdate(BaseModel):
    """Partial settings update keyed by option id"""
    options: Dict[str, Any] = Field(
        default_factory=dict,
        json_schema_extra={"example": {"MaxNumberOfFailedAttempts": 15, "ThrottleMinutes": 20}},
    )


def success_response(data: Any = None, message: str = None) -> dict:
    """Create a standard success response dict."""
    response = {"success": True}
    if data is not None:
        response["data"] = data
    if message:
        response["message"] = message
    return response


# ==================== Auth ====================

def verify_admin_token(x_admin_token: str = Header(None, alias="X-Admin-Token")) -> bool:
    """Verify admin authentication token"""
    admin_token = os.getenv("ADMIN_API_TOKEN")

    if not admin_token:
        # If no admin token configured, allow access (dev mode)
        logger.warning("No ADMIN_API_TOKEN configured - login throttle admin endpoints are unprotected")
        return True

    if not x_admin_token or not secrets.compare_digest(x_admin_token, admin_token):
        raise HTTPException(status_code=401, detail="Invalid admin token")

    return True


# ==================== Router ====================

def get_login_throttle_router() -> APIRouter:
    """Get router for login throttle operator endpoints"""
    router = APIRouter(
        prefix="/api/v1/login-throttle",
        tags=["Login Throttle"],
        dependencies=[Depends(verify_admin_token)],
    )

    @router.get("/sources/{source}", response_model=APIResponse)
    async def get_source_status(source: str, service: ThrottleService = Depends(get_throttle_service)):
        """Attempt counters and block state for one source"""
        return success_response(service.status(source))

    @router.get("/stats", response_model=APIResponse)
    async def get_stats(service: ThrottleService = Depends(get_throttle_service)):
        """Tracked sources and failure log size"""
        return success_response(service.stats())

    @router.get("/options", response_model=APIResponse)
    async def get_options():
        """Recognized configuration options with defaults and help text"""
        return success_response(list_options())

    @router.get("/settings", response_model=APIResponse)
    async def get_settings(service: ThrottleService = Depends(get_throttle_service)):
        """Current settings keyed by option id"""
        return success_response(service.settings.to_options())

    @router.put("/settings", response_model=APIResponse)
    async def update_settings(update: SettingsUpdate, service: ThrottleService = Depends(get_throttle_service)):
        """
        Merge the given options over the current settings and apply them.

        Out-of-range values fall back to their defaults; unknown option ids
        are rejected with 400.
        """
        try:
            settings = service.settings.merged(update.options)
        except ValueError as e:
            raise safe_error_response(400, "updating login throttle settings", e, logger)

        try:
            service.apply_settings(settings)
        except Exception as e:
            raise safe_error_response(500, "applying login throttle settings", e, logger)

        return success_response(settings.to_options(), message="Login throttle settings updated")

    return router
