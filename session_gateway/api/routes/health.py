"""
Health Check Endpoints

Reports process health and the last known status of every registered
session, for monitoring and load balancers.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field

from session_gateway.api.dependencies import get_app_settings, get_registry
from session_gateway.config import Settings
from session_gateway.core.sessions.registry import SessionRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

# Track application start time for uptime calculation
_start_time: Optional[datetime] = None


def set_start_time() -> None:
    """Set application start time. Called once on startup."""
    global _start_time
    _start_time = datetime.now(timezone.utc)


def get_uptime_seconds() -> Optional[float]:
    """Get application uptime in seconds."""
    if _start_time is None:
        return None
    return (datetime.now(timezone.utc) - _start_time).total_seconds()


class HealthResponse(BaseModel):
    """Health check response with per-session status."""

    model_config = ConfigDict(populate_by_name=True)

    status: str
    environment: str
    browser_service: str = Field(alias="browserService")
    sessions: dict[str, str]
    timestamp: datetime


class LiveResponse(BaseModel):
    """Liveness check response."""
    status: str
    timestamp: datetime
    uptime_seconds: Optional[float] = None


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Health check",
    description="Returns 200 while running, with every registered session and its status.",
)
async def health(
    registry: SessionRegistry = Depends(get_registry),
    settings: Settings = Depends(get_app_settings),
) -> HealthResponse:
    """
    Health check.

    Lists exactly the currently registered sessions with their last
    known status.
    """
    return HealthResponse(
        status="running",
        environment=settings.app_env,
        browser_service=settings.browser_service,
        sessions={
            internal_id: session_status.value
            for internal_id, session_status in registry.statuses().items()
        },
        timestamp=datetime.now(timezone.utc),
    )


@router.get(
    "/live",
    response_model=LiveResponse,
    status_code=status.HTTP_200_OK,
    summary="Liveness probe",
    description="Returns 200 if the process is alive. Used for container restart decisions.",
)
async def live() -> LiveResponse:
    """
    Liveness probe.

    Always returns 200 if the process is running.
    """
    return LiveResponse(
        status="alive",
        timestamp=datetime.now(timezone.utc),
        uptime_seconds=get_uptime_seconds(),
    )
