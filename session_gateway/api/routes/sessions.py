"""
Session Management Endpoints.

Create, inspect, log out and delete messaging sessions. Session names are
resolved exactly, by normalized form, or through the legacy alias table.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field

from session_gateway.api.dependencies import get_lifecycle
from session_gateway.core.errors import ValidationError
from session_gateway.core.sessions.lifecycle import SessionLifecycleController
from session_gateway.core.sessions.state import SessionStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Sessions"])

QR_CONSOLE_MESSAGE = "Check console for QR code"


class CreateSessionRequest(BaseModel):
    """Session creation request."""

    model_config = ConfigDict(populate_by_name=True)

    session_name: Optional[str] = Field(
        default=None,
        alias="sessionName",
        description="Caller-chosen session name (any text, e.g. an email)",
        examples=["sales@example.com"],
    )


class CreateSessionResponse(BaseModel):
    """Session creation response."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    session_name: str = Field(alias="sessionName")
    actual_session_name: str = Field(alias="actualSessionName")
    status: str


class DeleteSessionResponse(BaseModel):
    """Session deletion response."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    deleted_session_name: str = Field(alias="deletedSessionName")


class LogoutResponse(BaseModel):
    """Logout response."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    actual_session_name: str = Field(alias="actualSessionName")


class SessionStatusResponse(BaseModel):
    """Session status response."""

    model_config = ConfigDict(populate_by_name=True)

    requested_session_name: str = Field(alias="requestedSessionName")
    actual_session_name: str = Field(alias="actualSessionName")
    status: str
    exists: bool


class QRResponse(BaseModel):
    """Pairing status response."""

    model_config = ConfigDict(populate_by_name=True)

    session_name: str = Field(alias="sessionName")
    actual_session_name: str = Field(alias="actualSessionName")
    status: str
    message: str
    qr_code: Optional[str] = Field(default=None, alias="qrCode")


class ErrorResponse(BaseModel):
    """Error response."""

    success: bool = False
    error: str


@router.post(
    "/create-session",
    response_model=CreateSessionResponse,
    status_code=status.HTTP_200_OK,
    summary="Create a session",
    description="Create a session and start pairing it in the background.",
    responses={
        400: {"model": ErrorResponse, "description": "Missing name or session exists"},
        503: {"model": ErrorResponse, "description": "Server is shutting down"},
    },
)
async def create_session(
    request: CreateSessionRequest,
    lifecycle: SessionLifecycleController = Depends(get_lifecycle),
) -> CreateSessionResponse:
    """
    Create a session.

    Returns as soon as initialization has been requested. Poll
    /session/{sessionName}/status or /qr/{sessionName} for progress.
    """
    if not request.session_name:
        raise ValidationError("Missing sessionName")

    session = await lifecycle.create(request.session_name)

    return CreateSessionResponse(
        message=f"Session {request.session_name} created.",
        session_name=request.session_name,
        actual_session_name=session.internal_id,
        status=session.status.value,
    )


@router.delete(
    "/session/{session_name}",
    response_model=DeleteSessionResponse,
    summary="Delete a session",
    description="Destroy the session's client and remove its stored credentials.",
    responses={404: {"model": ErrorResponse, "description": "Session not found"}},
)
async def delete_session(
    session_name: str,
    lifecycle: SessionLifecycleController = Depends(get_lifecycle),
) -> DeleteSessionResponse:
    """Delete a session regardless of its status."""
    session = await lifecycle.delete(session_name)

    return DeleteSessionResponse(
        message=f"Session {session_name} deleted",
        deleted_session_name=session.internal_id,
    )


@router.post(
    "/session/{session_name}/logout",
    response_model=LogoutResponse,
    summary="Log a session out",
    description="Invalidate credentials but keep the session and its storage.",
    responses={
        404: {"model": ErrorResponse, "description": "Session not found"},
        500: {"model": ErrorResponse, "description": "Client failed to log out"},
    },
)
async def logout_session(
    session_name: str,
    lifecycle: SessionLifecycleController = Depends(get_lifecycle),
) -> LogoutResponse:
    """Log a session out."""
    session = await lifecycle.logout(session_name)
    return LogoutResponse(actual_session_name=session.internal_id)


@router.get(
    "/session/{session_name}/status",
    response_model=SessionStatusResponse,
    summary="Get session status",
    responses={404: {"model": ErrorResponse, "description": "Session not found"}},
)
async def get_session_status(
    session_name: str,
    lifecycle: SessionLifecycleController = Depends(get_lifecycle),
) -> SessionStatusResponse:
    """Get the last known status of a session."""
    session = lifecycle.status(session_name)

    return SessionStatusResponse(
        requested_session_name=session_name,
        actual_session_name=session.internal_id,
        status=session.status.value,
        exists=True,
    )


@router.get(
    "/qr/{session_name}",
    response_model=QRResponse,
    summary="Get pairing status",
    description="Report whether a pairing code is waiting to be scanned.",
    responses={404: {"model": ErrorResponse, "description": "Session not found"}},
)
async def get_qr(
    session_name: str,
    lifecycle: SessionLifecycleController = Depends(get_lifecycle),
) -> QRResponse:
    """Get pairing status and the latest pairing code, if any."""
    session = lifecycle.status(session_name)
    current = session.status

    if current == SessionStatus.QR_GENERATED:
        message = QR_CONSOLE_MESSAGE
    else:
        message = f"Session status: {current.value}"

    return QRResponse(
        session_name=session_name,
        actual_session_name=session.internal_id,
        status=current.value,
        message=message,
        qr_code=session.qr_code if current == SessionStatus.QR_GENERATED else None,
    )
