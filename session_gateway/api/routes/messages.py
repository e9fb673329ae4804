"""
Message Endpoints.

Send text and media through a ready session.
"""

import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field

from session_gateway.api.dependencies import get_dispatcher
from session_gateway.core.errors import SessionNotFoundError, ValidationError
from session_gateway.core.messaging.dispatch import MessageDispatcher
from session_gateway.core.messaging.intents import MessageIntent, TextIntent, parse_intent

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Messages"])


class SendMessageRequest(BaseModel):
    """Plain text send request."""

    model_config = ConfigDict(populate_by_name=True)

    session_name: Optional[str] = Field(default=None, alias="sessionName")
    number: Optional[Union[str, int]] = Field(
        default=None,
        description="Destination phone number",
        examples=["9876543210"],
    )
    message: Optional[str] = None


class UnifiedMessageRequest(BaseModel):
    """Send request for any supported message type."""

    model_config = ConfigDict(populate_by_name=True)

    session_name: Optional[str] = Field(default=None, alias="sessionName")
    number: Optional[Union[str, int]] = None
    type: Optional[str] = Field(
        default=None,
        description="text, image, document (or file), audio, video or link",
        examples=["image"],
    )
    message: Optional[str] = None
    file_url: Optional[str] = Field(default=None, alias="fileUrl")
    caption: Optional[str] = None
    link: Optional[str] = None


class SendResponse(BaseModel):
    """Send response."""

    success: bool = True
    number: str = Field(..., description="Chat id the message was sent to")


class ErrorResponse(BaseModel):
    """Error response."""

    success: bool = False
    error: str


SEND_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid request or session not usable"},
    500: {"model": ErrorResponse, "description": "Media download or send failed"},
}


async def _dispatch(
    dispatcher: MessageDispatcher,
    session_name: str,
    number: Union[str, int],
    intent: MessageIntent,
) -> SendResponse:
    """Send and map an unknown session to 400 for send endpoints."""
    try:
        chat_id = await dispatcher.send(session_name, number, intent)
    except SessionNotFoundError as e:
        e.status_code = status.HTTP_400_BAD_REQUEST
        raise

    return SendResponse(number=chat_id)


@router.post(
    "/send-message",
    response_model=SendResponse,
    summary="Send a text message",
    responses=SEND_RESPONSES,
)
async def send_message(
    request: SendMessageRequest,
    dispatcher: MessageDispatcher = Depends(get_dispatcher),
) -> SendResponse:
    """Send a text message."""
    if not request.session_name or not request.number or not request.message:
        raise ValidationError("Missing sessionName, number, or message")

    return await _dispatch(
        dispatcher,
        request.session_name,
        request.number,
        TextIntent(message=request.message),
    )


@router.post(
    "/send-unified-message",
    response_model=SendResponse,
    summary="Send any supported message type",
    responses=SEND_RESPONSES,
)
async def send_unified_message(
    request: UnifiedMessageRequest,
    dispatcher: MessageDispatcher = Depends(get_dispatcher),
) -> SendResponse:
    """
    Send text, media or a link preview.

    Media is downloaded from fileUrl before sending. Audio is delivered
    as a voice note.
    """
    if not request.session_name or not request.number or not request.type:
        raise ValidationError("Missing required fields: sessionName, number, or type")

    intent = parse_intent(
        request.type,
        message=request.message,
        file_url=request.file_url,
        caption=request.caption,
        link=request.link,
    )

    return await _dispatch(dispatcher, request.session_name, request.number, intent)
