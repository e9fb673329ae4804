"""
Message intents.

An intent is a tagged description of one outgoing message with the fields
its type requires.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from session_gateway.core.errors import UnsupportedMessageTypeError, ValidationError


class MessageType(str, Enum):
    """Supported unified message types."""

    TEXT = "text"
    IMAGE = "image"
    DOCUMENT = "document"
    AUDIO = "audio"
    VIDEO = "video"
    LINK = "link"


# Accepted spellings beyond the enum values
TYPE_ALIASES = {
    "file": MessageType.DOCUMENT,
}


@dataclass(frozen=True)
class TextIntent:
    """Plain text message."""

    message: str
    type: MessageType = MessageType.TEXT


@dataclass(frozen=True)
class MediaIntent:
    """Media fetched from a URL. Audio is delivered as a voice note."""

    type: MessageType
    file_url: str
    caption: Optional[str] = None

    @property
    def as_voice_note(self) -> bool:
        return self.type == MessageType.AUDIO


@dataclass(frozen=True)
class LinkIntent:
    """
    Text carrying a link, sent with a preview.

    The client builds the preview from a URL found in the message body, so
    ``text`` carries the link even when the caller's message leaves it out.
    A message that already contains the link is sent unchanged.
    """

    message: str
    link: str
    type: MessageType = MessageType.LINK

    @property
    def text(self) -> str:
        """Message text, with the link appended if it is not already in it."""
        if self.link in self.message:
            return self.message
        return f"{self.message}\n{self.link}"


MessageIntent = Union[TextIntent, MediaIntent, LinkIntent]


def parse_message_type(raw_type: str) -> MessageType:
    """
    Parse a unified message type (case-insensitive).

    Raises:
        UnsupportedMessageTypeError: Unknown type
    """
    key = raw_type.strip().lower()
    if key in TYPE_ALIASES:
        return TYPE_ALIASES[key]
    try:
        return MessageType(key)
    except ValueError:
        raise UnsupportedMessageTypeError(raw_type) from None


def parse_intent(
    raw_type: str,
    message: Optional[str] = None,
    file_url: Optional[str] = None,
    caption: Optional[str] = None,
    link: Optional[str] = None,
) -> MessageIntent:
    """
    Build an intent from unified request fields.

    Args:
        raw_type: Message type as sent by the caller
        message: Text body (text, link)
        file_url: Media URL (image, document, audio, video)
        caption: Optional caption (image, document, video)
        link: Link to preview (link)

    Raises:
        UnsupportedMessageTypeError: Unknown type
        ValidationError: A field required by the type is missing
    """
    message_type = parse_message_type(raw_type)

    if message_type == MessageType.TEXT:
        if not message:
            raise ValidationError('Missing "message" for text type')
        return TextIntent(message=message)

    if message_type == MessageType.LINK:
        if not link or not message:
            raise ValidationError('Missing "link" or "message" for link preview')
        return LinkIntent(message=message, link=link)

    if not file_url:
        raise ValidationError(f'Missing "fileUrl" for {raw_type.strip().lower()} type')

    return MediaIntent(
        type=message_type,
        file_url=file_url,
        caption=None if message_type == MessageType.AUDIO else caption,
    )
