"""
Outgoing message dispatch.

Usage:
    from session_gateway.core.messaging import MessageDispatcher, parse_intent

    intent = parse_intent("image", file_url="https://example.com/a.png", caption="Menu")
    chat_id = await dispatcher.send("sales@example.com", "9876543210", intent)
"""

from .phone import CHAT_ID_SUFFIX, format_phone_number
from .intents import (
    LinkIntent,
    MediaIntent,
    MessageIntent,
    MessageType,
    TextIntent,
    parse_intent,
    parse_message_type,
)
from .media import MediaDownloader
from .dispatch import MessageDispatcher

__all__ = [
    # Phone numbers
    "CHAT_ID_SUFFIX",
    "format_phone_number",
    # Intents
    "LinkIntent",
    "MediaIntent",
    "MessageIntent",
    "MessageType",
    "TextIntent",
    "parse_intent",
    "parse_message_type",
    # Media
    "MediaDownloader",
    # Dispatch
    "MessageDispatcher",
]
