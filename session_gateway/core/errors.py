"""
Gateway error types.

Every error carries the HTTP status it renders as and a dict of extra
fields merged into the JSON error body.
"""

from typing import Any, Optional


class GatewayError(Exception):
    """Base class for errors rendered at the request boundary."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: Optional[dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON error body."""
        return {"success": False, "error": self.message, **self.details}


class ValidationError(GatewayError):
    """Missing or malformed request fields."""

    status_code = 400


class InvalidPhoneNumberError(ValidationError):
    """Destination number cannot be turned into a chat id."""

    def __init__(self, number: str):
        super().__init__("Invalid phone number format", {"number": number})


class UnsupportedMessageTypeError(ValidationError):
    """Unified message type is not one of the known intents."""

    def __init__(self, message_type: str):
        super().__init__(f"Unsupported message type: {message_type}")
        self.message_type = message_type


class SessionNotFoundError(GatewayError):
    """No registered session matches the requested name."""

    status_code = 404

    def __init__(self, requested_name: str, available: list[str]):
        super().__init__(
            f"Session {requested_name} not found. "
            f"Available sessions: {', '.join(available)}",
            {"available": available},
        )
        self.requested_name = requested_name


class SessionAlreadyExistsError(GatewayError):
    """A session already resolves for the requested name."""

    status_code = 400

    def __init__(self, existing_id: str):
        super().__init__(
            "Session already exists",
            {"existingSessionName": existing_id},
        )
        self.existing_id = existing_id


class SessionNotReadyError(GatewayError):
    """Session exists but cannot send yet."""

    status_code = 400

    def __init__(self, requested_name: str, status: str):
        super().__init__(
            f"Session {requested_name} is not ready. Status: {status}",
            {"status": status},
        )
        self.status = status


class UnregisteredDestinationError(GatewayError):
    """Destination is not an account on the messaging network."""

    status_code = 400

    def __init__(self, chat_id: str):
        super().__init__(
            "Phone number is not registered on WhatsApp",
            {"number": chat_id},
        )


class MediaDownloadError(GatewayError):
    """Fetching media from a fileUrl failed."""

    status_code = 500


class ExternalClientError(GatewayError):
    """The messaging client failed; its message is passed through."""

    status_code = 500


class ShuttingDownError(GatewayError):
    """New sessions are refused once shutdown has begun."""

    status_code = 503

    def __init__(self):
        super().__init__("Server is shutting down")
