"""Domain errors raised by the messaging services.

Services never raise ``HTTPException`` directly; the API layer maps these
onto status codes in one place (see ``teamchat.main``) and the realtime
gateway turns them into ``error`` events for the sender.
"""

from fastapi import status


class ChatError(Exception):
    """Base class for every expected failure in the messaging core."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(ChatError):
    """Entity is absent, or lives in another tenant."""

    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class Forbidden(ChatError):
    """Entity is visible but the action is disallowed."""

    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class Invalid(ChatError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Invalid request"


class Conflict(ChatError):
    """A uniqueness constraint lost a race. Always recovered internally."""

    status_code = status.HTTP_409_CONFLICT
    default_message = "Conflict"
