from __future__ import annotations

"""Error taxonomy shared by the API boundary and the client library.

Codes are written ``"<type>:<surface>"``. The type decides the HTTP status,
the full code decides the user-facing message, and the surface decides
whether the message is shown to the caller or only logged.
"""

import logging
from typing import Dict, Literal, Optional

logger = logging.getLogger("studio.errors")

ErrorType = Literal[
    "bad_request",
    "unauthorized",
    "forbidden",
    "not_found",
    "rate_limit",
    "offline",
    "upstream_malformed",
]
Surface = Literal["chat", "auth", "api", "stream", "database", "provider"]
Visibility = Literal["response", "log"]

STATUS_BY_TYPE: Dict[str, int] = {
    "bad_request": 400,
    "unauthorized": 401,
    "forbidden": 403,
    "not_found": 404,
    "rate_limit": 429,
    "offline": 503,
    "upstream_malformed": 502,
}

VISIBILITY_BY_SURFACE: Dict[str, Visibility] = {
    "chat": "response",
    "auth": "response",
    "api": "response",
    "stream": "response",
    "provider": "response",
    "database": "log",
}

GENERIC_MESSAGE = "Something went wrong. Please try again later."
RATE_LIMIT_MESSAGE = "You have exceeded your maximum number of messages for the day. Please try again later."
SEND_FAILED_MESSAGE = "Sorry, there was an error processing your message. Please try again."

MESSAGES: Dict[str, str] = {
    "bad_request:api": "The request couldn't be processed. Please check your input and try again.",
    "bad_request:chat": "Chat ID is required.",
    "unauthorized:auth": "You need to sign in before continuing.",
    "forbidden:auth": "Your account does not have access to this feature.",
    "rate_limit:chat": RATE_LIMIT_MESSAGE,
    "not_found:chat": "Chat not found or access denied.",
    "forbidden:chat": "This chat belongs to another user. Please check the chat ID and try again.",
    "unauthorized:chat": "You need to sign in to view this chat. Please sign in and try again.",
    "offline:chat": "We're having trouble sending your message. Please check your internet connection and try again.",
    "offline:provider": "The generation service is unavailable right now. Please try again later.",
    "offline:stream": "The connection was interrupted while receiving the reply.",
    "upstream_malformed:stream": "The reply could not be read. Please try again.",
    "upstream_malformed:provider": "The generation service returned an unexpected response.",
}


def message_for(code: str) -> str:
    if code.endswith(":database"):
        return "An error occurred while executing a database query."
    return MESSAGES.get(code, GENERIC_MESSAGE)


class StudioError(Exception):
    """Typed failure carrying an HTTP status and a safe message."""

    def __init__(self, code: str, cause: Optional[str] = None, message: Optional[str] = None) -> None:
        error_type, _, surface = code.partition(":")
        self.code = code
        self.type = error_type
        self.surface = surface or "api"
        self.status_code = STATUS_BY_TYPE.get(error_type, 500)
        self.message = message or message_for(code)
        self.cause = cause
        super().__init__(self.message)

    @property
    def visibility(self) -> Visibility:
        return VISIBILITY_BY_SURFACE.get(self.surface, "response")

    def to_payload(self) -> Dict[str, object]:
        if self.visibility == "log":
            logger.error("code=%s message=%s cause=%s", self.code, self.message, self.cause)
            return {"code": "", "message": GENERIC_MESSAGE}
        payload: Dict[str, object] = {"code": self.code, "message": self.message}
        if self.cause:
            payload["cause"] = self.cause
        return payload


class StorageUnavailable(StudioError):
    def __init__(self, cause: Optional[str] = None) -> None:
        super().__init__("offline:database", cause=cause)
