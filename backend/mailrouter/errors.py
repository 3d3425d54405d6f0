"""
Error taxonomy for the router.

Every per-request failure is a RouterError: it knows its HTTP status and the
JSON body the caller receives. ConfigurationError is the only fatal error and
is raised before the app accepts connections.
"""

from typing import Any, Optional


class ConfigurationError(ValueError):
    """Required process configuration is missing or invalid."""


class RouterError(Exception):
    """Base class for errors that end a single request."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_body(self) -> dict:
        return {"error": self.message}


class AuthRejected(RouterError):
    """The caller's User-Agent is not the accepted relay client."""

    status_code = 400

    def __init__(self, user_agent: Optional[str]):
        super().__init__(f"Unsupported User-Agent {user_agent}")
        self.user_agent = user_agent


class RouteNotFound(RouterError):
    """No route table entry matches the recipient."""

    status_code = 404

    def __init__(self, recipient: Optional[str]):
        super().__init__(f"No route found for recipient {recipient}")
        self.recipient = recipient


class InvalidPayload(RouterError):
    """The request body could not be decoded into a field mapping."""

    status_code = 400

    def __init__(self, reason: str):
        super().__init__(f"Invalid request body: {reason}")


class UpstreamError(RouterError):
    """
    The outbound call did not produce a complete response.

    ``status_code`` is the backend's status when one was obtained before the
    failure, otherwise 500. ``details`` holds whatever response data was
    read; it is left out of the body entirely when nothing was read.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Any = None,
    ):
        super().__init__(message)
        self.status_code = status_code or 500
        self.details = details

    def to_body(self) -> dict:
        body: dict = {"error": True, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body
