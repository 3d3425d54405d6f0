"""
Outcome of a forwarded call, as it will be sent back to the relay provider.
"""

from pydantic import BaseModel


class RelayedResponse(BaseModel):
    """Status, headers and raw body copied from the backend response."""

    status_code: int
    headers: list[tuple[str, str]] = []     # ordered; repeated names allowed
    content: bytes = b""
