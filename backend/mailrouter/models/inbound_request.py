"""
Decoded representation of one inbound webhook call.

The relay provider posts either multipart form data or JSON; by the time an
InboundRequest exists the body has been decoded into a plain mapping, so the
forwarding logic never needs to know which encoding arrived.
"""

from typing import Any, Optional

from pydantic import BaseModel


class InboundRequest(BaseModel):
    """
    An inbound call ready to be routed.

    ``headers`` keys are lower-cased; when a header is repeated the last value
    wins. ``body`` is forwarded verbatim apart from being re-encoded as JSON.
    """

    method: str
    path: str
    headers: dict[str, str] = {}
    body: dict[str, Any] = {}

    @property
    def recipient(self) -> Optional[Any]:
        """The ``to`` field of the body, or None when absent."""
        return self.body.get("to")

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())
