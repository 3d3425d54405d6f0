"""
Pydantic models for the recipient route table.

Models:
  Route        : one (recipient, url) entry; immutable
  RouteListing : body of the /list-routes diagnostic response
"""

from pydantic import BaseModel


class Route(BaseModel):
    """Maps a recipient address to the backend path that handles its mail."""
    model_config = {"frozen": True}

    recipient: str
    url: str        # path appended to the configured base URL


class RouteListing(BaseModel):
    """Live routing configuration, as reported to operators."""

    routes: list[Route]
    baseUrl: str
