"""
Gatekeeper for inbound webhook calls.

Runs before routing on every request:

  1. Log the request (diagnostic only; never changes the outcome).
  2. /list-routes short-circuits with the live routing configuration and
     skips every other check.
  3. Anything else must carry the relay client's User-Agent or it is
     rejected with 400 before routing.

The relay provider (SendGrid Inbound Parse) identifies itself with a fixed
User-Agent; that is the only authentication this service performs.
"""

import logging
from typing import Optional

from fastapi import Request

from mailrouter.errors import AuthRejected
from mailrouter.models.routing import RouteListing

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CLIENT_ID_HEADER = "user-agent"
ACCEPTED_USER_AGENT = "Sendlib/1.0"
LIST_ROUTES_PATH = "/list-routes"

# Longest body excerpt written to the request log
_LOGGED_BODY_LIMIT = 2000


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def inbound_headers(request: Request) -> dict[str, str]:
    """Lower-cased header mapping; the last value wins for repeated names."""
    return {name.lower(): value for name, value in request.headers.items()}


def build_route_listing(request: Request) -> RouteListing:
    return RouteListing(
        routes=list(request.app.state.routes),
        baseUrl=request.app.state.settings.base_url,
    )


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

async def log_incoming_request(request: Request) -> None:
    """
    Log method, path, headers and the raw body before any decision is made.

    The body is read undecoded so a malformed payload is still logged and
    still reaches the User-Agent check first. Starlette caches it, so the
    decoder reads the same bytes afterwards.
    """
    raw = await request.body()
    excerpt = raw[:_LOGGED_BODY_LIMIT].decode("utf-8", errors="replace")
    if len(raw) > _LOGGED_BODY_LIMIT:
        excerpt += f"... ({len(raw)} bytes)"
    logger.info(
        "Incoming request: %s %s headers=%s body=%s",
        request.method,
        request.url.path,
        inbound_headers(request),
        excerpt,
    )


def verify_client(request: Request) -> None:
    """
    Reject callers that are not the relay client.

    Raises:
        AuthRejected: the User-Agent header is missing or is not exactly
            ACCEPTED_USER_AGENT.
    """
    user_agent: Optional[str] = inbound_headers(request).get(CLIENT_ID_HEADER)
    if user_agent != ACCEPTED_USER_AGENT:
        logger.warning("User-Agent %s not supported", user_agent)
        raise AuthRejected(user_agent)
