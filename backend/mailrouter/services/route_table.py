"""
Recipient route table.

Maps the address an inbound email was sent to onto the backend function that
processes it. The table is a compiled constant: it is built once at import and
shared read-only by every request, so no locking is needed.

Adding a route:
  1. Append a Route(recipient=..., url=...) to ROUTES.
  2. Redeploy. GET /list-routes shows the live table.

Lookup is an ordered scan and the first matching entry wins. Recipients are
expected to be unique; duplicates are reported by find_duplicate_recipients()
at startup.
"""

import logging
from typing import Any, Iterable, Optional

from mailrouter.errors import RouteNotFound
from mailrouter.models.routing import Route

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Routing configuration
# ---------------------------------------------------------------------------

ROUTES: tuple[Route, ...] = (
    Route(recipient="sclead@aiaparse.indiveloper.com", url="/backend/extract-lead"),
    Route(recipient="owlhome@aiaparse.indiveloper.com", url="/backend/log-inbound-email"),
    Route(recipient="sclead@rndrparse.indiveloper.com", url="/backend/extract-lead"),
    Route(recipient="sclead@flyparse.indiveloper.com", url="/backend/extract-lead"),
    Route(recipient="test@aiaparse.indiveloper.com", url="/backend/test-endpoint"),
)


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------

def find_route(recipient: Any, routes: Iterable[Route] = ROUTES) -> Optional[Route]:
    """
    Return the first route whose recipient equals ``recipient`` exactly.

    Comparison is case-sensitive and does not strip display names or
    whitespace. Returns None when nothing matches (including when
    ``recipient`` is None or not a string).
    """
    for route in routes:
        if route.recipient == recipient:
            return route
    return None


def resolve_route(recipient: Any, routes: Iterable[Route] = ROUTES) -> Route:
    """
    Like find_route(), but a miss is an error.

    Raises:
        RouteNotFound: no entry matches ``recipient``.
    """
    route = find_route(recipient, routes)
    if route is None:
        logger.warning("No route found for recipient: %s", recipient)
        raise RouteNotFound(recipient)
    logger.info("Route path found for %s: %s", recipient, route.url)
    return route


# ---------------------------------------------------------------------------
# Startup checks
# ---------------------------------------------------------------------------

def find_duplicate_recipients(routes: Iterable[Route] = ROUTES) -> list[str]:
    """
    Return recipients that appear more than once, in first-seen order.

    Only the first entry for a duplicated recipient is ever used, so later
    entries are dead configuration.
    """
    seen: set = set()
    duplicates: list[str] = []
    for route in routes:
        if route.recipient in seen and route.recipient not in duplicates:
            duplicates.append(route.recipient)
        seen.add(route.recipient)
    return duplicates


def check_route_table(routes: Iterable[Route] = ROUTES) -> list[str]:
    """Log the table and warn about duplicated recipients. Returns the duplicates."""
    routes = tuple(routes)
    logger.info(
        "Routes: %s",
        [route.model_dump() for route in routes],
    )
    duplicates = find_duplicate_recipients(routes)
    for recipient in duplicates:
        logger.warning(
            "Recipient %s appears more than once in the route table; "
            "only the first entry will be used",
            recipient,
        )
    return duplicates
