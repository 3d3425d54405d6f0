"""
Inbound webhook router.

Endpoints:
  ANY /list-routes  : diagnostic: live route table and base URL (no auth)
  ANY /{path}       : route the email by its ``to`` field and relay the
                      backend's response (auth: User-Agent)

The inbound path is not used for routing; only the recipient is.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from fastapi.routing import APIRoute

from mailrouter.gatekeeper import (
    LIST_ROUTES_PATH,
    build_route_listing,
    inbound_headers,
    log_incoming_request,
    verify_client,
)
from mailrouter.models.inbound_request import InboundRequest
from mailrouter.models.relayed_response import RelayedResponse
from mailrouter.services.forwarder import Forwarder
from mailrouter.services.payload_decoder import decode_body
from mailrouter.services.route_table import resolve_route

logger = logging.getLogger(__name__)


class AnyMethodRoute(APIRoute):
    """
    APIRoute that matches every HTTP method, extension methods included.

    Starlette only filters on methods when the route's method set is
    non-empty. The route is built with the default method set so FastAPI can
    derive its operation id, then the set is cleared.
    """

    def __init__(self, path: str, endpoint, **kwargs):
        kwargs["methods"] = None
        super().__init__(path, endpoint, **kwargs)
        self.methods = set()


router = APIRouter(
    route_class=AnyMethodRoute,
    dependencies=[Depends(log_incoming_request)],
)


def get_forwarder(request: Request) -> Forwarder:
    return request.app.state.forwarder


def to_response(relayed: RelayedResponse) -> Response:
    response = Response(content=relayed.content, status_code=relayed.status_code)
    for name, value in relayed.headers:
        response.headers.append(name, value)
    return response


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.api_route(LIST_ROUTES_PATH)
async def list_routes(request: Request) -> dict:
    """Report the compiled route table and the forwarding base URL."""
    listing = build_route_listing(request)
    logger.info("Routes: %s", [route.model_dump() for route in listing.routes])
    return listing.model_dump()


@router.api_route(
    "/{path:path}",
    dependencies=[Depends(verify_client)],
)
async def forward_inbound_email(
    request: Request,
    body: dict[str, Any] = Depends(decode_body),
    forwarder: Forwarder = Depends(get_forwarder),
) -> Response:
    """
    Forward an inbound email to the backend registered for its recipient.

    Responds 404 without any outbound call when the recipient has no route.
    Backend responses are relayed whatever their status.
    """
    inbound = InboundRequest(
        method=request.method,
        path=request.url.path,
        headers=inbound_headers(request),
        body=body,
    )

    logger.info(
        "Forwarding request: from=%s method=%s to_email=%s",
        inbound.path,
        inbound.method,
        inbound.recipient,
    )
    logger.debug("Body: %s", inbound.body)

    route = resolve_route(inbound.recipient, request.app.state.routes)
    relayed = await forwarder.forward(inbound, route)
    return to_response(relayed)
