"""
Backend forwarder.

Re-issues an inbound webhook against the backend function chosen by the route
table and captures the outcome.

Outbound request
----------------
  method    the inbound method, unchanged
  url       <base_url><route.url>
  body      the decoded inbound body, always re-sent as JSON
  headers   exactly Content-Type, x-forwarded-for and user-agent; every other
            inbound header is dropped

Outcome
-------
Any HTTP response, whatever its status, is relayed as-is. Only a transport
failure (no complete response) becomes an UpstreamError.

Lifecycle follows the shared-client pattern: call start() from the app
lifespan and stop() on shutdown. Until started, each call opens its own
short-lived client.
"""

import logging
from typing import Any, Optional

import httpx

from mailrouter.errors import UpstreamError
from mailrouter.models.inbound_request import InboundRequest
from mailrouter.models.relayed_response import RelayedResponse
from mailrouter.models.routing import Route

logger = logging.getLogger(__name__)

# Framing headers describe the backend's wire encoding, which httpx has
# already undone. Date and Server belong to whichever server sends the
# response; uvicorn adds its own.
_RELAY_EXCLUDED_HEADERS = {
    "connection",
    "content-encoding",
    "content-length",
    "date",
    "keep-alive",
    "server",
    "transfer-encoding",
}


def build_forward_headers(inbound: InboundRequest) -> dict[str, str]:
    """
    Build the outbound header allow-list.

    x-forwarded-for and user-agent are passed through unmodified and omitted
    when the inbound request did not carry them.
    """
    headers = {"Content-Type": "application/json"}

    forwarded_for = inbound.header("x-forwarded-for")
    if forwarded_for is not None:
        headers["x-forwarded-for"] = forwarded_for

    user_agent = inbound.header("user-agent")
    if user_agent is not None:
        headers["user-agent"] = user_agent

    return headers


def relayable_headers(response: httpx.Response) -> list[tuple[str, str]]:
    return [
        (name, value)
        for name, value in response.headers.multi_items()
        if name.lower() not in _RELAY_EXCLUDED_HEADERS
    ]


def _partial_response_data(response: Optional[httpx.Response]) -> Any:
    """Best-effort read of whatever body a failed call left behind."""
    if response is None:
        return None
    try:
        content = response.content
    except httpx.ResponseNotRead:
        return None
    if not content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class Forwarder:
    """Sends inbound requests on to backend functions under one base URL."""

    def __init__(
        self,
        base_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _build_client(self) -> httpx.AsyncClient:
        # No timeout: the relay waits for the backend however long it takes.
        client = httpx.AsyncClient(transport=self._transport, timeout=None)
        # Drop httpx's default Accept/Accept-Encoding/User-Agent so only the
        # allow-listed headers go out.
        client.headers.clear()
        return client

    async def start(self) -> None:
        if self._client is not None:
            logger.warning("Forwarder already started")
            return
        self._client = self._build_client()
        logger.info("Forwarder started: base_url=%s", self.base_url)

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.info("Forwarder stopped")

    def target_url(self, route: Route) -> str:
        return f"{self.base_url}{route.url}"

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(method, url, **kwargs)

        logger.warning("Forwarder not started, using per-request client")
        async with self._build_client() as client:
            return await client.request(method, url, **kwargs)

    async def forward(self, inbound: InboundRequest, route: Route) -> RelayedResponse:
        """
        Forward ``inbound`` to the backend behind ``route``.

        Returns:
            The backend's status, headers and body, for any HTTP status.

        Raises:
            UpstreamError: the call failed before a complete response arrived.
        """
        method = inbound.method.upper()
        url = self.target_url(route)
        logger.info("Sending %s request to: %s", method, url)

        try:
            response = await self._send(
                method,
                url,
                json=inbound.body,
                headers=build_forward_headers(inbound),
            )
        except httpx.HTTPError as exc:
            partial = getattr(exc, "response", None)
            status = partial.status_code if partial is not None else None
            details = _partial_response_data(partial)
            message = str(exc) or type(exc).__name__

            logger.error("Error forwarding request to %s: %s", url, message)
            if partial is not None:
                logger.error("Status: %s Data: %s", status, details)

            raise UpstreamError(message, status_code=status, details=details)

        logger.info("Proxy response from %s: status=%s", url, response.status_code)
        logger.debug("Proxy response headers: %s", dict(response.headers))

        return RelayedResponse(
            status_code=response.status_code,
            headers=relayable_headers(response),
            content=response.content,
        )
