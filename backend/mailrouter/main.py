"""
Mail Router API
FastAPI application that routes inbound email webhooks to backend functions.
"""

import logging
from contextlib import asynccontextmanager
from typing import Iterable, Optional

import httpx
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from mailrouter.config import Settings, load_settings
from mailrouter.errors import ConfigurationError, RouterError
from mailrouter.models.routing import Route
from mailrouter.routers import webhook
from mailrouter.services.forwarder import Forwarder
from mailrouter.services.route_table import ROUTES, check_route_table

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the shared outbound client for the lifetime of the app."""
    settings: Settings = app.state.settings
    await app.state.forwarder.start()
    logger.info(
        "Server configuration:\n"
        "  Server running at http://localhost:%s\n"
        "  Forwarding requests to: %s\n"
        "  Content-Type conversion: multipart/form-data -> application/json",
        settings.port,
        settings.base_url,
    )
    yield
    await app.state.forwarder.stop()


async def handle_router_error(request: Request, exc: RouterError) -> JSONResponse:
    logger.info(
        "%s %s -> %s: %s",
        request.method,
        request.url.path,
        exc.status_code,
        exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


def create_app(
    settings: Optional[Settings] = None,
    routes: Iterable[Route] = ROUTES,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings:  process settings; loaded from the environment when omitted.
        routes:    recipient route table (defaults to the compiled table).
        transport: outbound httpx transport, for tests.

    Raises:
        ConfigurationError: settings were omitted and the environment is
            incomplete.
    """
    settings = settings or load_settings()
    routes = tuple(routes)
    check_route_table(routes)

    app = FastAPI(
        title="Mail Router",
        description="Routes inbound email webhooks to backend functions by recipient",
        version="0.1.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings
    app.state.routes = routes
    app.state.forwarder = Forwarder(settings.base_url, transport=transport)

    app.add_exception_handler(RouterError, handle_router_error)
    app.include_router(webhook.router)
    return app


def run() -> None:
    """Console entry point: serve the app on HOST:PORT."""
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        logger.error("ERROR: %s", exc)
        raise SystemExit(1)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
