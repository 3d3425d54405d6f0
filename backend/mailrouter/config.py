"""
Process configuration.

Reads the environment (optionally seeded from a .env file) once at startup.

Environment variables
---------------------
FUNCTIONS_DOMAIN   Host of the backend functions, e.g. "functions.example.com".
                   Required. Requests are forwarded to https://<FUNCTIONS_DOMAIN>.
PORT               Listen port (default: 3000).
HOST               Listen address (default: 0.0.0.0).
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from mailrouter.errors import ConfigurationError

load_dotenv()

DEFAULT_PORT = 3000
DEFAULT_HOST = "0.0.0.0"


@dataclass(frozen=True)
class Settings:
    functions_domain: str
    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST

    @property
    def base_url(self) -> str:
        """Origin every matched route path is appended to."""
        return f"https://{self.functions_domain}"


def load_settings() -> Settings:
    """
    Build Settings from the environment.

    Raises:
        ConfigurationError: FUNCTIONS_DOMAIN is missing or blank, or PORT is
            not an integer.
    """
    domain = os.getenv("FUNCTIONS_DOMAIN", "").strip()
    if not domain:
        raise ConfigurationError(
            "FUNCTIONS_DOMAIN environment variable is required. "
            "Make sure FUNCTIONS_DOMAIN is set in the environment or the .env file."
        )

    raw_port = os.getenv("PORT", "").strip() or str(DEFAULT_PORT)
    try:
        port = int(raw_port)
    except ValueError:
        raise ConfigurationError(f"PORT must be an integer, got {raw_port!r}")

    host = os.getenv("HOST", "").strip() or DEFAULT_HOST

    return Settings(functions_domain=domain, port=port, host=host)
