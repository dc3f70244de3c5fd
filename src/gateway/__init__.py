"""Backend gateway - HTTP access to the server and account API."""

from .base import BackendGateway, GatewayError
from .client import HttpBackendClient, DEFAULT_BASE_URL

__all__ = [
    "BackendGateway",
    "GatewayError",
    "HttpBackendClient",
    "DEFAULT_BASE_URL",
]
