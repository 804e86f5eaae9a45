"""Gate server and aiohttp middleware."""

from .app import GateServer
from .middleware import (
    ALLOWED_HEADER,
    ALLOWED_KEY,
    CLIENT_KEY,
    REASON_HEADER,
    REASON_KEY,
    RESULT_KEY,
    create_ip_guard_middleware,
)

__all__ = [
    "ALLOWED_HEADER",
    "ALLOWED_KEY",
    "CLIENT_KEY",
    "GateServer",
    "REASON_HEADER",
    "REASON_KEY",
    "RESULT_KEY",
    "create_ip_guard_middleware",
]
