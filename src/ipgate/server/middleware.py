"""aiohttp middleware that runs the IP guard on every request.

For each request the middleware stores the decision on the request
(``ip.client``, ``ip.allowed``, ``ip.reason`` and ``ip.result``), binds it
into the structlog context for the duration of the request and copies it
into the ``X-Ip-Allowed`` / ``X-Ip-Reason`` response headers.

Denied requests are only annotated unless ``enforce`` is set, in which
case they are answered with 403 Forbidden.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog
from aiohttp import web

from ipgate.guard.address import client_ipv4
from ipgate.guard.engine import GuardResult, IpGuard
from ipgate.observability.metrics import REJECTED_REQUESTS

logger = structlog.get_logger()

CLIENT_KEY = "ip.client"
ALLOWED_KEY = "ip.allowed"
REASON_KEY = "ip.reason"
RESULT_KEY = "ip.result"

ALLOWED_HEADER = "X-Ip-Allowed"
REASON_HEADER = "X-Ip-Reason"

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def guard_headers(result: GuardResult) -> dict[str, str]:
    """Response headers describing a decision."""
    return {
        ALLOWED_HEADER: "true" if result.allowed else "false",
        REASON_HEADER: result.reason_text,
    }


def create_ip_guard_middleware(
    guard: IpGuard,
    enforce: bool = False,
    trust_proxy_headers: bool = False,
):
    """Create the guard middleware for an aiohttp application.

    Args:
        guard: Guard deciding each request.
        enforce: Answer denied requests with 403 instead of passing them on.
        trust_proxy_headers: Take the client address from X-Forwarded-For / X-Real-IP.
    """

    @web.middleware
    async def ip_guard_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
        client_ip = client_ipv4(request.remote, request.headers, trust_proxy_headers)
        # Resolving the rule file is blocking I/O
        result = await asyncio.to_thread(guard.check, client_ip)

        request[CLIENT_KEY] = result.client_ip
        request[ALLOWED_KEY] = result.allowed
        request[REASON_KEY] = result.reason_text
        request[RESULT_KEY] = result
        headers = guard_headers(result)

        with structlog.contextvars.bound_contextvars(
            client_ip=result.client_ip,
            ip_allowed=result.allowed,
            ip_reason=result.reason_text,
            path=request.path,
            method=request.method,
        ):
            logger.info("IP guard check")

            if enforce and not result.allowed:
                REJECTED_REQUESTS.inc()
                logger.warning("IP blocked")
                return web.Response(
                    text="Forbidden",
                    status=403,
                    content_type="text/plain",
                    headers=headers,
                )

            try:
                response = await handler(request)
            except web.HTTPException as exc:
                exc.headers.update(headers)
                raise

        if not response.prepared:
            response.headers.update(headers)
        return response

    return ip_guard_middleware
