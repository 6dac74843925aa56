"""
RequestContext Middleware - Adds request tracking to all requests.

This middleware adds the following to every request:
- request_id: ID for request tracing (honours an incoming X-Request-ID)
- ip_address: Client IP address

Both are stored in request.state and bound into structlog's context
variables, so every log line emitted while serving the request carries
them without the caller passing them explicitly.

Usage:
    In endpoints:
        request.state.request_id
        request.state.ip_address
"""

import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
MAX_REQUEST_ID_LENGTH = 128


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Add request context to all incoming requests.

    Adds to request.state:
    - request_id: ID for tracing this request
    - ip_address: Client IP address

    Also adds X-Request-ID header to responses for client-side tracing.
    """

    async def dispatch(self, request: Request, call_next):
        """Process request and add context."""
        request_id = self._resolve_request_id(request)
        request.state.request_id = request_id

        # Extract client IP address with proxy protection
        ip_address = self._extract_client_ip(request)
        request.state.ip_address = ip_address

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.debug(
            "Request started",
            method=request.method,
            path=request.url.path,
            ip_address=ip_address,
        )

        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    @staticmethod
    def _resolve_request_id(request: Request) -> str:
        incoming = request.headers.get(REQUEST_ID_HEADER)
        if incoming and len(incoming) <= MAX_REQUEST_ID_LENGTH and incoming.isprintable():
            return incoming
        return str(uuid.uuid4())

    def _extract_client_ip(self, request: Request) -> str | None:
        """
        Extract client IP address with proxy spoofing protection.

        Only trusts X-Forwarded-For header if:
        1. TRUST_X_FORWARDED_FOR is enabled (production with load balancer)
        2. Request comes from a trusted proxy IP
        """
        # If not trusting X-Forwarded-For (local dev), use direct connection IP
        if not settings.TRUST_X_FORWARDED_FOR:
            return request.client.host if request.client else None

        if request.client and request.client.host in settings.TRUSTED_PROXY_IPS:
            forwarded_for = request.headers.get("x-forwarded-for")
            if forwarded_for:
                # "client, proxy1, proxy2" - first IP is the original client
                return forwarded_for.split(",")[0].strip()

        return request.client.host if request.client else None
