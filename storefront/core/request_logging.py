"""
Request logging middleware

Raw ASGI middleware so it wraps streaming responses too. Every response gets
an X-Request-ID (propagated from the caller when present) and
X-Request-Duration in milliseconds. The id is also published in
current_request_id for the duration of the request so outgoing service
calls can carry it.
"""
import logging
import time
import uuid
from contextvars import ContextVar
from typing import Optional

logger = logging.getLogger("storefront.requests")

REQUEST_ID_HEADER = b"x-request-id"
DURATION_HEADER = b"x-request-duration"

current_request_id: ContextVar[Optional[str]] = ContextVar("current_request_id", default=None)


class RequestLoggingMiddleware:
    def __init__(self, app, service_name: str = "storefront"):
        self.app = app
        self.service_name = service_name

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start_time = time.perf_counter()
        request_id = None
        for name, value in scope.get("headers", []):
            if name == REQUEST_ID_HEADER:
                request_id = value.decode("latin-1")
                break
        request_id = request_id or uuid.uuid4().hex
        context_token = current_request_id.set(request_id)

        status_code = 500

        async def send_wrapper(message):
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                duration_ms = (time.perf_counter() - start_time) * 1000
                headers = list(message.get("headers", []))
                headers.append((REQUEST_ID_HEADER, request_id.encode("latin-1")))
                headers.append((DURATION_HEADER, f"{duration_ms:.1f}ms".encode("latin-1")))
                message["headers"] = headers
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            current_request_id.reset(context_token)
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                "[%s] %s %s %s %d %.1fms",
                self.service_name,
                request_id,
                scope.get("method", "UNKNOWN"),
                scope.get("path", "/"),
                status_code,
                duration_ms,
            )
