"""Request body size limiting middleware.

Rejects oversized requests before they are parsed, so a large JSON body or
upload cannot exhaust memory or fill the upload directory.
"""

from __future__ import annotations

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.types import ASGIApp

logger = logging.getLogger(__name__)

TOO_LARGE = "Request body too large"


class BodySizeMiddleware(BaseHTTPMiddleware):
    """Answer 413 when a POST body exceeds *max_size* bytes."""

    def __init__(self, app: ASGIApp, *, max_size: int) -> None:
        super().__init__(app)
        self.max_size = max_size

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.method != "POST":
            return await call_next(request)

        declared = request.headers.get("content-length")
        if declared is not None and declared.isdigit() and int(declared) > self.max_size:
            return self._reject(request, int(declared))

        # Chunked bodies carry no length; read and let starlette replay it.
        body = await request.body()
        if len(body) > self.max_size:
            return self._reject(request, len(body))
        return await call_next(request)

    def _reject(self, request: Request, size: int) -> Response:
        logger.warning(
            "Rejected %s body from %s: %d bytes (max %d)",
            request.url.path,
            request.client.host if request.client else "?",
            size,
            self.max_size,
        )
        return PlainTextResponse(TOO_LARGE, status_code=413)
