# ============================================================================
# API MIDDLEWARE
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Core - Request-level deadline
# PURPOSE: Bound every HTTP request by the configured request timeout
# CREATED: 18 OCT 2026
# ============================================================================
"""
Request deadline middleware.

A request still running after ``timeout`` seconds is cancelled and answered
with UNAVAILABLE (503), the same body a provider or store timeout produces.
"""

import asyncio
import logging

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from core.errors import UnavailableError

logger = logging.getLogger(__name__)


class RequestTimeoutMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, timeout: float):
        super().__init__(app)
        self.timeout = timeout

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await asyncio.wait_for(call_next(request), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(
                f"{request.method} {request.url.path} exceeded request deadline ({self.timeout}s)"
            )
            error = UnavailableError("Request timed out", timeout_seconds=self.timeout)
            return JSONResponse(status_code=503, content=jsonable_encoder(error.to_dict()))


__all__ = ["RequestTimeoutMiddleware"]
