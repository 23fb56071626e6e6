# ============================================================================
# API ERROR HANDLERS
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Core - Error taxonomy to HTTP mapping
# PURPOSE: One exception handler per error family
# CREATED: 12 OCT 2026
# ============================================================================
"""
API Error Handlers

ServiceError subclasses become ``{"error": code, "message": ...}`` with the
status from core.errors.HTTP_STATUS_BY_CODE. Request validation failures are
reported as INVALID_ARGUMENT (400).
"""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from core.errors import InvalidArgumentError, ServiceError, http_status_for

logger = logging.getLogger(__name__)


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    status = http_status_for(exc)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
    return JSONResponse(status_code=status, content=jsonable_encoder(exc.to_dict()))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()))
        problems.append(f"{location}: {err.get('msg', 'invalid')}")
    error = InvalidArgumentError(
        "; ".join(problems) or "Invalid request", fields=problems
    )
    return JSONResponse(status_code=400, content=error.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)


__all__ = ["register_error_handlers", "service_error_handler", "validation_error_handler"]
