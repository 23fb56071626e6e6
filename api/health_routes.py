# ============================================================================
# HEALTH ROUTES
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Infrastructure - Kubernetes probes
# PURPOSE: Liveness and readiness endpoints
# CREATED: 12 OCT 2026
# ============================================================================
"""
Health Routes

Endpoints:
    GET /livez   - Liveness probe (is the process alive?)
                   Always 200 while the event loop is responsive.

    GET /readyz  - Readiness probe (can we accept work?)
                   200 if the record store answers a ping and the services
                   are wired; 503 otherwise. The metadata store is a mirror
                   and does not gate readiness.
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from __version__ import __version__, BUILD_DATE

logger = logging.getLogger(__name__)

health_router = APIRouter(tags=["Health"])

_records = None
_providers: Optional[list] = None
_reconciler = None

READY_TIMEOUT_SEC = 5.0


def set_health_dependencies(records, providers=None, reconciler=None):
    global _records, _providers, _reconciler
    _records = records
    _providers = list(providers or [])
    _reconciler = reconciler


@health_router.get("/livez")
async def liveness_probe():
    """No external checks; confirms the process is responsive."""
    return {"status": "alive", "version": __version__, "build_date": BUILD_DATE}


@health_router.get("/readyz")
async def readiness_probe():
    if _records is None:
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "reason": "services not initialized"},
        )

    try:
        ok = await asyncio.wait_for(_records.ping(), timeout=READY_TIMEOUT_SEC)
    except Exception as e:
        logger.warning(f"Readiness ping failed: {e}")
        ok = False

    if not ok:
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "reason": "record store unreachable"},
        )

    body = {"status": "ready", "providers": _providers or []}
    if _reconciler is not None and _reconciler.last_stats is not None:
        body["last_reconcile"] = _reconciler.last_stats.to_dict()
    return body
