# ============================================================================
# MEDIA LIFECYCLE SERVICE - MAIN APPLICATION
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Core - FastAPI application entry point
# PURPOSE: Wire stores, gateways and services; run the reconciliation sweep
# CREATED: 13 OCT 2026
# ============================================================================
"""
Media Lifecycle Service Main Application

FastAPI application that:
1. Provides HTTP API for the media asset lifecycle
2. Receives provider webhooks
3. Runs the metadata reconciliation sweep in the background

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8000
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from __version__ import __version__, BUILD_DATE, EPOCH
from core.config import get_defaults
from repositories import (
    AssetMetadataRepository,
    AssetRecordRepository,
    close_pool,
    deploy_schema,
    init_pool,
)
from infrastructure import build_gateways, build_notifier
from services import (
    AssetLifecycleService,
    MetadataMirror,
    OwnershipService,
    ReconciliationService,
    RetryScheduler,
    WebhookIngestor,
)
from api import (
    RequestTimeoutMiddleware,
    asset_router,
    health_router,
    register_error_handlers,
    set_asset_services,
    set_health_dependencies,
    set_webhook_services,
    webhook_router,
)

# Configure logging using our structured logging system
from core.logging import configure_logging, get_logger

configure_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    json_output=os.environ.get("LOG_FORMAT", "").lower() == "json",
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Initializes services on startup, cleans up on shutdown.
    """
    defaults = get_defaults()
    logger.info(f"Starting media lifecycle service v{__version__} (Epoch {EPOCH}, Build {BUILD_DATE})")

    # Initialize database pool
    pool = await init_pool(
        min_size=int(os.environ.get("DB_POOL_MIN", "2")),
        max_size=int(os.environ.get("DB_POOL_MAX", "10")),
    )
    logger.info("Database pool initialized")

    # Optional: Bootstrap schema on startup (for development)
    if os.environ.get("AUTO_BOOTSTRAP_SCHEMA", "").lower() == "true":
        logger.info("Auto-bootstrap enabled, deploying schema...")
        try:
            count = await deploy_schema(pool)
            logger.info(f"Schema bootstrap completed ({count} statements)")
        except Exception as e:
            logger.warning(f"Schema bootstrap failed (may already exist): {e}")

    records = AssetRecordRepository(pool)
    documents = AssetMetadataRepository(pool)

    # Outbound integrations
    gateways = build_gateways(defaults)
    notifier = build_notifier(defaults.notifier, timeout=defaults.timeouts.notifier_timeout)
    logger.info(f"Provider gateways configured: {[p.value for p in gateways] or 'none'}")

    # Services
    scheduler = RetryScheduler(defaults.retry, attempt_timeout=defaults.timeouts.store_timeout)
    mirror = MetadataMirror(records, documents, scheduler, defaults.timeouts.store_timeout)
    ownership = OwnershipService(
        records, mirror, notifier, scheduler,
        notifier_timeout=defaults.timeouts.notifier_timeout,
        store_timeout=defaults.timeouts.store_timeout,
    )
    lifecycle = AssetLifecycleService(
        records, documents, mirror, ownership, gateways, defaults.timeouts
    )
    ingestor = WebhookIngestor(lifecycle, gateways)
    reconciler = ReconciliationService(
        records, documents, mirror, defaults.reconcile, defaults.timeouts.store_timeout
    )

    # Set services for API routes
    set_asset_services(lifecycle_service=lifecycle, ownership_service=ownership)
    set_webhook_services(webhook_ingestor=ingestor)
    set_health_dependencies(records, [p.value for p in gateways], reconciler)

    reconciler.start()

    yield

    # Shutdown
    logger.info("Shutting down media lifecycle service...")

    await reconciler.stop()
    await mirror.close()
    await notifier.aclose()
    for gateway in gateways.values():
        await gateway.aclose()
    await close_pool()

    logger.info("Media lifecycle service stopped")


# Create FastAPI app
app = FastAPI(
    title="Media Lifecycle Service",
    description=f"Epoch {EPOCH} media asset lifecycle for video and image providers",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get("CORS_ALLOW_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request deadline
app.add_middleware(RequestTimeoutMiddleware, timeout=get_defaults().timeouts.request_timeout)

register_error_handlers(app)

# Include health check routes (no prefix - /livez, /readyz)
app.include_router(health_router)

# Include API routes
app.include_router(asset_router, prefix="/api/v1")
app.include_router(webhook_router, prefix="/api/v1")


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Media Lifecycle Service",
        "version": __version__,
        "epoch": EPOCH,
        "build_date": BUILD_DATE,
        "status": "running",
        "docs": "/docs",
    }


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8000"))

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=os.environ.get("RELOAD", "false").lower() == "true",
    )
