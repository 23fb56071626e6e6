# ============================================================================
# WEBHOOK ROUTES
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Core - Provider callback endpoint
# PURPOSE: Hand raw signed deliveries to the WebhookIngestor
# CREATED: 12 OCT 2026
# ============================================================================
"""
Webhook Routes

    POST /webhooks/{provider}

The raw body and headers are passed through untouched; each provider signs
the exact bytes it sent and names its own signature headers.

200 acknowledges the delivery, 422 rejects the signature, 503 asks the
provider to redeliver.
"""

import logging

from fastapi import APIRouter, HTTPException, Request

from core.contracts import ProviderKind
from services.webhook_service import summarize
from .schemas import ErrorResponse, WebhookAckResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Webhooks"])

_webhook_ingestor = None


def set_webhook_services(webhook_ingestor):
    """Set service instances for dependency injection."""
    global _webhook_ingestor
    _webhook_ingestor = webhook_ingestor


def get_webhook_ingestor():
    if _webhook_ingestor is None:
        raise HTTPException(500, "Webhook ingestor not initialized")
    return _webhook_ingestor


@router.post(
    "/webhooks/{provider}",
    response_model=WebhookAckResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Malformed body"},
        422: {"model": ErrorResponse, "description": "Signature rejected"},
        503: {"model": ErrorResponse, "description": "Retry later"},
    },
)
async def receive_webhook(provider: ProviderKind, request: Request):
    """Verify and apply a provider webhook delivery."""
    ingestor = get_webhook_ingestor()
    body = await request.body()

    events = await ingestor.ingest(provider, body, request.headers)
    logger.info(f"Acknowledged {len(events)} {provider.value} webhook event(s)")
    return summarize(events)
