# ============================================================================
# WEBHOOK INGESTOR
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Domain service - Provider callback verification and dispatch
# PURPOSE: Verify signed deliveries, translate them, drive lifecycle transitions
# CREATED: 10 OCT 2026
# ============================================================================
"""
Webhook Ingestor

Order of work for one delivery:

    1. Gateway signature check (nothing is parsed before this passes)
    2. JSON decode
    3. Gateway translation into ProviderEvent(s)
    4. Dispatch by kind to AssetLifecycleService

Each gateway verifies its provider's native scheme: Mux signs with
``Mux-Signature: t=..,v1=..`` (HMAC-SHA256), Cloudinary with
``X-Cld-Timestamp`` / ``X-Cld-Signature`` (SHA-1 with the API secret).

Application failures (NotFound, Conflict, ...) are logged and acknowledged
so the provider stops redelivering. Infrastructure failures (Unavailable,
Canceled, anything unexpected) propagate and the provider retries.
"""

import json
import time
from typing import Any, Callable, Dict, List, Mapping, Optional

from core.contracts import ProviderEventKind, ProviderKind
from core.errors import (
    InvalidArgumentError,
    ServiceError,
    UnimplementedError,
    ValidationFailedError,
)
from core.logging import get_logger, log_context, ComponentType
from core.models.events import ProviderEvent
from infrastructure.providers.base import ProviderGateway
from services.lifecycle_service import AssetLifecycleService

logger = get_logger("services.webhooks", ComponentType.WEBHOOK)


class WebhookIngestor:
    """Verifies and dispatches provider webhook deliveries."""

    def __init__(
        self,
        lifecycle: AssetLifecycleService,
        gateways: Mapping[ProviderKind, ProviderGateway],
        clock: Callable[[], float] = time.time,
    ):
        self.lifecycle = lifecycle
        self.gateways = dict(gateways)
        self._clock = clock

    async def ingest(
        self,
        provider: ProviderKind,
        body: bytes,
        headers: Mapping[str, str],
    ) -> List[ProviderEvent]:
        """
        Verify, translate and apply one delivery.

        Returns:
            The translated events (including acknowledged UNKNOWN ones)

        Raises:
            UnimplementedError: provider not configured
            ValidationFailedError: signature/timestamp rejected
            InvalidArgumentError: body is not a JSON object
        """
        gateway = self.gateways.get(provider)
        if gateway is None:
            raise UnimplementedError(
                f"Provider '{provider.value}' is not configured", provider=provider.value
            )

        with log_context(provider=provider.value, operation="webhook"):
            try:
                gateway.verify_webhook(
                    {key.lower(): value for key, value in headers.items()},
                    body,
                    self._clock(),
                )
            except ValidationFailedError as e:
                logger.warning(f"Webhook rejected: {e.message}")
                raise

            try:
                payload = json.loads(body)
            except (ValueError, UnicodeDecodeError) as e:
                raise InvalidArgumentError(f"Webhook body is not valid JSON: {e}")
            if not isinstance(payload, dict):
                raise InvalidArgumentError("Webhook body must be a JSON object")

            events = gateway.parse_events(payload)
            for event in events:
                await self.dispatch(event)
            return events

    async def dispatch(self, event: ProviderEvent) -> Optional[Any]:
        """Apply one event. Application errors are acknowledged."""
        with log_context(event_id=event.event_id, operation=f"webhook:{event.kind.value}"):
            try:
                return await self._apply(event)
            except ServiceError as e:
                if e.retryable:
                    logger.error(f"Webhook '{event.event_type}' hit {e.code}, provider will redeliver")
                    raise
                logger.warning(
                    f"Webhook '{event.event_type}' acknowledged despite {e.code}: {e.message}"
                )
                return None

    async def _apply(self, event: ProviderEvent) -> Optional[Any]:
        kind = event.kind

        if kind == ProviderEventKind.READY:
            if not event.upload_id or not event.provider_asset_id:
                raise InvalidArgumentError("Ready event without upload or asset id")
            return await self.lifecycle.on_provider_ready(
                event.upload_id, event.provider_asset_id, event.playback_id, dict(event.detail)
            )

        if kind == ProviderEventKind.ERRORED:
            if not event.upload_id:
                raise InvalidArgumentError("Error event without upload id")
            return await self.lifecycle.on_provider_errored(event.upload_id, event.error)

        if kind == ProviderEventKind.UPDATED:
            if not event.provider_asset_id:
                return None
            return await self.lifecycle.on_provider_updated(event.provider_asset_id, dict(event.detail))

        if kind == ProviderEventKind.DELETED:
            if not event.provider_asset_id:
                return None
            return await self.lifecycle.on_provider_deleted(event.provider_asset_id)

        if kind == ProviderEventKind.RENAMED:
            if not event.provider_asset_id or not event.renamed_to:
                raise InvalidArgumentError("Rename event without source or target id")
            return await self.lifecycle.on_provider_renamed(
                event.provider_asset_id, event.renamed_to
            )

        logger.info(f"Unhandled webhook type '{event.event_type}' acknowledged")
        return None


def summarize(events: List[ProviderEvent]) -> Dict[str, Any]:
    """Response body for an acknowledged delivery."""
    return {
        "received": len(events),
        "events": [{"type": e.event_type, "kind": e.kind.value} for e in events],
    }


__all__ = ["WebhookIngestor", "summarize"]
