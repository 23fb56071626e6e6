# ============================================================================
# PROVIDER GATEWAY BASE
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Infrastructure - Remote media provider abstraction
# PURPOSE: Capability surface shared by video and image providers
# CREATED: 06 OCT 2026
# ============================================================================
"""
Provider Gateway Base

Every provider exposes the same capabilities to the lifecycle engine:

    create_upload_target     time-bound direct upload destination
    cancel_upload            withdraw an upload that never committed
    delete_remote_asset      remove committed bytes at the provider
    sign_playback_credential signed token for private playback
    verify_webhook           provider-native delivery authentication
    parse_event(s)           webhook JSON -> ProviderEvent

Calls are single-attempt with an explicit timeout. Transport errors,
timeouts and non-2xx responses all surface as UnavailableError; retry
policy belongs to the caller.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

import httpx

from core.contracts import ProviderKind
from core.errors import UnavailableError, UnimplementedError
from core.models.events import ProviderEvent, UploadRequest, UploadTarget

logger = logging.getLogger(__name__)


class ProviderGateway(ABC):
    """Abstract remote media provider."""

    kind: ProviderKind

    def __init__(self, client: httpx.AsyncClient):
        self._client = client

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    @abstractmethod
    async def create_upload_target(self, asset_id: str, request: UploadRequest) -> UploadTarget:
        """Ask the provider for a direct-upload destination."""

    @abstractmethod
    async def delete_remote_asset(self, provider_asset_id: str) -> None:
        """Delete committed bytes. Already-absent assets are not an error."""

    async def cancel_upload(self, upload_id: str) -> None:
        """Withdraw a pending upload target. Providers whose targets simply expire do nothing."""
        logger.info(f"{self.kind.value} upload {upload_id} left to expire")

    async def sign_playback_credential(
        self,
        subject: str,
        expires_at: datetime,
        claims: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Mint a signed playback token for ``subject``."""
        raise UnimplementedError(
            f"Provider '{self.kind.value}' does not support signed playback",
            provider=self.kind.value,
        )

    @abstractmethod
    def verify_webhook(self, headers: Mapping[str, str], body: bytes, now: float) -> None:
        """
        Authenticate a delivery. ``headers`` keys are lower-case.

        Raises:
            ValidationFailedError: missing or stale headers, bad signature
        """

    @abstractmethod
    def parse_event(self, payload: Dict[str, Any]) -> ProviderEvent:
        """Translate one webhook payload into a provider-neutral event."""

    def parse_events(self, payload: Dict[str, Any]) -> List[ProviderEvent]:
        """Some deliveries (bulk deletes) carry several events."""
        return [self.parse_event(payload)]

    # ------------------------------------------------------------------
    # HTTP helper
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        url: str,
        *,
        ok_statuses: tuple = (),
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Single HTTP attempt.

        Statuses listed in ``ok_statuses`` are returned to the caller even
        when they are not 2xx (e.g. 404 on delete).
        """
        try:
            resp = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"{self.kind.value} timeout: {method} {url}: {e}")
            raise UnavailableError(
                f"{self.kind.value} request timed out", provider=self.kind.value
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Cannot reach {self.kind.value} at {url}: {e}")
            raise UnavailableError(
                f"{self.kind.value} unreachable", provider=self.kind.value
            ) from e

        if resp.is_success or resp.status_code in ok_statuses:
            return resp

        logger.error(
            f"{self.kind.value} error {resp.status_code}: {method} {url} -> {resp.text[:500]}"
        )
        raise UnavailableError(
            f"{self.kind.value} returned HTTP {resp.status_code}",
            provider=self.kind.value,
            status_code=resp.status_code,
        )

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["ProviderGateway"]
