# ============================================================================
# EXTERNAL OWNER NOTIFIER
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Infrastructure - Downstream owner service client
# PURPOSE: Owner existence checks and association/deassociation events
# CREATED: 07 OCT 2026
# ============================================================================
"""
External Owner Notifier

The owning service (courses, lessons, profiles...) is told when an asset
is attached to or detached from one of its entities, and is asked whether
an owner exists before the lifecycle engine binds an asset to it.

HTTP contract (JSON):

    GET  {base}/owners/{owner_type}/{owner_id}         200 exists, 404 absent
    POST {base}/owners/{owner_type}/{owner_id}/media   {"event", "asset_id", "provider"}

Every failure surfaces as UnavailableError; callers decide whether to log,
retry or propagate.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional, Tuple

import httpx

from core.config.defaults import NotifierSettings
from core.contracts import OwnerRef
from core.errors import UnavailableError

logger = logging.getLogger(__name__)

EVENT_ASSOCIATED = "associated"
EVENT_DEASSOCIATED = "deassociated"


class ExternalNotifier(ABC):
    """Downstream service informed about ownership changes."""

    @abstractmethod
    async def owner_exists(self, owner: OwnerRef) -> bool:
        """True if the owner entity exists and may hold an asset."""

    @abstractmethod
    async def associated(self, asset_id: str, provider: str, owner: OwnerRef) -> None:
        """Asset attached to owner."""

    @abstractmethod
    async def deassociated(self, asset_id: str, provider: str, owner: OwnerRef) -> None:
        """Asset detached from owner."""

    async def aclose(self) -> None:
        return None


class NullNotifier(ExternalNotifier):
    """Used when no owner service is configured: every owner exists."""

    async def owner_exists(self, owner: OwnerRef) -> bool:
        return True

    async def associated(self, asset_id: str, provider: str, owner: OwnerRef) -> None:
        logger.debug(f"Association of {asset_id} to {owner} not forwarded (no notifier)")

    async def deassociated(self, asset_id: str, provider: str, owner: OwnerRef) -> None:
        logger.debug(f"Deassociation of {asset_id} from {owner} not forwarded (no notifier)")


class HttpOwnerNotifier(ExternalNotifier):
    """Async httpx client for the owner service."""

    def __init__(
        self,
        settings: NotifierSettings,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 5.0,
    ):
        self.settings = settings
        headers = {}
        if settings.auth_token:
            headers["Authorization"] = f"Bearer {settings.auth_token}"
        self._client = client or httpx.AsyncClient(
            base_url=settings.base_url, headers=headers, timeout=timeout
        )
        self._owner_types: Tuple[str, ...] = settings.owner_types

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"Owner service timeout: {method} {path}: {e}")
            raise UnavailableError("Owner service timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"Cannot reach owner service: {method} {path}: {e}")
            raise UnavailableError("Owner service unreachable") from e

    async def owner_exists(self, owner: OwnerRef) -> bool:
        if self._owner_types and owner.owner_type not in self._owner_types:
            return False

        resp = await self._request("GET", f"/owners/{owner.owner_type}/{owner.owner_id}")
        if resp.status_code == 404:
            return False
        if resp.is_success:
            return True
        logger.error(f"Owner service error {resp.status_code} checking {owner}")
        raise UnavailableError(
            f"Owner service returned HTTP {resp.status_code}", status_code=resp.status_code
        )

    async def _notify(self, event: str, asset_id: str, provider: str, owner: OwnerRef) -> None:
        resp = await self._request(
            "POST",
            f"/owners/{owner.owner_type}/{owner.owner_id}/media",
            json={"event": event, "asset_id": asset_id, "provider": provider},
        )
        if not resp.is_success:
            logger.error(
                f"Owner service rejected '{event}' for asset {asset_id} ({owner}): "
                f"HTTP {resp.status_code}"
            )
            raise UnavailableError(
                f"Owner service returned HTTP {resp.status_code}", status_code=resp.status_code
            )
        logger.info(f"Notified owner {owner}: asset {asset_id} {event}")

    async def associated(self, asset_id: str, provider: str, owner: OwnerRef) -> None:
        await self._notify(EVENT_ASSOCIATED, asset_id, provider, owner)

    async def deassociated(self, asset_id: str, provider: str, owner: OwnerRef) -> None:
        await self._notify(EVENT_DEASSOCIATED, asset_id, provider, owner)

    async def aclose(self) -> None:
        await self._client.aclose()


def build_notifier(settings: NotifierSettings, timeout: float = 5.0) -> ExternalNotifier:
    if settings.enabled:
        return HttpOwnerNotifier(settings, timeout=timeout)
    logger.warning("NOTIFIER_BASE_URL not set, owner notifications disabled")
    return NullNotifier()


__all__ = [
    "ExternalNotifier",
    "NullNotifier",
    "HttpOwnerNotifier",
    "build_notifier",
    "EVENT_ASSOCIATED",
    "EVENT_DEASSOCIATED",
]
