# ============================================================================
# CLOUDINARY IMAGE GATEWAY
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Infrastructure - Cloudinary upload/destroy client
# PURPOSE: Signed direct-upload params, signed destroy, webhook parsing
# CREATED: 07 OCT 2026
# ============================================================================
"""
Cloudinary Image Gateway

Direct uploads are "signed uploads": the caller POSTs the file to the
upload URL together with the returned form params. No remote call is
needed to issue the target.

The asset's ``public_id`` is both the upload id and the provider asset id,
since destroy is addressed by public_id.

Signature: SHA-1 hex of the alphabetically sorted ``key=value`` pairs
joined with ``&``, followed by the API secret. ``file``, ``api_key``,
``cloud_name`` and ``resource_type`` are never signed.

Notifications carry ``X-Cld-Timestamp`` and ``X-Cld-Signature``; the
signature is SHA-1 hex of ``raw body + timestamp + api secret`` and a
notification is honoured for two hours after its timestamp.
"""

import hashlib
import hmac
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

import httpx

from core.config.defaults import CloudinarySettings
from core.contracts import ProviderEventKind, ProviderKind
from core.errors import InvalidArgumentError, ValidationFailedError
from core.logging import get_logger, ComponentType
from core.models.events import ProviderEvent, UploadRequest, UploadTarget
from .base import ProviderGateway

logger = get_logger("infrastructure.providers.cloudinary", ComponentType.PROVIDER)

TIMESTAMP_HEADER = "X-Cld-Timestamp"
SIGNATURE_HEADER = "X-Cld-Signature"

_UNSIGNED_PARAMS = frozenset({"file", "api_key", "cloud_name", "resource_type"})

_DETAIL_FIELDS = (
    "asset_id",
    "resource_type",
    "format",
    "width",
    "height",
    "bytes",
    "secure_url",
    "version",
)


def sign_params(params: Dict[str, Any], api_secret: str) -> str:
    """Cloudinary request signature."""
    to_sign = "&".join(
        f"{key}={params[key]}"
        for key in sorted(params)
        if key not in _UNSIGNED_PARAMS and params[key] not in (None, "")
    )
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


def notification_signature(body: bytes, timestamp: str, api_secret: str) -> str:
    """Signature Cloudinary puts on a webhook notification."""
    return hashlib.sha1(body + timestamp.encode("utf-8") + api_secret.encode("utf-8")).hexdigest()


def verify_notification_signature(
    api_secret: str,
    timestamp: Optional[str],
    signature: Optional[str],
    body: bytes,
    valid_for_seconds: int,
    now: float,
) -> None:
    """
    Raises:
        ValidationFailedError: missing headers, expired notification, bad signature
    """
    if not api_secret:
        raise ValidationFailedError("Cloudinary API secret is not configured")
    if not timestamp or not signature:
        raise ValidationFailedError(f"Missing {TIMESTAMP_HEADER} or {SIGNATURE_HEADER} header")

    try:
        sent_at = int(timestamp)
    except ValueError:
        raise ValidationFailedError(f"{TIMESTAMP_HEADER} is not an integer")
    if sent_at < now - valid_for_seconds:
        raise ValidationFailedError(
            "Cloudinary notification expired", valid_for_seconds=valid_for_seconds
        )

    expected = notification_signature(body, timestamp, api_secret)
    if not hmac.compare_digest(expected, signature.strip().lower()):
        raise ValidationFailedError("Cloudinary notification signature mismatch")


class CloudinaryGateway(ProviderGateway):
    """Cloudinary image provider. Playback signing is not supported."""

    kind = ProviderKind.CLOUDINARY

    def __init__(self, settings: CloudinarySettings, client: Optional[httpx.AsyncClient] = None,
                 timeout: float = 10.0):
        client = client or httpx.AsyncClient(base_url=settings.base_url, timeout=timeout)
        super().__init__(client)
        self.settings = settings

    def _endpoint(self, resource_type: str, action: str) -> str:
        return f"/v1_1/{self.settings.cloud_name}/{resource_type}/{action}"

    def _signed(self, params: Dict[str, Any]) -> Dict[str, Any]:
        signed = dict(params)
        signed["signature"] = sign_params(params, self.settings.api_secret)
        signed["api_key"] = self.settings.api_key
        return signed

    async def create_upload_target(self, asset_id: str, request: UploadRequest) -> UploadTarget:
        resource_type = request.params.get("resource_type", "image")
        public_id = asset_id
        params: Dict[str, Any] = {
            "public_id": public_id,
            "timestamp": str(int(time.time())),
        }
        folder = request.params.get("folder", self.settings.folder)
        if folder:
            params["folder"] = folder
            public_id = f"{folder}/{asset_id}"
        if request.params.get("eager"):
            params["eager"] = request.params["eager"]

        target = UploadTarget(
            upload_id=public_id,
            upload_url=f"{self.settings.base_url}{self._endpoint(resource_type, 'upload')}",
            expires_at=datetime.now(timezone.utc)
            + timedelta(seconds=self.settings.upload_expiry_seconds),
            params=self._signed(params),
        )
        logger.info(f"Cloudinary signed upload issued: {public_id}")
        return target

    async def delete_remote_asset(self, provider_asset_id: str) -> None:
        params = self._signed({
            "public_id": provider_asset_id,
            "timestamp": str(int(time.time())),
            "invalidate": "true",
        })
        resp = await self._request(
            "POST", self._endpoint("image", "destroy"), data=params
        )
        result = resp.json().get("result")
        if result == "not found":
            logger.warning(f"Cloudinary asset {provider_asset_id} already absent")
        else:
            logger.info(f"Cloudinary asset {provider_asset_id} destroyed ({result})")

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def verify_webhook(self, headers: Mapping[str, str], body: bytes, now: float) -> None:
        verify_notification_signature(
            self.settings.api_secret,
            headers.get(TIMESTAMP_HEADER.lower()),
            headers.get(SIGNATURE_HEADER.lower()),
            body,
            self.settings.notification_valid_for_seconds,
            now,
        )

    def parse_event(self, payload: Dict[str, Any]) -> ProviderEvent:
        return self.parse_events(payload)[0]

    def parse_events(self, payload: Dict[str, Any]) -> List[ProviderEvent]:
        notification_type = payload.get("notification_type")
        if not isinstance(notification_type, str):
            raise InvalidArgumentError("Cloudinary webhook missing 'notification_type'")

        event_id = payload.get("request_id") or payload.get("notification_id")

        if notification_type == "upload":
            public_id = payload.get("public_id")
            if not public_id:
                raise InvalidArgumentError("Cloudinary upload webhook missing 'public_id'")
            return [ProviderEvent(
                kind=ProviderEventKind.READY,
                event_id=event_id,
                event_type=notification_type,
                upload_id=public_id,
                provider_asset_id=public_id,
                detail={k: payload[k] for k in _DETAIL_FIELDS if k in payload},
            )]

        if notification_type == "rename":
            from_public_id = payload.get("from_public_id")
            to_public_id = payload.get("to_public_id")
            if not from_public_id or not to_public_id:
                raise InvalidArgumentError(
                    "Cloudinary rename webhook missing 'from_public_id' or 'to_public_id'"
                )
            return [ProviderEvent(
                kind=ProviderEventKind.RENAMED,
                event_id=event_id,
                event_type=notification_type,
                provider_asset_id=from_public_id,
                renamed_to=to_public_id,
            )]

        if notification_type == "delete":
            resources = payload.get("resources") or []
            events = [
                ProviderEvent(
                    kind=ProviderEventKind.DELETED,
                    event_id=event_id,
                    event_type=notification_type,
                    provider_asset_id=resource.get("public_id"),
                )
                for resource in resources
                if resource.get("public_id")
            ]
            if events:
                return events

        return [ProviderEvent(
            kind=ProviderEventKind.UNKNOWN,
            event_id=event_id,
            event_type=notification_type,
        )]


__all__ = [
    "CloudinaryGateway",
    "SIGNATURE_HEADER",
    "TIMESTAMP_HEADER",
    "notification_signature",
    "sign_params",
    "verify_notification_signature",
]
