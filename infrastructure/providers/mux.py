# ============================================================================
# MUX VIDEO GATEWAY
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Infrastructure - Mux Video REST client
# PURPOSE: Direct uploads, asset deletion, signed playback, webhook parsing
# CREATED: 06 OCT 2026
# ============================================================================
"""
Mux Video Gateway

REST calls use HTTP basic auth (token id / token secret):

    POST   /video/v1/uploads               direct upload URL
    GET    /video/v1/uploads/{id}          upload status (asset id once created)
    PUT    /video/v1/uploads/{id}/cancel   withdraw a waiting upload
    DELETE /video/v1/assets/{asset_id}     remove asset

Signed playback tokens are RS256 JWTs:

    header  kid = signing key id
    claims  sub = playback id, aud = "v", exp, kid, custom (optional)

The signing key is the base64-encoded PEM that Mux issues.

Webhooks carry ``Mux-Signature: t=<unix ts>,v1=<hex>`` where the hex is
HMAC-SHA256 of ``"{t}.{raw body}"`` keyed by the webhook signing secret.
"""

import base64
import binascii
import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

import httpx
from jose import jwt, JWTError

from core.config.defaults import MuxSettings
from core.contracts import ProviderEventKind, ProviderKind
from core.errors import InvalidArgumentError, UnimplementedError, ValidationFailedError
from core.logging import get_logger, ComponentType
from core.models.events import ProviderEvent, UploadRequest, UploadTarget
from .base import ProviderGateway

logger = get_logger("infrastructure.providers.mux", ComponentType.PROVIDER)

PLAYBACK_AUDIENCE = "v"
SIGNATURE_HEADER = "Mux-Signature"

_FINISHED_UPLOAD_STATES = frozenset({"cancelled", "errored", "timed_out"})

# Webhook type -> event kind
_EVENT_KINDS = {
    "video.asset.ready": ProviderEventKind.READY,
    "video.asset.errored": ProviderEventKind.ERRORED,
    "video.upload.errored": ProviderEventKind.ERRORED,
    "video.upload.cancelled": ProviderEventKind.ERRORED,
    "video.asset.updated": ProviderEventKind.UPDATED,
    "video.asset.deleted": ProviderEventKind.DELETED,
}

_DETAIL_FIELDS = (
    "status",
    "duration",
    "aspect_ratio",
    "resolution_tier",
    "max_stored_frame_rate",
    "tracks",
    "playback_ids",
)


def _webhook_digest(secret: str, timestamp: str, body: bytes) -> str:
    message = timestamp.encode("utf-8") + b"." + body
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def sign_webhook(secret: str, timestamp: int, body: bytes) -> str:
    """``Mux-Signature`` header value for ``body`` sent at ``timestamp``."""
    return f"t={timestamp},v1={_webhook_digest(secret, str(timestamp), body)}"


def verify_webhook_signature(
    secret: str,
    header: Optional[str],
    body: bytes,
    tolerance_seconds: int,
    now: float,
) -> None:
    """
    Check a ``Mux-Signature`` header. Several ``v1`` entries may be present
    while a signing secret is rotated; any one of them matching is enough.

    Raises:
        ValidationFailedError: missing/malformed header, stale timestamp,
            no matching signature
    """
    if not secret:
        raise ValidationFailedError("Mux webhook secret is not configured")
    if not header:
        raise ValidationFailedError(f"Missing {SIGNATURE_HEADER} header")

    timestamp: Optional[str] = None
    signatures: List[str] = []
    for part in header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value.lower())
    if not timestamp or not signatures:
        raise ValidationFailedError(f"Malformed {SIGNATURE_HEADER} header")

    try:
        sent_at = int(timestamp)
    except ValueError:
        raise ValidationFailedError(f"{SIGNATURE_HEADER} timestamp is not an integer")
    if abs(now - sent_at) > tolerance_seconds:
        raise ValidationFailedError(
            "Mux webhook timestamp outside tolerance window",
            tolerance_seconds=tolerance_seconds,
        )

    expected = _webhook_digest(secret, timestamp, body)
    if not any(hmac.compare_digest(expected, candidate) for candidate in signatures):
        raise ValidationFailedError("Mux webhook signature mismatch")


class MuxGateway(ProviderGateway):
    """Mux Video provider."""

    kind = ProviderKind.MUX

    def __init__(self, settings: MuxSettings, client: Optional[httpx.AsyncClient] = None,
                 timeout: float = 10.0):
        client = client or httpx.AsyncClient(
            base_url=settings.base_url,
            auth=(settings.token_id, settings.token_secret),
            timeout=timeout,
        )
        super().__init__(client)
        self.settings = settings

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    async def create_upload_target(self, asset_id: str, request: UploadRequest) -> UploadTarget:
        policy = request.params.get("playback_policy", self.settings.playback_policy)
        meta = {"title": request.title, "external_id": asset_id}
        if request.creator_id:
            meta["creator_id"] = request.creator_id

        body = {
            "new_asset_settings": {
                "playback_policy": [policy],
                "video_quality": "basic",
                "passthrough": asset_id,
                "meta": meta,
            },
            "cors_origin": request.params.get("cors_origin", self.settings.cors_origin or "*"),
            "timeout": self.settings.upload_timeout_seconds,
            "test": self.settings.test_mode,
        }

        resp = await self._request("POST", "/video/v1/uploads", json=body)
        data = resp.json().get("data", {})
        timeout = int(data.get("timeout") or self.settings.upload_timeout_seconds)

        target = UploadTarget(
            upload_id=data["id"],
            upload_url=data["url"],
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=timeout),
        )
        logger.info(f"Mux direct upload created: {target.upload_id}")
        return target

    async def delete_remote_asset(self, provider_asset_id: str) -> None:
        resp = await self._request(
            "DELETE", f"/video/v1/assets/{provider_asset_id}", ok_statuses=(404,)
        )
        if resp.status_code == 404:
            logger.warning(f"Mux asset {provider_asset_id} already absent")
        else:
            logger.info(f"Mux asset {provider_asset_id} deleted")

    async def cancel_upload(self, upload_id: str) -> None:
        """
        Withdraw a direct upload. If the bytes already landed and Mux made
        an asset the webhook has not reported yet, that asset is deleted.
        """
        resp = await self._request("GET", f"/video/v1/uploads/{upload_id}", ok_statuses=(404,))
        if resp.status_code == 404:
            logger.warning(f"Mux upload {upload_id} already absent")
            return

        data = resp.json().get("data", {})
        if data.get("asset_id"):
            logger.info(f"Mux upload {upload_id} already produced asset {data['asset_id']}")
            await self.delete_remote_asset(data["asset_id"])
            return
        if data.get("status") in _FINISHED_UPLOAD_STATES:
            logger.info(f"Mux upload {upload_id} already {data['status']}")
            return

        await self._request("PUT", f"/video/v1/uploads/{upload_id}/cancel")
        logger.info(f"Mux upload {upload_id} cancelled")

    # ------------------------------------------------------------------
    # Signed playback
    # ------------------------------------------------------------------

    def _signing_key(self) -> str:
        try:
            return base64.b64decode(self.settings.signing_key_private).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise UnimplementedError("Mux signing key is not valid base64 PEM") from e

    async def sign_playback_credential(
        self,
        subject: str,
        expires_at: datetime,
        claims: Optional[Dict[str, Any]] = None,
    ) -> str:
        if not self.settings.can_sign:
            raise UnimplementedError("Mux signing key is not configured", provider=self.kind.value)

        payload: Dict[str, Any] = {
            "sub": subject,
            "aud": PLAYBACK_AUDIENCE,
            "exp": int(expires_at.timestamp()),
            "kid": self.settings.signing_key_id,
        }
        custom = {k: v for k, v in (claims or {}).items() if v is not None}
        if custom:
            payload["custom"] = custom

        try:
            return jwt.encode(
                payload,
                self._signing_key(),
                algorithm="RS256",
                headers={"kid": self.settings.signing_key_id},
            )
        except JWTError as e:
            logger.error(f"Failed to sign playback token: {e}")
            raise UnimplementedError("Mux signing key could not be used") from e

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def verify_webhook(self, headers: Mapping[str, str], body: bytes, now: float) -> None:
        verify_webhook_signature(
            self.settings.webhook_secret,
            headers.get(SIGNATURE_HEADER.lower()),
            body,
            self.settings.webhook_tolerance_seconds,
            now,
        )

    @staticmethod
    def _playback_id(data: Dict[str, Any]) -> Optional[str]:
        playback_ids: List[Dict[str, Any]] = data.get("playback_ids") or []
        # Prefer a signed playback id; signed credentials are minted against it
        for entry in playback_ids:
            if entry.get("policy") == "signed":
                return entry.get("id")
        return playback_ids[0].get("id") if playback_ids else None

    @staticmethod
    def _error_text(data: Dict[str, Any]) -> Optional[str]:
        errors = data.get("errors") or data.get("error") or {}
        if isinstance(errors, str):
            return errors
        if not isinstance(errors, dict):
            return None
        messages = errors.get("messages") or []
        if messages:
            return "; ".join(str(m) for m in messages)
        return errors.get("type")

    def parse_event(self, payload: Dict[str, Any]) -> ProviderEvent:
        event_type = payload.get("type")
        data = payload.get("data")
        if not isinstance(event_type, str) or not isinstance(data, dict):
            raise InvalidArgumentError("Mux webhook missing 'type' or 'data'")

        kind = _EVENT_KINDS.get(event_type, ProviderEventKind.UNKNOWN)
        detail = {k: data[k] for k in _DETAIL_FIELDS if k in data}

        if event_type.startswith("video.upload."):
            # data is the upload object; data.id is the upload id
            return ProviderEvent(
                kind=kind,
                event_id=payload.get("id"),
                event_type=event_type,
                upload_id=data.get("id"),
                provider_asset_id=data.get("asset_id"),
                error=self._error_text(data) or event_type,
            )

        return ProviderEvent(
            kind=kind,
            event_id=payload.get("id"),
            event_type=event_type,
            upload_id=data.get("upload_id"),
            provider_asset_id=data.get("id"),
            playback_id=self._playback_id(data),
            detail=detail,
            error=self._error_text(data) if kind == ProviderEventKind.ERRORED else None,
        )


__all__ = [
    "MuxGateway",
    "PLAYBACK_AUDIENCE",
    "SIGNATURE_HEADER",
    "sign_webhook",
    "verify_webhook_signature",
]
