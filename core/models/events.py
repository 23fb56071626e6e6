# ============================================================================
# PROVIDER EVENTS & UPLOAD TARGETS
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Core model - Provider-neutral values crossing the gateway boundary
# PURPOSE: Upload requests/targets and translated webhook events
# LAST_REVIEWED: 14 OCT 2026
# EXPORTS: UploadRequest, UploadTarget, ProviderEvent
# DEPENDENCIES: pydantic
# ============================================================================
"""
Provider boundary values.

UploadRequest is what a caller supplies to create an asset, UploadTarget is
what the provider hands back (only ``upload_id`` is persisted), and
ProviderEvent is a webhook payload translated by the gateway so the
lifecycle engine never sees provider-specific JSON.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from core.contracts import OwnerRef, ProviderEventKind


class UploadRequest(BaseModel):
    """Descriptive metadata supplied when requesting an upload target."""
    title: str = Field(..., min_length=1, max_length=512)
    creator_id: Optional[str] = Field(default=None, max_length=64)
    owner: Optional[OwnerRef] = None

    # Passed through to the provider (e.g. cors_origin, folder)
    params: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title is required")
        return value


class UploadTarget(BaseModel):
    """Time-bound direct-upload destination issued by a provider."""
    upload_id: str = Field(..., min_length=1)
    upload_url: str
    expires_at: Optional[datetime] = None

    # Signed form fields the caller must include (image CDN uploads)
    params: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


class ProviderEvent(BaseModel):
    """
    Provider-neutral translation of a webhook delivery.

    ``upload_id`` identifies the pending record for READY/ERRORED;
    ``provider_asset_id`` identifies committed records for UPDATED/DELETED.
    RENAMED moves ``provider_asset_id`` to ``renamed_to``.
    """
    kind: ProviderEventKind
    event_id: Optional[str] = None
    event_type: str = ""
    upload_id: Optional[str] = None
    provider_asset_id: Optional[str] = None
    playback_id: Optional[str] = None
    detail: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    renamed_to: Optional[str] = None

    model_config = {"frozen": True}


__all__ = ["UploadRequest", "UploadTarget", "ProviderEvent"]
