# ============================================================================
# API SCHEMAS
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Core - Request/Response schemas
# PURPOSE: Pydantic models for API validation
# CREATED: 12 OCT 2026
# ============================================================================
"""
API Schemas

Request and response models for the API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from core.contracts import AssetState, OwnerRef, ProviderKind
from core.models.asset import MediaAsset
from core.models.events import UploadRequest, UploadTarget
from core.models.metadata import AssetMetadata


# ============================================================================
# REQUEST SCHEMAS
# ============================================================================

class UploadCreate(BaseModel):
    """Request to create a direct-upload target."""
    title: str = Field(..., max_length=512, description="Human readable title")
    creator_id: Optional[str] = Field(None, max_length=64)
    owner: Optional[OwnerRef] = Field(None, description="Owner to bind on creation")
    params: Dict[str, Any] = Field(
        default_factory=dict,
        description="Provider pass-through options (cors_origin, resource_type...)"
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "title": "Lesson 3 intro",
                    "creator_id": "user-42",
                    "owner": {"owner_id": "lesson-3", "owner_type": "lesson"},
                }
            ]
        }
    }

    def to_request(self) -> UploadRequest:
        return UploadRequest(
            title=self.title,
            creator_id=self.creator_id,
            owner=self.owner,
            params=self.params,
        )


class OwnerBody(BaseModel):
    """Single owner for associate/deassociate."""
    owner_id: str = Field(..., max_length=64)
    owner_type: str = Field(..., max_length=64)

    def to_ref(self) -> OwnerRef:
        return OwnerRef(owner_id=self.owner_id, owner_type=self.owner_type)


class OwnersUpdate(BaseModel):
    """Desired owner set (at most one distinct owner)."""
    owners: List[OwnerRef] = Field(default_factory=list)


class PlaybackTokenCreate(BaseModel):
    expires_in: int = Field(3600, ge=1, le=7 * 24 * 3600, description="Seconds until expiry")
    claims: Dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# RESPONSE SCHEMAS
# ============================================================================

class MetadataResponse(BaseModel):
    title: Optional[str] = None
    creator_id: Optional[str] = None
    owners: List[OwnerRef] = []
    detail: Dict[str, Any] = {}
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, metadata: AssetMetadata) -> "MetadataResponse":
        return cls(
            title=metadata.title,
            creator_id=metadata.creator_id,
            owners=list(metadata.owners),
            detail=dict(metadata.detail),
            updated_at=metadata.updated_at,
        )


class AssetResponse(BaseModel):
    """Asset record, optionally hydrated with its metadata document."""
    asset_id: str
    provider: ProviderKind
    state: AssetState
    provider_upload_id: Optional[str] = None
    provider_asset_id: Optional[str] = None
    playback_id: Optional[str] = None
    owner: Optional[OwnerRef] = None
    last_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None
    version: int
    metadata: Optional[MetadataResponse] = None

    @classmethod
    def from_model(
        cls, record: MediaAsset, metadata: Optional[AssetMetadata] = None
    ) -> "AssetResponse":
        return cls(
            asset_id=record.asset_id,
            provider=record.provider,
            state=record.state,
            provider_upload_id=record.provider_upload_id,
            provider_asset_id=record.provider_asset_id,
            playback_id=record.playback_id,
            owner=record.owner,
            last_error=record.last_error,
            created_at=record.created_at,
            updated_at=record.updated_at,
            deleted_at=record.deleted_at,
            version=record.version,
            metadata=MetadataResponse.from_model(metadata) if metadata else None,
        )


class AssetListResponse(BaseModel):
    assets: List[AssetResponse]
    total: int
    limit: int
    offset: int


class UploadTargetResponse(BaseModel):
    upload_id: str
    upload_url: str
    expires_at: Optional[datetime] = None
    params: Dict[str, Any] = {}

    @classmethod
    def from_model(cls, target: UploadTarget) -> "UploadTargetResponse":
        return cls(
            upload_id=target.upload_id,
            upload_url=target.upload_url,
            expires_at=target.expires_at,
            params=dict(target.params),
        )


class UploadResponse(BaseModel):
    """Pending asset plus where to send the bytes."""
    asset: AssetResponse
    upload: UploadTargetResponse


class OwnersUpdateResponse(BaseModel):
    asset: AssetResponse
    added: List[OwnerRef] = []
    removed: List[OwnerRef] = []


class PlaybackTokenResponse(BaseModel):
    token: str
    expires_at: datetime


class WebhookEventSummary(BaseModel):
    type: str
    kind: str


class WebhookAckResponse(BaseModel):
    received: int
    events: List[WebhookEventSummary] = []


class ErrorResponse(BaseModel):
    """Error response body for every ServiceError."""
    error: str
    message: str
    details: Optional[Dict[str, Any]] = None
