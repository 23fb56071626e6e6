# ============================================================================
# MEDIA ASSET MODEL
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Domain model - Authoritative asset record
# PURPOSE: Canonical relational record: identity, owner pointer, state, soft delete
# LAST_REVIEWED: 14 OCT 2026
# ============================================================================
"""
MediaAsset Model

The relational record is the source of truth for an asset's existence,
ownership and lifecycle state. Richer metadata lives in AssetMetadata
(document store) and mirrors this record's owner.

Lifecycle:
    1. Caller requests an upload target → MediaAsset created PENDING
    2. Provider webhook → READY (provider_asset_id set) or BROKEN
    3. Archive / unarchive flips READY <-> ARCHIVED
    4. Soft delete sets deleted_at and clears the owner
    5. Restore clears deleted_at; delete_permanent removes the row
"""

import uuid
from datetime import datetime, timezone
from typing import ClassVar, Dict, List, Optional

from pydantic import BaseModel, Field, computed_field, model_validator

from core.contracts import AssetState, OwnerRef, ProviderKind


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MediaAsset(BaseModel):
    """
    Canonical asset record.

    Invariants:
        owner_id set <=> owner_type set
        provider_asset_id set only once state >= READY

    Maps to: media.media_assets
    """

    # SQL DDL METADATA
    __sql_table__: ClassVar[str] = "media_assets"
    __sql_schema__: ClassVar[str] = "media"
    __sql_primary_key__: ClassVar[List[str]] = ["asset_id"]
    __sql_indexes__: ClassVar[List] = [
        ("uq_media_assets_owner", ["owner_id", "owner_type"], "owner_id IS NOT NULL"),
        ("uq_media_assets_upload", ["provider_upload_id"], "provider_upload_id IS NOT NULL"),
        ("uq_media_assets_provider_asset", ["provider_asset_id"], "provider_asset_id IS NOT NULL"),
        ("idx_media_assets_active", ["created_at"], "deleted_at IS NULL"),
    ]

    # Identity
    asset_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        max_length=36,
        description="Internal UUID, immutable",
    )
    provider: ProviderKind = Field(..., description="Remote provider hosting the bytes")
    provider_upload_id: Optional[str] = Field(default=None, max_length=255)
    provider_asset_id: Optional[str] = Field(default=None, max_length=255)

    # Ownership (at most one owner pair)
    owner_id: Optional[str] = Field(default=None, max_length=64)
    owner_type: Optional[str] = Field(default=None, max_length=64)

    # Lifecycle
    state: AssetState = Field(default=AssetState.PENDING)
    playback_id: Optional[str] = Field(
        default=None, max_length=255,
        description="Primary playback id, subject of signed playback credentials",
    )
    last_error: Optional[str] = Field(default=None, max_length=2000)

    # Timestamps
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    deleted_at: Optional[datetime] = Field(default=None)

    # Optimistic locking
    version: int = Field(default=1, ge=1, description="Row version for optimistic locking")

    model_config = {"frozen": False}

    @model_validator(mode="after")
    def _check_owner_pair(self) -> "MediaAsset":
        if (self.owner_id is None) != (self.owner_type is None):
            raise ValueError("owner_id and owner_type must be set together")
        if self.provider_asset_id is not None and self.state == AssetState.PENDING:
            raise ValueError("provider_asset_id cannot be set while pending")
        return self

    # ----------------------------------------------------------------
    # Computed fields
    # ----------------------------------------------------------------

    @computed_field
    @property
    def is_deleted(self) -> bool:
        """True if asset has been soft-deleted."""
        return self.deleted_at is not None

    @property
    def owner(self) -> Optional[OwnerRef]:
        if self.owner_id is None:
            return None
        return OwnerRef(owner_id=self.owner_id, owner_type=self.owner_type)

    def is_owned_by(self, owner: OwnerRef) -> bool:
        return self.owner_id == owner.owner_id and self.owner_type == owner.owner_type

    # ----------------------------------------------------------------
    # State transitions (in-memory; repositories persist with CAS)
    # ----------------------------------------------------------------

    def _transition(self, target: AssetState) -> None:
        if self.is_deleted:
            raise ValueError(f"Cannot move deleted asset {self.asset_id} to '{target.value}'")
        if not self.state.can_transition_to(target):
            raise ValueError(
                f"Cannot transition asset from '{self.state.value}' to '{target.value}'"
            )
        self.state = target
        self.updated_at = _now()

    def mark_ready(self, provider_asset_id: str, playback_id: Optional[str] = None) -> None:
        """Transition PENDING → READY. Soft-deleted uploads may still complete."""
        if self.state != AssetState.PENDING:
            raise ValueError(
                f"Cannot mark ready from state '{self.state.value}' "
                f"(must be '{AssetState.PENDING.value}')"
            )
        self.state = AssetState.READY
        self.provider_asset_id = provider_asset_id
        self.playback_id = playback_id
        self.updated_at = _now()

    def mark_broken(self, error: Optional[str]) -> None:
        """Transition PENDING → BROKEN."""
        if self.state != AssetState.PENDING:
            raise ValueError(
                f"Cannot mark broken from state '{self.state.value}' "
                f"(must be '{AssetState.PENDING.value}')"
            )
        self.state = AssetState.BROKEN
        self.last_error = (error or "provider reported an error")[:2000]
        self.updated_at = _now()

    def archive(self) -> None:
        """Transition READY → ARCHIVED."""
        self._transition(AssetState.ARCHIVED)

    def unarchive(self) -> None:
        """Transition ARCHIVED → READY."""
        self._transition(AssetState.READY)

    def set_owner(self, owner: OwnerRef) -> None:
        if self.is_deleted:
            raise ValueError("Cannot assign an owner to a deleted asset")
        if self.owner_id is not None and not self.is_owned_by(owner):
            raise ValueError(f"Asset {self.asset_id} is already owned by {self.owner}")
        self.owner_id = owner.owner_id
        self.owner_type = owner.owner_type
        self.updated_at = _now()

    def clear_owner(self) -> None:
        self.owner_id = None
        self.owner_type = None
        self.updated_at = _now()

    def soft_delete(self) -> None:
        """Mark asset as soft-deleted; ownership never survives deletion."""
        if self.deleted_at is not None:
            raise ValueError("Asset is already deleted")
        self.clear_owner()
        self.deleted_at = _now()

    def restore(self) -> None:
        """Clear deleted_at. Prior ownership is not restored."""
        if self.deleted_at is None:
            raise ValueError("Asset is not deleted")
        self.deleted_at = None
        self.updated_at = _now()

    def to_row(self) -> Dict[str, object]:
        """Column values for INSERT."""
        return {
            "asset_id": self.asset_id,
            "provider": self.provider.value,
            "provider_upload_id": self.provider_upload_id,
            "provider_asset_id": self.provider_asset_id,
            "owner_id": self.owner_id,
            "owner_type": self.owner_type,
            "state": self.state.value,
            "playback_id": self.playback_id,
            "last_error": self.last_error,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "deleted_at": self.deleted_at,
            "version": self.version,
        }


__all__ = ["MediaAsset"]
