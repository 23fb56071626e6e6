# ============================================================================
# BASE CONTRACTS & ENUMS
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Foundation - Core enums and identity contracts
# PURPOSE: Asset states, provider kinds, event kinds, owner references
# LAST_REVIEWED: 14 OCT 2026
# EXPORTS: AssetState, ProviderKind, ProviderEventKind, OwnerRef
# DEPENDENCIES: enum, pydantic
# ============================================================================
"""
Base contracts for the media asset lifecycle service.

These are the minimal values that cross boundaries:
- SQL (PostgreSQL record and document tables)
- HTTP (API schemas, webhook payloads)
- Python (lifecycle engine)
"""

from enum import Enum
from typing import Tuple

from pydantic import BaseModel, Field, field_validator


# ============================================================================
# STATUS ENUMS
# ============================================================================

class AssetState(str, Enum):
    """
    Asset record lifecycle states.

    State transitions:
        PENDING -> READY <-> ARCHIVED
                -> BROKEN

    Soft-delete is orthogonal (deleted_at) and keeps the state so that
    restore returns the asset to where it was.
    """
    PENDING = "pending"      # Upload target issued, provider has not confirmed
    READY = "ready"          # Provider committed the asset
    BROKEN = "broken"        # Provider reported an ingest error (dead end)
    ARCHIVED = "archived"    # Taken out of service, provider asset kept

    def can_transition_to(self, target: "AssetState") -> bool:
        return target in _ALLOWED_TRANSITIONS.get(self, ())


_ALLOWED_TRANSITIONS = {
    AssetState.PENDING: (AssetState.READY, AssetState.BROKEN),
    AssetState.READY: (AssetState.ARCHIVED,),
    AssetState.ARCHIVED: (AssetState.READY,),
    AssetState.BROKEN: (),
}


class ProviderKind(str, Enum):
    """Remote providers hosting asset bytes."""
    MUX = "mux"                  # Video streaming
    CLOUDINARY = "cloudinary"    # Image CDN


class ProviderEventKind(str, Enum):
    """Provider-neutral webhook event kinds."""
    READY = "ready"
    ERRORED = "errored"
    UPDATED = "updated"
    DELETED = "deleted"
    RENAMED = "renamed"
    UNKNOWN = "unknown"


# ============================================================================
# OWNER REFERENCE
# ============================================================================

class OwnerRef(BaseModel):
    """
    An external entity that may own at most one active asset.

    Identity is the (owner_id, owner_type) pair.
    """
    owner_id: str = Field(..., min_length=1, max_length=64)
    owner_type: str = Field(..., min_length=1, max_length=64)

    model_config = {"frozen": True}

    @field_validator("owner_id", "owner_type")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @property
    def key(self) -> Tuple[str, str]:
        return (self.owner_id, self.owner_type)

    def __str__(self) -> str:
        return f"{self.owner_type}:{self.owner_id}"
