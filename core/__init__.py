# ============================================================================
# CORE MODULE
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Core module initialization
# PURPOSE: Export core contracts, errors and models
# LAST_REVIEWED: 14 OCT 2026
# ============================================================================

from core.contracts import AssetState, OwnerRef, ProviderEventKind, ProviderKind
from core.errors import ServiceError
from core.models import (
    AssetMetadata,
    AssetPatch,
    MediaAsset,
    OwnershipDiff,
    ProviderEvent,
    UploadRequest,
    UploadTarget,
)

__all__ = [
    # Enums
    "AssetState",
    "ProviderKind",
    "ProviderEventKind",
    # Contracts
    "OwnerRef",
    "ServiceError",
    # Models
    "MediaAsset",
    "AssetPatch",
    "AssetMetadata",
    "OwnershipDiff",
    "ProviderEvent",
    "UploadRequest",
    "UploadTarget",
]
