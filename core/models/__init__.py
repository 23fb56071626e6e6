# ============================================================================
# MODELS MODULE
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Model exports
# PURPOSE: Central export point for all Pydantic models
# LAST_REVIEWED: 14 OCT 2026
# ============================================================================
"""
Models Module - Central Export Point

All Pydantic models for the media asset service.
Table models carry __sql_* ClassVar metadata read by repositories.schema.
"""

from core.models.asset import MediaAsset
from core.models.metadata import AssetMetadata
from core.models.ownership import OwnershipDiff, compute_owner_diff, dedupe_owners
from core.models.patch import AssetPatch
from core.models.events import UploadRequest, UploadTarget, ProviderEvent

__all__ = [
    # Record
    "MediaAsset",
    "AssetPatch",
    # Document
    "AssetMetadata",
    # Ownership
    "OwnershipDiff",
    "compute_owner_diff",
    "dedupe_owners",
    # Provider boundary
    "UploadRequest",
    "UploadTarget",
    "ProviderEvent",
]
