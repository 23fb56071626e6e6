# ============================================================================
# ASSET METADATA MODEL
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Domain model - Extended metadata document
# PURPOSE: Schema-flexible document mirrored from the asset record
# LAST_REVIEWED: 14 OCT 2026
# ============================================================================
"""
AssetMetadata Model

One JSONB document per asset, keyed by asset_id. Holds the descriptive
fields supplied at upload time plus provider detail merged from webhooks.

``owners`` mirrors MediaAsset.owner_id/owner_type. It is a list so that a
transient divergence (e.g. a failed mirror write during update_owners) can
be represented and later repaired by the reconciliation sweep; in steady
state it has 0 or 1 element.
"""

from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, List, Optional

from pydantic import BaseModel, Field

from core.contracts import OwnerRef


class AssetMetadata(BaseModel):
    """
    Extended metadata document for a media asset.
    Maps to: media.asset_metadata (asset_id, document JSONB, updated_at)
    """

    # SQL DDL METADATA
    __sql_table__: ClassVar[str] = "asset_metadata"
    __sql_schema__: ClassVar[str] = "media"
    __sql_primary_key__: ClassVar[List[str]] = ["asset_id"]

    asset_id: str = Field(..., max_length=36)
    title: Optional[str] = Field(default=None, max_length=512)
    creator_id: Optional[str] = Field(default=None, max_length=64)
    owners: List[OwnerRef] = Field(default_factory=list)

    # Provider detail (tracks, playback ids, duration, dimensions, ...)
    detail: Dict[str, Any] = Field(default_factory=dict)

    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": False}

    def owner_keys(self) -> List[tuple]:
        return [o.key for o in self.owners]

    def to_document(self) -> Dict[str, Any]:
        """JSON-ready body stored in the document column."""
        return self.model_dump(mode="json", exclude={"updated_at"})


__all__ = ["AssetMetadata"]
