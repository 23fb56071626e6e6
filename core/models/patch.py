# ============================================================================
# ASSET PATCH
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Domain model - Field-level record patch
# PURPOSE: Distinguish "leave unchanged" from "set to null" in record updates
# CREATED: 03 OCT 2026
# ============================================================================
"""
AssetPatch

A patch only touches the fields that were explicitly supplied. Presence is
tracked by pydantic (``model_fields_set``), so ``AssetPatch(playback_id=None)``
clears the column while ``AssetPatch()`` leaves it alone.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel

from core.contracts import AssetState


class AssetPatch(BaseModel):
    """Optional column updates for a media asset row."""

    state: Optional[AssetState] = None
    provider_upload_id: Optional[str] = None
    provider_asset_id: Optional[str] = None
    playback_id: Optional[str] = None
    last_error: Optional[str] = None

    model_config = {"frozen": True}

    def changes(self) -> Dict[str, Any]:
        """Column -> value for every explicitly supplied field."""
        result: Dict[str, Any] = {}
        for name in self.model_fields_set:
            value = getattr(self, name)
            if isinstance(value, AssetState):
                value = value.value
            result[name] = value
        return result

    @property
    def is_empty(self) -> bool:
        return not self.model_fields_set


__all__ = ["AssetPatch"]
