# ============================================================================
# OWNERSHIP DIFF
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Domain model - Owner set reconciliation
# PURPOSE: Compute owners to add/remove between current and requested sets
# CREATED: 03 OCT 2026
# ============================================================================
"""
Ownership diff computation.

Pure functions, no I/O. Order of the requested list is preserved and
duplicates are collapsed on (owner_id, owner_type).
"""

from typing import Iterable, List

from pydantic import BaseModel, Field

from core.contracts import OwnerRef


class OwnershipDiff(BaseModel):
    """Owners to associate and deassociate. Empty diff means no-op."""
    to_add: List[OwnerRef] = Field(default_factory=list)
    to_remove: List[OwnerRef] = Field(default_factory=list)

    model_config = {"frozen": True}

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_remove


def dedupe_owners(owners: Iterable[OwnerRef]) -> List[OwnerRef]:
    """Drop repeated (owner_id, owner_type) pairs, keeping first occurrence."""
    seen = set()
    unique: List[OwnerRef] = []
    for owner in owners:
        if owner.key in seen:
            continue
        seen.add(owner.key)
        unique.append(owner)
    return unique


def compute_owner_diff(
    current: Iterable[OwnerRef],
    requested: Iterable[OwnerRef],
) -> OwnershipDiff:
    """
    Diff two owner sets.

    Returns:
        OwnershipDiff with to_add = requested - current and
        to_remove = current - requested
    """
    current_list = dedupe_owners(current)
    requested_list = dedupe_owners(requested)

    current_keys = {o.key for o in current_list}
    requested_keys = {o.key for o in requested_list}

    return OwnershipDiff(
        to_add=[o for o in requested_list if o.key not in current_keys],
        to_remove=[o for o in current_list if o.key not in requested_keys],
    )


__all__ = ["OwnershipDiff", "compute_owner_diff", "dedupe_owners"]
