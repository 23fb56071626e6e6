# ============================================================================
# OWNERSHIP SERVICE
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Domain service - Single-owner association protocol
# PURPOSE: Associate, deassociate and reconcile asset owners
# CREATED: 09 OCT 2026
# ============================================================================
"""
OwnershipService

An asset has at most one owner and an owner holds at most one active asset.
The second rule is enforced by the partial unique index on
(owner_id, owner_type); the service checks it first for a clean error and
relies on the index for races.

Write order for every change:
    1. Conditional record write (version + owner precondition)
    2. Metadata mirror copies the record's owner
    3. Notifier hears about the change (failures logged, not retried)

Pattern: Constructor injection of repositories, mirror and notifier.
"""

from typing import Iterable, List, Optional, Tuple

from core.contracts import AssetState, OwnerRef
from core.errors import ConflictError, InvalidArgumentError, NotFoundError, ServiceError
from core.logging import get_logger, log_context, log_checkpoint, ComponentType
from core.models.asset import MediaAsset
from core.models.ownership import OwnershipDiff, compute_owner_diff, dedupe_owners
from infrastructure.notifier import ExternalNotifier
from services.metadata_mirror import MetadataMirror
from services.retry import RetryScheduler, call_with_timeout

logger = get_logger("services.ownership", ComponentType.SERVICE)


class OwnershipService:
    """Business rules for asset ownership."""

    def __init__(
        self,
        records,
        mirror: MetadataMirror,
        notifier: ExternalNotifier,
        scheduler: Optional[RetryScheduler] = None,
        notifier_timeout: Optional[float] = None,
        store_timeout: Optional[float] = None,
    ):
        self.records = records
        self.mirror = mirror
        self.notifier = notifier
        self.scheduler = scheduler or mirror.scheduler
        self.notifier_timeout = notifier_timeout
        self.store_timeout = store_timeout if store_timeout is not None else mirror.store_timeout

    # ================================================================
    # HELPERS
    # ================================================================

    async def _get_active(self, asset_id: str) -> MediaAsset:
        record = await call_with_timeout(
            self.records.get(asset_id), self.store_timeout, "record lookup"
        )
        if record is None:
            raise NotFoundError(f"Asset {asset_id} not found", asset_id=asset_id)
        return record

    async def ensure_owner_available(self, owner: OwnerRef, asset_id: Optional[str] = None) -> None:
        """
        Check an owner may take an asset.

        Raises:
            ConflictError: owner already holds another active asset
            NotFoundError: notifier does not know the owner
        """
        holder = await call_with_timeout(
            self.records.get_by_owner(owner), self.store_timeout, "owner lookup"
        )
        if holder is not None and holder.asset_id != asset_id:
            raise ConflictError(
                f"Owner {owner} is already associated with asset {holder.asset_id}",
                owner=str(owner),
                asset_id=holder.asset_id,
            )

        exists = await call_with_timeout(
            self.notifier.owner_exists(owner), self.notifier_timeout, "owner lookup"
        )
        if not exists:
            raise NotFoundError(f"Owner {owner} not found", owner=str(owner))

    async def notify_associated(self, record: MediaAsset, owner: OwnerRef) -> None:
        try:
            await call_with_timeout(
                self.notifier.associated(record.asset_id, record.provider.value, owner),
                self.notifier_timeout,
                "association notification",
            )
        except ServiceError as e:
            logger.error(f"Association notification for {owner} failed: {e.message}")

    async def notify_deassociated(self, record: MediaAsset, owner: OwnerRef) -> None:
        try:
            await call_with_timeout(
                self.notifier.deassociated(record.asset_id, record.provider.value, owner),
                self.notifier_timeout,
                "deassociation notification",
            )
        except ServiceError as e:
            logger.error(f"Deassociation notification for {owner} failed: {e.message}")

    async def notify_released(self, record: MediaAsset, owner: OwnerRef) -> None:
        """
        Deassociation that follows a soft delete.

        Unlike ordinary notifications this one is retried in the background:
        the owner must learn that its asset is gone.
        """
        def attempt():
            return self.notifier.deassociated(record.asset_id, record.provider.value, owner)

        try:
            await call_with_timeout(attempt(), self.notifier_timeout, "release notification")
            return
        except ServiceError as e:
            logger.warning(f"Release notification for {owner} failed ({e.code}), retrying")

        self.scheduler.schedule(f"release-{record.asset_id}", attempt)

    # ================================================================
    # ASSOCIATE / DEASSOCIATE
    # ================================================================

    async def associate(self, asset_id: str, owner: OwnerRef) -> MediaAsset:
        """
        Bind ``owner`` to an active asset.

        Raises:
            NotFoundError: asset or owner does not exist
            ConflictError: asset owned by someone else, broken, owner busy,
                or the conditional write lost a race
        """
        with log_context(asset_id=asset_id, owner=str(owner), operation="associate"):
            record = await self._get_active(asset_id)

            if record.is_owned_by(owner):
                logger.debug("Owner already associated, nothing to do")
                return record
            if record.owner_id is not None:
                raise ConflictError(
                    f"Asset {asset_id} is already owned by {record.owner}",
                    asset_id=asset_id,
                )
            if record.state == AssetState.BROKEN:
                raise ConflictError(f"Asset {asset_id} is broken", asset_id=asset_id)

            await self.ensure_owner_available(owner, asset_id)

            rows = await call_with_timeout(
                self.records.set_owner(asset_id, owner, record.version),
                self.store_timeout,
                "owner assignment",
            )
            if rows == 0:
                raise ConflictError(
                    f"Asset {asset_id} was modified concurrently", asset_id=asset_id
                )
            record.set_owner(owner)
            record.version += 1

            await self.mirror.sync_owners(asset_id)
            await self.notify_associated(record, owner)
            log_checkpoint("asset_associated", {"owner": str(owner)})
            return record

    async def deassociate(self, asset_id: str, owner: OwnerRef) -> MediaAsset:
        """
        Unbind ``owner``. Succeeds without change if it is not the owner.

        Raises:
            NotFoundError: asset does not exist
            ConflictError: the conditional write lost a race
        """
        with log_context(asset_id=asset_id, owner=str(owner), operation="deassociate"):
            record = await self._get_active(asset_id)

            if not record.is_owned_by(owner):
                logger.debug("Owner not associated, nothing to do")
                return record

            rows = await call_with_timeout(
                self.records.clear_owner(asset_id, owner, record.version),
                self.store_timeout,
                "owner release",
            )
            if rows == 0:
                raise ConflictError(
                    f"Asset {asset_id} was modified concurrently", asset_id=asset_id
                )
            record.clear_owner()
            record.version += 1

            await self.mirror.sync_owners(asset_id)
            await self.notify_deassociated(record, owner)
            log_checkpoint("asset_deassociated", {"owner": str(owner)})
            return record

    # ================================================================
    # UPDATE OWNERS (diff-based)
    # ================================================================

    async def update_owners(
        self, asset_id: str, requested: Iterable[OwnerRef]
    ) -> Tuple[MediaAsset, OwnershipDiff]:
        """
        Make the asset's owner set equal ``requested`` (0 or 1 owner).

        Removals run before additions, so two owners are never bound at
        once. If an addition fails after a removal, the asset stays unowned
        and the error propagates.

        Raises:
            InvalidArgumentError: more than one distinct owner requested
        """
        wanted: List[OwnerRef] = dedupe_owners(requested)
        if len(wanted) > 1:
            raise InvalidArgumentError(
                "An asset can have at most one owner", requested=[str(o) for o in wanted]
            )

        record = await self._get_active(asset_id)
        current = [record.owner] if record.owner else []
        diff = compute_owner_diff(current, wanted)

        if diff.is_empty:
            return record, diff

        for owner in diff.to_remove:
            record = await self.deassociate(asset_id, owner)
        for owner in diff.to_add:
            record = await self.associate(asset_id, owner)

        logger.info(
            f"Owners updated for {asset_id}: +{len(diff.to_add)} -{len(diff.to_remove)}"
        )
        return record, diff


__all__ = ["OwnershipService"]
