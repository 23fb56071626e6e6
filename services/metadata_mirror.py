# ============================================================================
# METADATA MIRROR
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Service - Best-effort writes to the metadata document store
# PURPOSE: Keep documents convergent with the authoritative record
# CREATED: 08 OCT 2026
# ============================================================================
"""
Metadata Mirror

Every document write the lifecycle engine makes goes through here, always
after the corresponding record write has committed.

    1. First attempt runs inline under the store timeout.
    2. On failure the write is handed to the RetryScheduler (exponential
       backoff, bounded attempts). The caller's operation still succeeds.
    3. When retries are exhausted the write is parked in ``pending`` (title,
       creator and detail payloads included) and the reconciliation sweep
       replays it later. A parked id whose record is gone loses its document.

Owner writes never carry a value: they re-read the record and copy its
owner, so a late retry cannot resurrect an owner the record has dropped.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from core.errors import ServiceError
from core.logging import get_logger, ComponentType
from core.models.asset import MediaAsset
from core.models.metadata import AssetMetadata
from services.retry import RetryScheduler, call_with_timeout

logger = get_logger("services.metadata_mirror", ComponentType.SERVICE)


@dataclass
class PendingRepair:
    """Document state the sweep must replay for one asset besides its owners."""
    asset_id: str
    title: Optional[str] = None
    creator_id: Optional[str] = None
    describe: bool = False
    detail: Dict[str, Any] = field(default_factory=dict)

    def absorb(self, newer: "PendingRepair") -> None:
        if newer.describe:
            self.describe = True
            self.title, self.creator_id = newer.title, newer.creator_id
        self.detail.update(newer.detail)


class MetadataMirror:
    """Best-effort, self-repairing writer of AssetMetadata documents."""

    def __init__(
        self,
        records,
        documents,
        scheduler: RetryScheduler,
        store_timeout: Optional[float] = None,
    ):
        self.records = records
        self.documents = documents
        self.scheduler = scheduler
        self.store_timeout = store_timeout
        self._pending: Dict[str, PendingRepair] = {}

    # ------------------------------------------------------------------
    # Pending repairs (consumed by the reconciliation sweep)
    # ------------------------------------------------------------------

    @property
    def pending(self) -> Set[str]:
        return set(self._pending)

    def take_pending(self) -> Dict[str, PendingRepair]:
        taken, self._pending = self._pending, {}
        return taken

    def _park(self, repair: PendingRepair) -> None:
        current = self._pending.get(repair.asset_id)
        if current is None:
            self._pending[repair.asset_id] = repair
        else:
            current.absorb(repair)

    def requeue(self, repair: PendingRepair) -> None:
        """Put back a repair the sweep could not finish; newer parked work wins."""
        newer = self._pending.get(repair.asset_id)
        if newer is not None:
            repair.absorb(newer)
        self._pending[repair.asset_id] = repair

    # ------------------------------------------------------------------
    # Write driver
    # ------------------------------------------------------------------

    async def _write(
        self,
        name: str,
        repair: PendingRepair,
        operation: Callable[[], Awaitable[Any]],
    ) -> bool:
        """Inline attempt, then background retry. True if the inline attempt landed."""
        asset_id = repair.asset_id
        try:
            await call_with_timeout(operation(), self.store_timeout, f"metadata {name}")
            return True
        except ServiceError as e:
            logger.warning(f"Metadata {name} for {asset_id} failed ({e.code}), retrying in background")
        except Exception as e:
            logger.warning(f"Metadata {name} for {asset_id} failed ({e}), retrying in background")

        def on_exhausted(error: Exception) -> None:
            logger.error(f"Metadata {name} for {asset_id} parked for sweep: {error}")
            self._park(repair)

        self.scheduler.schedule(f"metadata-{name}-{asset_id}", operation, on_exhausted)
        return False

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def create_document(
        self,
        asset: MediaAsset,
        title: Optional[str],
        creator_id: Optional[str],
    ) -> bool:
        """Initial document for a freshly created record."""
        async def op() -> None:
            existing = await self.documents.get(asset.asset_id)
            document = existing or AssetMetadata(asset_id=asset.asset_id)
            document.title = title
            document.creator_id = creator_id
            current = await self.records.get(asset.asset_id, include_deleted=True)
            document.owners = [current.owner] if current is not None and current.owner else []
            await self.documents.upsert(document)

        repair = PendingRepair(asset.asset_id, title=title, creator_id=creator_id, describe=True)
        return await self._write("create", repair, op)

    async def sync_owners(self, asset_id: str) -> bool:
        """Copy the record's current owner into the document."""
        async def op() -> None:
            record = await self.records.get(asset_id, include_deleted=True)
            if record is None:
                return
            owners = [record.owner] if record.owner else []
            if not await self.documents.set_owners(asset_id, owners):
                await self.documents.upsert(AssetMetadata(asset_id=asset_id, owners=owners))

        return await self._write("owners", PendingRepair(asset_id), op)

    async def merge_detail(self, asset_id: str, detail: Dict[str, Any]) -> bool:
        """Shallow-merge provider detail into the document."""
        if not detail:
            return True

        async def op() -> None:
            if not await self.documents.merge_detail(asset_id, detail):
                record = await self.records.get(asset_id, include_deleted=True)
                owners = [record.owner] if record is not None and record.owner else []
                await self.documents.upsert(
                    AssetMetadata(asset_id=asset_id, owners=owners, detail=dict(detail))
                )

        return await self._write("detail", PendingRepair(asset_id, detail=dict(detail)), op)

    async def delete_document(self, asset_id: str) -> bool:
        async def op() -> None:
            await self.documents.delete(asset_id)

        return await self._write("delete", PendingRepair(asset_id), op)

    async def repair(self, asset_id: str, pending: Optional[PendingRepair] = None) -> None:
        """
        Sweep-driven repair. Owners are copied from the record as it is now;
        parked title and detail writes are replayed on top. A record that no
        longer exists takes its document with it.

        Raises on failure so the sweep can count it.
        """
        record = await call_with_timeout(
            self.records.get(asset_id, include_deleted=True), self.store_timeout, "record lookup"
        )
        if record is None:
            await call_with_timeout(
                self.documents.delete(asset_id), self.store_timeout, "metadata repair"
            )
            return

        owners = [record.owner] if record.owner else []
        if pending is None or not (pending.describe or pending.detail):
            if not await call_with_timeout(
                self.documents.set_owners(asset_id, owners), self.store_timeout, "metadata repair"
            ):
                await call_with_timeout(
                    self.documents.upsert(AssetMetadata(asset_id=asset_id, owners=owners)),
                    self.store_timeout,
                    "metadata repair",
                )
            return

        document = await call_with_timeout(
            self.documents.get(asset_id), self.store_timeout, "metadata repair"
        ) or AssetMetadata(asset_id=asset_id)
        if pending.describe:
            document.title = pending.title
            document.creator_id = pending.creator_id
        document.detail = {**document.detail, **pending.detail}
        document.owners = owners
        await call_with_timeout(
            self.documents.upsert(document), self.store_timeout, "metadata repair"
        )

    async def close(self) -> None:
        await self.scheduler.close()


__all__ = ["MetadataMirror", "PendingRepair"]
