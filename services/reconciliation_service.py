# ============================================================================
# RECONCILIATION SWEEP
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Background service - Record/document owner convergence
# PURPOSE: Periodically diff record owners against metadata owners and repair
# CREATED: 11 OCT 2026
# ============================================================================
"""
Reconciliation Sweep

The metadata mirror retries failed writes a bounded number of times; what it
cannot land is parked and picked up here. The sweep also walks every record
in keyset pages so divergence from any other cause (process crash between
the record commit and the mirror write, manual edits) converges too.

    run_once()      one full pass, returns SweepStats
    start()/stop()  interval loop owned by the FastAPI lifespan

Records are authoritative: a missing document, or one whose owners differ
from the record's owner, is rewritten from the record. A document with no
record left is deleted. Parked repairs also replay the title and
provider detail writes the mirror could not land.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from core.config.defaults import ReconcileDefaults
from core.logging import get_logger, log_context, ComponentType
from core.models.asset import MediaAsset
from core.models.metadata import AssetMetadata
from services.metadata_mirror import MetadataMirror, PendingRepair
from services.retry import call_with_timeout

logger = get_logger("services.reconciliation", ComponentType.SERVICE)


@dataclass
class SweepStats:
    scanned: int = 0
    diverged: int = 0
    repaired: int = 0
    failed: int = 0
    parked_retried: int = 0
    orphans_removed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "scanned": self.scanned,
            "diverged": self.diverged,
            "repaired": self.repaired,
            "failed": self.failed,
            "parked_retried": self.parked_retried,
            "orphans_removed": self.orphans_removed,
        }


def owners_diverge(record: MediaAsset, document: Optional[AssetMetadata]) -> bool:
    """True if the document does not mirror the record's owner."""
    if document is None:
        return True
    expected = [record.owner.key] if record.owner else []
    return document.owner_keys() != expected


class ReconciliationService:
    """Repairs metadata owner divergence from the authoritative records."""

    def __init__(
        self,
        records,
        documents,
        mirror: MetadataMirror,
        settings: Optional[ReconcileDefaults] = None,
        store_timeout: Optional[float] = None,
    ):
        self.records = records
        self.documents = documents
        self.mirror = mirror
        self.settings = settings or ReconcileDefaults()
        self.store_timeout = store_timeout

        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.last_run_at: Optional[datetime] = None
        self.last_stats: Optional[SweepStats] = None

    # ================================================================
    # ONE PASS
    # ================================================================

    async def _repair(
        self, asset_id: str, stats: SweepStats, pending: Optional[PendingRepair] = None
    ) -> None:
        stats.diverged += 1
        with log_context(asset_id=asset_id, operation="reconcile"):
            try:
                await self.mirror.repair(asset_id, pending)
                stats.repaired += 1
                logger.info("Metadata document repaired from record")
            except Exception as e:
                stats.failed += 1
                logger.error(f"Metadata repair failed: {e}")
                if pending is not None:
                    self.mirror.requeue(pending)

    async def _reconcile_batch(self, batch: List[MediaAsset], stats: SweepStats) -> None:
        documents = await call_with_timeout(
            self.documents.list_by_keys([r.asset_id for r in batch]),
            self.store_timeout,
            "reconcile metadata batch",
        )
        for record in batch:
            stats.scanned += 1
            if owners_diverge(record, documents.get(record.asset_id)):
                await self._repair(record.asset_id, stats)

    async def _remove_orphans(self, stats: SweepStats) -> None:
        """Documents whose record no longer exists are deleted."""
        after: Optional[str] = None
        while True:
            ids = await call_with_timeout(
                self.documents.list_ids_page(after, self.settings.batch_size),
                self.store_timeout,
                "reconcile document page",
            )
            if not ids:
                break
            existing = await call_with_timeout(
                self.records.existing_ids(ids), self.store_timeout, "reconcile record lookup"
            )
            for asset_id in ids:
                if asset_id in existing:
                    continue
                try:
                    await call_with_timeout(
                        self.documents.delete(asset_id), self.store_timeout, "orphan delete"
                    )
                    stats.orphans_removed += 1
                    logger.info(f"Orphan metadata document {asset_id} removed")
                except Exception as e:
                    stats.failed += 1
                    logger.error(f"Orphan metadata document {asset_id} not removed: {e}")
            after = ids[-1]
            if len(ids) < self.settings.batch_size:
                break

    async def run_once(self) -> SweepStats:
        """Parked repairs first, then every record in keyset order, then orphans."""
        stats = SweepStats()

        parked = self.mirror.take_pending()
        for asset_id in sorted(parked):
            stats.parked_retried += 1
            await self._repair(asset_id, stats, parked[asset_id])

        after: Optional[str] = None
        while True:
            batch = await call_with_timeout(
                self.records.list_page(after, self.settings.batch_size),
                self.store_timeout,
                "reconcile record page",
            )
            if not batch:
                break
            await self._reconcile_batch(batch, stats)
            after = batch[-1].asset_id
            if len(batch) < self.settings.batch_size:
                break

        await self._remove_orphans(stats)

        self.last_run_at = datetime.now(timezone.utc)
        self.last_stats = stats
        if stats.diverged or stats.orphans_removed:
            logger.warning(f"Reconciliation sweep found divergence: {stats.to_dict()}")
        else:
            logger.debug(f"Reconciliation sweep clean: {stats.to_dict()}")
        return stats

    # ================================================================
    # LOOP
    # ================================================================

    async def _loop(self) -> None:
        interval = self.settings.interval_seconds
        logger.info(f"Starting reconciliation loop (interval={interval}s)")

        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass

            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Reconciliation sweep error: {e}")

        logger.info("Reconciliation loop stopped")

    def start(self) -> Optional[asyncio.Task]:
        if not self.settings.enabled:
            logger.info("Reconciliation sweep disabled (RECONCILE_INTERVAL_SECONDS=0)")
            return None
        if self._task is not None and not self._task.done():
            return self._task
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop(), name="reconciliation-sweep")
        return self._task

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None


__all__ = ["ReconciliationService", "SweepStats", "owners_diverge"]
