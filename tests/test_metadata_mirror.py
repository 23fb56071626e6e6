# ============================================================================
# METADATA MIRROR / RETRY TESTS
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Tests - Best-effort document writes and background retry
# PURPOSE: Verify backoff, exhaustion parking, and owner copy semantics
# CREATED: 14 OCT 2026
# ============================================================================
"""
Metadata Mirror / Retry Tests

Covers:
1. RetryDefaults backoff schedule
2. RetryScheduler: success after failures, early stop on non-retryable,
   exhaustion callback, cancellation on close
3. call_with_timeout maps deadlines to UNAVAILABLE
4. MetadataMirror: inline success, background repair, parking for the sweep,
   parked payloads merge per asset, owner writes always copy the current
   record, sweep repair replays parked writes

Run with:
    pytest tests/test_metadata_mirror.py -v
"""

import asyncio
import pytest
from typing import List

from core.config.defaults import RetryDefaults
from core.contracts import OwnerRef, ProviderKind
from core.errors import ConflictError, UnavailableError
from core.models.asset import MediaAsset
from core.models.metadata import AssetMetadata
from services.metadata_mirror import MetadataMirror, PendingRepair
from services.retry import RetryScheduler, call_with_timeout
from tests.fakes import InMemoryMetadataStore, InMemoryRecordStore, fast_retry


def _owner(owner_id="lesson-1"):
    return OwnerRef(owner_id=owner_id, owner_type="lesson")


class _Flaky:
    """Operation factory failing the first ``failures`` attempts."""

    def __init__(self, failures: int, error=None):
        self.failures = failures
        self.error = error or UnavailableError("flaky")
        self.attempts = 0

    def __call__(self):
        async def attempt():
            self.attempts += 1
            if self.attempts <= self.failures:
                raise self.error
            return "ok"
        return attempt()


def _recording_sleep(delays: List[float]):
    async def sleep(delay: float) -> None:
        delays.append(delay)
    return sleep


# ============================================================================
# RETRY POLICY
# ============================================================================


class TestRetryDefaults:
    def test_exponential_backoff(self):
        policy = RetryDefaults(max_attempts=5, base_delay=0.5, multiplier=2.0, max_delay=3.0)
        assert policy.delay_for(0) == 0.0
        assert policy.delay_for(1) == 0.5
        assert policy.delay_for(2) == 1.0
        assert policy.delay_for(3) == 2.0
        assert policy.delay_for(4) == 3.0  # capped


class TestRetryScheduler:
    def test_succeeds_after_failures(self):
        delays: List[float] = []
        scheduler = RetryScheduler(
            RetryDefaults(max_attempts=4, base_delay=1.0, multiplier=2.0, max_delay=10.0),
            sleep=_recording_sleep(delays),
        )
        op = _Flaky(failures=2)

        async def run():
            task = scheduler.schedule("flaky", op)
            return await task

        assert asyncio.run(run()) is True
        assert op.attempts == 3
        assert delays == [1.0, 2.0, 4.0]

    def test_exhaustion_calls_back(self):
        exhausted = []
        scheduler = RetryScheduler(fast_retry(3), sleep=_recording_sleep([]))
        op = _Flaky(failures=10)

        async def run():
            return await scheduler.schedule("always", op, exhausted.append)

        assert asyncio.run(run()) is False
        assert op.attempts == 3
        assert len(exhausted) == 1
        assert isinstance(exhausted[0], UnavailableError)

    def test_non_retryable_stops_early(self):
        exhausted = []
        scheduler = RetryScheduler(fast_retry(5), sleep=_recording_sleep([]))
        op = _Flaky(failures=10, error=ConflictError("nope"))

        async def run():
            return await scheduler.schedule("conflict", op, exhausted.append)

        assert asyncio.run(run()) is False
        assert op.attempts == 1
        assert isinstance(exhausted[0], ConflictError)

    def test_close_cancels_pending(self):
        async def forever(_delay):
            await asyncio.sleep(3600)

        scheduler = RetryScheduler(fast_retry(3), sleep=forever)

        async def run():
            scheduler.schedule("stuck", _Flaky(failures=0))
            await asyncio.sleep(0)
            assert scheduler.pending_tasks == 1
            await scheduler.close()
            return scheduler.pending_tasks

        assert asyncio.run(run()) == 0


class TestCallWithTimeout:
    def test_timeout_becomes_unavailable(self):
        async def slow():
            await asyncio.sleep(1)

        with pytest.raises(UnavailableError, match="timed out"):
            asyncio.run(call_with_timeout(slow(), 0.01, "slow thing"))

    def test_no_timeout(self):
        async def quick():
            return 7

        assert asyncio.run(call_with_timeout(quick(), None, "quick")) == 7


# ============================================================================
# METADATA MIRROR
# ============================================================================


def _build_mirror(max_attempts=3):
    records = InMemoryRecordStore()
    documents = InMemoryMetadataStore()
    scheduler = RetryScheduler(fast_retry(max_attempts), sleep=_recording_sleep([]))
    return records, documents, MetadataMirror(records, documents, scheduler)


def _seed(records, owner=None):
    asset = MediaAsset(provider=ProviderKind.MUX)
    if owner:
        asset.set_owner(owner)
    records.rows[asset.asset_id] = asset.model_copy(deep=True)
    return asset


class TestMetadataMirror:
    def test_inline_write(self):
        records, documents, mirror = _build_mirror()
        asset = _seed(records, _owner())

        ok = asyncio.run(mirror.create_document(asset, "Title", "creator-1"))
        assert ok is True
        doc = documents.docs[asset.asset_id]
        assert doc.title == "Title"
        assert doc.owners == [_owner()]

    def test_background_repair_after_transient_failure(self):
        records, documents, mirror = _build_mirror()
        asset = _seed(records, _owner())

        async def run():
            documents.fail_with = UnavailableError("blip")
            ok = await mirror.sync_owners(asset.asset_id)
            documents.fail_with = None
            await mirror.scheduler.drain()
            return ok

        assert asyncio.run(run()) is False
        assert documents.docs[asset.asset_id].owners == [_owner()]
        assert mirror.pending == set()

    def test_exhausted_repair_parked(self):
        records, documents, mirror = _build_mirror(max_attempts=2)
        asset = _seed(records)
        documents.fail_with = UnavailableError("down")

        async def run():
            await mirror.merge_detail(asset.asset_id, {"duration": 1.0})
            await mirror.scheduler.drain()

        asyncio.run(run())
        assert mirror.pending == {asset.asset_id}
        parked = mirror.take_pending()
        assert parked[asset.asset_id].detail == {"duration": 1.0}
        assert mirror.pending == set()

    def test_parked_writes_merge_per_asset(self):
        records, documents, mirror = _build_mirror(max_attempts=1)
        asset = _seed(records)
        documents.fail_with = UnavailableError("down")

        async def run():
            await mirror.create_document(asset, "Title", "creator-1")
            await mirror.merge_detail(asset.asset_id, {"duration": 1.0})
            await mirror.merge_detail(asset.asset_id, {"duration": 2.0, "width": 640})
            await mirror.scheduler.drain()

        asyncio.run(run())
        repair = mirror.take_pending()[asset.asset_id]
        assert repair.describe is True
        assert repair.title == "Title"
        assert repair.creator_id == "creator-1"
        assert repair.detail == {"duration": 2.0, "width": 640}

    def test_inline_success_keeps_parked_work(self):
        records, documents, mirror = _build_mirror(max_attempts=1)
        asset = _seed(records)

        async def run():
            documents.fail_with = UnavailableError("down")
            await mirror.merge_detail(asset.asset_id, {"duration": 1.0})
            await mirror.scheduler.drain()
            documents.fail_with = None
            await mirror.sync_owners(asset.asset_id)

        asyncio.run(run())
        assert mirror.take_pending()[asset.asset_id].detail == {"duration": 1.0}

    def test_requeue_lets_newer_work_win(self):
        records, documents, mirror = _build_mirror()
        mirror._park(PendingRepair("a1", detail={"duration": 2.0}))
        mirror.requeue(PendingRepair("a1", detail={"duration": 1.0, "width": 640}))
        assert mirror.take_pending()["a1"].detail == {"duration": 2.0, "width": 640}

    def test_repair_replays_title_and_detail(self):
        records, documents, mirror = _build_mirror()
        asset = _seed(records, _owner())
        documents.docs[asset.asset_id] = AssetMetadata(
            asset_id=asset.asset_id, detail={"duration": 1.0}
        )

        repair = PendingRepair(
            asset.asset_id, title="Title", creator_id="creator-1", describe=True,
            detail={"width": 640},
        )
        asyncio.run(mirror.repair(asset.asset_id, repair))
        doc = documents.docs[asset.asset_id]
        assert doc.title == "Title"
        assert doc.detail == {"duration": 1.0, "width": 640}
        assert doc.owners == [_owner()]

    def test_repair_without_record_deletes_document(self):
        records, documents, mirror = _build_mirror()
        documents.docs["gone"] = AssetMetadata(asset_id="gone", owners=[_owner()])
        asyncio.run(mirror.repair("gone"))
        assert "gone" not in documents.docs


    def test_owner_write_copies_current_record(self):
        """A late retry never resurrects an owner the record dropped."""
        records, documents, mirror = _build_mirror()
        asset = _seed(records, _owner())

        async def run():
            documents.fail_with = UnavailableError("blip")
            await mirror.sync_owners(asset.asset_id)
            # Record loses its owner before the retry lands
            records.rows[asset.asset_id].clear_owner()
            documents.fail_with = None
            await mirror.scheduler.drain()

        asyncio.run(run())
        assert documents.docs[asset.asset_id].owners == []

    def test_merge_detail_creates_missing_document(self):
        records, documents, mirror = _build_mirror()
        asset = _seed(records, _owner())

        asyncio.run(mirror.merge_detail(asset.asset_id, {"width": 640}))
        doc = documents.docs[asset.asset_id]
        assert doc.detail == {"width": 640}
        assert doc.owners == [_owner()]

    def test_empty_detail_is_noop(self):
        records, documents, mirror = _build_mirror()
        assert asyncio.run(mirror.merge_detail("a1", {})) is True
        assert documents.calls == []

    def test_repair_raises_on_failure(self):
        records, documents, mirror = _build_mirror()
        documents.fail_with = UnavailableError("down")
        with pytest.raises(UnavailableError):
            asyncio.run(mirror.repair("a1", None))
