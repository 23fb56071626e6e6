# ============================================================================
# ASSET LIFECYCLE SERVICE TESTS
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Tests - Lifecycle business rule tests
# PURPOSE: Verify AssetLifecycleService against in-memory stores
# CREATED: 13 OCT 2026
# ============================================================================
"""
AssetLifecycleService Tests

Unit tests with in-memory stores and fake provider/notifier. Tests business
logic in isolation: no database, no HTTP, no I/O.

Run with:
    pytest tests/test_lifecycle_service.py -v
"""

import asyncio
import pytest
from datetime import datetime, timezone

from core.config.defaults import TimeoutDefaults
from core.contracts import AssetState, OwnerRef, ProviderKind
from core.errors import (
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
    UnavailableError,
    UnimplementedError,
)
from tests.fakes import (
    FakeGateway,
    FakeNotifier,
    build_stack,
    make_ready,
    upload_request,
)


# ============================================================================
# HELPERS
# ============================================================================

def _owner(owner_id="lesson-1", owner_type="lesson"):
    return OwnerRef(owner_id=owner_id, owner_type=owner_type)


# ============================================================================
# CREATE UPLOAD
# ============================================================================


class TestCreateUpload:
    def test_unowned_upload_creates_pending_record(self):
        stack = build_stack()

        async def run():
            record, target = await stack.lifecycle.create_upload(
                ProviderKind.MUX, upload_request("Intro")
            )
            return record, target

        record, target = asyncio.run(run())
        assert record.state == AssetState.PENDING
        assert record.provider_upload_id == target.upload_id
        assert record.owner is None
        stored = stack.records.rows[record.asset_id]
        assert stored.provider_upload_id == target.upload_id
        doc = stack.documents.docs[record.asset_id]
        assert doc.title == "Intro"
        assert doc.creator_id == "user-1"
        assert doc.owners == []

    def test_owned_upload_notifies_association(self):
        stack = build_stack()

        async def run():
            return await stack.lifecycle.create_upload(
                ProviderKind.MUX, upload_request(owner=_owner())
            )

        record, _ = asyncio.run(run())
        assert record.owner == _owner()
        assert stack.documents.docs[record.asset_id].owners == [_owner()]
        assert stack.notifier.of("associated") == [
            ("associated", record.asset_id, "lesson:lesson-1")
        ]

    def test_owner_already_holding_asset_conflicts(self):
        stack = build_stack()

        async def run():
            await stack.lifecycle.create_upload(ProviderKind.MUX, upload_request(owner=_owner()))
            await stack.lifecycle.create_upload(ProviderKind.MUX, upload_request(owner=_owner()))

        with pytest.raises(ConflictError):
            asyncio.run(run())
        assert len(stack.records.rows) == 1

    def test_unknown_owner_not_found(self):
        stack = build_stack(notifier=FakeNotifier(known={("course-9", "course")}))

        async def run():
            await stack.lifecycle.create_upload(ProviderKind.MUX, upload_request(owner=_owner()))

        with pytest.raises(NotFoundError):
            asyncio.run(run())
        assert stack.gateway.uploads == []
        assert stack.records.rows == {}

    def test_provider_failure_writes_nothing(self):
        stack = build_stack()
        stack.gateway.fail_upload = True

        async def run():
            await stack.lifecycle.create_upload(ProviderKind.MUX, upload_request())

        with pytest.raises(UnavailableError):
            asyncio.run(run())
        assert stack.records.rows == {}
        assert stack.documents.docs == {}

    def test_unconfigured_provider(self):
        stack = build_stack()

        async def run():
            await stack.lifecycle.create_upload(ProviderKind.CLOUDINARY, upload_request())

        with pytest.raises(UnimplementedError):
            asyncio.run(run())

    def test_metadata_outage_does_not_fail_creation(self):
        stack = build_stack(max_attempts=2)
        stack.documents.fail_with = UnavailableError("metadata store down")

        async def run():
            record, _ = await stack.lifecycle.create_upload(ProviderKind.MUX, upload_request())
            await stack.scheduler.drain()
            return record

        record = asyncio.run(run())
        assert record.asset_id in stack.records.rows
        assert record.asset_id in stack.mirror.pending


# ============================================================================
# PROVIDER CALLBACKS
# ============================================================================


class TestProviderReady:
    def test_scenario_unowned_create_then_ready(self):
        stack = build_stack()

        async def run():
            record, target = await stack.lifecycle.create_upload(
                ProviderKind.MUX, upload_request()
            )
            ready = await stack.lifecycle.on_provider_ready(
                target.upload_id, "remote-1", "play-1", {"duration": 10.0}
            )
            view = await stack.lifecycle.get(record.asset_id)
            return ready, view

        ready, view = asyncio.run(run())
        assert ready.state == AssetState.READY
        assert view.record.state == AssetState.READY
        assert view.record.provider_asset_id == "remote-1"
        assert view.record.playback_id == "play-1"
        assert view.record.owner is None
        assert view.metadata.detail["duration"] == 10.0
        assert view.metadata.detail["playback_id"] == "play-1"

    def test_duplicate_ready_is_idempotent(self):
        stack = build_stack()

        async def run():
            record, target = await stack.lifecycle.create_upload(
                ProviderKind.MUX, upload_request()
            )
            first = await stack.lifecycle.on_provider_ready(target.upload_id, "remote-1", "p1", {"a": 1})
            second = await stack.lifecycle.on_provider_ready(target.upload_id, "remote-1", "p1", {"a": 1})
            return record, first, second

        record, first, second = asyncio.run(run())
        assert first is not None
        assert second is None
        stored = stack.records.rows[record.asset_id]
        assert stored.state == AssetState.READY
        assert stored.version == 2
        assert stack.documents.count("merge_detail") == 1

    def test_unknown_upload_discarded(self):
        stack = build_stack()
        result = asyncio.run(stack.lifecycle.on_provider_ready("nope", "remote-1"))
        assert result is None

    def test_ready_after_soft_delete_still_commits(self):
        stack = build_stack()

        async def run():
            record, target = await stack.lifecycle.create_upload(
                ProviderKind.MUX, upload_request()
            )
            await stack.lifecycle.delete(record.asset_id)
            return record, await stack.lifecycle.on_provider_ready(target.upload_id, "remote-1")

        record, ready = asyncio.run(run())
        assert ready is not None
        stored = stack.records.rows[record.asset_id]
        assert stored.state == AssetState.READY
        assert stored.deleted_at is not None

    def test_errored_marks_broken(self):
        stack = build_stack()

        async def run():
            record, target = await stack.lifecycle.create_upload(
                ProviderKind.MUX, upload_request()
            )
            broken = await stack.lifecycle.on_provider_errored(target.upload_id, "bad codec")
            again = await stack.lifecycle.on_provider_ready(target.upload_id, "remote-1")
            return record, broken, again

        record, broken, again = asyncio.run(run())
        assert broken.state == AssetState.BROKEN
        assert again is None
        assert stack.records.rows[record.asset_id].last_error == "bad codec"

    def test_remote_delete_archives_ready_asset(self):
        stack = build_stack()

        async def run():
            ready = await make_ready(stack)
            archived = await stack.lifecycle.on_provider_deleted(ready.provider_asset_id)
            repeat = await stack.lifecycle.on_provider_deleted(ready.provider_asset_id)
            return archived, repeat

        archived, repeat = asyncio.run(run())
        assert archived.state == AssetState.ARCHIVED
        assert repeat is None

    def test_ready_survives_owner_change_after_read(self):
        """An association committed between lookup and write does not drop the delivery."""
        stack = build_stack()
        lookup = stack.records.get_by_upload_id

        async def run():
            record, target = await stack.lifecycle.create_upload(
                ProviderKind.MUX, upload_request()
            )

            async def lookup_then_associate(upload_id):
                found = await lookup(upload_id)
                await stack.ownership.associate(record.asset_id, _owner())
                return found

            stack.records.get_by_upload_id = lookup_then_associate
            ready = await stack.lifecycle.on_provider_ready(target.upload_id, "remote-1", "play-1")
            stack.records.get_by_upload_id = lookup

            await stack.lifecycle.delete(record.asset_id)
            await stack.lifecycle.delete_permanent(record.asset_id)
            return ready

        ready = asyncio.run(run())
        assert ready is not None
        assert ready.state == AssetState.READY
        assert ready.provider_asset_id == "remote-1"
        assert ready.owner == _owner()
        assert ready.version == 3
        assert stack.gateway.deleted == ["remote-1"]

    def test_errored_survives_owner_change_after_read(self):
        stack = build_stack()
        lookup = stack.records.get_by_upload_id

        async def run():
            record, target = await stack.lifecycle.create_upload(
                ProviderKind.MUX, upload_request()
            )

            async def lookup_then_associate(upload_id):
                found = await lookup(upload_id)
                await stack.ownership.associate(record.asset_id, _owner())
                return found

            stack.records.get_by_upload_id = lookup_then_associate
            return record, await stack.lifecycle.on_provider_errored(target.upload_id, "bad codec")

        record, broken = asyncio.run(run())
        assert broken.state == AssetState.BROKEN
        stored = stack.records.rows[record.asset_id]
        assert stored.state == AssetState.BROKEN
        assert stored.owner == _owner()

    def test_rename_moves_provider_asset_id(self):
        stack = build_stack()

        async def run():
            ready = await make_ready(stack)
            renamed = await stack.lifecycle.on_provider_renamed(
                ready.provider_asset_id, "covers/hero"
            )
            found = await stack.records.get_by_provider_asset_id("covers/hero")
            return ready, renamed, found

        ready, renamed, found = asyncio.run(run())
        assert renamed.provider_asset_id == "covers/hero"
        assert found.asset_id == ready.asset_id
        assert stack.records.rows[ready.asset_id].provider_upload_id == f"upload-{ready.asset_id}"
        assert stack.documents.docs[ready.asset_id].detail["public_id"] == "covers/hero"

    def test_rename_of_pending_upload_moves_upload_id(self):
        stack = build_stack()

        async def run():
            record, target = await stack.lifecycle.create_upload(
                ProviderKind.MUX, upload_request()
            )
            await stack.lifecycle.on_provider_renamed(target.upload_id, "covers/hero")
            ready = await stack.lifecycle.on_provider_ready("covers/hero", "covers/hero")
            return record, ready

        record, ready = asyncio.run(run())
        assert ready is not None
        assert ready.asset_id == record.asset_id
        assert stack.records.rows[record.asset_id].provider_upload_id == "covers/hero"

    def test_rename_unknown_discarded(self):
        stack = build_stack()
        assert asyncio.run(stack.lifecycle.on_provider_renamed("nope", "other")) is None

    def test_rename_lost_race_is_unavailable(self):
        stack = build_stack()
        lookup = stack.records.get_by_provider_asset_id

        async def run():
            ready = await make_ready(stack)

            async def lookup_then_archive(provider_asset_id):
                found = await lookup(provider_asset_id)
                if found is not None:
                    await stack.lifecycle.archive(found.asset_id)
                return found

            stack.records.get_by_provider_asset_id = lookup_then_archive
            await stack.lifecycle.on_provider_renamed(ready.provider_asset_id, "covers/hero")

        with pytest.raises(UnavailableError, match="rename"):
            asyncio.run(run())

    def test_updated_merges_detail(self):
        stack = build_stack()

        async def run():
            ready = await make_ready(stack)
            await stack.lifecycle.on_provider_updated(ready.provider_asset_id, {"tracks": 2})
            return ready

        ready = asyncio.run(run())
        detail = stack.documents.docs[ready.asset_id].detail
        assert detail == {"duration": 12.5, "playback_id": ready.playback_id, "tracks": 2}


# ============================================================================
# ARCHIVE
# ============================================================================


class TestArchive:
    def test_archive_and_unarchive(self):
        stack = build_stack()

        async def run():
            ready = await make_ready(stack)
            archived = await stack.lifecycle.archive(ready.asset_id)
            restored = await stack.lifecycle.unarchive(ready.asset_id)
            return archived, restored

        archived, restored = asyncio.run(run())
        assert archived.state == AssetState.ARCHIVED
        assert restored.state == AssetState.READY

    def test_archive_pending_conflicts(self):
        stack = build_stack()

        async def run():
            record, _ = await stack.lifecycle.create_upload(ProviderKind.MUX, upload_request())
            await stack.lifecycle.archive(record.asset_id)

        with pytest.raises(ConflictError):
            asyncio.run(run())

    def test_archive_missing_not_found(self):
        stack = build_stack()
        with pytest.raises(NotFoundError):
            asyncio.run(stack.lifecycle.archive("missing"))


# ============================================================================
# DELETE / RESTORE / DESTROY
# ============================================================================


class TestDelete:
    def test_scenario_delete_owned_asset(self):
        stack = build_stack()

        async def run():
            ready = await make_ready(stack, owner=_owner())
            await stack.lifecycle.delete(ready.asset_id)
            with pytest.raises(NotFoundError):
                await stack.lifecycle.get(ready.asset_id)
            view = await stack.lifecycle.get_with_deleted(ready.asset_id)
            await stack.scheduler.drain()
            return view

        view = asyncio.run(run())
        assert view.record.deleted_at is not None
        assert view.record.owner is None
        assert view.metadata.owners == []
        assert len(stack.notifier.of("deassociated")) == 1

    def test_delete_twice_conflicts(self):
        stack = build_stack()

        async def run():
            ready = await make_ready(stack)
            await stack.lifecycle.delete(ready.asset_id)
            await stack.lifecycle.delete(ready.asset_id)

        with pytest.raises(ConflictError):
            asyncio.run(run())

    def test_release_notification_retried(self):
        stack = build_stack()

        async def run():
            ready = await make_ready(stack, owner=_owner())
            stack.notifier.fail = True
            await stack.lifecycle.delete(ready.asset_id)
            stack.notifier.fail = False
            await stack.scheduler.drain()

        asyncio.run(run())
        assert len(stack.notifier.of("deassociated")) == 1

    def test_restore_does_not_restore_owner(self):
        stack = build_stack()

        async def run():
            ready = await make_ready(stack, owner=_owner())
            await stack.lifecycle.delete(ready.asset_id)
            return await stack.lifecycle.restore(ready.asset_id)

        restored = asyncio.run(run())
        assert restored.deleted_at is None
        assert restored.owner is None
        assert restored.state == AssetState.READY

    def test_restore_active_conflicts(self):
        stack = build_stack()

        async def run():
            ready = await make_ready(stack)
            await stack.lifecycle.restore(ready.asset_id)

        with pytest.raises(ConflictError):
            asyncio.run(run())

    def test_delete_permanent_requires_soft_delete(self):
        stack = build_stack()

        async def run():
            ready = await make_ready(stack)
            await stack.lifecycle.delete_permanent(ready.asset_id)

        with pytest.raises(ConflictError):
            asyncio.run(run())
        assert stack.gateway.deleted == []

    def test_delete_permanent_removes_everything(self):
        stack = build_stack()

        async def run():
            ready = await make_ready(stack)
            await stack.lifecycle.delete(ready.asset_id)
            await stack.lifecycle.delete_permanent(ready.asset_id)
            return ready

        ready = asyncio.run(run())
        assert stack.gateway.deleted == [ready.provider_asset_id]
        assert ready.asset_id not in stack.records.rows
        assert ready.asset_id not in stack.documents.docs

    def test_delete_permanent_remote_failure_keeps_record(self):
        stack = build_stack()

        async def run():
            ready = await make_ready(stack)
            await stack.lifecycle.delete(ready.asset_id)
            stack.gateway.fail_delete = True
            with pytest.raises(UnavailableError):
                await stack.lifecycle.delete_permanent(ready.asset_id)
            return ready

        ready = asyncio.run(run())
        stored = stack.records.rows[ready.asset_id]
        assert stored.deleted_at is not None
        assert ready.asset_id in stack.documents.docs

    def test_delete_permanent_pending_cancels_upload(self):
        stack = build_stack()

        async def run():
            record, target = await stack.lifecycle.create_upload(ProviderKind.MUX, upload_request())
            await stack.lifecycle.delete(record.asset_id)
            await stack.lifecycle.delete_permanent(record.asset_id)
            return record, target

        record, target = asyncio.run(run())
        assert stack.gateway.deleted == []
        assert stack.gateway.cancelled == [target.upload_id]
        assert record.asset_id not in stack.records.rows

    def test_delete_permanent_cancel_failure_keeps_record(self):
        stack = build_stack()

        async def run():
            record, _ = await stack.lifecycle.create_upload(ProviderKind.MUX, upload_request())
            await stack.lifecycle.delete(record.asset_id)
            stack.gateway.fail_delete = True
            with pytest.raises(UnavailableError):
                await stack.lifecycle.delete_permanent(record.asset_id)
            return record

        record = asyncio.run(run())
        assert stack.records.rows[record.asset_id].deleted_at is not None
        assert stack.gateway.cancelled == []

    def test_restore_during_destroy_does_not_survive(self):
        """A restore landing while the remote delete runs leaves no row behind."""
        stack = build_stack()
        remote_delete = stack.gateway.delete_remote_asset
        restored = []

        async def run():
            ready = await make_ready(stack)
            await stack.lifecycle.delete(ready.asset_id)

            async def delete_while_restoring(provider_asset_id):
                restored.append(await stack.lifecycle.restore(ready.asset_id))
                await remote_delete(provider_asset_id)

            stack.gateway.delete_remote_asset = delete_while_restoring
            await stack.lifecycle.delete_permanent(ready.asset_id)
            return ready

        ready = asyncio.run(run())
        assert len(restored) == 1
        assert stack.gateway.deleted == [ready.provider_asset_id]
        assert ready.asset_id not in stack.records.rows
        assert ready.asset_id not in stack.documents.docs


# ============================================================================
# QUERIES
# ============================================================================


class TestQueries:
    def test_lists_hydrate_metadata(self):
        stack = build_stack()

        async def run():
            owned = await make_ready(stack, owner=_owner(), title="owned")
            loose = await make_ready(stack, title="loose")
            gone = await make_ready(stack, title="gone")
            await stack.lifecycle.delete(gone.asset_id)
            active = await stack.lifecycle.list(limit=10, offset=0)
            unowned = await stack.lifecycle.list_unowned()
            deleted = await stack.lifecycle.list_deleted()
            return owned, loose, gone, active, unowned, deleted

        owned, loose, gone, active, unowned, deleted = asyncio.run(run())
        assert active.total == 2
        assert {v.record.asset_id for v in active.items} == {owned.asset_id, loose.asset_id}
        assert all(v.metadata is not None for v in active.items)
        assert [v.record.asset_id for v in unowned.items] == [loose.asset_id]
        assert [v.record.asset_id for v in deleted.items] == [gone.asset_id]

    def test_metadata_outage_degrades_lists(self):
        stack = build_stack()

        async def run():
            await make_ready(stack)
            stack.documents.fail_with = UnavailableError("down")
            return await stack.lifecycle.list()

        page = asyncio.run(run())
        assert page.total == 1
        assert page.items[0].metadata is None

    def test_list_filters_by_state(self):
        stack = build_stack()

        async def run():
            ready = await make_ready(stack)
            archived = await make_ready(stack)
            await stack.lifecycle.archive(archived.asset_id)
            await stack.lifecycle.create_upload(ProviderKind.MUX, upload_request())
            only_archived = await stack.lifecycle.list(state=AssetState.ARCHIVED)
            only_ready = await stack.lifecycle.list(state=AssetState.READY)
            everything = await stack.lifecycle.list()
            return ready, archived, only_archived, only_ready, everything

        ready, archived, only_archived, only_ready, everything = asyncio.run(run())
        assert [v.record.asset_id for v in only_archived.items] == [archived.asset_id]
        assert only_archived.total == 1
        assert [v.record.asset_id for v in only_ready.items] == [ready.asset_id]
        assert everything.total == 3

    @pytest.mark.parametrize("limit,offset", [(0, 0), (501, 0), (10, -1)])
    def test_bad_paging(self, limit, offset):
        stack = build_stack()
        with pytest.raises(InvalidArgumentError):
            asyncio.run(stack.lifecycle.list(limit, offset))


# ============================================================================
# PLAYBACK
# ============================================================================


class TestPlayback:
    def test_sign_ready_asset(self):
        stack = build_stack()

        async def run():
            ready = await make_ready(stack)
            return ready, await stack.lifecycle.sign_playback_credential(ready.asset_id, 600)

        ready, (token, expires_at) = asyncio.run(run())
        assert token.startswith(f"token:{ready.playback_id}:")
        assert expires_at > datetime.now(timezone.utc)

    def test_sign_pending_conflicts(self):
        stack = build_stack()

        async def run():
            record, _ = await stack.lifecycle.create_upload(ProviderKind.MUX, upload_request())
            await stack.lifecycle.sign_playback_credential(record.asset_id)

        with pytest.raises(ConflictError):
            asyncio.run(run())

    def test_sign_unsupported_provider(self):
        stack = build_stack(gateway=FakeGateway(kind=ProviderKind.CLOUDINARY, can_sign=False))

        async def run():
            ready = await make_ready(stack)
            await stack.lifecycle.sign_playback_credential(ready.asset_id)

        with pytest.raises(UnimplementedError):
            asyncio.run(run())


# ============================================================================
# STORE DEADLINES
# ============================================================================


class TestStoreDeadlines:
    def _slow_stack(self):
        stack = build_stack()
        stack.lifecycle.timeouts = TimeoutDefaults(store_timeout=0.01)
        return stack

    def test_slow_lookup_is_unavailable(self):
        stack = self._slow_stack()

        async def slow_lookup(upload_id):
            await asyncio.sleep(1)

        stack.records.get_by_upload_id = slow_lookup
        with pytest.raises(UnavailableError, match="timed out"):
            asyncio.run(stack.lifecycle.on_provider_ready("upload-1", "remote-1"))

    def test_slow_list_is_unavailable(self):
        stack = self._slow_stack()

        async def slow_list(limit=50, offset=0, state=None):
            await asyncio.sleep(1)

        stack.records.list_active = slow_list
        with pytest.raises(UnavailableError):
            asyncio.run(stack.lifecycle.list())

    def test_slow_insert_writes_nothing_further(self):
        stack = self._slow_stack()

        async def slow_create(asset):
            await asyncio.sleep(1)

        stack.records.create = slow_create
        with pytest.raises(UnavailableError):
            asyncio.run(stack.lifecycle.create_upload(ProviderKind.MUX, upload_request()))
        assert stack.documents.docs == {}
