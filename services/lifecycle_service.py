# ============================================================================
# ASSET LIFECYCLE SERVICE
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Domain service - Asset state machine and dual-store coordination
# PURPOSE: Upload, provider completion, archive, delete, restore, destroy
# CREATED: 09 OCT 2026
# ============================================================================
"""
AssetLifecycleService

Coordination layer between the authoritative record store, the metadata
mirror, the provider gateways and the owner notifier.

Encodes all business rules for:
- Upload creation (provider target first, then pending record)
- Provider completion (pending → ready | broken), idempotent on redelivery
- Provider-side renames (provider ids move, asset id stays)
- Archive / unarchive (ready ⇄ archived)
- Soft delete (owner released), restore, permanent delete
- Hydrated queries (record + metadata document)
- Signed playback credentials

Rules:
- The record store is written first; the mirror follows and never rolls
  the record back.
- Every record write is a compare-and-swap; zero affected rows is CONFLICT.
  Provider callbacks compare on state only, so a concurrent owner change
  cannot turn a first delivery into a dropped duplicate.
- Every store call runs under the store deadline.
- Provider failures surface as UNAVAILABLE before any record mutation.

Pattern: Constructor injection of repositories, gateways, mirror, ownership
service and notifier; async methods; no module-level state.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, Field

from core.config.defaults import TimeoutDefaults
from core.contracts import AssetState, ProviderKind
from core.errors import (
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
    UnavailableError,
    UnimplementedError,
)
from core.logging import get_logger, log_context, log_checkpoint, ComponentType
from core.models.asset import MediaAsset
from core.models.events import UploadRequest, UploadTarget
from core.models.metadata import AssetMetadata
from core.models.patch import AssetPatch
from infrastructure.providers.base import ProviderGateway
from services.metadata_mirror import MetadataMirror
from services.ownership_service import OwnershipService
from services.retry import call_with_timeout

logger = get_logger("services.lifecycle", ComponentType.SERVICE)

MAX_PAGE_SIZE = 500


class AssetView(BaseModel):
    """A record hydrated with its metadata document (None if unavailable)."""
    record: MediaAsset
    metadata: Optional[AssetMetadata] = None


class AssetPage(BaseModel):
    items: List[AssetView] = Field(default_factory=list)
    total: int = 0
    limit: int
    offset: int


class AssetLifecycleService:
    """Business rules for the media asset lifecycle."""

    def __init__(
        self,
        records,
        documents,
        mirror: MetadataMirror,
        ownership: OwnershipService,
        gateways: Mapping[ProviderKind, ProviderGateway],
        timeouts: Optional[TimeoutDefaults] = None,
    ):
        self.records = records
        self.documents = documents
        self.mirror = mirror
        self.ownership = ownership
        self.gateways = dict(gateways)
        self.timeouts = timeouts or TimeoutDefaults()

    # ================================================================
    # HELPERS
    # ================================================================

    def _gateway(self, provider: ProviderKind) -> ProviderGateway:
        gateway = self.gateways.get(provider)
        if gateway is None:
            raise UnimplementedError(
                f"Provider '{provider.value}' is not configured", provider=provider.value
            )
        return gateway

    async def _store(self, awaitable, what: str):
        return await call_with_timeout(awaitable, self.timeouts.store_timeout, what)

    async def _get_record(self, asset_id: str, include_deleted: bool = False) -> MediaAsset:
        record = await self._store(
            self.records.get(asset_id, include_deleted=include_deleted), "record lookup"
        )
        if record is None:
            raise NotFoundError(f"Asset {asset_id} not found", asset_id=asset_id)
        return record

    async def _reload(self, record: MediaAsset) -> MediaAsset:
        """Fresh copy after a state-only write (the local copy if the row is gone)."""
        fresh = await self._store(
            self.records.get(record.asset_id, include_deleted=True), "record lookup"
        )
        return fresh or record

    async def _transition(
        self, asset_id: str, target: AssetState, operation: str
    ) -> MediaAsset:
        """Shared read-check-CAS for archive/unarchive."""
        with log_context(asset_id=asset_id, operation=operation):
            record = await self._get_record(asset_id)
            if not record.state.can_transition_to(target):
                raise ConflictError(
                    f"Cannot {operation} asset in state '{record.state.value}'",
                    asset_id=asset_id,
                    state=record.state.value,
                )

            rows = await self._store(
                self.records.apply_patch(
                    asset_id, record.version, AssetPatch(state=target), expected_state=record.state
                ),
                "record update",
            )
            if rows == 0:
                raise ConflictError(
                    f"Asset {asset_id} was modified concurrently", asset_id=asset_id
                )
            record.state = target
            record.version += 1
            record.updated_at = datetime.now(timezone.utc)

            log_checkpoint(f"asset_{operation}d", {"state": target.value})
            return record

    # ================================================================
    # CREATE UPLOAD
    # ================================================================

    async def create_upload(
        self, provider: ProviderKind, request: UploadRequest
    ) -> Tuple[MediaAsset, UploadTarget]:
        """
        Issue a provider upload target and record a pending asset.

        Returns:
            (record, target)

        Raises:
            ConflictError: owner already holds an active asset
            NotFoundError: owner unknown to the notifier
            UnavailableError: provider failed; nothing was written
            UnimplementedError: provider not configured
        """
        gateway = self._gateway(provider)
        owner = request.owner
        asset = MediaAsset(provider=provider)

        with log_context(asset_id=asset.asset_id, provider=provider.value, operation="create_upload"):
            if owner is not None:
                await self.ownership.ensure_owner_available(owner)

            target = await call_with_timeout(
                gateway.create_upload_target(asset.asset_id, request),
                self.timeouts.provider_timeout,
                f"{provider.value} upload target",
            )

            asset.provider_upload_id = target.upload_id
            if owner is not None:
                asset.set_owner(owner)

            try:
                await self._store(self.records.create(asset), "record insert")
            except ConflictError:
                logger.warning(
                    f"Record insert lost a race; upload target {target.upload_id} will expire unused"
                )
                raise

            await self.mirror.create_document(asset, request.title, request.creator_id)
            if owner is not None:
                await self.ownership.notify_associated(asset, owner)

            log_checkpoint("asset_upload_created", {"upload_id": target.upload_id})
            return asset, target

    # ================================================================
    # PROVIDER CALLBACKS
    # ================================================================

    async def on_provider_ready(
        self,
        upload_id: str,
        provider_asset_id: str,
        playback_id: Optional[str] = None,
        detail: Optional[Dict[str, Any]] = None,
    ) -> Optional[MediaAsset]:
        """
        Pending → ready. Duplicate or out-of-order deliveries return None.

        The write is conditioned on the record still being pending, not on
        the version read here: an owner change committed in between must
        not make the first delivery look like a duplicate.
        """
        record = await self._store(self.records.get_by_upload_id(upload_id), "record lookup")
        if record is None or record.state != AssetState.PENDING:
            logger.info(
                f"Ready event for upload {upload_id} discarded "
                f"(state={record.state.value if record else 'absent'})"
            )
            return None

        with log_context(asset_id=record.asset_id, provider=record.provider.value,
                         operation="provider_ready"):
            patch = AssetPatch(
                state=AssetState.READY,
                provider_asset_id=provider_asset_id,
                playback_id=playback_id,
            )
            rows = await self._store(
                self.records.apply_patch(
                    record.asset_id, None, patch,
                    expected_state=AssetState.PENDING, active_only=False,
                ),
                "record update",
            )
            if rows == 0:
                logger.info("Record left pending before this delivery, treating as duplicate")
                return None

            record.mark_ready(provider_asset_id, playback_id)
            record = await self._reload(record)
            merged = dict(detail or {})
            if playback_id:
                merged.setdefault("playback_id", playback_id)
            await self.mirror.merge_detail(record.asset_id, merged)

            log_checkpoint("asset_ready", {"provider_asset_id": provider_asset_id})
            return record

    async def on_provider_errored(
        self, upload_id: str, error: Optional[str] = None
    ) -> Optional[MediaAsset]:
        """Pending → broken. Same idempotency rule as on_provider_ready."""
        record = await self._store(self.records.get_by_upload_id(upload_id), "record lookup")
        if record is None or record.state != AssetState.PENDING:
            logger.info(f"Error event for upload {upload_id} discarded")
            return None

        with log_context(asset_id=record.asset_id, provider=record.provider.value,
                         operation="provider_errored"):
            record.mark_broken(error)
            patch = AssetPatch(state=AssetState.BROKEN, last_error=record.last_error)
            rows = await self._store(
                self.records.apply_patch(
                    record.asset_id, None, patch,
                    expected_state=AssetState.PENDING, active_only=False,
                ),
                "record update",
            )
            if rows == 0:
                logger.info("Record left pending before this delivery, treating as duplicate")
                return None

            record = await self._reload(record)
            log_checkpoint("asset_broken", {"error": record.last_error})
            return record

    async def on_provider_updated(
        self, provider_asset_id: str, detail: Optional[Dict[str, Any]] = None
    ) -> Optional[MediaAsset]:
        """Merge fresh provider detail for a committed asset."""
        record = await self._store(
            self.records.get_by_provider_asset_id(provider_asset_id), "record lookup"
        )
        if record is None or record.state == AssetState.PENDING:
            logger.info(f"Update event for {provider_asset_id} discarded")
            return None
        with log_context(asset_id=record.asset_id, operation="provider_updated"):
            await self.mirror.merge_detail(record.asset_id, dict(detail or {}))
            return record

    async def on_provider_deleted(self, provider_asset_id: str) -> Optional[MediaAsset]:
        """Remote asset removed out-of-band: a ready record is archived."""
        record = await self._store(
            self.records.get_by_provider_asset_id(provider_asset_id), "record lookup"
        )
        if record is None or record.state != AssetState.READY:
            logger.info(f"Delete event for {provider_asset_id} discarded")
            return None

        with log_context(asset_id=record.asset_id, operation="provider_deleted"):
            rows = await self._store(
                self.records.apply_patch(
                    record.asset_id, None, AssetPatch(state=AssetState.ARCHIVED),
                    expected_state=AssetState.READY, active_only=False,
                ),
                "record update",
            )
            if rows == 0:
                logger.info("Record left ready before this delivery, ignoring")
                return None
            record.state = AssetState.ARCHIVED
            record = await self._reload(record)
            log_checkpoint("asset_archived_remote_delete")
            return record

    async def on_provider_renamed(self, old_id: str, new_id: str) -> Optional[MediaAsset]:
        """
        The provider moved an asset to a new id. Whichever provider ids
        still carry ``old_id`` are switched to ``new_id``.

        Raises:
            UnavailableError: the record changed between read and write;
                the provider should redeliver
        """
        record = await self._store(self.records.get_by_provider_asset_id(old_id), "record lookup")
        if record is None:
            record = await self._store(self.records.get_by_upload_id(old_id), "record lookup")
        if record is None:
            logger.info(f"Rename event for {old_id} discarded (no record)")
            return None

        with log_context(asset_id=record.asset_id, provider=record.provider.value,
                         operation="provider_renamed"):
            changes: Dict[str, str] = {}
            if record.provider_asset_id == old_id:
                changes["provider_asset_id"] = new_id
            if record.provider_upload_id == old_id:
                changes["provider_upload_id"] = new_id

            rows = await self._store(
                self.records.apply_patch(
                    record.asset_id, record.version, AssetPatch(**changes), active_only=False
                ),
                "record update",
            )
            if rows == 0:
                raise UnavailableError(
                    f"Asset {record.asset_id} changed during rename", asset_id=record.asset_id
                )
            for column, value in changes.items():
                setattr(record, column, value)
            record.version += 1

            await self.mirror.merge_detail(record.asset_id, {"public_id": new_id})
            log_checkpoint("asset_renamed", {"from": old_id, "to": new_id})
            return record

    # ================================================================
    # ARCHIVE
    # ================================================================

    async def archive(self, asset_id: str) -> MediaAsset:
        """Ready → archived."""
        return await self._transition(asset_id, AssetState.ARCHIVED, "archive")

    async def unarchive(self, asset_id: str) -> MediaAsset:
        """Archived → ready."""
        return await self._transition(asset_id, AssetState.READY, "unarchive")

    # ================================================================
    # DELETE / RESTORE
    # ================================================================

    async def delete(self, asset_id: str) -> MediaAsset:
        """
        Soft delete: set deleted_at and release the owner in one write.

        Raises:
            NotFoundError: no such asset
            ConflictError: already deleted, or concurrent modification
        """
        with log_context(asset_id=asset_id, operation="delete"):
            async with self.records.transaction() as tx:
                record = await self._store(
                    tx.get(asset_id, include_deleted=True, for_update=True), "record lookup"
                )
                if record is None:
                    raise NotFoundError(f"Asset {asset_id} not found", asset_id=asset_id)
                if record.is_deleted:
                    raise ConflictError(f"Asset {asset_id} is already deleted", asset_id=asset_id)

                rows = await self._store(tx.soft_delete(asset_id, record.version), "record delete")
                if rows == 0:
                    raise ConflictError(
                        f"Asset {asset_id} was modified concurrently", asset_id=asset_id
                    )

            previous_owner = record.owner
            record.soft_delete()
            record.version += 1

            await self.mirror.sync_owners(asset_id)
            if previous_owner is not None:
                await self.ownership.notify_released(record, previous_owner)

            log_checkpoint("asset_soft_deleted", {"released_owner": str(previous_owner or "")})
            return record

    async def restore(self, asset_id: str) -> MediaAsset:
        """Clear deleted_at. The previous owner is not restored."""
        with log_context(asset_id=asset_id, operation="restore"):
            record = await self._get_record(asset_id, include_deleted=True)
            if not record.is_deleted:
                raise ConflictError(f"Asset {asset_id} is not deleted", asset_id=asset_id)

            rows = await self._store(
                self.records.restore(asset_id, record.version), "record restore"
            )
            if rows == 0:
                raise ConflictError(
                    f"Asset {asset_id} was modified concurrently", asset_id=asset_id
                )
            record.restore()
            record.version += 1

            log_checkpoint("asset_restored")
            return record

    async def delete_permanent(self, asset_id: str) -> None:
        """
        Destroy a soft-deleted asset: remote bytes first, then the row,
        then the document.

        The row stays locked from the deleted check until it is removed,
        so a restore cannot slip in after the remote bytes are gone. A
        pending upload that never committed is cancelled at the provider.

        Raises:
            NotFoundError: no such asset
            ConflictError: asset is not soft-deleted
            UnavailableError: remote delete failed; record untouched
        """
        with log_context(asset_id=asset_id, operation="delete_permanent"):
            async with self.records.transaction() as tx:
                record = await self._store(
                    tx.get(asset_id, include_deleted=True, for_update=True), "record lookup"
                )
                if record is None:
                    raise NotFoundError(f"Asset {asset_id} not found", asset_id=asset_id)
                if not record.is_deleted:
                    raise ConflictError(
                        f"Asset {asset_id} must be deleted before it can be destroyed",
                        asset_id=asset_id,
                    )

                if record.provider_asset_id:
                    gateway = self._gateway(record.provider)
                    await call_with_timeout(
                        gateway.delete_remote_asset(record.provider_asset_id),
                        self.timeouts.provider_timeout,
                        f"{record.provider.value} delete",
                    )
                elif record.provider_upload_id and record.state == AssetState.PENDING:
                    gateway = self._gateway(record.provider)
                    await call_with_timeout(
                        gateway.cancel_upload(record.provider_upload_id),
                        self.timeouts.provider_timeout,
                        f"{record.provider.value} upload cancel",
                    )

                rows = await self._store(
                    tx.delete(asset_id, soft_deleted_only=False), "record delete"
                )
            if rows == 0:
                logger.warning(f"Record {asset_id} already removed by a concurrent destroy")

            await self.mirror.delete_document(asset_id)
            log_checkpoint("asset_destroyed", {"provider_asset_id": record.provider_asset_id})

    # ================================================================
    # QUERIES
    # ================================================================

    @staticmethod
    def _check_page(limit: int, offset: int) -> None:
        if limit < 1 or limit > MAX_PAGE_SIZE:
            raise InvalidArgumentError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if offset < 0:
            raise InvalidArgumentError("offset must be >= 0")

    async def _hydrate(self, records: List[MediaAsset]) -> List[AssetView]:
        """Attach metadata documents; a metadata outage degrades to None."""
        documents: Dict[str, AssetMetadata] = {}
        if records:
            try:
                documents = await call_with_timeout(
                    self.documents.list_by_keys([r.asset_id for r in records]),
                    self.timeouts.store_timeout,
                    "metadata hydration",
                )
            except Exception as e:
                logger.warning(f"Metadata hydration failed, returning records only: {e}")
        return [AssetView(record=r, metadata=documents.get(r.asset_id)) for r in records]

    async def get(self, asset_id: str, include_deleted: bool = False) -> AssetView:
        record = await self._get_record(asset_id, include_deleted=include_deleted)
        return (await self._hydrate([record]))[0]

    async def get_with_deleted(self, asset_id: str) -> AssetView:
        return await self.get(asset_id, include_deleted=True)

    async def list(
        self, limit: int = 50, offset: int = 0, state: Optional[AssetState] = None
    ) -> AssetPage:
        """Active assets, optionally narrowed to one lifecycle state."""
        self._check_page(limit, offset)
        records, total = await self._store(
            self.records.list_active(limit, offset, state=state), "record list"
        )
        return AssetPage(items=await self._hydrate(records), total=total, limit=limit, offset=offset)

    async def list_deleted(self, limit: int = 50, offset: int = 0) -> AssetPage:
        self._check_page(limit, offset)
        records, total = await self._store(
            self.records.list_deleted(limit, offset), "record list"
        )
        return AssetPage(items=await self._hydrate(records), total=total, limit=limit, offset=offset)

    async def list_unowned(self, limit: int = 50, offset: int = 0) -> AssetPage:
        self._check_page(limit, offset)
        records, total = await self._store(
            self.records.list_unowned(limit, offset), "record list"
        )
        return AssetPage(items=await self._hydrate(records), total=total, limit=limit, offset=offset)

    # ================================================================
    # PLAYBACK
    # ================================================================

    async def sign_playback_credential(
        self,
        asset_id: str,
        expires_in: int = 3600,
        claims: Optional[Dict[str, Any]] = None,
    ) -> Tuple[str, datetime]:
        """
        Signed playback token for a ready asset.

        Returns:
            (token, expires_at)
        """
        if expires_in <= 0:
            raise InvalidArgumentError("expires_in must be positive")

        with log_context(asset_id=asset_id, operation="sign_playback"):
            record = await self._get_record(asset_id)
            if record.state != AssetState.READY or not record.playback_id:
                raise ConflictError(
                    f"Asset {asset_id} has no playable stream (state '{record.state.value}')",
                    asset_id=asset_id,
                )

            gateway = self._gateway(record.provider)
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
            token = await gateway.sign_playback_credential(record.playback_id, expires_at, claims)
            logger.info(f"Playback credential issued (expires {expires_at.isoformat()})")
            return token, expires_at


__all__ = ["AssetLifecycleService", "AssetView", "AssetPage", "MAX_PAGE_SIZE"]
