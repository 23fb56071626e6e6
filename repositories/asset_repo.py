# ============================================================================
# MEDIA ASSET REPOSITORY
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Domain - MediaAsset CRUD and conditional writes
# PURPOSE: Database access for media.media_assets (authoritative record)
# CREATED: 04 OCT 2026
# ============================================================================
"""
MediaAsset Repository

CRUD operations for the authoritative asset record.
All SQL uses psycopg sql.SQL composition for injection safety.

Every mutating method is a compare-and-swap guarded by ``version`` (plus a
state or ownership precondition) and returns the affected-row count.
Provider callbacks guard on state alone. The service layer turns 0 into
CONFLICT. Unique-index violations on insert or owner assignment are raised
as ConflictError.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Set, Tuple

from psycopg import AsyncConnection, errors as pg_errors, sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from core.contracts import AssetState, OwnerRef, ProviderKind
from core.errors import ConflictError
from core.models.asset import MediaAsset
from core.models.patch import AssetPatch
from .database import TABLE_MEDIA_ASSETS

logger = logging.getLogger(__name__)

_COLUMNS = (
    "asset_id", "provider", "provider_upload_id", "provider_asset_id",
    "owner_id", "owner_type", "state", "playback_id", "last_error",
    "created_at", "updated_at", "deleted_at", "version",
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AssetRecordRepository:
    """Repository for MediaAsset records."""

    def __init__(self, pool: AsyncConnectionPool, conn: Optional[AsyncConnection] = None):
        self.pool = pool
        self._conn = conn

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[AsyncConnection]:
        if self._conn is not None:
            yield self._conn
            return
        async with self.pool.connection() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["AssetRecordRepository"]:
        """
        Scope several calls to one connection and one transaction.

        Usage:
            async with repo.transaction() as tx:
                asset = await tx.get(asset_id, for_update=True)
                await tx.soft_delete(asset_id, asset.version)
        """
        if self._conn is not None:
            async with self._conn.transaction():
                yield self
            return
        async with self.pool.connection() as conn:
            async with conn.transaction():
                yield AssetRecordRepository(self.pool, conn=conn)

    # ----------------------------------------------------------------
    # Create
    # ----------------------------------------------------------------

    async def create(self, asset: MediaAsset) -> MediaAsset:
        """
        Insert a new record.

        Raises:
            ConflictError: owner already holds an active asset, or the
                provider upload id is already recorded
        """
        columns = sql.SQL(", ").join(sql.Identifier(c) for c in _COLUMNS)
        values = sql.SQL(", ").join(sql.Placeholder(c) for c in _COLUMNS)
        async with self._connection() as conn:
            try:
                await conn.execute(
                    sql.SQL("INSERT INTO {} ({}) VALUES ({})").format(
                        TABLE_MEDIA_ASSETS, columns, values
                    ),
                    asset.to_row(),
                )
            except pg_errors.UniqueViolation as e:
                constraint = getattr(e.diag, "constraint_name", None)
                logger.warning(
                    f"Unique violation creating asset {asset.asset_id} ({constraint})"
                )
                raise ConflictError(
                    "Asset conflicts with an existing record",
                    asset_id=asset.asset_id,
                    constraint=constraint,
                ) from e
        logger.info(
            f"Created asset {asset.asset_id} "
            f"(provider={asset.provider.value}, upload={asset.provider_upload_id})"
        )
        return asset

    # ----------------------------------------------------------------
    # Reads
    # ----------------------------------------------------------------

    async def _fetch_one(self, where: sql.Composable, params: Tuple) -> Optional[MediaAsset]:
        async with self._connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("SELECT * FROM {} WHERE {}").format(TABLE_MEDIA_ASSETS, where),
                params,
            )
            row = await result.fetchone()
            return self._row_to_model(row) if row else None

    async def get(
        self,
        asset_id: str,
        include_deleted: bool = False,
        for_update: bool = False,
    ) -> Optional[MediaAsset]:
        """Get a record by ID. Soft-deleted rows only with include_deleted."""
        where = sql.SQL("asset_id = %s")
        if not include_deleted:
            where = sql.SQL("{} AND deleted_at IS NULL").format(where)
        if for_update:
            where = sql.SQL("{} FOR UPDATE").format(where)
        return await self._fetch_one(where, (asset_id,))

    async def get_by_upload_id(self, upload_id: str) -> Optional[MediaAsset]:
        """Lookup by provider upload id, including soft-deleted rows."""
        return await self._fetch_one(sql.SQL("provider_upload_id = %s"), (upload_id,))

    async def get_by_provider_asset_id(self, provider_asset_id: str) -> Optional[MediaAsset]:
        """Lookup by provider asset id, including soft-deleted rows."""
        return await self._fetch_one(sql.SQL("provider_asset_id = %s"), (provider_asset_id,))

    async def get_by_owner(self, owner: OwnerRef) -> Optional[MediaAsset]:
        """The active asset held by an owner, if any."""
        return await self._fetch_one(
            sql.SQL("owner_id = %s AND owner_type = %s AND deleted_at IS NULL"),
            (owner.owner_id, owner.owner_type),
        )

    async def _list(
        self, where: sql.Composable, limit: int, offset: int
    ) -> Tuple[List[MediaAsset], int]:
        async with self._connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL(
                    "SELECT * FROM {} WHERE {} "
                    "ORDER BY created_at DESC, asset_id LIMIT %s OFFSET %s"
                ).format(TABLE_MEDIA_ASSETS, where),
                (limit, offset),
            )
            rows = await result.fetchall()

            count_result = await conn.execute(
                sql.SQL("SELECT COUNT(*) AS total FROM {} WHERE {}").format(
                    TABLE_MEDIA_ASSETS, where
                )
            )
            count_row = await count_result.fetchone()
            return [self._row_to_model(row) for row in rows], count_row["total"]

    async def list_active(
        self, limit: int = 50, offset: int = 0, state: Optional[AssetState] = None
    ) -> Tuple[List[MediaAsset], int]:
        where = sql.SQL("deleted_at IS NULL")
        if state is not None:
            where = sql.SQL("deleted_at IS NULL AND state = {}").format(sql.Literal(state.value))
        return await self._list(where, limit, offset)

    async def list_deleted(self, limit: int = 50, offset: int = 0) -> Tuple[List[MediaAsset], int]:
        return await self._list(sql.SQL("deleted_at IS NOT NULL"), limit, offset)

    async def list_unowned(self, limit: int = 50, offset: int = 0) -> Tuple[List[MediaAsset], int]:
        return await self._list(
            sql.SQL("deleted_at IS NULL AND owner_id IS NULL"), limit, offset
        )

    async def list_page(self, after_asset_id: Optional[str], limit: int) -> List[MediaAsset]:
        """Keyset page over every record (deleted included), ordered by asset_id."""
        async with self._connection() as conn:
            conn.row_factory = dict_row
            if after_asset_id is None:
                result = await conn.execute(
                    sql.SQL("SELECT * FROM {} ORDER BY asset_id LIMIT %s").format(
                        TABLE_MEDIA_ASSETS
                    ),
                    (limit,),
                )
            else:
                result = await conn.execute(
                    sql.SQL(
                        "SELECT * FROM {} WHERE asset_id > %s ORDER BY asset_id LIMIT %s"
                    ).format(TABLE_MEDIA_ASSETS),
                    (after_asset_id, limit),
                )
            rows = await result.fetchall()
            return [self._row_to_model(row) for row in rows]

    # ----------------------------------------------------------------
    # Conditional writes (return affected-row count)
    # ----------------------------------------------------------------

    async def apply_patch(
        self,
        asset_id: str,
        expected_version: Optional[int],
        patch: AssetPatch,
        expected_state: Optional[AssetState] = None,
        active_only: bool = True,
    ) -> int:
        """
        Apply the supplied fields of a patch.

        Only columns present in the patch are written. ``expected_state``
        adds a state precondition; ``expected_version=None`` drops the
        version check so the state alone guards the write.
        """
        changes = patch.changes()
        if not changes:
            return 0

        assignments = [
            sql.SQL("{} = {}").format(sql.Identifier(col), sql.Placeholder(col))
            for col in sorted(changes)
        ]
        assignments.append(sql.SQL("updated_at = %(updated_at)s"))
        assignments.append(sql.SQL("version = version + 1"))

        conditions = [sql.SQL("asset_id = %(asset_id)s")]
        if expected_version is not None:
            conditions.append(sql.SQL("version = %(expected_version)s"))
        if expected_state is not None:
            conditions.append(sql.SQL("state = %(expected_state)s"))
        if active_only:
            conditions.append(sql.SQL("deleted_at IS NULL"))

        params: Dict[str, Any] = dict(changes)
        params.update(
            asset_id=asset_id,
            expected_version=expected_version,
            expected_state=expected_state.value if expected_state else None,
            updated_at=_now(),
        )

        async with self._connection() as conn:
            try:
                result = await conn.execute(
                    sql.SQL("UPDATE {} SET {} WHERE {}").format(
                        TABLE_MEDIA_ASSETS,
                        sql.SQL(", ").join(assignments),
                        sql.SQL(" AND ").join(conditions),
                    ),
                    params,
                )
            except pg_errors.UniqueViolation as e:
                raise ConflictError(
                    "Provider id already recorded on another asset",
                    asset_id=asset_id,
                ) from e

        if result.rowcount == 0:
            logger.warning(
                f"Conditional update lost for asset {asset_id} "
                f"(expected version {expected_version}, state {expected_state})"
            )
        return result.rowcount

    async def set_owner(self, asset_id: str, owner: OwnerRef, expected_version: int) -> int:
        """
        Assign an owner to an unowned, active record.

        Raises:
            ConflictError: the owner already holds another active asset
        """
        now = _now()
        async with self._connection() as conn:
            try:
                result = await conn.execute(
                    sql.SQL("""
                        UPDATE {} SET
                            owner_id = %s,
                            owner_type = %s,
                            updated_at = %s,
                            version = version + 1
                        WHERE asset_id = %s
                          AND version = %s
                          AND owner_id IS NULL
                          AND deleted_at IS NULL
                    """).format(TABLE_MEDIA_ASSETS),
                    (owner.owner_id, owner.owner_type, now, asset_id, expected_version),
                )
            except pg_errors.UniqueViolation as e:
                logger.warning(f"Owner {owner} already holds an active asset")
                raise ConflictError(
                    f"Owner {owner} is already associated with another asset",
                    asset_id=asset_id,
                    owner=str(owner),
                ) from e
            return result.rowcount

    async def clear_owner(self, asset_id: str, owner: OwnerRef, expected_version: int) -> int:
        """Clear the owner if it is still ``owner``."""
        now = _now()
        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                    UPDATE {} SET
                        owner_id = NULL,
                        owner_type = NULL,
                        updated_at = %s,
                        version = version + 1
                    WHERE asset_id = %s
                      AND version = %s
                      AND owner_id = %s
                      AND owner_type = %s
                """).format(TABLE_MEDIA_ASSETS),
                (now, asset_id, expected_version, owner.owner_id, owner.owner_type),
            )
            return result.rowcount

    async def soft_delete(self, asset_id: str, expected_version: int) -> int:
        """Set deleted_at and clear ownership in one conditional write."""
        now = _now()
        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                    UPDATE {} SET
                        deleted_at = %s,
                        owner_id = NULL,
                        owner_type = NULL,
                        updated_at = %s,
                        version = version + 1
                    WHERE asset_id = %s
                      AND version = %s
                      AND deleted_at IS NULL
                """).format(TABLE_MEDIA_ASSETS),
                (now, now, asset_id, expected_version),
            )
            return result.rowcount

    async def restore(self, asset_id: str, expected_version: int) -> int:
        """Clear deleted_at. Ownership stays cleared."""
        now = _now()
        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                    UPDATE {} SET
                        deleted_at = NULL,
                        updated_at = %s,
                        version = version + 1
                    WHERE asset_id = %s
                      AND version = %s
                      AND deleted_at IS NOT NULL
                """).format(TABLE_MEDIA_ASSETS),
                (now, asset_id, expected_version),
            )
            return result.rowcount

    async def delete(self, asset_id: str, soft_deleted_only: bool = True) -> int:
        """
        Remove a row permanently.

        With ``soft_deleted_only`` the row must still carry deleted_at.
        Pass False once the remote bytes are gone and the row has to go
        regardless of a concurrent restore.
        """
        query = "DELETE FROM {} WHERE asset_id = %s"
        if soft_deleted_only:
            query += " AND deleted_at IS NOT NULL"
        async with self._connection() as conn:
            result = await conn.execute(
                sql.SQL(query).format(TABLE_MEDIA_ASSETS), (asset_id,)
            )
            if result.rowcount:
                logger.info(f"Permanently deleted asset record {asset_id}")
            return result.rowcount

    async def existing_ids(self, asset_ids: Iterable[str]) -> Set[str]:
        """Which of ``asset_ids`` still have a row (deleted included)."""
        ids = list(asset_ids)
        if not ids:
            return set()
        async with self._connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("SELECT asset_id FROM {} WHERE asset_id = ANY(%s)").format(
                    TABLE_MEDIA_ASSETS
                ),
                (ids,),
            )
            rows = await result.fetchall()
            return {str(row["asset_id"]) for row in rows}

    async def ping(self) -> bool:
        """Readiness probe."""
        async with self._connection() as conn:
            await conn.execute("SELECT 1")
            return True

    def _row_to_model(self, row: Dict[str, Any]) -> MediaAsset:
        """Convert a database row to a MediaAsset instance."""
        return MediaAsset(
            asset_id=str(row["asset_id"]),
            provider=ProviderKind(row["provider"]),
            provider_upload_id=row.get("provider_upload_id"),
            provider_asset_id=row.get("provider_asset_id"),
            owner_id=row.get("owner_id"),
            owner_type=row.get("owner_type"),
            state=AssetState(row["state"]),
            playback_id=row.get("playback_id"),
            last_error=row.get("last_error"),
            created_at=row["created_at"],
            updated_at=row.get("updated_at") or row["created_at"],
            deleted_at=row.get("deleted_at"),
            version=row.get("version", 1),
        )
