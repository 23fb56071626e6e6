# ============================================================================
# ASSET METADATA REPOSITORY
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Domain - AssetMetadata document operations
# PURPOSE: Database access for media.asset_metadata (JSONB documents)
# CREATED: 04 OCT 2026
# ============================================================================
"""
AssetMetadata Repository

Document store over a single JSONB column keyed by asset_id.
Hard delete (documents are re-creatable from the record plus provider).
No optimistic locking: writes are last-writer-wins and the lifecycle
engine, through the metadata mirror, is the only writer of ``owners``.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Json
from psycopg_pool import AsyncConnectionPool

from core.contracts import OwnerRef
from core.models.metadata import AssetMetadata
from .database import TABLE_ASSET_METADATA

logger = logging.getLogger(__name__)


class AssetMetadataRepository:
    """Repository for AssetMetadata documents."""

    def __init__(self, pool: AsyncConnectionPool):
        self.pool = pool

    async def get(self, asset_id: str) -> Optional[AssetMetadata]:
        """Get the metadata document for an asset."""
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("SELECT * FROM {} WHERE asset_id = %s").format(TABLE_ASSET_METADATA),
                (asset_id,),
            )
            row = await result.fetchone()
            return self._row_to_model(row) if row else None

    async def upsert(self, metadata: AssetMetadata) -> AssetMetadata:
        """Insert or replace the whole document."""
        metadata.updated_at = datetime.now(timezone.utc)
        async with self.pool.connection() as conn:
            await conn.execute(
                sql.SQL("""
                    INSERT INTO {} (asset_id, document, updated_at)
                    VALUES (%(asset_id)s, %(document)s, %(updated_at)s)
                    ON CONFLICT (asset_id) DO UPDATE SET
                        document = EXCLUDED.document,
                        updated_at = EXCLUDED.updated_at
                """).format(TABLE_ASSET_METADATA),
                {
                    "asset_id": metadata.asset_id,
                    "document": Json(metadata.to_document()),
                    "updated_at": metadata.updated_at,
                },
            )
        logger.debug(f"Upserted metadata for asset {metadata.asset_id}")
        return metadata

    async def merge_detail(self, asset_id: str, detail: Dict[str, Any]) -> bool:
        """
        Shallow-merge keys into ``document.detail``.

        Returns:
            False if no document exists for the asset.
        """
        async with self.pool.connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                    UPDATE {} SET
                        document = jsonb_set(
                            document,
                            '{{detail}}',
                            COALESCE(document -> 'detail', '{{}}'::jsonb) || %s::jsonb
                        ),
                        updated_at = %s
                    WHERE asset_id = %s
                """).format(TABLE_ASSET_METADATA),
                (Json(detail), datetime.now(timezone.utc), asset_id),
            )
            return result.rowcount > 0

    async def set_owners(self, asset_id: str, owners: List[OwnerRef]) -> bool:
        """
        Replace ``document.owners``.

        Returns:
            False if no document exists for the asset.
        """
        payload = [o.model_dump() for o in owners]
        async with self.pool.connection() as conn:
            result = await conn.execute(
                sql.SQL("""
                    UPDATE {} SET
                        document = jsonb_set(document, '{{owners}}', %s::jsonb),
                        updated_at = %s
                    WHERE asset_id = %s
                """).format(TABLE_ASSET_METADATA),
                (Json(payload), datetime.now(timezone.utc), asset_id),
            )
            return result.rowcount > 0

    async def delete(self, asset_id: str) -> bool:
        """Hard-delete a document. Returns True if one was removed."""
        async with self.pool.connection() as conn:
            result = await conn.execute(
                sql.SQL("DELETE FROM {} WHERE asset_id = %s").format(TABLE_ASSET_METADATA),
                (asset_id,),
            )
            deleted = result.rowcount > 0
            if deleted:
                logger.info(f"Deleted metadata for asset {asset_id}")
            return deleted

    async def list_by_keys(self, asset_ids: Iterable[str]) -> Dict[str, AssetMetadata]:
        """Batch fetch documents; missing ids are absent from the result."""
        keys = list(dict.fromkeys(asset_ids))
        if not keys:
            return {}
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            result = await conn.execute(
                sql.SQL("SELECT * FROM {} WHERE asset_id = ANY(%s)").format(
                    TABLE_ASSET_METADATA
                ),
                (keys,),
            )
            rows = await result.fetchall()
            models = (self._row_to_model(row) for row in rows)
            return {m.asset_id: m for m in models}

    async def list_ids_page(self, after_asset_id: Optional[str], limit: int) -> List[str]:
        """Keyset page of document ids, ordered by asset_id."""
        async with self.pool.connection() as conn:
            conn.row_factory = dict_row
            if after_asset_id is None:
                result = await conn.execute(
                    sql.SQL("SELECT asset_id FROM {} ORDER BY asset_id LIMIT %s").format(
                        TABLE_ASSET_METADATA
                    ),
                    (limit,),
                )
            else:
                result = await conn.execute(
                    sql.SQL(
                        "SELECT asset_id FROM {} WHERE asset_id > %s ORDER BY asset_id LIMIT %s"
                    ).format(TABLE_ASSET_METADATA),
                    (after_asset_id, limit),
                )
            rows = await result.fetchall()
            return [str(row["asset_id"]) for row in rows]

    def _row_to_model(self, row: Dict[str, Any]) -> AssetMetadata:
        """Convert a database row to an AssetMetadata instance."""
        document = dict(row.get("document") or {})
        document["asset_id"] = str(row["asset_id"])
        document["updated_at"] = row.get("updated_at") or datetime.now(timezone.utc)
        return AssetMetadata.model_validate(document)
