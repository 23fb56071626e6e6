# ============================================================================
# MEDIA SCHEMA DDL
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Core - DDL for the record and document tables
# PURPOSE: Idempotent CREATE statements for the media schema
# CREATED: 05 OCT 2026
# ============================================================================
"""
Media schema DDL.

All statements are psycopg ``sql.Composed`` objects and use IF NOT EXISTS,
so deploying twice is safe. Partial unique indexes come from the
``__sql_indexes__`` metadata on MediaAsset; names prefixed ``uq_`` are
created UNIQUE.

Usage:
    statements = generate_ddl()
    async with pool.connection() as conn:
        for stmt in statements:
            await conn.execute(stmt)
"""

import logging
from typing import List, Type

from psycopg import sql
from psycopg_pool import AsyncConnectionPool
from pydantic import BaseModel

from core.contracts import AssetState, ProviderKind
from core.models.asset import MediaAsset
from core.models.metadata import AssetMetadata
from .database import SCHEMA

logger = logging.getLogger(__name__)


def _literal_list(values) -> sql.Composed:
    return sql.SQL(", ").join(sql.Literal(v) for v in values)


def _create_media_assets(schema: str) -> sql.Composed:
    return sql.SQL("""
        CREATE TABLE IF NOT EXISTS {table} (
            asset_id            VARCHAR(36) PRIMARY KEY,
            provider            VARCHAR(32) NOT NULL CHECK (provider IN ({providers})),
            provider_upload_id  VARCHAR(255),
            provider_asset_id   VARCHAR(255),
            owner_id            VARCHAR(64),
            owner_type          VARCHAR(64),
            state               VARCHAR(16) NOT NULL DEFAULT 'pending'
                                CHECK (state IN ({states})),
            playback_id         VARCHAR(255),
            last_error          TEXT,
            created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            deleted_at          TIMESTAMPTZ,
            version             INTEGER NOT NULL DEFAULT 1,
            CONSTRAINT ck_media_assets_owner_pair
                CHECK ((owner_id IS NULL) = (owner_type IS NULL))
        )
    """).format(
        table=sql.Identifier(schema, MediaAsset.__sql_table__),
        providers=_literal_list(p.value for p in ProviderKind),
        states=_literal_list(s.value for s in AssetState),
    )


def _create_asset_metadata(schema: str) -> sql.Composed:
    return sql.SQL("""
        CREATE TABLE IF NOT EXISTS {table} (
            asset_id    VARCHAR(36) PRIMARY KEY,
            document    JSONB NOT NULL DEFAULT '{{}}'::jsonb,
            updated_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """).format(table=sql.Identifier(schema, AssetMetadata.__sql_table__))


def _indexes(schema: str, model: Type[BaseModel]) -> List[sql.Composed]:
    statements = []
    for name, columns, where in getattr(model, "__sql_indexes__", []):
        unique = sql.SQL("UNIQUE ") if name.startswith("uq_") else sql.SQL("")
        statements.append(
            sql.SQL(
                "CREATE {unique}INDEX IF NOT EXISTS {name} ON {table} ({columns}) WHERE {where}"
            ).format(
                unique=unique,
                name=sql.Identifier(name),
                table=sql.Identifier(schema, model.__sql_table__),
                columns=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
                where=sql.SQL(where),
            )
        )
    return statements


def generate_ddl(schema: str = SCHEMA) -> List[sql.Composed]:
    """Complete, ordered DDL for the media schema."""
    statements: List[sql.Composed] = [
        sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(sql.Identifier(schema)),
        _create_media_assets(schema),
        _create_asset_metadata(schema),
    ]
    statements.extend(_indexes(schema, MediaAsset))
    logger.debug(f"Generated {len(statements)} DDL statements for schema {schema}")
    return statements


async def deploy_schema(pool: AsyncConnectionPool, schema: str = SCHEMA) -> int:
    """
    Execute the DDL in one transaction.

    Returns:
        Number of statements executed
    """
    statements = generate_ddl(schema)
    async with pool.connection() as conn:
        async with conn.transaction():
            for stmt in statements:
                await conn.execute(stmt)
    logger.info(f"Deployed {len(statements)} DDL statements to schema {schema}")
    return len(statements)


__all__ = ["generate_ddl", "deploy_schema"]
