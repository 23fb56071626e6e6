# ============================================================================
# REPOSITORIES MODULE
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Core - Database access layer
# PURPOSE: Record and document stores for media assets
# CREATED: 04 OCT 2026
# ============================================================================
"""
Repositories Module

Provides database access for the media asset record (authoritative) and
its metadata document (mirror). Uses psycopg3 async with connection pooling.

Usage:
    from repositories import AssetRecordRepository, init_pool

    pool = await init_pool()
    records = AssetRecordRepository(pool)
    asset = await records.get(asset_id)
"""

from .database import init_pool, close_pool
from .asset_repo import AssetRecordRepository
from .metadata_repo import AssetMetadataRepository
from .schema import generate_ddl, deploy_schema

__all__ = [
    "init_pool",
    "close_pool",
    "AssetRecordRepository",
    "AssetMetadataRepository",
    "generate_ddl",
    "deploy_schema",
]
