# ============================================================================
# SERVICES MODULE
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Core - Business logic layer
# PURPOSE: Lifecycle, ownership, webhook and reconciliation services
# CREATED: 08 OCT 2026
# ============================================================================
"""
Services Module

Business logic for the media asset lifecycle.
Services coordinate between repositories, provider gateways and the notifier.

Usage:
    from services import AssetLifecycleService

    lifecycle = AssetLifecycleService(records, documents, mirror, ownership, gateways)
    record, target = await lifecycle.create_upload(ProviderKind.MUX, request)
"""

from .retry import RetryScheduler, call_with_timeout
from .metadata_mirror import MetadataMirror
from .ownership_service import OwnershipService
from .lifecycle_service import AssetLifecycleService, AssetView, AssetPage
from .webhook_service import WebhookIngestor
from .reconciliation_service import ReconciliationService, SweepStats

__all__ = [
    "RetryScheduler",
    "call_with_timeout",
    "MetadataMirror",
    "OwnershipService",
    "AssetLifecycleService",
    "AssetView",
    "AssetPage",
    "WebhookIngestor",
    "ReconciliationService",
    "SweepStats",
]
