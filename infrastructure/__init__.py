# ============================================================================
# INFRASTRUCTURE MODULE
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Infrastructure - Outbound HTTP integrations
# PURPOSE: Provider gateways and the external owner notifier
# CREATED: 07 OCT 2026
# ============================================================================
"""
Infrastructure module for the media lifecycle service.

Provides:
- ProviderGateway, MuxGateway, CloudinaryGateway: remote media providers
- ExternalNotifier, HttpOwnerNotifier, NullNotifier: owner service client

Usage:
    from infrastructure import build_gateways, build_notifier

    gateways = build_gateways(get_defaults())
    notifier = build_notifier(get_defaults().notifier)
"""

from .providers import ProviderGateway, MuxGateway, CloudinaryGateway, build_gateways
from .notifier import ExternalNotifier, HttpOwnerNotifier, NullNotifier, build_notifier

__all__ = [
    "ProviderGateway",
    "MuxGateway",
    "CloudinaryGateway",
    "build_gateways",
    "ExternalNotifier",
    "HttpOwnerNotifier",
    "NullNotifier",
    "build_notifier",
]
