# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 02 OCT 2026
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for the media asset service.
"""

from core.config.defaults import (
    TimeoutDefaults,
    RetryDefaults,
    ReconcileDefaults,
    MuxSettings,
    CloudinarySettings,
    NotifierSettings,
    Defaults,
    get_defaults,
    reset_defaults,
)

__all__ = [
    "TimeoutDefaults",
    "RetryDefaults",
    "ReconcileDefaults",
    "MuxSettings",
    "CloudinarySettings",
    "NotifierSettings",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
