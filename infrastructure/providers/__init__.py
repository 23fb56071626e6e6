# ============================================================================
# PROVIDER GATEWAYS
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Infrastructure - Provider registry
# PURPOSE: Export gateways and build them from settings
# CREATED: 07 OCT 2026
# ============================================================================

from typing import Dict

from core.config.defaults import Defaults
from core.contracts import ProviderKind
from .base import ProviderGateway
from .cloudinary import CloudinaryGateway
from .mux import MuxGateway


def build_gateways(defaults: Defaults) -> Dict[ProviderKind, ProviderGateway]:
    """Gateways for every provider with credentials configured."""
    timeout = defaults.timeouts.provider_timeout
    gateways: Dict[ProviderKind, ProviderGateway] = {}
    if defaults.mux.configured:
        gateways[ProviderKind.MUX] = MuxGateway(defaults.mux, timeout=timeout)
    if defaults.cloudinary.configured:
        gateways[ProviderKind.CLOUDINARY] = CloudinaryGateway(defaults.cloudinary, timeout=timeout)
    return gateways


__all__ = [
    "ProviderGateway",
    "MuxGateway",
    "CloudinaryGateway",
    "build_gateways",
]
