# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for timeouts, retries, reconciliation, providers
# CREATED: 02 OCT 2026
# ============================================================================
"""
Configuration Defaults

Provides sensible defaults for the lifecycle engine and its collaborators.
These can be overridden via environment variables.

Design:
- Immutable dataclasses for defaults
- Environment variable overrides
- Type-safe access
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class TimeoutDefaults:
    """
    Per-call deadlines (seconds).

    Provider calls are kept shorter than the request deadline so a slow
    provider surfaces as UNAVAILABLE rather than a dropped request.
    """
    request_timeout: float = 30.0
    provider_timeout: float = 10.0
    store_timeout: float = 5.0
    notifier_timeout: float = 5.0

    @classmethod
    def from_env(cls) -> "TimeoutDefaults":
        """Create from environment variables."""
        return cls(
            request_timeout=float(os.getenv("REQUEST_TIMEOUT_SECONDS", 30.0)),
            provider_timeout=float(os.getenv("PROVIDER_TIMEOUT_SECONDS", 10.0)),
            store_timeout=float(os.getenv("STORE_TIMEOUT_SECONDS", 5.0)),
            notifier_timeout=float(os.getenv("NOTIFIER_TIMEOUT_SECONDS", 5.0)),
        )


@dataclass(frozen=True)
class RetryDefaults:
    """
    Background retry policy for metadata mirror writes.

    Delay for attempt n (1-based) is base_delay * multiplier ** (n - 1),
    capped at max_delay.
    """
    max_attempts: int = 5
    base_delay: float = 0.5
    multiplier: float = 2.0
    max_delay: float = 30.0

    def delay_for(self, attempt: int) -> float:
        """Backoff delay before the given retry attempt."""
        if attempt < 1:
            return 0.0
        return min(self.base_delay * (self.multiplier ** (attempt - 1)), self.max_delay)

    @classmethod
    def from_env(cls) -> "RetryDefaults":
        """Create from environment variables."""
        return cls(
            max_attempts=int(os.getenv("MIRROR_RETRY_MAX_ATTEMPTS", 5)),
            base_delay=float(os.getenv("MIRROR_RETRY_BASE_DELAY", 0.5)),
            multiplier=float(os.getenv("MIRROR_RETRY_MULTIPLIER", 2.0)),
            max_delay=float(os.getenv("MIRROR_RETRY_MAX_DELAY", 30.0)),
        )


@dataclass(frozen=True)
class ReconcileDefaults:
    """Periodic mirror reconciliation sweep. interval_seconds=0 disables it."""
    interval_seconds: int = 300
    batch_size: int = 200

    @property
    def enabled(self) -> bool:
        return self.interval_seconds > 0

    @classmethod
    def from_env(cls) -> "ReconcileDefaults":
        """Create from environment variables."""
        return cls(
            interval_seconds=int(os.getenv("RECONCILE_INTERVAL_SECONDS", 300)),
            batch_size=int(os.getenv("RECONCILE_BATCH_SIZE", 200)),
        )


@dataclass(frozen=True)
class MuxSettings:
    """
    Mux video provider credentials.

    signing_key_private is the base64-encoded PEM RSA key issued by Mux
    for signed playback; signing_key_id becomes the JWT ``kid``.
    """
    base_url: str = "https://api.mux.com"
    token_id: str = ""
    token_secret: str = ""
    webhook_secret: str = ""
    signing_key_id: str = ""
    signing_key_private: str = ""
    cors_origin: str = "*"
    playback_policy: str = "signed"
    test_mode: bool = False
    upload_timeout_seconds: int = 3600
    webhook_tolerance_seconds: int = 300

    @property
    def configured(self) -> bool:
        return bool(self.token_id and self.token_secret)

    @property
    def can_sign(self) -> bool:
        return bool(self.signing_key_id and self.signing_key_private)

    @classmethod
    def from_env(cls) -> "MuxSettings":
        """Create from environment variables."""
        return cls(
            base_url=os.getenv("MUX_BASE_URL", "https://api.mux.com"),
            token_id=os.getenv("MUX_TOKEN_ID", ""),
            token_secret=os.getenv("MUX_TOKEN_SECRET", ""),
            webhook_secret=os.getenv("MUX_WEBHOOK_SECRET", ""),
            signing_key_id=os.getenv("MUX_SIGNING_KEY_ID", ""),
            signing_key_private=os.getenv("MUX_SIGNING_KEY_PRIVATE", ""),
            cors_origin=os.getenv("MUX_CORS_ORIGIN", "*"),
            playback_policy=os.getenv("MUX_PLAYBACK_POLICY", "signed"),
            test_mode=_env_bool("MUX_TEST_MODE", False),
            upload_timeout_seconds=int(os.getenv("MUX_UPLOAD_TIMEOUT_SECONDS", 3600)),
            webhook_tolerance_seconds=int(os.getenv("MUX_WEBHOOK_TOLERANCE_SECONDS", 300)),
        )


@dataclass(frozen=True)
class CloudinarySettings:
    """
    Cloudinary image provider credentials. Webhook notifications are signed
    with api_secret and honoured for notification_valid_for_seconds.
    """
    base_url: str = "https://api.cloudinary.com"
    cloud_name: str = ""
    api_key: str = ""
    api_secret: str = ""
    folder: str = ""
    upload_expiry_seconds: int = 3600
    notification_valid_for_seconds: int = 7200

    @property
    def configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    @classmethod
    def from_env(cls) -> "CloudinarySettings":
        """Create from environment variables."""
        return cls(
            base_url=os.getenv("CLOUDINARY_BASE_URL", "https://api.cloudinary.com"),
            cloud_name=os.getenv("CLOUDINARY_CLOUD_NAME", ""),
            api_key=os.getenv("CLOUDINARY_API_KEY", ""),
            api_secret=os.getenv("CLOUDINARY_API_SECRET", ""),
            folder=os.getenv("CLOUDINARY_FOLDER", ""),
            upload_expiry_seconds=int(os.getenv("CLOUDINARY_UPLOAD_EXPIRY_SECONDS", 3600)),
            notification_valid_for_seconds=int(
                os.getenv("CLOUDINARY_NOTIFICATION_VALID_FOR_SECONDS", 7200)
            ),
        )


@dataclass(frozen=True)
class NotifierSettings:
    """
    Downstream owner service. Empty base_url selects the null notifier
    (every owner exists, notifications are dropped).
    """
    base_url: str = ""
    auth_token: str = ""
    owner_types: Tuple[str, ...] = ()

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    @classmethod
    def from_env(cls) -> "NotifierSettings":
        """Create from environment variables."""
        raw_types = os.getenv("NOTIFIER_OWNER_TYPES", "")
        return cls(
            base_url=os.getenv("NOTIFIER_BASE_URL", "").rstrip("/"),
            auth_token=os.getenv("NOTIFIER_AUTH_TOKEN", ""),
            owner_types=tuple(t.strip() for t in raw_types.split(",") if t.strip()),
        )


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

@dataclass
class Defaults:
    """Container for all default configurations."""
    timeouts: TimeoutDefaults = field(default_factory=TimeoutDefaults)
    retry: RetryDefaults = field(default_factory=RetryDefaults)
    reconcile: ReconcileDefaults = field(default_factory=ReconcileDefaults)
    mux: MuxSettings = field(default_factory=MuxSettings)
    cloudinary: CloudinarySettings = field(default_factory=CloudinarySettings)
    notifier: NotifierSettings = field(default_factory=NotifierSettings)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            timeouts=TimeoutDefaults.from_env(),
            retry=RetryDefaults.from_env(),
            reconcile=ReconcileDefaults.from_env(),
            mux=MuxSettings.from_env(),
            cloudinary=CloudinarySettings.from_env(),
            notifier=NotifierSettings.from_env(),
        )


_defaults: Optional[Defaults] = None


def get_defaults() -> Defaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = Defaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


# ============================================================================
# EXPORTS
# ============================================================================

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
