"""Configuration management.

Loads from TOML config files + environment variables.
Uses pydantic-settings for validation and env var overriding.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from .enums import EnrichmentKind, Tier


# ---------------------------------------------------------------------------
# Sub-configs
# ---------------------------------------------------------------------------

class CacheConfig(BaseModel):
    backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    prefix: str = "relay:cache:"
    op_timeout_seconds: float = 0.25  # Upper bound on any cache call
    purge_interval_seconds: float = 300.0  # 0 disables the background purge


def _default_ttls() -> dict[EnrichmentKind, int]:
    return {
        EnrichmentKind.LOCATION_EXTRACTION: 3600,
        EnrichmentKind.GEOCODE: 86400,  # Stable facts
        EnrichmentKind.IMAGE_VERIFICATION: 3600,  # Volatile facts
        EnrichmentKind.OFFICIAL_UPDATES: 3600,
        EnrichmentKind.SOCIAL_MEDIA: 3600,
    }


class EnrichmentConfig(BaseModel):
    provider_timeout_seconds: float = 5.0
    ttl_seconds: dict[EnrichmentKind, int] = Field(default_factory=_default_ttls)
    resource_radius_km: float = 10.0
    resource_limit: int = 20

    # "builtin" = deterministic pattern/lookup providers
    extractor: Literal["builtin", "gemini"] = "builtin"
    geocoder: Literal["builtin", "nominatim"] = "builtin"
    image_verifier: Literal["builtin", "gemini"] = "builtin"

    gemini_api_key_env: str = "GEMINI_API_KEY"  # Name of env var holding the key
    gemini_model: str = "gemini-1.5-flash"
    gemini_endpoint: str = "https://generativelanguage.googleapis.com/v1beta"
    nominatim_url: str = "https://nominatim.openstreetmap.org/search"
    user_agent: str = "disaster-relay/0.1"
    image_max_bytes: int = 10 * 1024 * 1024  # Larger downloads are abandoned

    @property
    def gemini_api_key(self) -> str:
        return os.environ.get(self.gemini_api_key_env, "")

    def ttl_for(self, kind: EnrichmentKind) -> int:
        return self.ttl_seconds.get(kind, 3600)


class BusConfig(BaseModel):
    debounce_ms: int = 300
    send_timeout_seconds: float = 2.0


class TierLimit(BaseModel):
    window_seconds: int
    max_requests: int
    message: str = "Too many requests, please try again later."


def _default_tiers() -> dict[Tier, TierLimit]:
    return {
        Tier.GENERAL: TierLimit(
            window_seconds=15 * 60,
            max_requests=100,
            message="Too many requests from this IP, please try again later.",
        ),
        Tier.STRICT: TierLimit(
            window_seconds=60,
            max_requests=10,
            message="Too many requests for this operation, please try again later.",
        ),
        Tier.AI: TierLimit(
            window_seconds=60,
            max_requests=5,
            message="Too many AI requests, please try again later.",
        ),
    }


class AdmissionConfig(BaseModel):
    enabled: bool = True
    tiers: dict[Tier, TierLimit] = Field(default_factory=_default_tiers)
    exempt_paths: list[str] = Field(default_factory=lambda: ["/", "/health"])
    trust_forwarded_for: bool = True  # Behind a proxy

    @field_validator("tiers")
    @classmethod
    def fill_missing_tiers(cls, tiers: dict[Tier, TierLimit]) -> dict[Tier, TierLimit]:
        """A config file may override some tiers; the rest keep their defaults."""
        return {**_default_tiers(), **tiers}


class StorageConfig(BaseModel):
    backend: Literal["memory", "sql"] = "memory"
    database_url: str = "sqlite+aiosqlite:///./disaster_relay.db"
    echo: bool = False


class ObservabilityConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "console"
    metrics_enabled: bool = True


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseSettings):
    """Top-level application settings.

    Loaded from TOML config files, overridden by environment variables.
    """

    environment: str = "development"
    host: str = "0.0.0.0"
    port: int = 5000

    cache: CacheConfig = Field(default_factory=CacheConfig)
    enrichment: EnrichmentConfig = Field(default_factory=EnrichmentConfig)
    bus: BusConfig = Field(default_factory=BusConfig)
    admission: AdmissionConfig = Field(default_factory=AdmissionConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = {"env_prefix": "RELAY_", "env_nested_delimiter": "__"}


def load_settings(
    config_path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> Settings:
    """Load settings from TOML file + env vars.

    Args:
        config_path: Path to TOML config file (optional).
        overrides: Dict of overrides to apply on top.
    """
    data: dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if path.exists():
            import tomli

            with open(path, "rb") as f:
                data = tomli.load(f)

    if overrides:
        data.update(overrides)

    return Settings(**data)
