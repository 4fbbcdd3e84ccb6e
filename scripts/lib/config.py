"""
Runtime configuration for the GS Performance Dashboard.

Settings are read once from the environment (and `.env`) and passed
explicitly into the fetcher, reconciler and reader. Required values have
no fallback: a missing URL or key raises ConfigError at startup.

Usage:
    from scripts.lib.config import Settings

    settings = Settings.from_env()
    client = GrowthstationClient(settings.growthstation)
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional

from dotenv import load_dotenv

from scripts.lib.errors import ConfigError

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

# Upstream hard cap on `limit`
MAX_PAGE_SIZE = 100


def _require(env: Mapping[str, str], *names: str) -> str:
    for name in names:
        value = (env.get(name) or "").strip()
        if value:
            return value
    raise ConfigError(
        f"{' or '.join(names)} must be set in the environment or .env",
        variable=names[0],
    )


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}", variable=name)


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}", variable=name)


@dataclass(frozen=True)
class GrowthstationConfig:
    """Connection settings for the GS Engage API."""
    api_url: str
    api_key: str
    page_size: int = MAX_PAGE_SIZE
    max_pages: int = 20
    timeout: float = 30.0

    def __post_init__(self):
        if not self.api_url or not self.api_key:
            raise ConfigError("Growthstation api_url and api_key are required")
        if self.page_size < 1:
            raise ConfigError("page_size must be positive", variable="GROWTHSTATION_PAGE_SIZE")
        if self.max_pages < 1:
            raise ConfigError("max_pages must be positive", variable="GROWTHSTATION_MAX_PAGES")

    @property
    def base_url(self) -> str:
        return self.api_url.rstrip("/")

    @classmethod
    def from_env(cls, env: Mapping[str, str] = None) -> "GrowthstationConfig":
        env = os.environ if env is None else env
        return cls(
            api_url=_require(env, "GROWTHSTATION_API_URL"),
            api_key=_require(env, "GROWTHSTATION_API_KEY"),
            page_size=min(_int(env, "GROWTHSTATION_PAGE_SIZE", MAX_PAGE_SIZE), MAX_PAGE_SIZE),
            max_pages=_int(env, "GROWTHSTATION_MAX_PAGES", 20),
            timeout=_float(env, "GROWTHSTATION_TIMEOUT", 30.0),
        )


@dataclass(frozen=True)
class SupabaseConfig:
    """Connection settings for the Supabase project holding performance_data."""
    url: str
    key: str

    def __post_init__(self):
        if not self.url or not self.key:
            raise ConfigError("Supabase url and key are required")

    @classmethod
    def from_env(cls, env: Mapping[str, str] = None) -> "SupabaseConfig":
        env = os.environ if env is None else env
        return cls(
            url=_require(env, "SUPABASE_URL"),
            key=_require(env, "SUPABASE_SERVICE_ROLE_KEY", "SUPABASE_KEY"),
        )


@dataclass(frozen=True)
class Settings:
    """Everything the app needs, resolved once at startup."""
    growthstation: GrowthstationConfig
    supabase: SupabaseConfig
    read_fallback_limit: int = 100
    sync_interval_minutes: int = 0
    cors_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:8001"]
    )

    @classmethod
    def from_env(cls, env: Mapping[str, str] = None,
                 dotenv_path: Optional[Path] = None) -> "Settings":
        if env is None:
            load_dotenv(dotenv_path or PROJECT_ROOT / ".env")
            env = os.environ
        origins = (env.get("CORS_ORIGINS") or "").strip()
        return cls(
            growthstation=GrowthstationConfig.from_env(env),
            supabase=SupabaseConfig.from_env(env),
            read_fallback_limit=_int(env, "READ_FALLBACK_LIMIT", 100),
            sync_interval_minutes=_int(env, "SYNC_INTERVAL_MINUTES", 0),
            cors_origins=(
                [o.strip() for o in origins.split(",") if o.strip()]
                if origins else ["http://localhost:3000", "http://localhost:8001"]
            ),
        )
