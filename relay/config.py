"""
Configuration management for the Wheels relay.

Loads settings from environment variables with sensible defaults.
All configuration is centralized here and passed explicitly into the app
factory, so tests can build an app with their own values.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from contracts.constants import (
    DEFAULT_KEEPALIVE_INTERVAL_SECONDS,
    DEFAULT_PROXY_CACHE_SECONDS,
    SIMBRIEF_FETCHER_URL,
)


@dataclass(frozen=True)
class SimBriefConfig:
    """Planning API proxy settings."""
    default_user: Optional[str] = None
    base_url: str = SIMBRIEF_FETCHER_URL
    cache_seconds: float = DEFAULT_PROXY_CACHE_SECONDS
    timeout_seconds: float = 15.0


@dataclass(frozen=True)
class RelayConfig:
    """Relay service settings."""
    ingest_token: str = "changeme-ingest-token"
    host: str = "0.0.0.0"
    port: int = 3000
    keepalive_interval_seconds: float = DEFAULT_KEEPALIVE_INTERVAL_SECONDS
    public_dir: Path = Path("public")
    log_level: str = "INFO"
    simbrief: SimBriefConfig = field(default_factory=SimBriefConfig)

    @classmethod
    def from_env(cls) -> "RelayConfig":
        """Build config from the process environment."""
        return cls(
            ingest_token=os.getenv("INGEST_TOKEN", "changeme-ingest-token"),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3000")),
            keepalive_interval_seconds=float(
                os.getenv("KEEPALIVE_INTERVAL_SECONDS", str(DEFAULT_KEEPALIVE_INTERVAL_SECONDS))
            ),
            public_dir=Path(os.getenv("PUBLIC_DIR", str(Path.cwd() / "public"))),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            simbrief=SimBriefConfig(
                default_user=os.getenv("SIMBRIEF_USER") or None,
                base_url=os.getenv("SIMBRIEF_BASE_URL", SIMBRIEF_FETCHER_URL),
                cache_seconds=float(os.getenv("SIMBRIEF_CACHE_SECONDS", str(DEFAULT_PROXY_CACHE_SECONDS))),
                timeout_seconds=float(os.getenv("SIMBRIEF_TIMEOUT_SECONDS", "15")),
            ),
        )
