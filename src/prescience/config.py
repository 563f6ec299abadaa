"""Application configuration via pydantic-settings."""

import json
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from prescience.core.constants import (
    COORDINATED_FRESH_POINTS,
    DEFAULT_POLYMARKET_DATA_API_URL,
    DEFAULT_POLYMARKET_GAMMA_API_URL,
    DEFAULT_SIGNALS_DIR,
    DEFAULT_SITE_URL,
    EXPIRY_RUSH_HOURS,
    EXPIRY_RUSH_MIN_VOLUME,
    EXPIRY_RUSH_POINTS,
    EXTREME_PRICE_HIGH,
    EXTREME_PRICE_LOW,
    EXTREME_PRICE_MIN_VOLUME,
    EXTREME_PRICE_POINTS,
    FRESH_SURGE_EXCESS,
    FRESH_SURGE_POINTS,
    TIER2_EMIT_THRESHOLD,
    TIER2_MIN_TRADES_FOR_WALLETS,
    TIER2_MIN_VOLUME_24H,
    VOLUME_SPIKE_POINTS,
    VOLUME_SPIKE_PROMOTE_RATIO,
    VOLUME_SPIKE_RATIO,
    WHALE_DOMINANCE,
    WHALE_POINTS,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Core
    env: Literal["development", "staging", "production"] = Field(
        default="development", alias="PRESCIENCE_ENV"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", alias="PRESCIENCE_LOG_LEVEL"
    )
    scheduler_enabled: bool = Field(
        default=False,
        description="Run the scan/publish/resolve cron jobs inside the API process",
    )

    # Upstream (Polymarket)
    polymarket_gamma_api_url: str = Field(default=DEFAULT_POLYMARKET_GAMMA_API_URL)
    polymarket_data_api_url: str = Field(default=DEFAULT_POLYMARKET_DATA_API_URL)
    upstream_timeout_seconds: float = Field(default=8.0)
    upstream_retries: int = Field(
        default=2,
        description="Connection-level retries per request (httpx transport)",
    )
    upstream_page_size: int = Field(default=100)
    upstream_max_requests: int = Field(
        default=20,
        description="Request budget for one paginated market listing",
    )
    upstream_max_failed_pages: int = Field(default=3)

    # Tier-2 broad scan
    tier2_cache_ttl_seconds: int = Field(default=7200)
    tier2_market_limit: int = Field(default=1000)
    tier2_trade_sample: int = Field(default=50)
    tier2_fresh_baseline: float = Field(default=0.25)
    tier2_fresh_min_notional: float = Field(default=25.0)
    tier2_min_volume_24h: float = Field(default=TIER2_MIN_VOLUME_24H)
    tier2_min_trades_for_wallets: int = Field(default=TIER2_MIN_TRADES_FOR_WALLETS)
    tier2_emit_threshold: int = Field(
        default=TIER2_EMIT_THRESHOLD,
        description="Minimum anomaly score for a market to enter the index",
    )
    tier2_volume_spike_ratio: float = Field(default=VOLUME_SPIKE_RATIO)
    tier2_volume_spike_promote_ratio: float = Field(default=VOLUME_SPIKE_PROMOTE_RATIO)
    tier2_volume_spike_points: int = Field(default=VOLUME_SPIKE_POINTS)
    tier2_fresh_surge_excess: float = Field(default=FRESH_SURGE_EXCESS)
    tier2_fresh_surge_points: int = Field(default=FRESH_SURGE_POINTS)
    tier2_whale_dominance: float = Field(default=WHALE_DOMINANCE)
    tier2_whale_points: int = Field(default=WHALE_POINTS)
    tier2_coordinated_fresh_points: int = Field(default=COORDINATED_FRESH_POINTS)
    tier2_extreme_price_high: float = Field(default=EXTREME_PRICE_HIGH)
    tier2_extreme_price_low: float = Field(default=EXTREME_PRICE_LOW)
    tier2_extreme_price_min_volume: float = Field(default=EXTREME_PRICE_MIN_VOLUME)
    tier2_extreme_price_points: int = Field(default=EXTREME_PRICE_POINTS)
    tier2_expiry_rush_hours: float = Field(default=EXPIRY_RUSH_HOURS)
    tier2_expiry_rush_min_volume: float = Field(default=EXPIRY_RUSH_MIN_VOLUME)
    tier2_expiry_rush_points: int = Field(default=EXPIRY_RUSH_POINTS)

    # Tier-1 deep scan
    tier1_market_limit: int = Field(default=200)
    tier1_trade_sample: int = Field(default=300)
    tier1_deep_scan_limit: int = Field(default=40)
    tier1_fresh_baseline: float = Field(default=0.15)
    tier1_fresh_min_notional: float = Field(default=50.0)
    tier1_cache_ttl_seconds: int = Field(default=900)
    large_position_notional: float = Field(default=1000.0)
    veteran_age_days: float = Field(default=60.0)
    flow_dominance_margin: float = Field(default=0.40)
    flow_mix_margin: float = Field(default=0.20)
    flow_min_notional: float = Field(
        default=100.0,
        description="Combined net flow (USD) below which flow direction is NEUTRAL",
    )
    dampening_thin_opposing_usd: float = Field(default=500.0)

    # Call-quality gate
    call_quality_threshold: int = Field(default=6)
    dampened_penalty: int = Field(default=2)
    weak_edge_cap: int = Field(default=5)

    # Publisher
    max_posts_per_day: int = Field(default=3)
    dedup_window_days: int = Field(default=7)
    site_url: str = Field(default=DEFAULT_SITE_URL)
    excluded_slugs: list[str] = Field(
        default_factory=list,
        description="Slugs that are never published (CSV or JSON list)",
    )

    @field_validator("excluded_slugs", mode="before")
    @classmethod
    def parse_excluded_slugs(cls, v: str | list[str] | None) -> list[str]:
        if v is None:
            return []
        if isinstance(v, str):
            v = v.strip()
            if v.startswith("["):
                v = json.loads(v)
            else:
                v = [s.strip() for s in v.split(",") if s.strip()]
        return [s.strip("/").lower() for s in v]

    # Persisted files
    signals_dir: Path = Field(default=Path(DEFAULT_SIGNALS_DIR))

    # Telegram (notifications)
    telegram_bot_token: SecretStr | None = Field(
        default=None,
        description="Telegram bot token for publishing signals",
    )
    telegram_chat_id: str | None = Field(
        default=None,
        description="Telegram channel/chat ID signals are posted to",
    )

    # Admin
    admin_token: SecretStr | None = Field(
        default=None,
        description="Bearer token for /admin feeds; admin routes are closed when unset",
    )

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def post_log_path(self) -> Path:
        return self.signals_dir / "telegram-post-log.json"

    @property
    def receipts_path(self) -> Path:
        return self.signals_dir / "resolution-receipts.json"

    @property
    def live_proofs_path(self) -> Path:
        return self.signals_dir / "live-proofs.json"

    @property
    def scanner_alerts_path(self) -> Path:
        return self.signals_dir / "scanner-alerts.json"

    @property
    def scorecard_path(self) -> Path:
        return self.signals_dir / "scorecard.json"

    @property
    def subscribers_path(self) -> Path:
        return self.signals_dir / "pro-subscribers.json"

    @property
    def delay_queue_path(self) -> Path:
        return self.signals_dir / "telegram-delay-queue.json"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
