"""Application configuration."""
from functools import lru_cache
from typing import Dict, List

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # App
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_debug: bool = True
    log_level: str = "DEBUG"

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Ledger gateway (read-only)
    ledger_gateway_url: str = Field(
        default="http://localhost:8545",
        description="Base URL of the read-only ledger gateway",
    )
    ledger_timeout_seconds: float = Field(
        default=10.0,
        description="Total request timeout for a single ledger read",
    )
    ledger_connect_timeout_seconds: float = Field(
        default=5.0,
        description="Connect timeout for the ledger gateway",
    )
    ledger_max_retries: int = Field(
        default=3,
        description="Attempts per ledger read before the cell is treated as absent",
    )
    ledger_max_concurrency: int = Field(
        default=16,
        description="Maximum in-flight ledger reads per collection pass",
    )

    # Polling
    poll_interval_seconds: float = Field(
        default=5.0,
        description="Interval between view refreshes for watched games",
    )
    watch_game_ids: List[int] = Field(
        default_factory=list,
        description="Games refreshed by the background poller (WATCH_GAME_IDS='[1, 2]')",
    )

    # Payout record search (Tier 1)
    payout_search_window: int = Field(
        default=10_000,
        description="Initial block window for payout event search",
    )
    payout_search_min_window: int = Field(
        default=500,
        description="Smallest window tried after block-range rejections",
    )
    payout_search_max_blocks: int = Field(
        default=200_000,
        description="How far back from the latest block the search may go",
    )
    finalize_tx_refs: Dict[int, str] = Field(
        default_factory=dict,
        description="Known finalize transaction per game id (FINALIZE_TX_REFS='{\"1\": \"0x..\"}')",
    )

    @field_validator("ledger_max_retries", "ledger_max_concurrency")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("value must be at least 1")
        return v

    @field_validator("poll_interval_seconds")
    @classmethod
    def validate_poll_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("poll_interval_seconds must be positive")
        return v

    @model_validator(mode="after")
    def validate_search_windows(self) -> "Settings":
        """Search windows must nest: min <= window <= max."""
        if self.payout_search_min_window < 1:
            raise ValueError("payout_search_min_window must be at least 1")
        if self.payout_search_window < self.payout_search_min_window:
            raise ValueError(
                "payout_search_window must not be smaller than payout_search_min_window"
            )
        if self.payout_search_max_blocks < self.payout_search_window:
            raise ValueError(
                "payout_search_max_blocks must not be smaller than payout_search_window"
            )
        return self

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate settings for production environment."""
        if self.app_env == "production":
            if self.app_debug:
                raise ValueError(
                    "app_debug must be False in production environment"
                )

            origins = [o.strip() for o in self.cors_origins.split(",")]
            if "*" in origins:
                raise ValueError(
                    "CORS wildcard '*' is not allowed in production environment. "
                    "Specify explicit allowed origins."
                )

            if self.log_level == "DEBUG":
                import warnings
                warnings.warn(
                    "DEBUG log level in production emits per-read ledger diagnostics"
                )

        return self

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
