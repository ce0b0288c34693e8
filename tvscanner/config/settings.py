"""
PURPOSE: Configuration settings for TV Scanner.

This module uses Pydantic Settings to manage configuration from environment
variables and .env files. All settings are validated and typed.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    PURPOSE: Central configuration class for TV Scanner.

    Manages the webhook shared secret, the data directory holding the alert
    documents, the pivot scheduler with its ticker sources, and the live
    price feed.
    Settings are loaded from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # TradingView Webhook Configuration
    # Shared secret expected in the ?key= query parameter of /tv-webhook.
    # Empty means the endpoint accepts every caller (local testing only).
    TV_SECRET: str = ""

    # Persistence
    DATA_DIR: str = "./data"

    # Alert store
    MAX_ALERT_ROWS: int = 500
    DEDUPE_WINDOW_MS: int = 5000

    # Pivot / CPR engine
    PIVOT_INTERVAL_MS: int = 60_000
    PIVOT_TICKERS: str = ""
    TICKERS: str = ""
    PIVOT_TICKERS_FILE: str = ""
    PIVOT_REL_TOL: float = 0.5
    TREND_TOL: float = 0.05
    CPR_TOL: float = 0.05

    # Live price / MA20 feed (alert-table tickers)
    PRICE_FEED_INTERVAL_MS: int = 5000

    # Event bus mirror (empty = in-process only)
    REDIS_URL: str = ""

    # System Settings
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 2709
    CORS_ORIGINS: str = "*"

    @property
    def pivot_interval_seconds(self) -> float:
        """Return the pivot scheduler interval in seconds."""
        return self.PIVOT_INTERVAL_MS / 1000.0

    @property
    def price_feed_interval_seconds(self) -> float:
        """Return the price feed interval in seconds."""
        return self.PRICE_FEED_INTERVAL_MS / 1000.0

    def env_tickers(self) -> list[str]:
        """
        PURPOSE: Return the comma-separated env ticker list, uppercased.

        PIVOT_TICKERS takes precedence over TICKERS.

        Returns:
            list[str]: Symbols in declaration order, blanks removed.
        """
        raw = (self.PIVOT_TICKERS or self.TICKERS or "").strip()
        if not raw:
            return []
        return [s.strip().upper() for s in raw.split(",") if s.strip()]

    def cors_origins(self) -> list[str]:
        """Return CORS_ORIGINS split on commas."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    def is_webhook_secured(self) -> bool:
        """Return True when a shared webhook secret is configured."""
        return bool(self.TV_SECRET)


settings: Settings = Settings()
