import os
from dataclasses import dataclass
from functools import lru_cache


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class AnalyticsConfig:
    # Funding values are stored as percent per 8h; bounds below are fractions
    funding_sanity_bound: float = 0.005
    trend_funding_threshold: float = 0.0001
    trend_oi_change_pct: float = 5.0
    trend_oi_min_buckets: int = 6
    trend_ls_bullish: float = 1.1
    trend_ls_bearish: float = 0.9
    window_label: str = "5d"


class Settings:
    def __init__(self) -> None:
        self.app_name: str = os.getenv("APP_NAME", "derivs-radar")
        self.env: str = os.getenv("ENV", "development")
        self.api_host: str = os.getenv("API_HOST", "0.0.0.0")
        self.api_port: int = int(os.getenv("API_PORT", "8000"))

        # Upstream APIs
        self.coinalyze_base_url: str = os.getenv("COINALYZE_BASE_URL", "https://api.coinalyze.net/v1")
        self.coinalyze_api_key: str = os.getenv("COINALYZE_API_KEY", "")
        self.hyperliquid_base_url: str = os.getenv("HYPERLIQUID_BASE_URL", "https://api.hyperliquid.xyz")
        self.coingecko_base_url: str = os.getenv("COINGECKO_BASE_URL", "https://api.coingecko.com/api/v3")
        self.coingecko_api_key: str = os.getenv("COINGECKO_API_KEY", "CG-64awckmxDZPeGecjjAGVeh3V")
        self.coingecko_enabled: bool = _env_bool("COINGECKO_ENABLED", "true")
        self.http_timeout_sec: float = float(os.getenv("HTTP_TIMEOUT_SEC", "15"))

        # Scheduling
        self.refresh_interval_sec: int = int(os.getenv("REFRESH_INTERVAL_SEC", "60"))
        self.startup_delay_sec: float = float(os.getenv("STARTUP_DELAY_SEC", "2"))
        self.inter_call_delay_sec: float = float(os.getenv("INTER_CALL_DELAY_SEC", "2.0"))

        # History window (4hour/120h or 1hour/24h)
        self.history_interval: str = os.getenv("HISTORY_INTERVAL", "4hour")
        self.history_hours: int = int(os.getenv("HISTORY_HOURS", "120"))

        # Retry / rate limit
        self.retry_attempts: int = int(os.getenv("RETRY_ATTEMPTS", "3"))
        self.retry_base_delay_sec: float = float(os.getenv("RETRY_BASE_DELAY_SEC", "2.0"))
        self.rate_limit_wait_sec: float = float(os.getenv("RATE_LIMIT_WAIT_SEC", "5"))
        self.coingecko_rate_limit_wait_sec: float = float(os.getenv("COINGECKO_RATE_LIMIT_WAIT_SEC", "60"))
        self.max_rate_limit_waits: int = int(os.getenv("MAX_RATE_LIMIT_WAITS", "5"))

        # Hyperliquid reports an hourly funding fraction; x8 for 8h, x100 for percent
        self.hyperliquid_funding_scale: float = float(os.getenv("HYPERLIQUID_FUNDING_SCALE", "800"))

        # Thresholds
        self.funding_sanity_bound: float = float(os.getenv("FUNDING_SANITY_BOUND", "0.005"))
        self.trend_funding_threshold: float = float(os.getenv("TREND_FUNDING_THRESHOLD", "0.0001"))
        self.trend_oi_change_pct: float = float(os.getenv("TREND_OI_CHANGE_PCT", "5"))
        self.trend_ls_bullish: float = float(os.getenv("TREND_LS_BULLISH", "1.1"))
        self.trend_ls_bearish: float = float(os.getenv("TREND_LS_BEARISH", "0.9"))

    @property
    def history_window_label(self) -> str:
        if self.history_hours % 24 == 0:
            return f"{self.history_hours // 24}d"
        return f"{self.history_hours}h"

    def analytics(self) -> AnalyticsConfig:
        return AnalyticsConfig(
            funding_sanity_bound=self.funding_sanity_bound,
            trend_funding_threshold=self.trend_funding_threshold,
            trend_oi_change_pct=self.trend_oi_change_pct,
            trend_ls_bullish=self.trend_ls_bullish,
            trend_ls_bearish=self.trend_ls_bearish,
            window_label=self.history_window_label,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
