"""Runtime configuration read from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import time
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Engine settings. Build with `Settings.from_env()` at process start."""

    timezone: str = "Asia/Ho_Chi_Minh"
    active_start: time = time(9, 0)
    active_end: time = time(15, 0)
    closing_start: time = time(14, 30)

    # Cache staleness windows (seconds)
    active_ttl: float = 30.0
    standby_ttl: float = 300.0

    # Cadences (seconds)
    market_sync_interval: float = 5.0
    closing_sync_interval: float = 3.0
    baseline_sync_interval: float = 300.0
    active_eval_interval: float = 30.0
    baseline_eval_interval: float = 60.0
    reload_interval: float = 300.0
    dispatch_interval: float = 1.0
    window_check_interval: float = 60.0

    # Quote providers
    massive_api_key: str = ""
    massive_min_interval: float = 12.0
    yahoo_enabled: bool = True
    yahoo_min_interval: float = 1.0
    yahoo_symbol_delay: float = 0.1
    symbol_suffix: str = ".VN"
    simulate: bool = False
    batch_size: int = 50
    batch_delay: float = 1.0
    provider_timeout: float = 10.0

    # Failure handling
    failure_threshold: int = 10
    backoff_base: float = 1.0
    backoff_max: float = 300.0

    # Notifications
    currency: str = "VND"
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = ""

    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Settings:
        """Read STOCKWATCH_* (and MASSIVE_API_KEY) variables over the defaults.

        Raises ValueError on unparseable or inconsistent values.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        def text(key: str, default: str) -> str:
            return env.get(key, default).strip()

        def number(key: str, default: float) -> float:
            raw = env.get(key, "").strip()
            if not raw:
                return default
            try:
                return float(raw)
            except ValueError:
                raise ValueError(f"{key} must be a number, got {raw!r}") from None

        def integer(key: str, default: int) -> int:
            raw = env.get(key, "").strip()
            if not raw:
                return default
            try:
                return int(raw)
            except ValueError:
                raise ValueError(f"{key} must be an integer, got {raw!r}") from None

        def flag(key: str, default: bool) -> bool:
            raw = env.get(key, "").strip().lower()
            if not raw:
                return default
            return raw in _TRUTHY

        def clock_time(key: str, default: time) -> time:
            raw = env.get(key, "").strip()
            if not raw:
                return default
            try:
                return time.fromisoformat(raw)
            except ValueError:
                raise ValueError(f"{key} must be HH:MM, got {raw!r}") from None

        settings = cls(
            timezone=text("STOCKWATCH_TIMEZONE", defaults.timezone),
            active_start=clock_time("STOCKWATCH_ACTIVE_START", defaults.active_start),
            active_end=clock_time("STOCKWATCH_ACTIVE_END", defaults.active_end),
            closing_start=clock_time("STOCKWATCH_CLOSING_START", defaults.closing_start),
            active_ttl=number("STOCKWATCH_ACTIVE_TTL", defaults.active_ttl),
            standby_ttl=number("STOCKWATCH_STANDBY_TTL", defaults.standby_ttl),
            market_sync_interval=number("STOCKWATCH_MARKET_SYNC_INTERVAL", defaults.market_sync_interval),
            closing_sync_interval=number("STOCKWATCH_CLOSING_SYNC_INTERVAL", defaults.closing_sync_interval),
            baseline_sync_interval=number("STOCKWATCH_BASELINE_SYNC_INTERVAL", defaults.baseline_sync_interval),
            active_eval_interval=number("STOCKWATCH_ACTIVE_EVAL_INTERVAL", defaults.active_eval_interval),
            baseline_eval_interval=number("STOCKWATCH_BASELINE_EVAL_INTERVAL", defaults.baseline_eval_interval),
            reload_interval=number("STOCKWATCH_RELOAD_INTERVAL", defaults.reload_interval),
            dispatch_interval=number("STOCKWATCH_DISPATCH_INTERVAL", defaults.dispatch_interval),
            window_check_interval=number("STOCKWATCH_WINDOW_CHECK_INTERVAL", defaults.window_check_interval),
            massive_api_key=text("MASSIVE_API_KEY", ""),
            massive_min_interval=number("STOCKWATCH_MASSIVE_MIN_INTERVAL", defaults.massive_min_interval),
            yahoo_enabled=flag("STOCKWATCH_YAHOO_ENABLED", defaults.yahoo_enabled),
            yahoo_min_interval=number("STOCKWATCH_YAHOO_MIN_INTERVAL", defaults.yahoo_min_interval),
            yahoo_symbol_delay=number("STOCKWATCH_YAHOO_SYMBOL_DELAY", defaults.yahoo_symbol_delay),
            symbol_suffix=text("STOCKWATCH_SYMBOL_SUFFIX", defaults.symbol_suffix),
            simulate=flag("STOCKWATCH_SIMULATE", defaults.simulate),
            batch_size=integer("STOCKWATCH_BATCH_SIZE", defaults.batch_size),
            batch_delay=number("STOCKWATCH_BATCH_DELAY", defaults.batch_delay),
            provider_timeout=number("STOCKWATCH_PROVIDER_TIMEOUT", defaults.provider_timeout),
            failure_threshold=integer("STOCKWATCH_FAILURE_THRESHOLD", defaults.failure_threshold),
            backoff_base=number("STOCKWATCH_BACKOFF_BASE", defaults.backoff_base),
            backoff_max=number("STOCKWATCH_BACKOFF_MAX", defaults.backoff_max),
            currency=text("STOCKWATCH_CURRENCY", defaults.currency),
            smtp_host=text("STOCKWATCH_SMTP_HOST", ""),
            smtp_port=integer("STOCKWATCH_SMTP_PORT", defaults.smtp_port),
            smtp_user=text("STOCKWATCH_SMTP_USER", ""),
            smtp_password=env.get("STOCKWATCH_SMTP_PASS", ""),
            smtp_from=text("STOCKWATCH_SMTP_FROM", ""),
            log_level=text("STOCKWATCH_LOG_LEVEL", defaults.log_level).upper(),
        )
        settings.validate()
        return settings

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def smtp_configured(self) -> bool:
        return all([self.smtp_host, self.smtp_user, self.smtp_password, self.smtp_from])

    def validate(self) -> None:
        """Raise ValueError if the settings cannot run."""
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {self.timezone!r}") from None

        if self.active_start >= self.active_end:
            raise ValueError("active window start must be before its end")
        if not self.active_start < self.closing_start < self.active_end:
            raise ValueError("closing_start must fall inside the active window")
        if self.active_ttl <= 0 or self.standby_ttl <= 0:
            raise ValueError("cache staleness windows must be positive")
        if self.active_ttl > self.standby_ttl:
            raise ValueError("active_ttl must not exceed standby_ttl")
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.dispatch_interval <= 0:
            raise ValueError("dispatch_interval must be positive")
        for name in (
            "market_sync_interval",
            "closing_sync_interval",
            "baseline_sync_interval",
            "active_eval_interval",
            "baseline_eval_interval",
            "reload_interval",
            "window_check_interval",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
