from __future__ import annotations

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_path: str = Field(default="data/tradelog.db", description="SQLite database path")
    screenshot_dir: str = Field(default="data/screenshots", description="Screenshot storage directory")
    preferences_file: str = Field(default="data/preferences.json", description="Client-local preference store")

    default_starting_balance: float = Field(default=50000.0, description="Starting balance when no account is set")
    default_tick_size: float = Field(default=0.25, description="Tick size when no instrument is given (ES)")
    default_tick_value: float = Field(default=12.5, description="Tick value when no instrument is given (ES)")
    default_commission_per_contract: float = Field(default=0.0, description="Import commission per contract per side")
    default_commission_per_trade: float = Field(default=0.0, description="Import commission per trade per side")
    default_risk_per_trade: float = Field(default=1.0, description="Default risk per trade in percent")

    daily_loss_limit_pct: float = Field(default=3.0, description="Daily loss limit in percent of account")
    weekly_loss_limit_pct: float = Field(default=6.0, description="Weekly loss limit in percent of account")
    max_trades_per_day: int = Field(default=5, description="Maximum trades per day")
    max_drawdown_limit_pct: float = Field(default=10.0, description="Drawdown limit line on the risk chart")

    leaderboard_min_trades: int = Field(default=5, description="Minimum trades to appear on the leaderboard")
    leaderboard_max_entries: int = Field(default=100, description="Leaderboard rows returned")

    max_trade_screenshot_mb: float = Field(default=5.0, description="Max trade screenshot size in MB")
    max_journal_screenshot_mb: float = Field(default=10.0, description="Max journal screenshot size in MB")
    max_screenshots_per_trade: int = Field(default=10, description="Max screenshots per trade")

    admin_email: str = Field(default="", description="Operator email allowed on admin routes")
    timezone: str = Field(default="America/New_York", description="Default trader timezone")

    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/tradelog.log", description="Log file path")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "env_prefix": "TRADELOG_", "extra": "ignore"}


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    global _settings
    _settings = Settings()
    return _settings
