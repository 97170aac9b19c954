"""
Shared fixtures and record factories for the trade journal tests.

Every test runs against its own settings: database, screenshot folder,
preference file and log file all live under pytest's ``tmp_path``.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Optional

import pytest

from tradelog.api.service import JournalService, JournalServiceManager
from tradelog.journal.journal_models import (
    DailyJournal,
    Profile,
    Trade,
    TradeSide,
    TradeStatus,
)
from tradelog.journal.journal_store import JournalStore
from tradelog.journal.preferences import PreferenceStore
from tradelog.journal.screenshots import ScreenshotManager
from tradelog.utils import config


# ─────────────────────────────────────────────────────────
# Settings isolation
# ─────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    screenshots = tmp_path / "screenshots"
    screenshots.mkdir()
    monkeypatch.setenv("TRADELOG_DATABASE_PATH", str(tmp_path / "tradelog.db"))
    monkeypatch.setenv("TRADELOG_SCREENSHOT_DIR", str(screenshots))
    monkeypatch.setenv("TRADELOG_PREFERENCES_FILE", str(tmp_path / "preferences.json"))
    monkeypatch.setenv("TRADELOG_LOG_FILE", str(tmp_path / "tradelog.log"))
    monkeypatch.setenv("TRADELOG_ADMIN_EMAIL", "admin@example.com")
    settings = config.reload_settings()
    yield settings
    JournalServiceManager.reset()
    config._settings = None


# ─────────────────────────────────────────────────────────
# Record factories
# ─────────────────────────────────────────────────────────

def build_trade(
    net_pnl: Optional[float] = 100.0,
    entry: datetime = datetime(2024, 1, 2, 9, 30),
    exit: Optional[datetime] = None,
    user_id: str = "user-1",
    r_multiple: Optional[float] = None,
    closed: bool = True,
    **overrides: Any,
) -> Trade:
    """Closed ES trade with a given net P&L; prices are placeholders."""
    data: dict[str, Any] = {
        "user_id": user_id,
        "symbol": "ES",
        "side": TradeSide.LONG,
        "entry_date": entry,
        "entry_price": 5000.0,
        "entry_contracts": 1,
        "net_pnl": net_pnl,
        "gross_pnl": net_pnl,
        "r_multiple": r_multiple,
        "status": TradeStatus.CLOSED if closed else TradeStatus.OPEN,
    }
    if closed:
        data["exit_date"] = exit or entry + timedelta(hours=1)
        data["exit_price"] = 5001.0
    data.update(overrides)
    return Trade(**data)


@pytest.fixture
def trade_factory():
    return build_trade


@pytest.fixture
def journal_factory():
    def _make(day: date, user_id: str = "user-1", **fields: Any) -> DailyJournal:
        return DailyJournal(user_id=user_id, date=day, **fields)
    return _make


# ─────────────────────────────────────────────────────────
# Storage & service
# ─────────────────────────────────────────────────────────

@pytest.fixture
def store(isolated_settings):
    s = JournalStore(db_path=isolated_settings.database_path)
    yield s
    s.close()


@pytest.fixture
def prefs(isolated_settings):
    return PreferenceStore(isolated_settings.preferences_file)


@pytest.fixture
def profile(store):
    p = Profile(id="user-1", email="trader@example.com", display_name="Trader One",
                username="trader_one", account_size=10000.0)
    return store.save_profile(p)


@pytest.fixture
def service(store, prefs, profile, isolated_settings):
    screenshots = ScreenshotManager(store, isolated_settings.screenshot_dir)
    return JournalService(profile.id, store, prefs, screenshots)


@pytest.fixture
def manager(store, prefs):
    mgr = JournalServiceManager(store=store, prefs=prefs)
    JournalServiceManager.reset(mgr)
    return mgr
