"""
Trade Journal — records, storage and input paths
================================================

  journal_models.py     — validated pydantic records (trades, journals, profiles, ...)
  journal_store.py      — SQLite storage, one table per record type
  trade_calculations.py — tick math, net P&L, R-multiple, derived status
  trade_filters.py      — list filters and pagination
  csv_import.py         — broker CSV import
  screenshots.py        — trade / journal screenshot batches
  preferences.py        — per-user flags and the selected-account context
"""

from tradelog.journal.journal_models import (
    Account,
    ChallengeCompletion,
    DailyJournal,
    ImportHistory,
    JournalScreenshot,
    Profile,
    Setup,
    Trade,
    TradeScreenshot,
    TradeSide,
    TradeStatus,
    UserRule,
    UserRuleCheck,
)
from tradelog.journal.journal_store import JournalStore
from tradelog.journal.trade_calculations import derive_trade_fields, resolve_instrument
from tradelog.journal.trade_filters import TradeFilters, filter_trades, paginate
from tradelog.journal.csv_import import ImportResult, import_trades
from tradelog.journal.screenshots import ScreenshotManager, ScreenshotUpload
from tradelog.journal.preferences import AccountContext, PreferenceStore

__all__ = [
    # Models
    "Trade", "TradeSide", "TradeStatus", "Account", "Setup", "DailyJournal", "Profile",
    "UserRule", "UserRuleCheck", "TradeScreenshot", "JournalScreenshot",
    "ChallengeCompletion", "ImportHistory",
    # Engines
    "JournalStore", "derive_trade_fields", "resolve_instrument",
    "TradeFilters", "filter_trades", "paginate",
    "ImportResult", "import_trades",
    "ScreenshotManager", "ScreenshotUpload",
    "AccountContext", "PreferenceStore",
]
