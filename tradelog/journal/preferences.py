from __future__ import annotations

import json
import os
import threading
from datetime import date
from typing import Any, Optional, Sequence

from tradelog.journal.journal_models import Account
from tradelog.utils.config import get_settings
from tradelog.utils.logger import get_logger

logger = get_logger(__name__)

SELECTED_ACCOUNT_KEY = "tradelog-selected-account"
PROFILE_BANNER_DISMISSED_KEY = "profile-banner-dismissed"
DISCIPLINE_TRADING_DAYS_KEY = "discipline_trading_days"
CUSTOM_MISTAKES_KEY = "journal_custom_mistakes"
CUSTOM_WINS_KEY = "journal_custom_what_went_well"
QUOTE_DISMISSED_KEY = "daily-quote-dismissed"
XP_CLAIMED_PREFIX = "xp-claimed-"

ALL_ACCOUNTS = "all"


class PreferenceStore:
    """Per-user key/value flags persisted to one JSON file."""

    def __init__(self, path: Optional[str] = None) -> None:
        self._path = path or get_settings().preferences_file
        self._lock = threading.Lock()
        self._data: dict[str, dict[str, Any]] = {}
        self._load()

    def _load(self) -> None:
        if not os.path.exists(self._path):
            return
        try:
            with open(self._path, "r") as f:
                self._data = json.load(f)
            logger.info("preferences_loaded", users=len(self._data))
        except (OSError, json.JSONDecodeError) as e:
            logger.error("preferences_load_failed", error=str(e))
            self._data = {}

    def _save(self) -> None:
        os.makedirs(os.path.dirname(self._path) or ".", exist_ok=True)
        with open(self._path, "w") as f:
            json.dump(self._data, f, indent=2)

    def get(self, user_id: str, key: str, default: Any = None) -> Any:
        return self._data.get(user_id, {}).get(key, default)

    def set(self, user_id: str, key: str, value: Any) -> None:
        with self._lock:
            self._data.setdefault(user_id, {})[key] = value
            self._save()

    def remove(self, user_id: str, key: str) -> None:
        with self._lock:
            if key in self._data.get(user_id, {}):
                del self._data[user_id][key]
                self._save()

    def all(self, user_id: str) -> dict[str, Any]:
        return dict(self._data.get(user_id, {}))

    # ── Typed helpers ────────────────────────────────────────

    def trading_days(self, user_id: str) -> list[int]:
        """Sunday-based weekday numbers (0=Sun) the trader marks as trading days."""
        days = self.get(user_id, DISCIPLINE_TRADING_DAYS_KEY)
        if isinstance(days, list) and all(isinstance(d, int) and 0 <= d <= 6 for d in days):
            return sorted(set(days))
        return [1, 2, 3, 4, 5]

    def set_trading_days(self, user_id: str, days: Sequence[int]) -> list[int]:
        cleaned = sorted({int(d) for d in days if 0 <= int(d) <= 6})
        self.set(user_id, DISCIPLINE_TRADING_DAYS_KEY, cleaned)
        return cleaned

    def custom_options(self, user_id: str, key: str) -> list[str]:
        value = self.get(user_id, key, [])
        return [str(v) for v in value] if isinstance(value, list) else []

    def quote_dismissed(self, user_id: str, today: date) -> bool:
        return self.get(user_id, QUOTE_DISMISSED_KEY) == today.isoformat()

    def dismiss_quote(self, user_id: str, today: date) -> None:
        self.set(user_id, QUOTE_DISMISSED_KEY, today.isoformat())

    def xp_claimed(self, user_id: str, claim_key: str) -> bool:
        return bool(self.get(user_id, XP_CLAIMED_PREFIX + claim_key, False))

    def mark_xp_claimed(self, user_id: str, claim_key: str) -> None:
        self.set(user_id, XP_CLAIMED_PREFIX + claim_key, True)


class AccountContext:
    """Which account(s) the trader is looking at.

    ``selected_account_id is None`` with ``show_all`` set means every
    account. The choice is restored from the preference store on load and
    written back on every change.
    """

    def __init__(self, prefs: PreferenceStore, user_id: str, accounts: Sequence[Account]) -> None:
        self._prefs = prefs
        self._user_id = user_id
        self.accounts = list(accounts)
        self.selected_account_id: Optional[str] = None
        self.show_all = True
        self._restore()

    def _restore(self) -> None:
        saved = self._prefs.get(self._user_id, SELECTED_ACCOUNT_KEY)
        if saved == ALL_ACCOUNTS:
            self.show_all, self.selected_account_id = True, None
            return
        if saved and any(a.id == saved for a in self.accounts):
            self.show_all, self.selected_account_id = False, saved
            return
        fallback = next((a for a in self.accounts if a.is_default), None) or \
            (self.accounts[0] if self.accounts else None)
        if fallback is not None:
            self.show_all, self.selected_account_id = False, fallback.id
        else:
            self.show_all, self.selected_account_id = True, None

    @property
    def selected_account(self) -> Optional[Account]:
        if self.selected_account_id is None:
            return None
        return next((a for a in self.accounts if a.id == self.selected_account_id), None)

    def select(self, account_id: Optional[str]) -> None:
        """``None`` or ``"all"`` shows every account."""
        if account_id is None or account_id == ALL_ACCOUNTS:
            self.show_all, self.selected_account_id = True, None
            self._prefs.set(self._user_id, SELECTED_ACCOUNT_KEY, ALL_ACCOUNTS)
            return
        if not any(a.id == account_id for a in self.accounts):
            logger.warning("unknown_account_selected", account_id=account_id)
            return
        self.show_all, self.selected_account_id = False, account_id
        self._prefs.set(self._user_id, SELECTED_ACCOUNT_KEY, account_id)

    def to_dict(self) -> dict:
        return {
            "selected_account_id": self.selected_account_id,
            "show_all": self.show_all,
            "accounts": [a.to_dict() for a in self.accounts],
        }
