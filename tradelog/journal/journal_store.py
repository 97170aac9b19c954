"""
Journal Storage Engine — SQLite-backed record storage
=====================================================

One table per record type. Each row keeps the full validated record as JSON
in ``data`` plus the handful of columns needed for filtering and ownership.
Writes are last-write-wins (INSERT OR REPLACE, no version checks).

Tables:
  profiles, accounts, trades, setups, daily_journals,
  user_rules, user_rule_checks, trade_screenshots, journal_screenshots,
  challenge_completions, import_history

Every read and write is scoped by ``user_id``.
"""

from __future__ import annotations
import json
import os
import sqlite3
import threading
import logging
from datetime import date, datetime
from typing import Optional, List, Dict, Any, Type, TypeVar

from tradelog.journal.journal_models import (
    Record, Trade, Account, Setup, DailyJournal, Profile,
    UserRule, UserRuleCheck, TradeScreenshot, JournalScreenshot,
    ChallengeCompletion, ImportHistory, TradeStatus,
)
from tradelog.journal.trade_calculations import derive_status
from tradelog.utils.exceptions import DuplicateError, NotFoundError, StorageError

logger = logging.getLogger("journal_store")

R = TypeVar("R", bound=Record)


class JournalStore:
    """
    SQLite journal store.
    Thread-safe via one connection per thread.
    """

    def __init__(self, db_path: str = "data/tradelog.db"):
        self._db_path = db_path
        if db_path != ":memory:":
            os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._local = threading.local()
        self._init_db()
        logger.info("JournalStore initialized: %s", db_path)

    def _get_conn(self) -> sqlite3.Connection:
        if not hasattr(self._local, "conn") or self._local.conn is None:
            self._local.conn = sqlite3.connect(self._db_path, timeout=10)
            self._local.conn.row_factory = sqlite3.Row
            self._local.conn.execute("PRAGMA journal_mode=WAL")
            self._local.conn.execute("PRAGMA synchronous=NORMAL")
        return self._local.conn

    def close(self):
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None

    def _init_db(self):
        conn = self._get_conn()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS profiles (
                id          TEXT PRIMARY KEY,
                email       TEXT NOT NULL,
                username    TEXT UNIQUE,
                is_public   INTEGER DEFAULT 0,
                show_stats  INTEGER DEFAULT 1,
                data        TEXT DEFAULT '{}'
            );

            CREATE TABLE IF NOT EXISTS accounts (
                id          TEXT PRIMARY KEY,
                user_id     TEXT NOT NULL,
                is_default  INTEGER DEFAULT 0,
                created_at  TEXT DEFAULT '',
                data        TEXT DEFAULT '{}'
            );

            CREATE TABLE IF NOT EXISTS trades (
                id          TEXT PRIMARY KEY,
                user_id     TEXT NOT NULL,
                account_id  TEXT,
                setup_id    TEXT,
                symbol      TEXT DEFAULT '',
                side        TEXT DEFAULT 'long',
                status      TEXT DEFAULT 'open',
                entry_date  TEXT DEFAULT '',
                exit_date   TEXT,
                net_pnl     REAL,
                external_id TEXT,
                created_at  TEXT DEFAULT '',
                data        TEXT DEFAULT '{}'
            );

            CREATE TABLE IF NOT EXISTS setups (
                id          TEXT PRIMARY KEY,
                user_id     TEXT NOT NULL,
                name        TEXT DEFAULT '',
                data        TEXT DEFAULT '{}'
            );

            CREATE TABLE IF NOT EXISTS daily_journals (
                id          TEXT PRIMARY KEY,
                user_id     TEXT NOT NULL,
                date        TEXT NOT NULL,
                data        TEXT DEFAULT '{}',
                UNIQUE(user_id, date)
            );

            CREATE TABLE IF NOT EXISTS user_rules (
                id          TEXT PRIMARY KEY,
                user_id     TEXT NOT NULL,
                sort_order  INTEGER DEFAULT 0,
                data        TEXT DEFAULT '{}'
            );

            CREATE TABLE IF NOT EXISTS user_rule_checks (
                id          TEXT PRIMARY KEY,
                user_id     TEXT NOT NULL,
                rule_id     TEXT NOT NULL,
                check_date  TEXT NOT NULL,
                data        TEXT DEFAULT '{}',
                UNIQUE(rule_id, check_date)
            );

            CREATE TABLE IF NOT EXISTS trade_screenshots (
                id          TEXT PRIMARY KEY,
                user_id     TEXT NOT NULL,
                trade_id    TEXT NOT NULL,
                created_at  TEXT DEFAULT '',
                data        TEXT DEFAULT '{}'
            );

            CREATE TABLE IF NOT EXISTS journal_screenshots (
                id           TEXT PRIMARY KEY,
                user_id      TEXT NOT NULL,
                journal_date TEXT NOT NULL,
                created_at   TEXT DEFAULT '',
                data         TEXT DEFAULT '{}'
            );

            CREATE TABLE IF NOT EXISTS challenge_completions (
                id           TEXT PRIMARY KEY,
                user_id      TEXT NOT NULL,
                challenge_id TEXT NOT NULL,
                period_key   TEXT NOT NULL,
                data         TEXT DEFAULT '{}',
                UNIQUE(user_id, challenge_id, period_key)
            );

            CREATE TABLE IF NOT EXISTS import_history (
                id          TEXT PRIMARY KEY,
                user_id     TEXT NOT NULL,
                created_at  TEXT DEFAULT '',
                data        TEXT DEFAULT '{}'
            );

            CREATE INDEX IF NOT EXISTS idx_tr_user ON trades(user_id);
            CREATE INDEX IF NOT EXISTS idx_tr_entry_date ON trades(entry_date);
            CREATE INDEX IF NOT EXISTS idx_tr_account ON trades(account_id);
            CREATE INDEX IF NOT EXISTS idx_tr_external ON trades(user_id, external_id);
            CREATE INDEX IF NOT EXISTS idx_ac_user ON accounts(user_id);
            CREATE INDEX IF NOT EXISTS idx_su_user ON setups(user_id);
            CREATE INDEX IF NOT EXISTS idx_dj_user_date ON daily_journals(user_id, date);
            CREATE INDEX IF NOT EXISTS idx_rc_user_date ON user_rule_checks(user_id, check_date);
            CREATE INDEX IF NOT EXISTS idx_ts_trade ON trade_screenshots(trade_id);
        """)
        conn.commit()

    # ─── LOW LEVEL ──────────────────────────────────────────────

    def _write(self, sql: str, params: tuple | list) -> None:
        conn = self._get_conn()
        try:
            conn.execute(sql, params)
            conn.commit()
        except sqlite3.IntegrityError as e:
            conn.rollback()
            raise DuplicateError(f"Duplicate record: {e}") from e
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("Store write failed: %s", e)
            raise StorageError(f"Write failed: {e}") from e

    def _rows(self, sql: str, params: tuple | list = ()) -> List[sqlite3.Row]:
        try:
            return self._get_conn().execute(sql, params).fetchall()
        except sqlite3.Error as e:
            logger.error("Store query failed: %s", e)
            raise StorageError(f"Query failed: {e}") from e

    def _load(self, model: Type[R], rows: List[sqlite3.Row]) -> List[R]:
        return [model.from_dict(json.loads(r["data"])) for r in rows]

    def _put(self, table: str, record: Record, columns: Dict[str, Any]) -> None:
        cols = list(columns) + ["data"]
        values = list(columns.values()) + [json.dumps(record.to_dict(), default=str)]
        placeholders = ", ".join("?" for _ in cols)
        self._write(f"INSERT OR REPLACE INTO {table} ({', '.join(cols)}) VALUES ({placeholders})",
                    values)

    def _get_one(self, table: str, model: Type[R], record_id: str, user_id: str) -> Optional[R]:
        rows = self._rows(f"SELECT data FROM {table} WHERE id = ? AND user_id = ?",
                          (record_id, user_id))
        return self._load(model, rows)[0] if rows else None

    def _delete(self, table: str, record_id: str, user_id: str) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.execute(f"DELETE FROM {table} WHERE id = ? AND user_id = ?",
                               (record_id, user_id))
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(f"Delete failed: {e}") from e
        return cur.rowcount > 0

    # ─── PROFILES ───────────────────────────────────────────────

    def save_profile(self, profile: Profile) -> Profile:
        # REPLACE would silently drop another user's row on a username clash
        if profile.username and self._rows("SELECT id FROM profiles WHERE username = ? AND id != ?",
                                           (profile.username, profile.id)):
            raise DuplicateError("Username is already taken", field="username")
        profile.updated_at = datetime.now()
        self._put("profiles", profile, {
            "id": profile.id, "email": profile.email, "username": profile.username,
            "is_public": int(profile.is_public), "show_stats": int(profile.show_stats),
        })
        return profile

    def get_profile(self, user_id: str) -> Optional[Profile]:
        rows = self._rows("SELECT data FROM profiles WHERE id = ?", (user_id,))
        return self._load(Profile, rows)[0] if rows else None

    def list_profiles(self) -> List[Profile]:
        return self._load(Profile, self._rows("SELECT data FROM profiles"))

    def add_xp(self, user_id: str, xp: int) -> Profile:
        profile = self.get_profile(user_id)
        if not profile:
            raise NotFoundError(f"Profile {user_id} not found")
        profile.total_xp += xp
        return self.save_profile(profile)

    # ─── ACCOUNTS ───────────────────────────────────────────────

    def save_account(self, account: Account) -> Account:
        account.updated_at = datetime.now()
        if account.is_default:
            # only one default per user
            for other in self.list_accounts(account.user_id):
                if other.id != account.id and other.is_default:
                    other.is_default = False
                    self._put("accounts", other, {
                        "id": other.id, "user_id": other.user_id, "is_default": 0,
                        "created_at": other.created_at.isoformat()})
        self._put("accounts", account, {
            "id": account.id, "user_id": account.user_id,
            "is_default": int(account.is_default), "created_at": account.created_at.isoformat(),
        })
        return account

    def list_accounts(self, user_id: str) -> List[Account]:
        rows = self._rows("SELECT data FROM accounts WHERE user_id = ? ORDER BY created_at",
                          (user_id,))
        return self._load(Account, rows)

    def get_account(self, user_id: str, account_id: str) -> Optional[Account]:
        return self._get_one("accounts", Account, account_id, user_id)

    def delete_account(self, user_id: str, account_id: str) -> bool:
        return self._delete("accounts", account_id, user_id)

    # ─── TRADES ─────────────────────────────────────────────────

    def save_trade(self, trade: Trade) -> Trade:
        """Insert or overwrite a trade. Status always follows the exit fields."""
        trade.status = derive_status(trade)
        trade.updated_at = datetime.now()
        self._put("trades", trade, {
            "id": trade.id, "user_id": trade.user_id, "account_id": trade.account_id,
            "setup_id": trade.setup_id, "symbol": trade.symbol, "side": trade.side.value,
            "status": trade.status.value, "entry_date": trade.entry_date.isoformat(),
            "exit_date": trade.exit_date.isoformat() if trade.exit_date else None,
            "net_pnl": trade.net_pnl, "external_id": trade.external_id,
            "created_at": trade.created_at.isoformat(),
        })
        return trade

    def get_trade(self, user_id: str, trade_id: str) -> Optional[Trade]:
        return self._get_one("trades", Trade, trade_id, user_id)

    def delete_trade(self, user_id: str, trade_id: str) -> bool:
        deleted = self._delete("trades", trade_id, user_id)
        if deleted:
            self._write("DELETE FROM trade_screenshots WHERE trade_id = ? AND user_id = ?",
                        (trade_id, user_id))
        return deleted

    def query_trades(
        self,
        user_id: Optional[str] = None,
        account_id: Optional[str] = None,
        status: Optional[TradeStatus] = None,
        from_date: str = "",
        to_date: str = "",
        created_from: str = "",
        order_by: str = "entry_date DESC",
    ) -> List[Trade]:
        """Fetch trades. ``user_id=None`` reads across users (leaderboard)."""
        conditions = []
        params: list = []

        if user_id:
            conditions.append("user_id = ?")
            params.append(user_id)
        if account_id:
            conditions.append("account_id = ?")
            params.append(account_id)
        if status is not None:
            conditions.append("status = ?")
            params.append(status.value)
        if from_date:
            conditions.append("entry_date >= ?")
            params.append(from_date)
        if to_date:
            conditions.append("entry_date <= ?")
            params.append(to_date)
        if created_from:
            conditions.append("created_at >= ?")
            params.append(created_from)

        where = " AND ".join(conditions) if conditions else "1=1"
        allowed_order = {"entry_date DESC", "entry_date ASC", "exit_date ASC", "created_at DESC"}
        if order_by not in allowed_order:
            order_by = "entry_date DESC"

        rows = self._rows(f"SELECT data FROM trades WHERE {where} ORDER BY {order_by}", params)
        return self._load(Trade, rows)

    def external_ids(self, user_id: str) -> set[str]:
        rows = self._rows("SELECT external_id FROM trades WHERE user_id = ? AND external_id IS NOT NULL",
                          (user_id,))
        return {r["external_id"] for r in rows}

    def move_trades_to_account(self, user_id: str, trade_ids: List[str],
                               account_id: Optional[str]) -> int:
        moved = 0
        for trade_id in trade_ids:
            trade = self.get_trade(user_id, trade_id)
            if not trade:
                continue
            trade.account_id = account_id
            self.save_trade(trade)
            moved += 1
        logger.info("Moved %d trades to account %s", moved, account_id)
        return moved

    # ─── SETUPS ─────────────────────────────────────────────────

    def save_setup(self, setup: Setup) -> Setup:
        setup.updated_at = datetime.now()
        self._put("setups", setup, {"id": setup.id, "user_id": setup.user_id, "name": setup.name})
        return setup

    def list_setups(self, user_id: str) -> List[Setup]:
        return self._load(Setup, self._rows(
            "SELECT data FROM setups WHERE user_id = ? ORDER BY name", (user_id,)))

    def delete_setup(self, user_id: str, setup_id: str) -> bool:
        deleted = self._delete("setups", setup_id, user_id)
        if deleted:
            for trade in self.query_trades(user_id=user_id):
                if trade.setup_id == setup_id:
                    trade.setup_id = None
                    self.save_trade(trade)
        return deleted

    # ─── DAILY JOURNALS ─────────────────────────────────────────

    def save_journal(self, journal: DailyJournal) -> DailyJournal:
        """Upsert keyed on (user, date): an existing day keeps its id."""
        existing = self.get_journal(journal.user_id, journal.date)
        if existing and existing.id != journal.id:
            journal.id = existing.id
            journal.created_at = existing.created_at
        journal.updated_at = datetime.now()
        self._put("daily_journals", journal, {
            "id": journal.id, "user_id": journal.user_id, "date": journal.date.isoformat()})
        return journal

    def get_journal(self, user_id: str, day: date) -> Optional[DailyJournal]:
        rows = self._rows("SELECT data FROM daily_journals WHERE user_id = ? AND date = ?",
                          (user_id, day.isoformat()))
        return self._load(DailyJournal, rows)[0] if rows else None

    def list_journals(self, user_id: str, from_date: Optional[date] = None,
                      to_date: Optional[date] = None) -> List[DailyJournal]:
        conditions, params = ["user_id = ?"], [user_id]
        if from_date:
            conditions.append("date >= ?"); params.append(from_date.isoformat())
        if to_date:
            conditions.append("date <= ?"); params.append(to_date.isoformat())
        rows = self._rows(f"SELECT data FROM daily_journals WHERE {' AND '.join(conditions)} "
                          f"ORDER BY date", params)
        return self._load(DailyJournal, rows)

    # ─── DISCIPLINE ─────────────────────────────────────────────

    def save_rule(self, rule: UserRule) -> UserRule:
        self._put("user_rules", rule, {"id": rule.id, "user_id": rule.user_id,
                                       "sort_order": rule.sort_order})
        return rule

    def list_rules(self, user_id: str) -> List[UserRule]:
        return self._load(UserRule, self._rows(
            "SELECT data FROM user_rules WHERE user_id = ? ORDER BY sort_order", (user_id,)))

    def delete_rule(self, user_id: str, rule_id: str) -> bool:
        deleted = self._delete("user_rules", rule_id, user_id)
        if deleted:
            self._write("DELETE FROM user_rule_checks WHERE rule_id = ? AND user_id = ?",
                        (rule_id, user_id))
        return deleted

    def save_rule_check(self, check: UserRuleCheck) -> UserRuleCheck:
        rows = self._rows("SELECT id FROM user_rule_checks WHERE rule_id = ? AND check_date = ?",
                          (check.rule_id, check.check_date.isoformat()))
        if rows:
            check.id = rows[0]["id"]
        self._put("user_rule_checks", check, {
            "id": check.id, "user_id": check.user_id, "rule_id": check.rule_id,
            "check_date": check.check_date.isoformat()})
        return check

    def list_rule_checks(self, user_id: str, from_date: Optional[date] = None) -> List[UserRuleCheck]:
        if from_date:
            rows = self._rows("SELECT data FROM user_rule_checks WHERE user_id = ? AND check_date >= ? "
                              "ORDER BY check_date DESC", (user_id, from_date.isoformat()))
        else:
            rows = self._rows("SELECT data FROM user_rule_checks WHERE user_id = ? "
                              "ORDER BY check_date DESC", (user_id,))
        return self._load(UserRuleCheck, rows)

    # ─── SCREENSHOTS ────────────────────────────────────────────

    def save_trade_screenshot(self, shot: TradeScreenshot) -> TradeScreenshot:
        self._put("trade_screenshots", shot, {
            "id": shot.id, "user_id": shot.user_id, "trade_id": shot.trade_id,
            "created_at": shot.created_at.isoformat()})
        return shot

    def list_trade_screenshots(self, user_id: str, trade_id: Optional[str] = None) -> List[TradeScreenshot]:
        if trade_id:
            rows = self._rows("SELECT data FROM trade_screenshots WHERE user_id = ? AND trade_id = ? "
                              "ORDER BY created_at", (user_id, trade_id))
        else:
            rows = self._rows("SELECT data FROM trade_screenshots WHERE user_id = ? ORDER BY created_at",
                              (user_id,))
        return self._load(TradeScreenshot, rows)

    def delete_trade_screenshot(self, user_id: str, screenshot_id: str) -> bool:
        return self._delete("trade_screenshots", screenshot_id, user_id)

    def save_journal_screenshot(self, shot: JournalScreenshot) -> JournalScreenshot:
        self._put("journal_screenshots", shot, {
            "id": shot.id, "user_id": shot.user_id, "journal_date": shot.journal_date.isoformat(),
            "created_at": shot.created_at.isoformat()})
        return shot

    def list_journal_screenshots(self, user_id: str, day: date) -> List[JournalScreenshot]:
        rows = self._rows("SELECT data FROM journal_screenshots WHERE user_id = ? AND journal_date = ? "
                          "ORDER BY created_at", (user_id, day.isoformat()))
        return self._load(JournalScreenshot, rows)

    # ─── CHALLENGES ─────────────────────────────────────────────

    def record_challenge_completion(self, completion: ChallengeCompletion) -> ChallengeCompletion:
        """Insert once per (user, challenge, period); raises DuplicateError on a repeat claim."""
        conn = self._get_conn()
        try:
            conn.execute(
                "INSERT INTO challenge_completions (id, user_id, challenge_id, period_key, data) "
                "VALUES (?, ?, ?, ?, ?)",
                (completion.id, completion.user_id, completion.challenge_id, completion.period_key,
                 json.dumps(completion.to_dict(), default=str)))
            conn.commit()
        except sqlite3.IntegrityError as e:
            conn.rollback()
            raise DuplicateError(f"Challenge {completion.challenge_id} already claimed "
                                 f"for {completion.period_key}") from e
        return completion

    def list_challenge_completions(self, user_id: str, period_keys: List[str]) -> List[ChallengeCompletion]:
        if not period_keys:
            return []
        marks = ", ".join("?" for _ in period_keys)
        rows = self._rows(f"SELECT data FROM challenge_completions WHERE user_id = ? "
                          f"AND period_key IN ({marks})", [user_id, *period_keys])
        return self._load(ChallengeCompletion, rows)

    # ─── IMPORT HISTORY ─────────────────────────────────────────

    def save_import_history(self, entry: ImportHistory) -> ImportHistory:
        self._put("import_history", entry, {"id": entry.id, "user_id": entry.user_id,
                                            "created_at": entry.created_at.isoformat()})
        return entry

    def list_import_history(self, user_id: str) -> List[ImportHistory]:
        return self._load(ImportHistory, self._rows(
            "SELECT data FROM import_history WHERE user_id = ? ORDER BY created_at DESC", (user_id,)))

    # ─── ADMIN ──────────────────────────────────────────────────

    def table_counts(self) -> Dict[str, int]:
        counts = {}
        for table in ("profiles", "accounts", "trades", "setups", "daily_journals",
                      "user_rules", "trade_screenshots", "challenge_completions"):
            row = self._rows(f"SELECT COUNT(*) as cnt FROM {table}")[0]
            counts[table] = row["cnt"]
        return counts
