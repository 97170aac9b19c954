from __future__ import annotations

import threading
from datetime import date, datetime, timedelta
from typing import Any, Callable, Optional, Sequence, TypeVar

from tradelog.analytics.achievements import achievements_summary, build_achievement_stats
from tradelog.analytics.breakdowns import breakdowns
from tradelog.analytics.challenges import (
    CHALLENGES_BY_ID,
    active_daily_challenges,
    active_weekly_challenges,
    build_challenge_stats,
    daily_period_key,
    evaluate_challenges,
    weekly_period_key,
)
from tradelog.analytics.daily import (
    calendar_month,
    current_streak,
    daily_pnl,
    day_key,
    day_win_rate,
    local_date,
    longest_streak,
    trading_days,
)
from tradelog.analytics.discipline import discipline_summary, history_start
from tradelog.analytics.leaderboard import LeaderboardMetric, LeaderboardPeriod, build_leaderboard
from tradelog.analytics.leveling import check_level_up, level_summary
from tradelog.analytics.risk_metrics import equity_curve, resolve_starting_balance, risk_overview
from tradelog.analytics.setups import setup_statistics, setups_overview
from tradelog.analytics.statistics import closed_trades, trade_statistics
from tradelog.journal.csv_import import import_trades
from tradelog.journal.journal_models import (
    Account,
    ChallengeCompletion,
    DailyJournal,
    ImportHistory,
    Profile,
    ScreenshotType,
    Setup,
    Trade,
    TradeStatus,
    UserRule,
    UserRuleCheck,
)
from tradelog.journal.journal_store import JournalStore
from tradelog.journal.preferences import (
    ALL_ACCOUNTS,
    CUSTOM_MISTAKES_KEY,
    CUSTOM_WINS_KEY,
    PROFILE_BANNER_DISMISSED_KEY,
    AccountContext,
    PreferenceStore,
)
from tradelog.journal.screenshots import ScreenshotManager, ScreenshotUpload
from tradelog.journal.trade_calculations import derive_trade_fields
from tradelog.journal.trade_filters import TradeFilters, filter_trades, paginate
from tradelog.risk.limits import daily_limit_status, resolve_daily_limit, resolve_weekly_limit
from tradelog.risk.position_sizer import size_position
from tradelog.utils.config import get_settings
from tradelog.utils.exceptions import (
    AuthenticationError,
    DataError,
    DuplicateError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
)
from tradelog.utils.logger import get_logger, sanitize_log_data

logger = get_logger(__name__)

T = TypeVar("T")

ANALYTICS_VIEWS_KEY = "analytics-page-views"
RECENT_TRADES = 8
DASHBOARD_DAYS = 30

# fields a client may never set directly
PROTECTED_TRADE_FIELDS = {"id", "user_id", "created_at", "updated_at", "gross_pnl", "net_pnl",
                          "r_multiple", "status"}
PROTECTED_PROFILE_FIELDS = {"id", "email", "total_xp", "created_at", "updated_at"}


def _requested_status(value: Any) -> str:
    """Only cancellation can be requested; open/closed always follow the exit fields."""
    if value == TradeStatus.CANCELLED.value:
        return TradeStatus.CANCELLED.value
    return TradeStatus.OPEN.value


class JournalService:
    """Everything one signed-in trader can do, scoped to their user id."""

    def __init__(self, user_id: str, store: JournalStore,
                 prefs: Optional[PreferenceStore] = None,
                 screenshots: Optional[ScreenshotManager] = None) -> None:
        self._settings = get_settings()
        self._user_id = user_id
        self._store = store
        self._prefs = prefs or PreferenceStore()
        self._screenshots = screenshots or ScreenshotManager(store)

    @property
    def user_id(self) -> str:
        return self._user_id

    # ─── Helpers ────────────────────────────────────────────────

    def _query(self, event: str, fn: Callable[[], T], default: T) -> T:
        """Run a read; a failed query is logged and reads as empty."""
        try:
            return fn()
        except StorageError as e:
            logger.error(event, user_id=self._user_id, error=str(e))
            return default

    def _profile(self) -> Profile:
        profile = self._store.get_profile(self._user_id)
        if profile is None:
            raise AuthenticationError()
        return profile

    def _tz(self) -> Optional[str]:
        profile = self._store.get_profile(self._user_id)
        return profile.timezone if profile else self._settings.timezone

    def _today(self, now: Optional[datetime] = None) -> date:
        """Calendar date in the trader's timezone; a naive *now* is taken as already local."""
        return local_date(now or datetime.now().astimezone(), self._tz())

    def _accounts(self) -> list[Account]:
        return self._query("accounts_query_failed",
                           lambda: self._store.list_accounts(self._user_id), [])

    def _scope(self, account_id: Optional[str] = None) -> Optional[str]:
        """Account filter for reads: explicit id, ``"all"``, or the saved selection."""
        if account_id == ALL_ACCOUNTS:
            return None
        if account_id:
            return account_id
        return AccountContext(self._prefs, self._user_id, self._accounts()).selected_account_id

    def _trades(self, account_id: Optional[str] = None, **kwargs: Any) -> list[Trade]:
        return self._query("trades_query_failed",
                           lambda: self._store.query_trades(user_id=self._user_id,
                                                            account_id=account_id, **kwargs), [])

    def _journals(self, from_date: Optional[date] = None) -> list[DailyJournal]:
        return self._query("journals_query_failed",
                           lambda: self._store.list_journals(self._user_id, from_date=from_date), [])

    def _require_trade(self, trade_id: str) -> Trade:
        trade = self._store.get_trade(self._user_id, trade_id)
        if trade is None:
            raise NotFoundError(f"Trade {trade_id} not found")
        return trade

    def _require_account(self, account_id: str) -> Account:
        account = self._store.get_account(self._user_id, account_id)
        if account is None:
            raise NotFoundError(f"Account {account_id} not found")
        return account

    # ─── Dashboard ──────────────────────────────────────────────

    def get_dashboard(self, account_id: Optional[str] = None,
                      now: Optional[datetime] = None) -> dict[str, Any]:
        today = self._today(now)
        now = now or datetime.now()
        scope = self._scope(account_id)
        trades = self._trades(scope)
        tz = self._tz()
        closed = closed_trades(trades)
        days = daily_pnl(closed, tz)
        dates = [d.date for d in days]
        profile = self._profile()
        account = self._store.get_account(self._user_id, scope) if scope else None
        starting = resolve_starting_balance(account, profile)

        today_summary = next((d for d in days if d.date == today), None)
        limit = daily_limit_status(
            today_summary.pnl if today_summary else 0.0,
            resolve_daily_limit(starting, profile),
            today_summary.trades if today_summary else 0,
            self._settings.max_trades_per_day,
        )

        return {
            "account": AccountContext(self._prefs, self._user_id, self._accounts()).to_dict(),
            "stats": trade_statistics(closed).to_dict(),
            "day_win_rate": round(day_win_rate(closed, tz), 2),
            "current_streak": current_streak(dates, today),
            "longest_streak": longest_streak(dates),
            "daily_pnl": [d.to_dict() for d in days[-DASHBOARD_DAYS:]],
            "equity_curve": [p.to_dict() for p in equity_curve(closed, starting, now)],
            "recent_trades": [t.to_dict() for t in closed[:RECENT_TRADES]],
            "daily_limit": limit.to_dict(),
            "level": level_summary(profile.total_xp),
        }

    def get_analytics(self, account_id: Optional[str] = None) -> dict[str, Any]:
        views = int(self._prefs.get(self._user_id, ANALYTICS_VIEWS_KEY, 0)) + 1
        self._prefs.set(self._user_id, ANALYTICS_VIEWS_KEY, views)
        trades = self._trades(self._scope(account_id))
        return {
            "stats": trade_statistics(trades).to_dict(),
            **breakdowns(trades, self._tz()),
        }

    # ─── Accounts ───────────────────────────────────────────────

    def get_accounts(self) -> dict[str, Any]:
        return AccountContext(self._prefs, self._user_id, self._accounts()).to_dict()

    def create_account(self, body: dict[str, Any]) -> dict[str, Any]:
        existing = self._accounts()
        account = Account.from_dict({**body, "user_id": self._user_id})
        if not existing:
            account.is_default = True
        if not account.current_balance:
            account.current_balance = account.starting_balance
        self._store.save_account(account)
        logger.info("account_created", user_id=self._user_id, account_id=account.id)
        return account.to_dict()

    def select_account(self, account_id: Optional[str]) -> dict[str, Any]:
        context = AccountContext(self._prefs, self._user_id, self._accounts())
        if account_id not in (None, ALL_ACCOUNTS):
            self._require_account(account_id)
        context.select(account_id)
        return context.to_dict()

    # ─── Trades ─────────────────────────────────────────────────

    def list_trades(self, filters: Optional[TradeFilters] = None, page: int = 1,
                    page_size: int = 25) -> dict[str, Any]:
        filters = filters or TradeFilters()
        if filters.account_id is None:
            filters.account_id = self._scope()
        trades = filter_trades(self._trades(), filters)
        result = paginate(trades, page, page_size)
        return result.to_dict()

    def get_trade(self, trade_id: str) -> dict[str, Any]:
        trade = self._require_trade(trade_id)
        shots = self._query("screenshots_query_failed",
                            lambda: self._store.list_trade_screenshots(self._user_id, trade_id), [])
        return {**trade.to_dict(), "screenshots": [s.to_dict() for s in shots]}

    def create_trade(self, body: dict[str, Any]) -> dict[str, Any]:
        data = {k: v for k, v in body.items() if k not in PROTECTED_TRADE_FIELDS}
        if not data.get("account_id"):
            data["account_id"] = self._scope()
        if "status" in body:
            data["status"] = _requested_status(body["status"])
        trade = derive_trade_fields(Trade.from_dict({**data, "user_id": self._user_id}))
        self._store.save_trade(trade)
        logger.info("trade_created", user_id=self._user_id, trade_id=trade.id,
                    symbol=trade.symbol, status=trade.status.value)
        return trade.to_dict()

    def update_trade(self, trade_id: str, body: dict[str, Any]) -> dict[str, Any]:
        existing = self._require_trade(trade_id)
        changes = {k: v for k, v in body.items() if k not in PROTECTED_TRADE_FIELDS}
        merged = {**existing.to_dict(), **changes}
        if "status" in body:
            merged["status"] = _requested_status(body["status"])
        trade = derive_trade_fields(Trade.from_dict(merged))
        self._store.save_trade(trade)
        logger.info("trade_updated", user_id=self._user_id, trade_id=trade_id)
        return trade.to_dict()

    def delete_trade(self, trade_id: str) -> bool:
        trade = self._require_trade(trade_id)
        for shot in self._store.list_trade_screenshots(self._user_id, trade.id):
            self._screenshots.delete_trade_screenshot(self._user_id, shot.id)
        deleted = self._store.delete_trade(self._user_id, trade_id)
        logger.info("trade_deleted", user_id=self._user_id, trade_id=trade_id)
        return deleted

    def move_trades(self, trade_ids: Sequence[str], account_id: Optional[str]) -> dict[str, Any]:
        if not trade_ids:
            raise ValidationError("No trades selected", field="trade_ids")
        if account_id:
            self._require_account(account_id)
        moved = self._store.move_trades_to_account(self._user_id, list(trade_ids), account_id)
        return {"moved": moved, "account_id": account_id}

    def upload_trade_screenshots(self, trade_id: str, uploads: Sequence[ScreenshotUpload],
                                 screenshot_type: str = ScreenshotType.OTHER.value) -> dict[str, Any]:
        try:
            kind = ScreenshotType(screenshot_type)
        except ValueError as e:
            raise ValidationError(f"Unknown screenshot type {screenshot_type}",
                                  field="screenshot_type") from e
        return self._screenshots.upload_trade_screenshots(
            self._user_id, trade_id, uploads, kind).to_dict()

    # ─── Import ─────────────────────────────────────────────────

    def import_csv(self, content: bytes | str, file_name: str = "import.csv",
                   account_id: Optional[str] = None, source: str = "csv") -> dict[str, Any]:
        if account_id:
            self._require_account(account_id)
        else:
            account_id = self._scope()
        profile = self._profile()
        size = len(content) if content else 0

        try:
            result = import_trades(
                content,
                user_id=self._user_id,
                account_id=account_id,
                existing_external_ids=self._store.external_ids(self._user_id),
                commission_per_contract=self._settings.default_commission_per_contract,
                commission_per_trade=self._settings.default_commission_per_trade,
                source=source or "csv",
            )
        except (DataError, ValidationError) as e:
            self._store.save_import_history(ImportHistory(
                user_id=self._user_id, file_name=file_name, file_size=size,
                status="failed", error_message=e.message))
            logger.warning("csv_import_failed", user_id=self._user_id, error=e.message)
            raise

        saved = 0
        for trade in result.trades:
            try:
                self._store.save_trade(trade)
                saved += 1
            except StorageError as e:
                result.errors.append(f"{trade.symbol} {trade.entry_date.isoformat()}: {e.message}")
        result.imported = saved

        self._store.save_import_history(ImportHistory(
            user_id=self._user_id, file_name=file_name, file_size=size,
            trades_imported=result.imported, trades_skipped=result.skipped,
            status="completed",
            error_message="; ".join(result.errors[:5]) or None))
        logger.info("csv_import_completed", **sanitize_log_data({
            "user_id": self._user_id, "email": profile.email, "imported": result.imported,
            "skipped": result.skipped, "failed": result.failed}))
        return result.to_dict()

    def get_import_history(self) -> list[dict[str, Any]]:
        history = self._query("import_history_query_failed",
                              lambda: self._store.list_import_history(self._user_id), [])
        return [h.to_dict() for h in history]

    # ─── Calendar & journal ─────────────────────────────────────

    def get_calendar(self, year: int, month: int, account_id: Optional[str] = None) -> dict[str, Any]:
        if not 1 <= month <= 12:
            raise ValidationError("month must be 1-12", field="month")
        trades = self._trades(self._scope(account_id))
        result = calendar_month(trades, year, month, self._tz())
        journal_days = {j.date.isoformat() for j in self._journals(date(year, month, 1))
                        if j.has_content and (j.date.year, j.date.month) == (year, month)}
        result["journal_days"] = sorted(journal_days)
        return result

    def get_journal(self, day: date) -> dict[str, Any]:
        journal = self._query("journal_query_failed",
                              lambda: self._store.get_journal(self._user_id, day), None)
        tz = self._tz()
        trades = [t for t in self._trades(self._scope()) if day_key(t, tz) == day]
        shots = self._query("screenshots_query_failed",
                            lambda: self._store.list_journal_screenshots(self._user_id, day), [])
        closed = closed_trades(trades)
        return {
            "date": day.isoformat(),
            "journal": journal.to_dict() if journal else None,
            "trades": [t.to_dict() for t in trades],
            "day_pnl": round(sum(t.net_pnl for t in closed), 2),
            "screenshots": [s.to_dict() for s in shots],
            "custom_options": {
                "what_went_well": self._prefs.custom_options(self._user_id, CUSTOM_WINS_KEY),
                "mistakes": self._prefs.custom_options(self._user_id, CUSTOM_MISTAKES_KEY),
            },
        }

    def save_journal(self, day: date, body: dict[str, Any]) -> dict[str, Any]:
        data = {k: v for k, v in body.items() if k not in ("id", "user_id", "date")}
        existing = self._store.get_journal(self._user_id, day)
        base = existing.to_dict() if existing else {}
        journal = DailyJournal.from_dict({**base, **data, "user_id": self._user_id, "date": day})
        self._store.save_journal(journal)
        logger.info("journal_saved", user_id=self._user_id, date=day.isoformat())
        return journal.to_dict()

    def upload_journal_screenshots(self, day: date, uploads: Sequence[ScreenshotUpload],
                                   trade_id: Optional[str] = None) -> dict[str, Any]:
        return self._screenshots.upload_journal_screenshots(
            self._user_id, day, uploads, trade_id).to_dict()

    # ─── Risk ───────────────────────────────────────────────────

    def get_risk(self, account_id: Optional[str] = None,
                 today: Optional[date] = None) -> dict[str, Any]:
        today = today or self._today()
        scope = self._scope(account_id)
        profile = self._profile()
        account = self._store.get_account(self._user_id, scope) if scope else None
        starting = resolve_starting_balance(account, profile)
        current = account.current_balance if account else None
        trades = self._trades(scope)

        overview = risk_overview(trades, starting, current, today, self._tz())
        daily_limit = resolve_daily_limit(starting, profile)
        overview["daily_limit"] = daily_limit_status(
            overview["daily_pnl"], daily_limit, overview["trades_today"],
            self._settings.max_trades_per_day).to_dict()
        weekly_limit = resolve_weekly_limit(starting, profile)
        overview["weekly_limit"] = {
            "limit": round(weekly_limit, 2),
            "used": round(abs(min(0.0, overview["weekly_pnl"])), 2),
            "progress": round(abs(min(0.0, overview["weekly_pnl"])) / weekly_limit * 100, 2)
            if weekly_limit > 0 else 0.0,
        }
        return overview

    def position_size(self, body: dict[str, Any]) -> dict[str, Any]:
        profile = self._profile()

        def _num(key: str) -> Optional[float]:
            value = body.get(key)
            if value in (None, ""):
                return None
            try:
                return float(value)
            except (TypeError, ValueError) as e:
                raise ValidationError(f"{key} must be a number", field=key) from e

        account_size = _num("account_size") or profile.account_size or self._settings.default_starting_balance
        risk_percent = _num("risk_percent") or profile.default_risk_per_trade or self._settings.default_risk_per_trade
        try:
            result = size_position(
                account_size, risk_percent,
                stop_ticks=_num("stop_ticks"), tick_value=_num("tick_value"),
                entry_price=_num("entry_price"), stop_price=_num("stop_price"),
                point_value=_num("point_value") or 1.0,
            )
        except ValueError as e:
            raise ValidationError(str(e)) from e
        return {"account_size": account_size, "risk_percent": risk_percent, **result.to_dict()}

    # ─── Setups ─────────────────────────────────────────────────

    def get_setups(self) -> dict[str, Any]:
        setups = self._query("setups_query_failed", lambda: self._store.list_setups(self._user_id), [])
        rows = setup_statistics(setups, self._trades())
        return {"setups": rows, "overview": setups_overview(rows)}

    def save_setup(self, body: dict[str, Any], setup_id: Optional[str] = None) -> dict[str, Any]:
        data = {k: v for k, v in body.items() if k not in ("id", "user_id")}
        if setup_id:
            existing = {s.id: s for s in self._store.list_setups(self._user_id)}.get(setup_id)
            if existing is None:
                raise NotFoundError(f"Setup {setup_id} not found")
            data = {**existing.to_dict(), **data}
        setup = Setup.from_dict({**data, "user_id": self._user_id})
        self._store.save_setup(setup)
        return setup.to_dict()

    def delete_setup(self, setup_id: str) -> bool:
        return self._store.delete_setup(self._user_id, setup_id)

    # ─── Achievements, challenges, XP ───────────────────────────

    def _award_xp(self, xp: int) -> dict[str, Any]:
        before = self._profile().total_xp
        profile = self._store.add_xp(self._user_id, xp)
        level_up = check_level_up(before, profile.total_xp)
        if level_up:
            logger.info("level_up", user_id=self._user_id, level=level_up.level, title=level_up.title)
        return {"xp_awarded": xp, "total_xp": profile.total_xp,
                "level_up": level_up.to_dict() if level_up else None}

    def get_achievements(self, today: Optional[date] = None) -> dict[str, Any]:
        tz = self._tz()
        setups = self._query("setups_query_failed", lambda: self._store.list_setups(self._user_id), [])
        shots = self._query("screenshots_query_failed",
                            lambda: self._store.list_trade_screenshots(self._user_id), [])
        stats = build_achievement_stats(
            self._trades(), self._journals(), setups, shots, today, tz,
            analytics_views=int(self._prefs.get(self._user_id, ANALYTICS_VIEWS_KEY, 0)),
        )
        return {**achievements_summary(stats), "level": level_summary(self._profile().total_xp)}

    def _challenge_state(self, now: datetime) -> tuple[dict[str, Any], set[tuple[str, str]]]:
        week_from = now.date() - timedelta(days=7)
        trades = self._trades()
        journals = self._journals(week_from)
        shots = self._query("screenshots_query_failed",
                            lambda: self._store.list_trade_screenshots(self._user_id), [])
        added_today = sum(1 for s in shots if s.created_at.date() == now.date())
        stats = build_challenge_stats(trades, journals, now, added_today)

        day_key_, week_key = daily_period_key(now), weekly_period_key(now)
        completions = self._query(
            "challenges_query_failed",
            lambda: self._store.list_challenge_completions(self._user_id, [day_key_, week_key]), [])
        claimed = {(c.challenge_id, c.period_key) for c in completions}
        state = {
            "stats": stats,
            "daily": (active_daily_challenges(now), day_key_),
            "weekly": (active_weekly_challenges(now), week_key),
        }
        return state, claimed

    def get_challenges(self, now: Optional[datetime] = None) -> dict[str, Any]:
        """Active challenges with progress. Completed, unclaimed ones are awarded on load."""
        now = now or datetime.now()
        state, claimed = self._challenge_state(now)
        stats = state["stats"]
        awarded = []

        for challenges, period_key in (state["daily"], state["weekly"]):
            for c in challenges:
                if c.is_complete(stats) and (c.id, period_key) not in claimed:
                    try:
                        self._store.record_challenge_completion(ChallengeCompletion(
                            user_id=self._user_id, challenge_id=c.id,
                            period_key=period_key, xp_earned=c.xp))
                    except DuplicateError:
                        # claimed concurrently
                        claimed.add((c.id, period_key))
                        continue
                    claimed.add((c.id, period_key))
                    awarded.append({"challenge_id": c.id, **self._award_xp(c.xp)})

        daily, day_key_ = state["daily"]
        weekly, week_key = state["weekly"]
        return {
            "daily": evaluate_challenges(daily, stats, day_key_, claimed),
            "weekly": evaluate_challenges(weekly, stats, week_key, claimed),
            "stats": stats.to_dict(),
            "awarded": awarded,
            "level": level_summary(self._profile().total_xp),
        }

    def claim_challenge(self, challenge_id: str, now: Optional[datetime] = None) -> dict[str, Any]:
        now = now or datetime.now()
        challenge = CHALLENGES_BY_ID.get(challenge_id)
        if challenge is None:
            raise NotFoundError(f"Challenge {challenge_id} not found")

        state, claimed = self._challenge_state(now)
        challenges, period_key = state["daily"] if challenge.type == "daily" else state["weekly"]
        if challenge.id not in {c.id for c in challenges}:
            raise ValidationError(f"Challenge {challenge_id} is not active", field="challenge_id")
        if not challenge.is_complete(state["stats"]):
            raise ValidationError(f"Challenge {challenge_id} is not complete", field="challenge_id")

        self._store.record_challenge_completion(ChallengeCompletion(
            user_id=self._user_id, challenge_id=challenge.id,
            period_key=period_key, xp_earned=challenge.xp))
        logger.info("challenge_claimed", user_id=self._user_id, challenge_id=challenge.id,
                    period_key=period_key)
        return {"challenge_id": challenge.id, "period_key": period_key, **self._award_xp(challenge.xp)}

    # ─── Leaderboard ────────────────────────────────────────────

    def get_leaderboard(self, metric: str = LeaderboardMetric.TOTAL_PNL.value,
                        period: str = LeaderboardPeriod.WEEK.value,
                        now: Optional[datetime] = None) -> dict[str, Any]:
        try:
            metric_ = LeaderboardMetric(metric)
            period_ = LeaderboardPeriod(period)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        trades = self._query("leaderboard_query_failed",
                             lambda: self._store.query_trades(status=TradeStatus.CLOSED), [])
        profiles = self._query("profiles_query_failed", self._store.list_profiles, [])
        board = build_leaderboard(trades, profiles, metric_, period_, now,
                                  current_user_id=self._user_id)
        return board.to_dict()

    # ─── Discipline ─────────────────────────────────────────────

    def get_discipline(self, today: Optional[date] = None) -> dict[str, Any]:
        today = today or self._today()
        rules = self._query("rules_query_failed", lambda: self._store.list_rules(self._user_id), [])
        checks = self._query("rule_checks_query_failed",
                             lambda: self._store.list_rule_checks(self._user_id, history_start(today)), [])
        return discipline_summary(rules, checks, today, self._prefs.trading_days(self._user_id))

    def save_rule(self, body: dict[str, Any], rule_id: Optional[str] = None) -> dict[str, Any]:
        data = {k: v for k, v in body.items() if k not in ("id", "user_id")}
        if rule_id:
            existing = {r.id: r for r in self._store.list_rules(self._user_id)}.get(rule_id)
            if existing is None:
                raise NotFoundError(f"Rule {rule_id} not found")
            data = {**existing.to_dict(), **data}
        rule = UserRule.from_dict({**data, "user_id": self._user_id})
        self._store.save_rule(rule)
        return rule.to_dict()

    def delete_rule(self, rule_id: str) -> bool:
        return self._store.delete_rule(self._user_id, rule_id)

    def check_rule(self, rule_id: str, followed: bool, day: Optional[date] = None) -> dict[str, Any]:
        if rule_id not in {r.id for r in self._store.list_rules(self._user_id)}:
            raise NotFoundError(f"Rule {rule_id} not found")
        check = UserRuleCheck(user_id=self._user_id, rule_id=rule_id,
                              check_date=day or self._today(), followed=followed)
        return self._store.save_rule_check(check).to_dict()

    def set_trading_days(self, days: Sequence[int]) -> list[int]:
        return self._prefs.set_trading_days(self._user_id, days)

    # ─── Profile ────────────────────────────────────────────────

    def get_profile(self) -> dict[str, Any]:
        profile = self._profile()
        trades = self._trades()
        closed = closed_trades(trades)
        days = trading_days(closed, self._tz())
        return {
            **profile.to_dict(),
            "level": level_summary(profile.total_xp),
            "stats": trade_statistics(closed).to_dict(),
            "longest_streak": longest_streak(days),
            "banner_dismissed": bool(self._prefs.get(self._user_id, PROFILE_BANNER_DISMISSED_KEY, False)),
        }

    def update_profile(self, body: dict[str, Any]) -> dict[str, Any]:
        profile = self._profile()
        changes = {k: v for k, v in body.items() if k not in PROTECTED_PROFILE_FIELDS}
        updated = Profile.from_dict({**profile.to_dict(), **changes})
        self._store.save_profile(updated)
        logger.info("profile_updated", **sanitize_log_data({"user_id": self._user_id,
                                                             "email": updated.email}))
        return updated.to_dict()

    def set_preference(self, key: str, value: Any) -> dict[str, Any]:
        self._prefs.set(self._user_id, key, value)
        return self._prefs.all(self._user_id)

    # ─── Admin ──────────────────────────────────────────────────

    def get_admin_stats(self, today: Optional[date] = None) -> dict[str, Any]:
        profile = self._profile()
        admin = self._settings.admin_email
        if not admin or profile.email.lower() != admin.lower():
            raise PermissionDeniedError("Admin access only")
        today = today or self._today()

        profiles = self._query("profiles_query_failed", self._store.list_profiles, [])
        trades = self._query("trades_query_failed", self._store.query_trades, [])
        by_user: dict[str, list[Trade]] = {}
        for t in trades:
            by_user.setdefault(t.user_id, []).append(t)

        users = []
        for p in profiles:
            own = by_user.get(p.id, [])
            closed = closed_trades(own)
            wins = sum(1 for t in closed if t.net_pnl > 0)
            last = max((t.entry_date for t in own), default=None)
            users.append({
                "id": p.id,
                "email": p.email,
                "display_name": p.display_name,
                "total_xp": p.total_xp,
                "level": level_summary(p.total_xp)["level"],
                "trade_count": len(own),
                "total_pnl": round(sum(t.net_pnl for t in closed), 2),
                "win_rate": round(wins / len(closed) * 100, 2) if closed else 0.0,
                "last_active": last.isoformat() if last else None,
            })
        users.sort(key=lambda u: u["trade_count"], reverse=True)

        return {
            "total_users": len(profiles),
            "total_trades": len(trades),
            "total_xp_awarded": sum(p.total_xp for p in profiles),
            "active_today": sum(1 for u in users if u["last_active"]
                                and u["last_active"][:10] == today.isoformat()),
            "tables": self._query("table_counts_failed", self._store.table_counts, {}),
            "users": users,
        }


class JournalServiceManager:
    _instance: Optional[JournalServiceManager] = None

    def __init__(self, store: Optional[JournalStore] = None,
                 prefs: Optional[PreferenceStore] = None) -> None:
        settings = get_settings()
        self._store = store or JournalStore(db_path=settings.database_path)
        self._prefs = prefs or PreferenceStore(settings.preferences_file)
        self._screenshots = ScreenshotManager(self._store, settings.screenshot_dir)
        self._services: dict[str, JournalService] = {}
        self._lock = threading.Lock()

    @classmethod
    def get_instance(cls) -> JournalServiceManager:
        if cls._instance is None:
            cls._instance = JournalServiceManager()
        return cls._instance

    @classmethod
    def reset(cls, manager: Optional[JournalServiceManager] = None) -> None:
        cls._instance = manager

    @property
    def store(self) -> JournalStore:
        return self._store

    def register(self, body: dict[str, Any]) -> Profile:
        profile = Profile.from_dict({k: v for k, v in body.items()
                                     if k not in ("id", "total_xp", "created_at", "updated_at")})
        self._store.save_profile(profile)
        logger.info("profile_registered", **sanitize_log_data({"user_id": profile.id,
                                                                "email": profile.email}))
        return profile

    def get_service(self, user_id: str) -> JournalService:
        if not user_id or self._store.get_profile(user_id) is None:
            raise AuthenticationError()
        with self._lock:
            if user_id not in self._services:
                self._services[user_id] = JournalService(user_id, self._store, self._prefs,
                                                         self._screenshots)
                logger.info("service_created", user_id=user_id)
            return self._services[user_id]
