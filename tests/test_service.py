"""
JournalService: per-user orchestration over the store, preferences and
analytics. Reads degrade to empty results on storage failures; writes and
lookups raise the domain errors the web layer maps to status codes.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from tradelog.analytics.challenges import (
    CHALLENGES_BY_ID,
    active_daily_challenges,
    active_weekly_challenges,
)
from tradelog.journal.journal_models import Profile
from tradelog.utils.exceptions import (
    AuthenticationError,
    DataError,
    DuplicateError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
)

GENERIC_CSV = (
    "Symbol,Side,Qty,Entry Price,Exit Price,Entry Date,Exit Date,Order ID\n"
    "ES,Buy,2,5000,5002,2024-03-04 09:45:00,2024-03-04 10:15:00,A-1\n"
    "NQ,Sell,1,18000,17990,2024-03-04 11:00:00,2024-03-04 11:20:00,A-2\n"
)


def _first_day_with(challenge_id: str, start: datetime) -> datetime:
    for offset in range(400):
        now = start + timedelta(days=offset)
        if challenge_id in {c.id for c in active_daily_challenges(now)}:
            return now
    raise AssertionError(f"{challenge_id} never rotates in")


# ─────────────────────────────────────────────────────────
# Reads
# ─────────────────────────────────────────────────────────

class TestReads:

    def test_failed_trade_query_reads_as_empty(self, service, store, monkeypatch):
        def _broken(*args, **kwargs):
            raise StorageError("database is locked")

        monkeypatch.setattr(store, "query_trades", _broken)
        dashboard = service.get_dashboard(now=datetime(2024, 3, 4, 16, 0))
        assert dashboard["stats"]["total_trades"] == 0
        assert dashboard["equity_curve"][0]["equity"] == 10000.0
        assert dashboard["recent_trades"] == []

    def test_dashboard_uses_closed_trades(self, service, store, trade_factory):
        store.save_trade(trade_factory(net_pnl=150.0, entry=datetime(2024, 3, 4, 9, 30)))
        store.save_trade(trade_factory(net_pnl=None, closed=False, entry=datetime(2024, 3, 4, 11, 0)))
        dashboard = service.get_dashboard(now=datetime(2024, 3, 4, 16, 0))
        assert dashboard["stats"]["total_trades"] == 1
        assert dashboard["stats"]["total_pnl"] == 150.0
        assert dashboard["current_streak"] == 1
        assert dashboard["daily_limit"]["current_pnl"] == 150.0

    def test_dashboard_today_in_trader_timezone(self, service, store, trade_factory):
        # 02:00 UTC on the 6th is still the evening of the 5th in New York
        for day in (3, 4):
            close = datetime(2024, 3, day, 20, 0, tzinfo=timezone.utc)
            store.save_trade(trade_factory(net_pnl=80.0, entry=close - timedelta(hours=1), exit=close))
        dashboard = service.get_dashboard(now=datetime(2024, 3, 6, 2, 0, tzinfo=timezone.utc))
        assert dashboard["current_streak"] == 2
        assert dashboard["daily_limit"]["current_pnl"] == 0.0

    def test_dashboard_today_counts_evening_trade(self, service, store, trade_factory):
        close = datetime(2024, 3, 5, 23, 30, tzinfo=timezone.utc)
        store.save_trade(trade_factory(net_pnl=-40.0, entry=close - timedelta(hours=1), exit=close))
        dashboard = service.get_dashboard(now=datetime(2024, 3, 6, 2, 0, tzinfo=timezone.utc))
        assert dashboard["daily_limit"]["current_pnl"] == -40.0

    def test_analytics_counts_page_views(self, service, prefs):
        service.get_analytics()
        service.get_analytics()
        assert prefs.get("user-1", "analytics-page-views") == 2

    def test_calendar_rejects_bad_month(self, service):
        with pytest.raises(ValidationError):
            service.get_calendar(2024, 13)

    def test_calendar_lists_journal_days(self, service, store, journal_factory):
        store.save_journal(journal_factory(date(2024, 3, 4), pre_market_notes="Gap up"))
        store.save_journal(journal_factory(date(2024, 3, 5)))
        assert service.get_calendar(2024, 3)["journal_days"] == ["2024-03-04"]


# ─────────────────────────────────────────────────────────
# Accounts & trades
# ─────────────────────────────────────────────────────────

class TestAccountsAndTrades:

    def test_first_account_is_default(self, service):
        first = service.create_account({"name": "Apex", "starting_balance": 50000})
        second = service.create_account({"name": "Topstep", "starting_balance": 100000})
        assert first["is_default"] is True
        assert first["current_balance"] == 50000.0
        assert second["is_default"] is False

    def test_select_unknown_account(self, service):
        with pytest.raises(NotFoundError):
            service.select_account("missing")

    def test_create_trade_derives_fields(self, service):
        trade = service.create_trade({
            "symbol": "es", "side": "long", "entry_date": "2024-03-04T09:45:00",
            "entry_price": 5000, "exit_price": 5002, "exit_date": "2024-03-04T10:15:00",
            "entry_contracts": 2, "stop_loss": 4998,
            "net_pnl": 99999, "status": "closed",
        })
        assert trade["symbol"] == "ES"
        assert trade["gross_pnl"] == 200.0
        assert trade["net_pnl"] == 200.0
        assert trade["r_multiple"] == 1.0
        assert trade["status"] == "closed"
        assert trade["user_id"] == "user-1"

    def test_status_follows_exit_fields(self, service):
        trade = service.create_trade({"symbol": "ES", "entry_date": "2024-03-04T09:45:00",
                                      "entry_price": 5000, "status": "closed"})
        assert trade["status"] == "open"
        assert trade["net_pnl"] is None

    def test_cancel_trade(self, service):
        trade = service.create_trade({"symbol": "ES", "entry_date": "2024-03-04T09:45:00",
                                      "entry_price": 5000})
        updated = service.update_trade(trade["id"], {"status": "cancelled", "notes": "never filled"})
        assert updated["status"] == "cancelled"
        assert updated["notes"] == "never filled"

    def test_invalid_trade(self, service):
        with pytest.raises(ValidationError):
            service.create_trade({"symbol": "", "entry_date": "2024-03-04T09:45:00",
                                  "entry_price": 5000})

    def test_unknown_trade(self, service):
        with pytest.raises(NotFoundError):
            service.get_trade("missing")
        with pytest.raises(NotFoundError):
            service.delete_trade("missing")

    def test_move_requires_selection(self, service):
        with pytest.raises(ValidationError):
            service.move_trades([], None)

    def test_move_to_account(self, service, store, trade_factory):
        account = service.create_account({"name": "Apex"})
        trade = store.save_trade(trade_factory())
        assert service.move_trades([trade.id], account["id"])["moved"] == 1
        assert store.get_trade("user-1", trade.id).account_id == account["id"]

    def test_unknown_screenshot_type(self, service):
        with pytest.raises(ValidationError):
            service.upload_trade_screenshots("t-1", [], screenshot_type="selfie")


# ─────────────────────────────────────────────────────────
# Import
# ─────────────────────────────────────────────────────────

class TestImport:

    def test_records_history(self, service, store):
        result = service.import_csv(GENERIC_CSV, file_name="march.csv")
        assert result["imported"] == 2
        history = service.get_import_history()
        assert history[0]["file_name"] == "march.csv"
        assert history[0]["status"] == "completed"
        assert history[0]["trades_imported"] == 2
        assert len(store.query_trades(user_id="user-1")) == 2

    def test_reimport_skips_existing(self, service):
        service.import_csv(GENERIC_CSV)
        again = service.import_csv(GENERIC_CSV)
        assert (again["imported"], again["skipped"]) == (0, 2)

    def test_failed_import_recorded(self, service):
        with pytest.raises(ValidationError):
            service.import_csv("qty,pnl\n1,20\n", file_name="bad.csv")
        with pytest.raises(DataError):
            service.import_csv(b"", file_name="empty.csv")
        statuses = {h["file_name"]: h["status"] for h in service.get_import_history()}
        assert statuses == {"bad.csv": "failed", "empty.csv": "failed"}

    def test_unknown_account(self, service):
        with pytest.raises(NotFoundError):
            service.import_csv(GENERIC_CSV, account_id="missing")


# ─────────────────────────────────────────────────────────
# Journal, risk, setups, rules
# ─────────────────────────────────────────────────────────

class TestJournal:

    def test_save_merges_fields(self, service):
        day = date(2024, 3, 4)
        service.save_journal(day, {"pre_market_notes": "Watching 5000", "mood_rating": 4})
        merged = service.save_journal(day, {"post_market_notes": "Held the level"})
        assert merged["pre_market_notes"] == "Watching 5000"
        assert merged["post_market_notes"] == "Held the level"
        assert merged["mood_rating"] == 4

    def test_day_view(self, service, store, trade_factory):
        day = date(2024, 3, 4)
        store.save_trade(trade_factory(net_pnl=80.0, entry=datetime(2024, 3, 4, 10, 0)))
        store.save_trade(trade_factory(net_pnl=-30.0, entry=datetime(2024, 3, 5, 10, 0)))
        view = service.get_journal(day)
        assert view["journal"] is None
        assert len(view["trades"]) == 1
        assert view["day_pnl"] == 80.0


class TestRiskAndSizing:

    def test_position_size_falls_back_to_profile(self, service):
        result = service.position_size({"stop_ticks": 8, "tick_value": 12.5})
        assert result["account_size"] == 10000.0
        assert result["risk_percent"] == 1.0
        assert result["units"] == 1

    def test_position_size_bad_input(self, service):
        with pytest.raises(ValidationError):
            service.position_size({"stop_ticks": "eight", "tick_value": 12.5})
        with pytest.raises(ValidationError):
            service.position_size({})

    def test_risk_limits(self, service, store, trade_factory):
        store.save_trade(trade_factory(net_pnl=-150.0, entry=datetime(2024, 3, 4, 9, 30)))
        risk = service.get_risk(today=date(2024, 3, 4))
        assert risk["daily_pnl"] == -150.0
        assert risk["daily_limit"]["daily_limit"] == 300.0
        assert risk["weekly_limit"]["used"] == 150.0


class TestSetupsAndRules:

    def test_setup_crud(self, service):
        setup = service.save_setup({"name": "ORB"})
        renamed = service.save_setup({"name": "Opening Range"}, setup_id=setup["id"])
        assert renamed["id"] == setup["id"]
        assert service.get_setups()["overview"]["active_setups"] == 1
        assert service.delete_setup(setup["id"])
        with pytest.raises(NotFoundError):
            service.save_setup({"name": "x"}, setup_id=setup["id"])

    def test_check_unknown_rule(self, service):
        with pytest.raises(NotFoundError):
            service.check_rule("missing", True)

    def test_rule_check(self, service):
        rule = service.save_rule({"name": "No trades before 9:45"})
        check = service.check_rule(rule["id"], True, date(2024, 3, 4))
        assert check["followed"] is True


# ─────────────────────────────────────────────────────────
# Challenges, leaderboard, admin
# ─────────────────────────────────────────────────────────

class TestChallenges:

    def test_unknown_challenge(self, service):
        with pytest.raises(NotFoundError):
            service.claim_challenge("does-not-exist")

    def test_inactive_challenge(self, service):
        now = datetime(2024, 3, 4, 12, 0)
        active = {c.id for c in active_daily_challenges(now)} | {c.id for c in active_weekly_challenges(now)}
        inactive = next(cid for cid in CHALLENGES_BY_ID if cid not in active)
        with pytest.raises(ValidationError):
            service.claim_challenge(inactive, now=now)

    def test_completed_challenge_awarded_once(self, service, store, journal_factory):
        now = _first_day_with("write_journal", datetime(2024, 3, 4, 12, 0))
        store.save_journal(journal_factory(now.date(), pre_market_notes="Plan the day"))

        first = service.get_challenges(now=now)
        awarded = [a["challenge_id"] for a in first["awarded"]]
        assert "write_journal" in awarded
        assert store.get_profile("user-1").total_xp >= 15

        second = service.get_challenges(now=now)
        assert "write_journal" not in [a["challenge_id"] for a in second["awarded"]]
        with pytest.raises(DuplicateError):
            service.claim_challenge("write_journal", now=now)


class TestLeaderboardAndAdmin:

    def test_bad_metric(self, service):
        with pytest.raises(ValidationError):
            service.get_leaderboard(metric="luck")
        with pytest.raises(ValidationError):
            service.get_leaderboard(period="decade")

    def test_admin_only(self, service):
        with pytest.raises(PermissionDeniedError):
            service.get_admin_stats()

    def test_admin_stats(self, manager, store, trade_factory, profile):
        manager.register({"id": "admin-1", "email": "Admin@Example.com"})
        store.save_trade(trade_factory(net_pnl=40.0, entry=datetime(2024, 3, 4, 9, 30)))
        stats = manager.get_service("admin-1").get_admin_stats(today=date(2024, 3, 4))
        assert stats["total_users"] == 2
        assert stats["total_trades"] == 1
        assert stats["active_today"] == 1
        assert stats["users"][0]["id"] == "user-1"
        assert stats["users"][0]["total_pnl"] == 40.0


class TestProfile:

    def test_update_keeps_protected_fields(self, service):
        updated = service.update_profile({"display_name": "Renamed", "total_xp": 9999,
                                          "email": "other@example.com"})
        assert updated["display_name"] == "Renamed"
        assert updated["total_xp"] == 0
        assert updated["email"] == "trader@example.com"

    def test_banner_preference(self, service):
        assert service.get_profile()["banner_dismissed"] is False
        service.set_preference("profile-banner-dismissed", True)
        assert service.get_profile()["banner_dismissed"] is True


class TestManager:

    def test_unknown_user(self, manager):
        with pytest.raises(AuthenticationError):
            manager.get_service("nobody")
        with pytest.raises(AuthenticationError):
            manager.get_service("")

    def test_service_cached_per_user(self, manager, profile):
        assert manager.get_service(profile.id) is manager.get_service(profile.id)

    def test_register_duplicate_username(self, manager, profile):
        with pytest.raises(DuplicateError):
            manager.register({"email": "x@example.com", "username": "trader_one"})

    def test_register_returns_profile(self, manager):
        created = manager.register({"email": "new@example.com", "total_xp": 500})
        assert isinstance(created, Profile)
        assert created.total_xp == 0
