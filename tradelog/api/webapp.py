from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from tradelog.api.service import JournalService, JournalServiceManager
from tradelog.journal.journal_models import TradeSide, TradeStatus
from tradelog.journal.screenshots import ScreenshotUpload
from tradelog.journal.trade_filters import TradeFilters, to_date
from tradelog.utils.exceptions import AuthenticationError, TradeLogError, ValidationError
from tradelog.utils.logger import bind_request, clear_request, get_logger

logger = get_logger(__name__)

app = FastAPI(title="TradeLog", version="1.0")

USER_HEADER = "X-User-Id"

PUBLIC_PATHS = {"/api/health", "/api/register", "/docs", "/openapi.json"}


def get_user_service(request: Request) -> JournalService:
    user_id = request.headers.get(USER_HEADER, "").strip()
    if not user_id:
        raise HTTPException(401, "Not authenticated")
    try:
        return JournalServiceManager.get_instance().get_service(user_id)
    except AuthenticationError:
        raise HTTPException(401, "Not authenticated")


@app.exception_handler(TradeLogError)
async def tradelog_error_handler(request: Request, exc: TradeLogError) -> JSONResponse:
    status = exc.status_code or 500
    if status >= 500:
        logger.error("request_failed", path=request.url.path, error=str(exc))
    return JSONResponse(exc.to_dict(), status_code=status)


@app.middleware("http")
async def auth_middleware(request: Request, call_next):
    path = request.url.path
    user_id = request.headers.get(USER_HEADER, "").strip()
    if path in PUBLIC_PATHS or not path.startswith("/api/"):
        return await call_next(request)
    if not user_id:
        return JSONResponse({"error": "Not authenticated"}, status_code=401)
    bind_request(user_id, path)
    try:
        return await call_next(request)
    finally:
        clear_request()


def _int(params, key: str, default: int) -> int:
    try:
        return int(params.get(key, default))
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer", field=key)


def _day(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"Invalid date {value}, expected YYYY-MM-DD", field="date")


def _moment(params) -> Optional[datetime]:
    raw = params.get("now", "")
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError:
        raise ValidationError(f"Invalid timestamp {raw}", field="now")


async def _uploads(request: Request) -> tuple[list[ScreenshotUpload], dict[str, str]]:
    form = await request.form()
    uploads, fields = [], {}
    for key, value in form.multi_items():
        if hasattr(value, "read"):
            uploads.append(ScreenshotUpload(
                file_name=value.filename or "upload",
                content_type=value.content_type or "",
                data=await value.read(),
            ))
        else:
            fields[key] = str(value)
    return uploads, fields


# ────────────────────────────────────────────────────────────
# Health & registration
# ────────────────────────────────────────────────────────────

@app.get("/api/health")
async def health() -> dict[str, Any]:
    return {"status": "ok"}


@app.post("/api/register")
async def register(request: Request) -> dict[str, Any]:
    body = await request.json()
    if not str(body.get("email", "")).strip():
        raise ValidationError("Email is required", field="email")
    profile = JournalServiceManager.get_instance().register(body)
    return {"success": True, "user_id": profile.id, "profile": profile.to_dict()}


# ────────────────────────────────────────────────────────────
# Dashboard & analytics
# ────────────────────────────────────────────────────────────

@app.get("/api/dashboard")
async def dashboard(request: Request) -> dict[str, Any]:
    svc = get_user_service(request)
    p = request.query_params
    return svc.get_dashboard(account_id=p.get("account_id") or None, now=_moment(p))


@app.get("/api/analytics")
async def analytics(request: Request) -> dict[str, Any]:
    svc = get_user_service(request)
    return svc.get_analytics(account_id=request.query_params.get("account_id") or None)


# ────────────────────────────────────────────────────────────
# Accounts
# ────────────────────────────────────────────────────────────

@app.get("/api/accounts")
async def list_accounts(request: Request) -> dict[str, Any]:
    return get_user_service(request).get_accounts()


@app.post("/api/accounts")
async def create_account(request: Request) -> dict[str, Any]:
    svc = get_user_service(request)
    body = await request.json()
    return svc.create_account(body)


@app.post("/api/accounts/select")
async def select_account(request: Request) -> dict[str, Any]:
    svc = get_user_service(request)
    body = await request.json()
    return svc.select_account(body.get("account_id"))


# ────────────────────────────────────────────────────────────
# Trades
# ────────────────────────────────────────────────────────────

@app.get("/api/trades")
async def list_trades(request: Request) -> dict[str, Any]:
    try:
        svc = get_user_service(request)
        p = request.query_params
        filters = TradeFilters(
            account_id=p.get("account_id") or None,
            date_from=to_date(p.get("date_from")),
            date_to=to_date(p.get("date_to")),
            symbol=p.get("symbol") or None,
            side=TradeSide(p["side"]) if p.get("side") else None,
            setup_id=p.get("setup_id") or None,
            status=TradeStatus(p["status"]) if p.get("status") else None,
            search=p.get("search", ""),
        )
        return svc.list_trades(filters, page=_int(p, "page", 1), page_size=_int(p, "page_size", 25))
    except (HTTPException, TradeLogError):
        raise
    except ValueError as e:
        logger.warning("trade_filter_invalid", error=str(e))
        raise ValidationError(str(e))


@app.post("/api/trades")
async def create_trade(request: Request) -> dict[str, Any]:
    svc = get_user_service(request)
    body = await request.json()
    return svc.create_trade(body)


@app.post("/api/trades/move")
async def move_trades(request: Request) -> dict[str, Any]:
    svc = get_user_service(request)
    body = await request.json()
    return svc.move_trades(body.get("trade_ids", []), body.get("account_id"))


@app.post("/api/trades/import")
async def import_trades(request: Request) -> dict[str, Any]:
    svc = get_user_service(request)
    form = await request.form()
    upload = form.get("file")
    if upload is None or not hasattr(upload, "read"):
        raise ValidationError("CSV file is required", field="file")
    content = await upload.read()
    return svc.import_csv(content, file_name=upload.filename or "import.csv",
                          account_id=form.get("account_id") or None,
                          source=form.get("broker") or "csv")


@app.get("/api/trades/import/history")
async def import_history(request: Request) -> dict[str, Any]:
    return {"history": get_user_service(request).get_import_history()}


@app.get("/api/trades/{trade_id}")
async def get_trade(request: Request, trade_id: str) -> dict[str, Any]:
    return get_user_service(request).get_trade(trade_id)


@app.put("/api/trades/{trade_id}")
async def update_trade(request: Request, trade_id: str) -> dict[str, Any]:
    svc = get_user_service(request)
    body = await request.json()
    return svc.update_trade(trade_id, body)


@app.delete("/api/trades/{trade_id}")
async def delete_trade(request: Request, trade_id: str) -> dict[str, Any]:
    return {"deleted": get_user_service(request).delete_trade(trade_id)}


@app.post("/api/trades/{trade_id}/screenshots")
async def upload_trade_screenshots(request: Request, trade_id: str) -> dict[str, Any]:
    svc = get_user_service(request)
    uploads, fields = await _uploads(request)
    return svc.upload_trade_screenshots(trade_id, uploads,
                                        fields.get("screenshot_type", "other"))


# ────────────────────────────────────────────────────────────
# Calendar & journal
# ────────────────────────────────────────────────────────────

@app.get("/api/calendar")
async def calendar(request: Request) -> dict[str, Any]:
    svc = get_user_service(request)
    p = request.query_params
    today = date.today()
    return svc.get_calendar(_int(p, "year", today.year), _int(p, "month", today.month),
                            account_id=p.get("account_id") or None)


@app.get("/api/journal/{day}")
async def get_journal(request: Request, day: str) -> dict[str, Any]:
    return get_user_service(request).get_journal(_day(day))


@app.put("/api/journal/{day}")
async def save_journal(request: Request, day: str) -> dict[str, Any]:
    svc = get_user_service(request)
    body = await request.json()
    return svc.save_journal(_day(day), body)


@app.post("/api/journal/{day}/screenshots")
async def upload_journal_screenshots(request: Request, day: str) -> dict[str, Any]:
    svc = get_user_service(request)
    uploads, fields = await _uploads(request)
    return svc.upload_journal_screenshots(_day(day), uploads, fields.get("trade_id") or None)


# ────────────────────────────────────────────────────────────
# Risk
# ────────────────────────────────────────────────────────────

@app.get("/api/risk")
async def risk(request: Request) -> dict[str, Any]:
    svc = get_user_service(request)
    p = request.query_params
    today = _day(p["today"]) if p.get("today") else None
    return svc.get_risk(account_id=p.get("account_id") or None, today=today)


@app.post("/api/position-size")
async def position_size(request: Request) -> dict[str, Any]:
    svc = get_user_service(request)
    body = await request.json()
    return svc.position_size(body)


# ────────────────────────────────────────────────────────────
# Setups
# ────────────────────────────────────────────────────────────

@app.get("/api/setups")
async def list_setups(request: Request) -> dict[str, Any]:
    try:
        return get_user_service(request).get_setups()
    except (HTTPException, TradeLogError):
        raise
    except Exception as e:
        logger.error("setups_error", error=str(e))
        return {"setups": [], "error": str(e)}


@app.post("/api/setups")
async def create_setup(request: Request) -> dict[str, Any]:
    svc = get_user_service(request)
    body = await request.json()
    return svc.save_setup(body)


@app.put("/api/setups/{setup_id}")
async def update_setup(request: Request, setup_id: str) -> dict[str, Any]:
    svc = get_user_service(request)
    body = await request.json()
    return svc.save_setup(body, setup_id=setup_id)


@app.delete("/api/setups/{setup_id}")
async def delete_setup(request: Request, setup_id: str) -> dict[str, Any]:
    return {"deleted": get_user_service(request).delete_setup(setup_id)}


# ────────────────────────────────────────────────────────────
# Achievements, challenges, leaderboard
# ────────────────────────────────────────────────────────────

@app.get("/api/achievements")
async def achievements(request: Request) -> dict[str, Any]:
    try:
        svc = get_user_service(request)
        p = request.query_params
        return svc.get_achievements(today=_day(p["today"]) if p.get("today") else None)
    except (HTTPException, TradeLogError):
        raise
    except Exception as e:
        logger.error("achievements_error", error=str(e))
        return {"achievements": [], "error": str(e)}


@app.get("/api/challenges")
async def challenges(request: Request) -> dict[str, Any]:
    try:
        svc = get_user_service(request)
        return svc.get_challenges(now=_moment(request.query_params))
    except (HTTPException, TradeLogError):
        raise
    except Exception as e:
        logger.error("challenges_error", error=str(e))
        return {"daily": [], "weekly": [], "error": str(e)}


@app.post("/api/challenges/{challenge_id}/claim")
async def claim_challenge(request: Request, challenge_id: str) -> dict[str, Any]:
    svc = get_user_service(request)
    return svc.claim_challenge(challenge_id, now=_moment(request.query_params))


@app.get("/api/leaderboard")
async def leaderboard(request: Request) -> dict[str, Any]:
    svc = get_user_service(request)
    p = request.query_params
    return svc.get_leaderboard(metric=p.get("metric", "total_pnl"), period=p.get("period", "week"),
                               now=_moment(p))


# ────────────────────────────────────────────────────────────
# Discipline
# ────────────────────────────────────────────────────────────

@app.get("/api/discipline")
async def discipline(request: Request) -> dict[str, Any]:
    svc = get_user_service(request)
    p = request.query_params
    return svc.get_discipline(today=_day(p["today"]) if p.get("today") else None)


@app.post("/api/discipline/rules")
async def create_rule(request: Request) -> dict[str, Any]:
    svc = get_user_service(request)
    body = await request.json()
    return svc.save_rule(body)


@app.put("/api/discipline/rules/{rule_id}")
async def update_rule(request: Request, rule_id: str) -> dict[str, Any]:
    svc = get_user_service(request)
    body = await request.json()
    return svc.save_rule(body, rule_id=rule_id)


@app.delete("/api/discipline/rules/{rule_id}")
async def delete_rule(request: Request, rule_id: str) -> dict[str, Any]:
    return {"deleted": get_user_service(request).delete_rule(rule_id)}


@app.post("/api/discipline/rules/{rule_id}/check")
async def check_rule(request: Request, rule_id: str) -> dict[str, Any]:
    svc = get_user_service(request)
    body = await request.json()
    day = _day(body["date"]) if body.get("date") else None
    return svc.check_rule(rule_id, bool(body.get("followed", True)), day)


@app.put("/api/discipline/trading-days")
async def set_trading_days(request: Request) -> dict[str, Any]:
    svc = get_user_service(request)
    body = await request.json()
    days = body.get("trading_days")
    if not isinstance(days, list):
        raise ValidationError("trading_days must be a list", field="trading_days")
    return {"trading_days": svc.set_trading_days(days)}


# ────────────────────────────────────────────────────────────
# Profile & preferences
# ────────────────────────────────────────────────────────────

@app.get("/api/profile")
async def get_profile(request: Request) -> dict[str, Any]:
    return get_user_service(request).get_profile()


@app.put("/api/profile")
async def update_profile(request: Request) -> dict[str, Any]:
    svc = get_user_service(request)
    body = await request.json()
    return svc.update_profile(body)


@app.put("/api/preferences/{key}")
async def set_preference(request: Request, key: str) -> dict[str, Any]:
    svc = get_user_service(request)
    body = await request.json()
    return svc.set_preference(key, body.get("value"))


# ────────────────────────────────────────────────────────────
# Admin
# ────────────────────────────────────────────────────────────

@app.get("/api/admin/stats")
async def admin_stats(request: Request) -> dict[str, Any]:
    return get_user_service(request).get_admin_stats()
