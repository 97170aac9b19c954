from __future__ import annotations

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Optional

from tradelog.journal.journal_models import Profile
from tradelog.utils.config import get_settings
from tradelog.utils.logger import get_logger

logger = get_logger(__name__)


class LimitStatus(str, Enum):
    SAFE = "safe"
    WARNING = "warning"
    DANGER = "danger"
    EXCEEDED = "exceeded"


@dataclass
class DailyLimitStatus:
    current_pnl: float
    daily_limit: float
    loss_amount: float
    loss_progress: float
    status: LimitStatus
    remaining_risk: float
    trades_today: int
    max_trades: int
    trade_progress: float
    risk_per_remaining_trade: float

    def to_dict(self) -> dict:
        d = asdict(self)
        d["status"] = self.status.value
        return {k: round(v, 2) if isinstance(v, float) else v for k, v in d.items()}


def classify(loss_progress: float) -> LimitStatus:
    if loss_progress >= 100:
        return LimitStatus.EXCEEDED
    if loss_progress >= 75:
        return LimitStatus.DANGER
    if loss_progress >= 50:
        return LimitStatus.WARNING
    return LimitStatus.SAFE


def daily_limit_status(current_pnl: float, daily_limit: float,
                       trades_today: int = 0, max_trades: int = 0) -> DailyLimitStatus:
    """Where today's P&L sits relative to the daily loss limit. Profits never use up the limit."""
    loss = min(0.0, current_pnl)
    progress = abs(loss) / daily_limit * 100 if daily_limit > 0 else 0.0
    remaining = daily_limit - abs(loss)
    trades_left = max_trades - trades_today
    per_trade = remaining / trades_left if trades_left > 0 and remaining > 0 else 0.0

    status = DailyLimitStatus(
        current_pnl=current_pnl,
        daily_limit=daily_limit,
        loss_amount=loss,
        loss_progress=progress,
        status=classify(progress),
        remaining_risk=max(0.0, remaining),
        trades_today=trades_today,
        max_trades=max_trades,
        trade_progress=trades_today / max_trades * 100 if max_trades > 0 else 0.0,
        risk_per_remaining_trade=per_trade,
    )
    if status.status == LimitStatus.EXCEEDED:
        logger.warning("daily_loss_limit_exceeded", pnl=current_pnl, limit=daily_limit)
    return status


def resolve_daily_limit(account_size: float, profile: Optional[Profile] = None) -> float:
    """Dollar daily loss limit: the profile value if set, else a percent of the account."""
    if profile is not None and profile.daily_loss_limit:
        return profile.daily_loss_limit
    return account_size * get_settings().daily_loss_limit_pct / 100


def resolve_weekly_limit(account_size: float, profile: Optional[Profile] = None) -> float:
    if profile is not None and profile.weekly_loss_limit:
        return profile.weekly_loss_limit
    return account_size * get_settings().weekly_loss_limit_pct / 100
