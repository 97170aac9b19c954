"""
Journal Data Models — validated record shapes
=============================================

Every row that enters or leaves the store passes through one of these
pydantic models. Internal code only ever sees validated instances.

  Trade            — one round-trip (or still open) trade
  Account          — broker account with starting / current balance
  Setup            — named strategy tag
  DailyJournal     — one per user per calendar date
  Profile          — identity, privacy flags, risk limits, XP
  UserRule / UserRuleCheck — discipline rules and daily check-offs
  TradeScreenshot / JournalScreenshot — uploaded chart images
  ChallengeCompletion — a claimed challenge for one period
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from tradelog.utils.exceptions import ValidationError


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now()


# ── Enums ────────────────────────────────────────────────────

class TradeSide(str, Enum):
    LONG = "long"
    SHORT = "short"


class TradeStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class ScreenshotType(str, Enum):
    PRE_MARKET = "pre-market"
    ENTRY = "entry"
    EXIT = "exit"
    ANALYSIS = "analysis"
    OTHER = "other"


class LeagueTier(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"
    DIAMOND = "diamond"


def _check_rating(value: Optional[int]) -> Optional[int]:
    if value is not None and not 1 <= value <= 5:
        raise ValueError("rating must be between 1 and 5")
    return value


# ── Base ─────────────────────────────────────────────────────

class Record(BaseModel):
    """Common behaviour for stored records."""

    model_config = {"extra": "ignore", "validate_assignment": True, "use_enum_values": False}

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict[str, Any]):
        """Validate a raw mapping, raising the domain ValidationError."""
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            loc = ".".join(str(p) for p in first.get("loc", ()))
            raise ValidationError(f"Invalid {cls.__name__}: {first.get('msg', str(e))}",
                                  field=loc or None) from e


# ── Trades ───────────────────────────────────────────────────

class Trade(Record):
    id: str = Field(default_factory=_new_id)
    user_id: str
    account_id: Optional[str] = None
    instrument_id: Optional[str] = None
    setup_id: Optional[str] = None

    symbol: str
    side: TradeSide = TradeSide.LONG

    entry_date: datetime
    entry_price: float
    entry_contracts: float = 1
    exit_date: Optional[datetime] = None
    exit_price: Optional[float] = None
    exit_contracts: Optional[float] = None

    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    planned_risk: Optional[float] = None

    gross_pnl: Optional[float] = None
    commission: float = 0.0
    fees: float = 0.0
    net_pnl: Optional[float] = None
    r_multiple: Optional[float] = None

    emotions: list[str] = Field(default_factory=list)
    mistakes: list[str] = Field(default_factory=list)
    entry_rating: Optional[int] = None
    exit_rating: Optional[int] = None
    management_rating: Optional[int] = None
    session: Optional[str] = None
    notes: Optional[str] = None
    lessons: Optional[str] = None

    status: TradeStatus = TradeStatus.OPEN
    is_shared: bool = False
    import_source: Optional[str] = None
    external_id: Optional[str] = None

    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @field_validator("symbol")
    @classmethod
    def _symbol_required(cls, v: str) -> str:
        v = v.strip().upper()
        if not v:
            raise ValueError("symbol is required")
        return v

    @field_validator("entry_contracts", "exit_contracts")
    @classmethod
    def _positive_size(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("contracts must be positive")
        return v

    @field_validator("entry_price", "exit_price", "commission", "fees")
    @classmethod
    def _non_negative(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator("entry_rating", "exit_rating", "management_rating")
    @classmethod
    def _rating(cls, v: Optional[int]) -> Optional[int]:
        return _check_rating(v)

    @property
    def is_closed(self) -> bool:
        return self.status == TradeStatus.CLOSED

    @property
    def day_date(self) -> datetime:
        """Exit date when present, entry date otherwise."""
        return self.exit_date or self.entry_date

    @property
    def is_reviewed(self) -> bool:
        return any(r is not None for r in (self.entry_rating, self.exit_rating, self.management_rating))


class Account(Record):
    id: str = Field(default_factory=_new_id)
    user_id: str
    name: str
    broker: Optional[str] = None
    account_number: Optional[str] = None
    starting_balance: float = 0.0
    current_balance: float = 0.0
    is_default: bool = False
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @field_validator("name")
    @classmethod
    def _name_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("account name is required")
        return v.strip()


class Setup(Record):
    id: str = Field(default_factory=_new_id)
    user_id: str
    name: str
    description: Optional[str] = None
    rules: list[str] = Field(default_factory=list)
    timeframes: list[str] = Field(default_factory=list)
    color: str = "#3b82f6"
    is_active: bool = True
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @field_validator("name")
    @classmethod
    def _name_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("setup name is required")
        return v.strip()


# ── Journal ──────────────────────────────────────────────────

class DailyJournal(Record):
    id: str = Field(default_factory=_new_id)
    user_id: str
    date: date

    pre_market_notes: Optional[str] = None
    market_bias: Optional[str] = None
    key_levels: Optional[str] = None
    goals: list[str] = Field(default_factory=list)
    max_loss_limit: Optional[float] = None
    max_trades_limit: Optional[int] = None

    post_market_notes: Optional[str] = None
    what_went_well: list[str] = Field(default_factory=list)
    mistakes_made: list[str] = Field(default_factory=list)
    lessons_learned: Optional[str] = None

    mood_rating: Optional[int] = None
    focus_rating: Optional[int] = None
    discipline_rating: Optional[int] = None
    execution_rating: Optional[int] = None

    weekly_review_notes: Optional[str] = None
    weekly_wins: Optional[str] = None
    weekly_improvements: Optional[str] = None
    next_week_goals: list[str] = Field(default_factory=list)
    weekly_rating: Optional[int] = None

    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @field_validator("mood_rating", "focus_rating", "discipline_rating",
                     "execution_rating", "weekly_rating")
    @classmethod
    def _rating(cls, v: Optional[int]) -> Optional[int]:
        return _check_rating(v)

    @property
    def has_weekly_review(self) -> bool:
        return any(_filled(v) for v in (self.weekly_review_notes, self.weekly_wins,
                                        self.weekly_improvements))

    @property
    def has_content(self) -> bool:
        texts = (self.pre_market_notes, self.post_market_notes, self.lessons_learned,
                 self.weekly_review_notes, self.weekly_wins, self.weekly_improvements)
        if any(_filled(t) for t in texts):
            return True
        if self.goals or self.what_went_well or self.mistakes_made:
            return True
        ratings = (self.mood_rating, self.focus_rating, self.discipline_rating, self.execution_rating)
        return any(r is not None for r in ratings)


def _filled(text: Optional[str]) -> bool:
    return bool(text and text.strip())


# ── Profile ──────────────────────────────────────────────────

class Profile(Record):
    id: str = Field(default_factory=_new_id)
    email: str
    display_name: Optional[str] = None
    username: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    timezone: str = "America/New_York"

    default_risk_per_trade: Optional[float] = None
    daily_loss_limit: Optional[float] = None
    weekly_loss_limit: Optional[float] = None
    account_size: Optional[float] = None

    is_public: bool = False
    show_stats: bool = True
    anonymous_mode: bool = False
    total_xp: int = 0

    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @field_validator("username")
    @classmethod
    def _username(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().lower()
        if not v:
            return None
        if not all(c.isalnum() or c == "_" for c in v) or not 3 <= len(v) <= 30:
            raise ValueError("username must be 3-30 letters, digits or underscores")
        return v

    @field_validator("total_xp")
    @classmethod
    def _xp(cls, v: int) -> int:
        if v < 0:
            raise ValueError("total_xp must not be negative")
        return v


# ── Discipline ───────────────────────────────────────────────

RULE_CATEGORIES = ("risk", "discipline", "process", "mindset", "other")


class UserRule(Record):
    id: str = Field(default_factory=_new_id)
    user_id: str
    name: str
    description: Optional[str] = None
    category: str = "other"
    is_active: bool = True
    sort_order: int = 0
    created_at: datetime = Field(default_factory=_now)

    @field_validator("category")
    @classmethod
    def _category(cls, v: str) -> str:
        if v not in RULE_CATEGORIES:
            raise ValueError(f"category must be one of {', '.join(RULE_CATEGORIES)}")
        return v


class UserRuleCheck(Record):
    id: str = Field(default_factory=_new_id)
    user_id: str
    rule_id: str
    check_date: date
    followed: bool = True
    created_at: datetime = Field(default_factory=_now)


# ── Media & gamification ─────────────────────────────────────

class TradeScreenshot(Record):
    id: str = Field(default_factory=_new_id)
    user_id: str
    trade_id: str
    file_path: str
    file_name: str
    file_size: int
    screenshot_type: ScreenshotType = ScreenshotType.OTHER
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)


class JournalScreenshot(Record):
    id: str = Field(default_factory=_new_id)
    user_id: str
    journal_date: date
    file_path: str
    file_name: str
    file_size: int
    trade_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)


class ChallengeCompletion(Record):
    id: str = Field(default_factory=_new_id)
    user_id: str
    challenge_id: str
    period_key: str
    xp_earned: int = 0
    completed_at: datetime = Field(default_factory=_now)


class ImportHistory(Record):
    id: str = Field(default_factory=_new_id)
    user_id: str
    file_name: str
    file_size: int = 0
    trades_imported: int = 0
    trades_skipped: int = 0
    status: str = "completed"
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)

    @model_validator(mode="after")
    def _status_known(self) -> "ImportHistory":
        if self.status not in ("pending", "processing", "completed", "failed"):
            raise ValueError(f"unknown import status {self.status}")
        return self
