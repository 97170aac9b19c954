from __future__ import annotations

import math
from dataclasses import dataclass, asdict
from typing import Optional

from tradelog.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class PositionSize:
    dollar_risk: float = 0.0
    risk_per_unit: float = 0.0
    units: int = 0
    actual_risk: float = 0.0
    actual_risk_percent: float = 0.0
    position_value: Optional[float] = None
    is_over_risk: bool = False
    has_no_position: bool = False

    def to_dict(self) -> dict:
        d = asdict(self)
        return {k: round(v, 2) if isinstance(v, float) else v for k, v in d.items()}


def dollar_risk(account_size: float, risk_percent: float) -> float:
    if account_size <= 0 or risk_percent <= 0:
        return 0.0
    return account_size * risk_percent / 100


def size_position(
    account_size: float,
    risk_percent: float,
    stop_ticks: Optional[float] = None,
    tick_value: Optional[float] = None,
    entry_price: Optional[float] = None,
    stop_price: Optional[float] = None,
    point_value: float = 1.0,
) -> PositionSize:
    """Fixed-fractional sizing.

    Per-unit risk is either ``stop_ticks x tick_value`` (futures) or
    ``|entry - stop| x point_value`` (shares / points). Zero units is a
    valid outcome when a single unit already risks more than allowed.
    """
    risk = dollar_risk(account_size, risk_percent)

    if stop_ticks is not None and tick_value is not None:
        per_unit = stop_ticks * tick_value
    elif entry_price is not None and stop_price is not None:
        per_unit = abs(entry_price - stop_price) * point_value
    else:
        raise ValueError("size_position needs stop_ticks and tick_value, or entry_price and stop_price")

    units = math.floor(risk / per_unit) if per_unit > 0 else 0
    actual = units * per_unit
    actual_pct = actual / account_size * 100 if account_size > 0 else 0.0

    result = PositionSize(
        dollar_risk=risk,
        risk_per_unit=per_unit,
        units=units,
        actual_risk=actual,
        actual_risk_percent=actual_pct,
        position_value=units * entry_price if entry_price is not None else None,
        is_over_risk=actual_pct > risk_percent,
        has_no_position=units == 0 and risk > 0,
    )
    if result.has_no_position:
        logger.debug("position_size_zero", dollar_risk=risk, risk_per_unit=per_unit)
    return result
