"""Sizing 结果与 TP/SL 参数。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from shared.errors import TradingError
from shared.models.models import Side

TpSlMode = Literal["atr", "pct"]


@dataclass(frozen=True)
class TpSlParams:
    """TP/SL 参数：mode=atr 为 ATR 倍数，mode=pct 为价格百分比。"""

    tp: float
    sl: float
    mode: TpSlMode = "atr"

    def __post_init__(self):
        if self.tp <= 0 or self.sl <= 0:
            raise ValueError("tp/sl must be > 0")
        if self.mode not in ("atr", "pct"):
            raise ValueError(f"Unknown tp/sl mode: {self.mode}")

    def levels(self, side: Side, price: float, atr: float) -> tuple[float, float]:
        """返回 (take_profit, stop_loss)。Long: TP 在上 SL 在下；Short 相反。"""
        if self.mode == "atr":
            tp_dist = atr * self.tp
            sl_dist = atr * self.sl
        else:
            tp_dist = price * self.tp / 100.0
            sl_dist = price * self.sl / 100.0
        return price + side.sign * tp_dist, price - side.sign * sl_dist


@dataclass(frozen=True)
class SizingDecision:
    """sizing 决策：接受（带参数）或拒绝（带原因）。"""

    accepted: bool
    symbol: str
    side: Side
    reason: str | None = None
    error: TradingError | None = None
    price: float = 0.0
    atr: float = 0.0
    risk_amount: float = 0.0
    stop_distance: float = 0.0
    size: float = 0.0
    notional: float = 0.0
    required_margin: float = 0.0
    commission_open: float = 0.0
    take_profit: float = 0.0
    stop_loss: float = 0.0
    clamped: bool = False

    @classmethod
    def reject(cls, symbol: str, side: Side, reason: str, error: TradingError | None = None, **values) -> "SizingDecision":
        return cls(accepted=False, symbol=symbol, side=side, reason=reason, error=error, **values)
