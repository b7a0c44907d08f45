"""EMA 交叉检测（可选趋势过滤 + RSI 区间过滤）。"""

from __future__ import annotations

from algo.factors.ema import ema
from algo.factors.rsi import rsi
from algo.factors.trend import slope_pct, trend_direction
from algo.strategy.base import MarketSnapshot, NoSignal, Signal, SignalDetector, SignalResult
from shared.models.models import Side


class EmaCrossDetector(SignalDetector):
    """快慢 EMA 交叉。

    Entry:
    - 金叉：fast 从 <= slow 变为 > slow → Long；死叉对称 → Short
    - 趋势过滤：Long 要求 slow[-1] > slow[-1-lookback]，Short 相反
    - RSI 过滤：Long 要求 RSI < overbought，Short 要求 RSI > oversold
    """

    name = "ema_cross"

    def __init__(
        self,
        fast: int = 9,
        slow: int = 21,
        trend_filter: bool = True,
        trend_lookback: int = 6,
        rsi_filter: bool = False,
        rsi_period: int = 14,
        overbought: float = 70.0,
        oversold: float = 30.0,
    ):
        if int(fast) <= 0 or int(slow) <= 0:
            raise ValueError("EMA periods must be > 0")
        if int(fast) >= int(slow):
            raise ValueError("fast EMA period must be < slow EMA period")
        self.fast = int(fast)
        self.slow = int(slow)
        self.trend_filter = bool(trend_filter)
        self.trend_lookback = int(trend_lookback)
        self.rsi_filter = bool(rsi_filter)
        self.rsi_period = int(rsi_period)
        self.overbought = float(overbought)
        self.oversold = float(oversold)

    @property
    def min_candles(self) -> int:
        need = max(self.slow, self.trend_lookback + 2 if self.trend_filter else 2)
        if self.rsi_filter:
            need = max(need, self.rsi_period + 1)
        return need

    def detect(self, snapshot: MarketSnapshot) -> SignalResult:
        self._require(snapshot.candles)
        closes = snapshot.closes
        fast = ema(closes, self.fast)
        slow = ema(closes, self.slow)

        if fast[-2] <= slow[-2] and fast[-1] > slow[-1]:
            side = Side.LONG
        elif fast[-2] >= slow[-2] and fast[-1] < slow[-1]:
            side = Side.SHORT
        else:
            return NoSignal("no_cross")

        meta = {"ema_fast": float(fast[-1]), "ema_slow": float(slow[-1])}

        if self.trend_filter:
            meta["slow_slope_pct"] = slope_pct(slow, self.trend_lookback)
            if trend_direction(slow, self.trend_lookback) != side.sign:
                return NoSignal("trend_reject")

        if self.rsi_filter:
            curr_rsi = float(rsi(closes, self.rsi_period)[-1])
            meta["rsi"] = curr_rsi
            if side is Side.LONG and curr_rsi >= self.overbought:
                return NoSignal("rsi_overbought")
            if side is Side.SHORT and curr_rsi <= self.oversold:
                return NoSignal("rsi_oversold")

        return Signal(side=side, reason=f"ema{self.fast}_{self.slow}_cross", metadata=meta)
