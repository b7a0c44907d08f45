"""RSI 阈值穿越检测（经典 RSI 或 Connors RSI）。"""

from __future__ import annotations

from algo.factors.connors import connors_rsi
from algo.factors.rsi import rsi
from algo.strategy.base import MarketSnapshot, NoSignal, Signal, SignalDetector, SignalResult
from shared.models.models import Side

_SOURCES = ("rsi", "connors")


class RsiCrossDetector(SignalDetector):
    """prev < min_rsi <= curr → Long；prev > max_rsi >= curr → Short。

    source="connors" 时用 Connors RSI（period 作为其价格 RSI 周期），
    prev 取去掉最新一根收盘价后的值。
    """

    name = "rsi_cross"

    def __init__(
        self,
        period: int = 14,
        min_rsi: float = 30.0,
        max_rsi: float = 70.0,
        source: str = "rsi",
        streak_period: int = 2,
        rank_period: int = 100,
    ):
        if float(min_rsi) >= float(max_rsi):
            raise ValueError("min_rsi must be < max_rsi")
        if source not in _SOURCES:
            raise ValueError(f"Unknown RSI source: {source!r} (expected one of {_SOURCES})")
        self.period = int(period)
        self.min_rsi = float(min_rsi)
        self.max_rsi = float(max_rsi)
        self.source = source
        self.streak_period = int(streak_period)
        self.rank_period = int(rank_period)

    @property
    def min_candles(self) -> int:
        # 需要两个 RSI 值
        if self.source == "connors":
            return max(self.rank_period + 3, self.period + 2, self.streak_period + 3)
        return self.period + 2

    def _prev_curr(self, closes) -> tuple[float, float]:
        if self.source == "connors":
            def crsi(values):
                return connors_rsi(values, self.period, self.streak_period, self.rank_period)

            return crsi(closes[:-1]), crsi(closes)
        values = rsi(closes, self.period)
        return float(values[-2]), float(values[-1])

    def detect(self, snapshot: MarketSnapshot) -> SignalResult:
        self._require(snapshot.candles)
        prev, curr = self._prev_curr(snapshot.closes)
        meta = {"rsi_prev": prev, "rsi": curr, "source": self.source}
        if prev < self.min_rsi <= curr:
            return Signal(side=Side.LONG, reason=f"{self.source}_cross_up", metadata=meta)
        if prev > self.max_rsi >= curr:
            return Signal(side=Side.SHORT, reason=f"{self.source}_cross_down", metadata=meta)
        return NoSignal("no_rsi_cross")
