"""多周期确认：基础检测器给方向，高周期/工作周期趋势 + K 线实体打分。"""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from algo.factors.ema import ema
from algo.strategy.base import MarketSnapshot, NoSignal, Signal, SignalDetector, SignalResult
from algo.strategy.ema_cross import EmaCrossDetector
from shared.models.models import Candle, Side


class MultiTimeframeDetector(SignalDetector):
    """score ∈ {0,1,2,3}，score >= min_score 才接受。

    - (a) 高周期 EMA(fast) vs EMA(slow) 与候选方向一致
    - (b) 工作周期 EMA(fast) vs EMA(slow) 与候选方向一致
    - (c) 最后一根 K 线实体方向一致

    高周期缺失或长度不足 slow 时 (a) 记 0 分。
    """

    name = "multi_timeframe"

    def __init__(
        self,
        base: SignalDetector | Mapping[str, Any] | None = None,
        fast: int = 20,
        slow: int = 50,
        min_score: int = 2,
    ):
        if base is None:
            base = EmaCrossDetector()
        elif isinstance(base, Mapping):
            from algo.strategy.registry import build_detector

            base = build_detector(base)
        if not 0 <= int(min_score) <= 3:
            raise ValueError("min_score must be within [0, 3]")
        self.base = base
        self.fast = int(fast)
        self.slow = int(slow)
        self.min_score = int(min_score)

    @property
    def min_candles(self) -> int:
        return self.base.min_candles

    def _trend_agrees(self, candles: Sequence[Candle] | None, side: Side) -> bool:
        if not candles or len(candles) < self.slow:
            return False
        closes = [c.close for c in candles]
        fast = ema(closes, self.fast)[-1]
        slow = ema(closes, self.slow)[-1]
        return bool(fast > slow) if side is Side.LONG else bool(fast < slow)

    def detect(self, snapshot: MarketSnapshot) -> SignalResult:
        candidate = self.base.detect(snapshot)
        if isinstance(candidate, NoSignal):
            return candidate
        side = candidate.side

        last = snapshot.candles[-1]
        components = {
            "higher_tf": self._trend_agrees(snapshot.higher_candles, side),
            "working_tf": self._trend_agrees(snapshot.candles, side),
            "body": last.close > last.open if side is Side.LONG else last.close < last.open,
        }
        score = sum(1 for ok in components.values() if ok)
        if score < self.min_score:
            return NoSignal(f"mtf_score_{score}")
        return Signal(
            side=side,
            confidence=score / 3.0,
            reason=f"mtf_{candidate.reason}",
            metadata={**candidate.metadata, "score": score, **components},
        )
