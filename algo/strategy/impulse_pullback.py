"""Impulse → Pullback → Breakout 形态检测。"""

from __future__ import annotations

from algo.strategy.base import MarketSnapshot, NoSignal, Signal, SignalDetector, SignalResult
from shared.models.models import Side


class ImpulsePullbackDetector(SignalDetector):
    """冲击-回撤-突破。

    窗口为最近 lookback 根 K 线：最后一根是突破候选，之前的 K 线构成形态。
    四个条件必须同时满足，部分满足一律视为无信号：

    1. Impulse：窗口首根收盘到最新收盘的涨跌幅 |Δ%| >= impulse_pct，
       且最新成交量 >= 均量 * vol_multiplier（Δ% 的符号决定方向）
    2. Pullback：极值（多头取最高 high，空头取最低 low）之后的回撤幅度，
       占“极值 - 起点”的百分比落在 [pullback_min_pct, pullback_max_pct]
    3. Breakout 价格：最新收盘越过 extreme * (1 ± breakout_buffer)
    4. Breakout 量能：最新成交量 >= 均量 * breakout_vol_multiplier
    """

    name = "impulse_pullback"

    def __init__(
        self,
        lookback: int = 20,
        impulse_pct: float = 3.0,
        vol_multiplier: float = 1.5,
        pullback_min_pct: float = 20.0,
        pullback_max_pct: float = 60.0,
        breakout_buffer: float = 0.001,
        breakout_vol_multiplier: float = 1.2,
    ):
        if int(lookback) < 3:
            raise ValueError("lookback must be >= 3")
        if float(pullback_min_pct) > float(pullback_max_pct):
            raise ValueError("pullback_min_pct must be <= pullback_max_pct")
        self.lookback = int(lookback)
        self.impulse_pct = float(impulse_pct)
        self.vol_multiplier = float(vol_multiplier)
        self.pullback_min_pct = float(pullback_min_pct)
        self.pullback_max_pct = float(pullback_max_pct)
        self.breakout_buffer = float(breakout_buffer)
        self.breakout_vol_multiplier = float(breakout_vol_multiplier)

    @property
    def min_candles(self) -> int:
        return self.lookback

    def detect(self, snapshot: MarketSnapshot) -> SignalResult:
        self._require(snapshot.candles)
        window = list(snapshot.candles[-self.lookback:])
        prior, latest = window[:-1], window[-1]
        start = window[0].close
        if start <= 0:
            return NoSignal("bad_price")

        change_pct = (latest.close - start) / start * 100.0
        avg_volume = sum(c.volume for c in prior) / len(prior)
        if abs(change_pct) < self.impulse_pct or latest.volume < avg_volume * self.vol_multiplier:
            return NoSignal("no_impulse")
        side = Side.LONG if change_pct > 0 else Side.SHORT

        if side is Side.LONG:
            ext_idx = max(range(len(prior)), key=lambda i: prior[i].high)
            extreme = prior[ext_idx].high
            after = prior[ext_idx + 1:]
            pullback = min((c.low for c in after), default=extreme)
            leg = extreme - start
            retrace = extreme - pullback
        else:
            ext_idx = min(range(len(prior)), key=lambda i: prior[i].low)
            extreme = prior[ext_idx].low
            after = prior[ext_idx + 1:]
            pullback = max((c.high for c in after), default=extreme)
            leg = start - extreme
            retrace = pullback - extreme

        if leg <= 0:
            return NoSignal("no_impulse_leg")
        retrace_pct = retrace / leg * 100.0
        if not (self.pullback_min_pct <= retrace_pct <= self.pullback_max_pct):
            return NoSignal("pullback_out_of_band")

        if side is Side.LONG:
            broke_out = latest.close > extreme * (1.0 + self.breakout_buffer)
        else:
            broke_out = latest.close < extreme * (1.0 - self.breakout_buffer)
        if not broke_out:
            return NoSignal("no_breakout")
        if latest.volume < avg_volume * self.breakout_vol_multiplier:
            return NoSignal("breakout_volume_low")

        return Signal(
            side=side,
            reason="impulse_pullback_breakout",
            metadata={
                "change_pct": change_pct,
                "extreme": extreme,
                "retrace_pct": retrace_pct,
                "avg_volume": avg_volume,
            },
        )
