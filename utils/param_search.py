"""TP/SL 参数搜索（Grid Search + 顺序回放）。

两段式：
1. `precompute_signals`：检测器在每根 K 线的前缀上只跑一次（与 TP/SL 无关，所有网格共享）；
2. `replay`：对每组 TP/SL 用同一套 sizer / ledger / 离场判定顺序回放（单品种单持仓）。
"""

from __future__ import annotations

import itertools
from dataclasses import asdict, dataclass
from typing import Iterable, List, Sequence

import pandas as pd

from algo.factors.atr import AtrSeries, atr
from algo.risk.manager import RiskManager
from algo.sizing.atr_risk import AtrRiskSizer
from algo.sizing.base import TpSlMode, TpSlParams
from algo.strategy.base import MarketSnapshot, Signal, SignalDetector
from broker.paper_ledger import PaperLedger
from engine.exit_resolver import check_candle
from market.clock import FixedClock
from shared.config.schema import RiskConfig
from shared.errors import InsufficientData
from shared.models.models import Candle, PositionStatus

REPLAY_SYMBOL = "REPLAY"


@dataclass(frozen=True)
class ReplayResult:
    """一次回放的统计。"""
    net_profit: float
    trades: int
    wins: int
    win_rate: float
    final_balance: float


@dataclass(frozen=True)
class SweepResult:
    """一组 TP/SL 参数的回放结果。"""
    symbol: str
    params: TpSlParams
    result: ReplayResult

    @property
    def net_profit(self) -> float:
        return self.result.net_profit

    @property
    def win_rate(self) -> float:
        return self.result.win_rate

    def as_row(self) -> dict:
        return {
            "symbol": self.symbol,
            "tp": self.params.tp,
            "sl": self.params.sl,
            "mode": self.params.mode,
            **asdict(self.result),
        }


def _product(tp_values: Iterable[float], sl_values: Iterable[float], mode: TpSlMode) -> List[TpSlParams]:
    return [TpSlParams(tp=float(tp), sl=float(sl), mode=mode) for tp, sl in itertools.product(tp_values, sl_values)]


def precompute_signals(
    candles: Sequence[Candle],
    detector: SignalDetector,
    warmup: int = 50,
    symbol: str = REPLAY_SYMBOL,
) -> list[Signal | None]:
    """逐 bar 检测，返回与 candles 等长的列表（无信号/数据不足为 None）。

    第 i 个元素只用 ``candles[:i+1]`` 计算，不会看到未来数据。
    """
    start = max(int(warmup), detector.min_candles)
    signals: list[Signal | None] = [None] * len(candles)
    for i in range(start - 1, len(candles)):
        snapshot = MarketSnapshot(symbol=symbol, candles=candles[: i + 1])
        try:
            result = detector.detect(snapshot)
        except InsufficientData:
            continue
        if isinstance(result, Signal):
            signals[i] = result
    return signals


def replay(
    candles: Sequence[Candle],
    signals: Sequence[Signal | None],
    tp_sl: TpSlParams,
    risk_cfg: RiskConfig,
    initial_balance: float,
    atr_period: int | None = None,
    symbol: str = REPLAY_SYMBOL,
) -> ReplayResult:
    """单持仓顺序回放。

    - 信号 bar 的收盘价开仓，开仓时间为该 bar 的 timestamp；
    - 之后每根 K 线做 TP/SL 判定（TP 优先），平仓后同一根 bar 的信号可再开仓；
    - 回放结束仍持仓时按最后收盘价以 CLOSED 平仓。
    """
    if len(signals) != len(candles):
        raise ValueError("signals must align with candles")
    if not candles:
        return ReplayResult(0.0, 0, 0, 0.0, float(initial_balance))

    period = int(atr_period or risk_cfg.atr_period)
    atr_series: AtrSeries | None
    try:
        atr_series = atr(candles, period)
    except InsufficientData:
        atr_series = None

    clock = FixedClock(candles[0].timestamp)
    ledger = PaperLedger(initial_balance, risk_cfg, clock=clock, suppress_warnings=True)
    sizer = AtrRiskSizer(risk_cfg, RiskManager(risk_cfg, suppress_warnings=True))

    for i, candle in enumerate(candles):
        clock.set(candle.timestamp)
        pos = ledger.get_position(symbol)
        if pos is not None:
            if candle.timestamp <= pos.opened_at:
                continue
            decision = check_candle(pos.side, pos.take_profit, pos.stop_loss, candle)
            if decision is None:
                continue
            ledger.close(symbol, decision.exit_price, decision.reason, closed_at=decision.closed_at)

        sig = signals[i]
        if sig is None or atr_series is None or i not in atr_series:
            continue
        sized = sizer.size(
            symbol=symbol,
            side=sig.side,
            balance=ledger.balance,
            price=candle.close,
            atr=atr_series[i],
            open_exposure=ledger.open_exposure(),
            open_positions=ledger.open_count,
            tp_sl=tp_sl,
        )
        if not sized.accepted:
            continue
        ledger.open(
            symbol,
            sized.side,
            sized.price,
            sized.size,
            sized.take_profit,
            sized.stop_loss,
            sized.required_margin,
            sized.commission_open,
            opened_at=candle.timestamp,
        )

    last = candles[-1]
    if ledger.has_position(symbol):
        ledger.close(symbol, last.close, PositionStatus.CLOSED, closed_at=last.timestamp)

    state = ledger.account_state()
    return ReplayResult(
        net_profit=state.total_pnl,
        trades=state.total_closed,
        wins=state.win_count,
        win_rate=state.win_rate,
        final_balance=state.balance,
    )


def grid_search(
    candles: Sequence[Candle],
    detector: SignalDetector,
    tp_values: Iterable[float],
    sl_values: Iterable[float],
    mode: TpSlMode = "atr",
    *,
    risk_cfg: RiskConfig | None = None,
    initial_balance: float = 1000.0,
    warmup: int = 50,
    atr_period: int | None = None,
    symbol: str = REPLAY_SYMBOL,
    signals: Sequence[Signal | None] | None = None,
) -> List[SweepResult]:
    """网格搜索。

    Parameters
    ----------
    candles:
        历史 K 线（升序）。
    detector:
        信号检测器（信号只算一次）。
    tp_values, sl_values:
        mode=atr 时为 ATR 倍数，mode=pct 时为价格百分比。
    signals:
        已预计算的信号；None 时内部调用 `precompute_signals`。

    Returns
    -------
    list[SweepResult]
        按 net_profit 降序、win_rate 降序排列。
    """
    risk_cfg = risk_cfg or RiskConfig()
    if signals is None:
        signals = precompute_signals(candles, detector, warmup=warmup, symbol=symbol)

    results: list[SweepResult] = []
    for params in _product(tp_values, sl_values, mode):
        res = replay(candles, signals, params, risk_cfg, initial_balance, atr_period=atr_period, symbol=symbol)
        results.append(SweepResult(symbol=symbol, params=params, result=res))
    results.sort(key=lambda r: (r.net_profit, r.win_rate), reverse=True)
    return results


def results_frame(results: Iterable[SweepResult]) -> pd.DataFrame:
    """SweepResult 列表 -> DataFrame（保持输入顺序）。"""
    rows = [r.as_row() for r in results]
    columns = ["symbol", "tp", "sl", "mode", "net_profit", "trades", "wins", "win_rate", "final_balance"]
    return pd.DataFrame(rows, columns=columns)
