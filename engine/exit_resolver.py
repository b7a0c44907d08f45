"""TP/SL 离场判定（状态机：OPEN → {TP, SL}）。

按时间顺序扫描 ``timestamp >= opened_at`` 的 K 线，第一根触及 TP 或 SL 的 K 线决定离场：

- Long：``high >= TP`` → TP；否则 ``low <= SL`` → SL
- Short：``low <= TP`` → TP；否则 ``high >= SL`` → SL

同一根 K 线同时触及两者时固定先判 TP，不推断 K 线内部的真实先后。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from shared.models.models import Candle, Position, PositionStatus, Side


@dataclass(frozen=True)
class ExitDecision:
    reason: PositionStatus
    exit_price: float
    closed_at: int


@dataclass(frozen=True)
class ExitEvaluation:
    """一次评估的结果：decision 为 None 表示仍持仓，last_price 仅供监控。"""

    symbol: str
    decision: ExitDecision | None
    last_price: float | None = None
    candles_scanned: int = 0

    @property
    def is_closed(self) -> bool:
        return self.decision is not None


def check_candle(side: Side, take_profit: float, stop_loss: float, candle: Candle) -> ExitDecision | None:
    """单根 K 线判定（TP 优先）。"""
    if side is Side.LONG:
        if candle.high >= take_profit:
            return ExitDecision(PositionStatus.TP, take_profit, candle.timestamp)
        if candle.low <= stop_loss:
            return ExitDecision(PositionStatus.SL, stop_loss, candle.timestamp)
        return None
    if candle.low <= take_profit:
        return ExitDecision(PositionStatus.TP, take_profit, candle.timestamp)
    if candle.high >= stop_loss:
        return ExitDecision(PositionStatus.SL, stop_loss, candle.timestamp)
    return None


def resolve_exit(position: Position, candles: Iterable[Candle]) -> ExitDecision | None:
    ordered = sorted(
        (c for c in candles if c.timestamp >= position.opened_at),
        key=lambda c: c.timestamp,
    )
    for candle in ordered:
        decision = check_candle(position.side, position.take_profit, position.stop_loss, candle)
        if decision is not None:
            return decision
    return None


class ExitResolver:
    """对单个持仓做离场评估（不修改持仓，平仓由 ledger 负责）。"""

    def evaluate(
        self,
        position: Position,
        candles: Iterable[Candle],
        last_price: float | None = None,
    ) -> ExitEvaluation:
        candles = list(candles)
        decision = resolve_exit(position, candles)
        scanned = sum(1 for c in candles if c.timestamp >= position.opened_at)
        return ExitEvaluation(
            symbol=position.symbol,
            decision=decision,
            last_price=last_price,
            candles_scanned=scanned,
        )
