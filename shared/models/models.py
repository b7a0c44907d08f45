"""核心数据结构：Candle/Side/Position/ClosedTrade/AccountState/TradeEvent。"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

import pandas as pd

CANDLE_COLUMNS = ["timestamp", "open", "high", "low", "close", "volume"]


@dataclass(frozen=True)
class Candle:
    """K 线数据（timestamp 为 unix 秒，按时间升序排列）。"""
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


class Side(Enum):
    """持仓方向（封闭枚举，非法值只会在构造时失败）。"""

    LONG = "long"
    SHORT = "short"

    @classmethod
    def parse(cls, value: "Side | str") -> "Side":
        if isinstance(value, Side):
            return value
        key = str(value).strip().lower()
        if key in {"long", "buy"}:
            return cls.LONG
        if key in {"short", "sell"}:
            return cls.SHORT
        raise ValueError(f"Invalid side: {value!r}")

    @property
    def sign(self) -> int:
        return 1 if self is Side.LONG else -1


class PositionStatus(Enum):
    """持仓状态：OPEN → {TP, SL, CLOSED}（终态）。"""

    OPEN = "OPEN"
    TP = "TP"
    SL = "SL"
    CLOSED = "CLOSED"

    @classmethod
    def from_reason(cls, reason: "PositionStatus | str") -> "PositionStatus":
        if isinstance(reason, PositionStatus):
            return reason
        key = str(reason).strip().upper()
        if key == "TP":
            return cls.TP
        if key == "SL":
            return cls.SL
        if key == "OPEN":
            return cls.OPEN
        return cls.CLOSED


@dataclass
class Position:
    """持仓（仅由 ledger 创建/修改）。"""
    symbol: str
    side: Side
    entry_price: float
    size: float
    take_profit: float
    stop_loss: float
    opened_at: int
    notional: float
    reserved_margin: float
    commission_open: float
    status: PositionStatus = PositionStatus.OPEN
    commission_close: float = 0.0
    exit_price: float | None = None
    pnl: float | None = None
    closed_at: int | None = None


@dataclass(frozen=True)
class ClosedTrade:
    """已平仓交易的归档记录。"""
    symbol: str
    side: Side
    entry_price: float
    exit_price: float
    size: float
    raw_pnl: float
    net_pnl: float
    commission_open: float
    commission_close: float
    reason: PositionStatus
    opened_at: int
    closed_at: int

    @property
    def is_win(self) -> bool:
        return self.reason is PositionStatus.TP


@dataclass(frozen=True)
class AccountState:
    """账户快照。"""
    balance: float
    total_pnl: float
    total_closed: int
    win_count: int
    per_symbol_totals: dict[str, int] = field(default_factory=dict)
    per_symbol_wins: dict[str, int] = field(default_factory=dict)

    @property
    def win_rate(self) -> float:
        return self.win_count / self.total_closed if self.total_closed else 0.0


class TradeEventKind(Enum):
    OPEN = "open"
    CLOSE = "close"
    MONITOR = "monitor"
    REJECT = "reject"
    ERROR = "error"


@dataclass(frozen=True)
class TradeEvent:
    """结构化交易事件，由外部 sink 负责落地（日志/CSV）。"""
    kind: TradeEventKind
    symbol: str
    ts: int
    payload: dict[str, Any] = field(default_factory=dict)


def candles_to_frame(candles: Iterable[Candle]) -> pd.DataFrame:
    """Candle 列表 -> 标准 K 线 DataFrame（列顺序同 CANDLE_COLUMNS）。"""
    rows = [(c.timestamp, c.open, c.high, c.low, c.close, c.volume) for c in candles]
    df = pd.DataFrame(rows, columns=CANDLE_COLUMNS)
    return df.astype({"timestamp": "int64"}) if not df.empty else df


def frame_to_candles(df: pd.DataFrame) -> list[Candle]:
    """DataFrame -> Candle 列表（按 timestamp 升序、去重）。"""
    if df.empty:
        return []
    df = df.drop_duplicates(subset="timestamp", keep="last").sort_values("timestamp")
    return [
        Candle(
            timestamp=int(row.timestamp),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in df.itertuples(index=False)
    ]
