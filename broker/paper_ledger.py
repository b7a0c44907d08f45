"""纸面持仓账本（PaperLedger）。

- 唯一持有余额 / 持仓 map / 累计 PnL / 胜负计数的对象；
- 每个品种最多一个持仓（不加仓、不对冲）；
- open/close 在同一把锁内完成，余额只在这两处变化。

守恒关系：``balance + Σ reserved_margin(open) == initial_balance + total_pnl``。
"""

from __future__ import annotations

import threading
from collections import Counter
from typing import Iterable, Mapping

from market.clock import Clock, SystemClock
from shared.config.schema import RiskConfig
from shared.models.models import (
    AccountState,
    ClosedTrade,
    Position,
    PositionStatus,
    Side,
    TradeEvent,
    TradeEventKind,
)
from shared.utils.logging import setup_logger
from shared.utils.trade_logger import TradeEventSink
from utils.pnl import commission, compute_unrealized_pnl, raw_pnl

# can_open_new 的最低余额（计价货币 1 个单位）
MIN_BALANCE = 1.0


class PaperLedger:
    """纸面账本。

    Parameters
    ----------
    initial_balance:
        初始余额。
    risk_cfg:
        提供 commission_rate / max_concurrent_positions / exposure_mode。
    universe:
        允许开仓的品种集合；None 表示不限制。
    sink:
        交易事件出口（OPEN/CLOSE/REJECT）。
    clock:
        时间戳来源。
    suppress_warnings:
        回放/扫参时关闭拒单 warning。
    """

    def __init__(
        self,
        initial_balance: float,
        risk_cfg: RiskConfig | None = None,
        *,
        universe: Iterable[str] | None = None,
        sink: TradeEventSink | None = None,
        clock: Clock | None = None,
        suppress_warnings: bool = False,
    ):
        if initial_balance < 0:
            raise ValueError("initial_balance must be >= 0")
        self.cfg = risk_cfg or RiskConfig()
        self.initial_balance = float(initial_balance)
        self.universe = frozenset(universe) if universe is not None else None
        self.sink = sink
        self.clock = clock or SystemClock()
        self.suppress_warnings = suppress_warnings
        self.logger = setup_logger("paper-ledger")

        self._lock = threading.RLock()
        self._positions: dict[str, Position] = {}
        self._balance = float(initial_balance)
        self._total_pnl = 0.0
        self._total_closed = 0
        self._win_count = 0
        self._per_symbol_totals: Counter[str] = Counter()
        self._per_symbol_wins: Counter[str] = Counter()
        self.closed_trades: list[ClosedTrade] = []

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------
    @property
    def balance(self) -> float:
        return self._balance

    @property
    def total_pnl(self) -> float:
        return self._total_pnl

    @property
    def commission_rate(self) -> float:
        return self.cfg.commission_rate

    def get_position(self, symbol: str) -> Position | None:
        with self._lock:
            return self._positions.get(symbol)

    def has_position(self, symbol: str) -> bool:
        with self._lock:
            return symbol in self._positions

    @property
    def positions(self) -> dict[str, Position]:
        with self._lock:
            return dict(self._positions)

    @property
    def open_count(self) -> int:
        with self._lock:
            return len(self._positions)

    def reserved_margin_total(self) -> float:
        with self._lock:
            return sum(p.reserved_margin for p in self._positions.values())

    def open_exposure(self, mode: str | None = None) -> float:
        """所有持仓的敞口：margin（保证金）或 notional（名义）。"""
        mode = mode or self.cfg.exposure_mode
        with self._lock:
            if mode == "notional":
                return sum(p.notional for p in self._positions.values())
            return sum(p.reserved_margin for p in self._positions.values())

    def account_state(self) -> AccountState:
        with self._lock:
            return AccountState(
                balance=self._balance,
                total_pnl=self._total_pnl,
                total_closed=self._total_closed,
                win_count=self._win_count,
                per_symbol_totals=dict(self._per_symbol_totals),
                per_symbol_wins=dict(self._per_symbol_wins),
            )

    def equity(self, last_prices: Mapping[str, float] | None = None) -> float:
        """余额 + 占用保证金 + 未实现盈亏。"""
        with self._lock:
            unrealized = compute_unrealized_pnl(self._positions, last_prices or {})
            return self._balance + self.reserved_margin_total() + unrealized

    def can_open_new(self, symbol: str) -> bool:
        with self._lock:
            return (
                symbol not in self._positions
                and len(self._positions) < self.cfg.max_concurrent_positions
                and self._balance >= MIN_BALANCE
            )

    # ------------------------------------------------------------------
    # 变更
    # ------------------------------------------------------------------
    def open(
        self,
        symbol: str,
        side: Side | str,
        entry_price: float,
        size: float,
        take_profit: float,
        stop_loss: float,
        reserved_margin: float,
        commission_open: float,
        opened_at: int | None = None,
    ) -> Position | None:
        """开仓；拒绝时返回 None 且不改变任何状态。"""
        side = Side.parse(side)
        with self._lock:
            reject = None
            if symbol in self._positions:
                reject = "position_exists"
            elif self.universe is not None and symbol not in self.universe:
                reject = "symbol_not_in_universe"
            elif entry_price <= 0 or size <= 0:
                reject = "invalid_price_or_size"
            elif self._balance < reserved_margin + commission_open:
                reject = "insufficient_balance"
            if reject is not None:
                self._reject(symbol, reject)
                return None

            ts = int(opened_at) if opened_at is not None else self.clock.now()
            pos = Position(
                symbol=symbol,
                side=side,
                entry_price=float(entry_price),
                size=float(size),
                take_profit=float(take_profit),
                stop_loss=float(stop_loss),
                opened_at=ts,
                notional=float(entry_price) * float(size),
                reserved_margin=float(reserved_margin),
                commission_open=float(commission_open),
            )
            self._balance -= pos.reserved_margin
            self._positions[symbol] = pos
            self._emit(
                TradeEventKind.OPEN,
                symbol,
                ts,
                side=side.value,
                entry_price=pos.entry_price,
                size=pos.size,
                take_profit=pos.take_profit,
                stop_loss=pos.stop_loss,
                reserved_margin=pos.reserved_margin,
                commission_open=pos.commission_open,
                balance=self._balance,
            )
            return pos

    def close(
        self,
        symbol: str,
        exit_price: float,
        reason: PositionStatus | str,
        closed_at: int | None = None,
    ) -> ClosedTrade | None:
        """平仓；无持仓时静默返回 None。"""
        status = PositionStatus.from_reason(reason)
        if status is PositionStatus.OPEN:
            raise ValueError("close reason cannot be OPEN")
        with self._lock:
            pos = self._positions.get(symbol)
            if pos is None:
                return None

            ts = int(closed_at) if closed_at is not None else self.clock.now()
            gross = raw_pnl(pos.side, pos.entry_price, exit_price, pos.size)
            commission_close = commission(exit_price, pos.size, self.commission_rate)
            net = gross - (pos.commission_open + commission_close)

            pos.status = status
            pos.exit_price = float(exit_price)
            pos.commission_close = commission_close
            pos.pnl = net
            pos.closed_at = ts

            self._balance += pos.reserved_margin + net
            self._total_pnl += net
            self._total_closed += 1
            self._per_symbol_totals[symbol] += 1
            is_win = status is PositionStatus.TP
            if is_win:
                self._win_count += 1
                self._per_symbol_wins[symbol] += 1
            del self._positions[symbol]

            trade = ClosedTrade(
                symbol=symbol,
                side=pos.side,
                entry_price=pos.entry_price,
                exit_price=pos.exit_price,
                size=pos.size,
                raw_pnl=gross,
                net_pnl=net,
                commission_open=pos.commission_open,
                commission_close=commission_close,
                reason=status,
                opened_at=pos.opened_at,
                closed_at=ts,
            )
            self.closed_trades.append(trade)
            self._emit(
                TradeEventKind.CLOSE,
                symbol,
                ts,
                side=pos.side.value,
                entry_price=pos.entry_price,
                exit_price=pos.exit_price,
                size=pos.size,
                reason=status.value,
                raw_pnl=gross,
                net_pnl=net,
                win=is_win,
                balance=self._balance,
                total_pnl=self._total_pnl,
                win_rate=self._win_count / self._total_closed,
            )
            return trade

    def _reject(self, symbol: str, reason: str) -> None:
        if not self.suppress_warnings:
            self.logger.warning("Open rejected for %s: %s", symbol, reason)
        self._emit(TradeEventKind.REJECT, symbol, self.clock.now(), reason=reason, balance=self._balance)

    def _emit(self, kind: TradeEventKind, symbol: str, ts: int, **payload) -> None:
        if self.sink is None:
            return
        self.sink.emit(TradeEvent(kind=kind, symbol=symbol, ts=ts, payload=payload))
