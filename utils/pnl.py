"""PnL 计算（多空符号约定统一在这里）。"""

from __future__ import annotations

from typing import Mapping

from shared.models.models import Position, Side


def raw_pnl(side: Side, entry_price: float, exit_price: float, size: float) -> float:
    """
    Long: (exit - entry) * size；Short: (entry - exit) * size。
    """
    return side.sign * (exit_price - entry_price) * size


def commission(price: float, size: float, rate: float) -> float:
    return price * size * rate


def net_pnl(
    side: Side,
    entry_price: float,
    exit_price: float,
    size: float,
    commission_rate: float,
) -> float:
    """
    净 PnL = raw - (entry_notional + exit_notional) * commission_rate。
    """
    fees = commission(entry_price, size, commission_rate) + commission(exit_price, size, commission_rate)
    return raw_pnl(side, entry_price, exit_price, size) - fees


def compute_unrealized_pnl(positions: Mapping[str, Position], last_prices: Mapping[str, float]) -> float:
    """
    计算未实现盈亏：sum(sign * (last_price - entry_price) * size)
    """
    pnl = 0.0
    for symbol, pos in positions.items():
        price = last_prices.get(symbol)
        if price is None or pos.size == 0:
            continue
        pnl += raw_pnl(pos.side, pos.entry_price, price, pos.size)
    return pnl
