"""Connors RSI：RSI + streak RSI + 涨跌幅百分位的均值。"""

from __future__ import annotations

import numpy as np

from algo.factors.base import FloatSeq, as_float_array, check_period
from algo.factors.rsi import rsi
from shared.errors import InsufficientData


def streaks(closes: FloatSeq) -> np.ndarray:
    """带符号的连涨/连跌计数；方向改变重置为 ±1，价格不变为 0。"""
    values = as_float_array(closes)
    out = np.zeros(values.size)
    for i in range(1, values.size):
        prev = out[i - 1]
        if values[i] > values[i - 1]:
            out[i] = prev + 1 if prev > 0 else 1
        elif values[i] < values[i - 1]:
            out[i] = prev - 1 if prev < 0 else -1
    return out


def percent_changes(closes: FloatSeq) -> np.ndarray:
    values = as_float_array(closes)
    prev = values[:-1]
    with np.errstate(divide="ignore", invalid="ignore"):
        changes = np.where(prev != 0, (values[1:] - prev) / prev * 100.0, 0.0)
    return changes


def percent_rank(closes: FloatSeq, rank_period: int = 100) -> float:
    """最新涨跌幅在前 rank_period 个涨跌幅中的百分位（严格小于计数）。"""
    rank_period = check_period(rank_period, "percent rank")
    changes = percent_changes(closes)
    if changes.size < rank_period + 1:
        raise InsufficientData(f"percent rank requires {rank_period + 2} closes")
    current = changes[-1]
    window = changes[-rank_period - 1:-1]
    return float(np.count_nonzero(window < current)) / rank_period * 100.0


def connors_rsi(
    closes: FloatSeq,
    rsi_period: int = 3,
    streak_period: int = 2,
    rank_period: int = 100,
) -> float:
    """Connors RSI（三个 0-100 分量的均值）。

    Raises
    ------
    InsufficientData
        少于 ``rank_period + 2`` 根收盘价（或不足以计算两个 RSI 分量）。
    """
    values = as_float_array(closes)
    if values.size < rank_period + 2:
        raise InsufficientData(
            f"ConnorsRSI requires at least {rank_period + 2} closes, got {values.size}"
        )
    price_rsi = rsi(values, rsi_period)[-1]
    streak_rsi = rsi(np.abs(streaks(values)), streak_period)[-1]
    rank = percent_rank(values, rank_period)
    return float((price_rsi + streak_rsi + rank) / 3.0)
