"""RSI（Wilder 平滑）。"""

from __future__ import annotations

import numpy as np

from algo.factors.base import FloatSeq, as_float_array, check_period
from shared.errors import InsufficientData


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    # 无下跌视为最强多头
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def rsi(prices: FloatSeq, period: int = 14) -> np.ndarray:
    """经典 Wilder RSI。

    输出长度为 ``len(prices) - period``，out[j] 对应 prices[j + period]。
    种子为前 period 个涨跌幅的简单均值，之后
    ``avg = (avg * (period - 1) + new) / period``。

    Raises
    ------
    InsufficientData
        ``len(prices) <= period``。
    """
    period = check_period(period, "RSI")
    values = as_float_array(prices)
    if values.size <= period:
        raise InsufficientData(f"RSI({period}) requires more than {period} prices, got {values.size}")

    deltas = np.diff(values)
    gains = np.clip(deltas, 0.0, None)
    losses = np.clip(-deltas, 0.0, None)

    avg_gain = float(gains[:period].mean())
    avg_loss = float(losses[:period].mean())
    out = np.empty(values.size - period)
    out[0] = _rsi_value(avg_gain, avg_loss)
    for i in range(period, deltas.size):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        out[i - period + 1] = _rsi_value(avg_gain, avg_loss)
    return out
