"""EMA / SMA。

两种种子约定：
- seed="first"：以 prices[0] 为种子，每个下标都有值（项目内价格 EMA 的统一约定）；
- seed="sma"：以前 period 个值的 SMA 为种子放在 period-1 处，之前的位置以种子填充。

两种约定输出长度都等于输入长度。
"""

from __future__ import annotations

from typing import Literal

import numpy as np

from algo.factors.base import FloatSeq, as_float_array, check_period
from shared.errors import InsufficientData

EmaSeed = Literal["first", "sma"]

DEFAULT_EMA_SEED: EmaSeed = "first"


def ema(prices: FloatSeq, period: int, seed: EmaSeed = DEFAULT_EMA_SEED) -> np.ndarray:
    """指数移动平均，k = 2 / (period + 1)。

    Raises
    ------
    InsufficientData
        prices 为空，或 seed="sma" 时不足 period 个值。
    """
    period = check_period(period, "EMA")
    values = as_float_array(prices)
    if values.size == 0:
        raise InsufficientData("EMA requires at least one price")

    k = 2.0 / (period + 1.0)
    out = np.empty_like(values)
    if seed == "first":
        out[0] = values[0]
        start = 1
    elif seed == "sma":
        if values.size < period:
            raise InsufficientData(f"EMA(sma seed) requires {period} prices, got {values.size}")
        out[:period] = values[:period].mean()
        start = period
    else:
        raise ValueError(f"Unknown EMA seed: {seed}")

    prev = out[start - 1]
    for i in range(start, values.size):
        prev = prev + k * (values[i] - prev)
        out[i] = prev
    return out


def sma(prices: FloatSeq, period: int) -> float:
    """最近 period 个值的简单均值。"""
    period = check_period(period, "SMA")
    values = as_float_array(prices)
    if values.size < period:
        raise InsufficientData(f"SMA requires {period} prices, got {values.size}")
    return float(values[-period:].mean())
