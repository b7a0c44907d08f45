"""指标函数的公共输入处理。"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from shared.models.models import Candle

FloatSeq = Sequence[float] | np.ndarray


def as_float_array(values: FloatSeq) -> np.ndarray:
    return np.asarray(values, dtype=float).reshape(-1)


def check_period(period: int, name: str) -> int:
    if int(period) <= 0:
        raise ValueError(f"{name} period must be > 0")
    return int(period)


def candle_columns(candles: Sequence[Candle]) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """拆出 high/low/close 三列。"""
    high = np.fromiter((c.high for c in candles), dtype=float, count=len(candles))
    low = np.fromiter((c.low for c in candles), dtype=float, count=len(candles))
    close = np.fromiter((c.close for c in candles), dtype=float, count=len(candles))
    return high, low, close
