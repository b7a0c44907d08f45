"""趋势辅助：斜率与方向。"""

from __future__ import annotations

from algo.factors.base import FloatSeq, as_float_array, check_period
from shared.errors import InsufficientData


def slope_pct(values: FloatSeq, lookback: int) -> float:
    """``(v[-1] - v[-1-lookback]) / v[-1-lookback] * 100``。"""
    lookback = check_period(lookback, "slope")
    arr = as_float_array(values)
    if arr.size <= lookback:
        raise InsufficientData(f"slope requires more than {lookback} values")
    base = arr[-1 - lookback]
    if base == 0:
        return 0.0
    return float((arr[-1] - base) / base * 100.0)


def trend_direction(values: FloatSeq, lookback: int) -> int:
    """+1 上升 / -1 下降 / 0 持平。"""
    lookback = check_period(lookback, "trend")
    arr = as_float_array(values)
    if arr.size <= lookback:
        raise InsufficientData(f"trend requires more than {lookback} values")
    diff = arr[-1] - arr[-1 - lookback]
    if diff > 0:
        return 1
    if diff < 0:
        return -1
    return 0
