"""ATR（平均真实波幅）。

TR 序列从 candle 1 开始；以前 period 个 TR 的均值为种子，之后按 EMA 递推
（k = 2 / (period + 1)）。原始数组 values[0] 对应 candle 下标 period。
`AtrSeries` 直接按 candle 下标取值，调用方不再处理偏移。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Sequence

import numpy as np

from algo.factors.base import candle_columns, check_period
from algo.factors.ema import ema
from shared.errors import InsufficientData
from shared.models.models import Candle


def true_range(candles: Sequence[Candle]) -> np.ndarray:
    """TR[i-1] = max(high-low, |high-prevClose|, |low-prevClose|)，i >= 1。"""
    if len(candles) < 2:
        return np.empty(0)
    high, low, close = candle_columns(candles)
    prev_close = close[:-1]
    h = high[1:]
    l = low[1:]
    return np.maximum.reduce([h - l, np.abs(h - prev_close), np.abs(l - prev_close)])


@dataclass(frozen=True, eq=False)
class AtrSeries:
    """按 candle 下标索引的 ATR 序列。

    负下标按 candle 序列从尾部计数（-1 为最后一根 K 线）。
    first_index 之前的下标没有 ATR，访问抛 KeyError。
    """

    values: np.ndarray
    period: int
    n_candles: int

    @property
    def first_index(self) -> int:
        return self.period

    @property
    def latest(self) -> float:
        return float(self.values[-1])

    def _offset(self, index: int) -> int:
        idx = int(index)
        if idx < 0:
            idx += self.n_candles
        if idx < self.period or idx >= self.n_candles:
            raise KeyError(index)
        return idx - self.period

    def __getitem__(self, index: int) -> float:
        return float(self.values[self._offset(index)])

    def at(self, index: int) -> float:
        return self[index]

    def get(self, index: int, default: float | None = None) -> float | None:
        try:
            return self[index]
        except KeyError:
            return default

    def __contains__(self, index: object) -> bool:
        if not isinstance(index, (int, np.integer)):
            return False
        try:
            self._offset(int(index))
        except KeyError:
            return False
        return True

    def __len__(self) -> int:
        return int(self.values.size)

    def items(self) -> Iterator[tuple[int, float]]:
        for offset, value in enumerate(self.values):
            yield offset + self.period, float(value)


def atr(candles: Sequence[Candle], period: int = 14) -> AtrSeries:
    """计算 ATR。

    Raises
    ------
    InsufficientData
        ``len(candles) <= period``。
    """
    period = check_period(period, "ATR")
    if len(candles) <= period:
        raise InsufficientData(f"ATR({period}) requires more than {period} candles, got {len(candles)}")
    tr = true_range(candles)
    smoothed = ema(tr, period, seed="sma")
    return AtrSeries(values=smoothed[period - 1:], period=period, n_candles=len(candles))
