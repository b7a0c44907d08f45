"""指标库：纯函数，序列进、序列出。"""

from algo.factors.atr import AtrSeries, atr, true_range
from algo.factors.connors import connors_rsi, percent_rank, streaks
from algo.factors.ema import DEFAULT_EMA_SEED, ema, sma
from algo.factors.rsi import rsi
from algo.factors.trend import slope_pct, trend_direction

__all__ = [
    "AtrSeries",
    "DEFAULT_EMA_SEED",
    "atr",
    "connors_rsi",
    "ema",
    "percent_rank",
    "rsi",
    "slope_pct",
    "sma",
    "streaks",
    "trend_direction",
    "true_range",
]
