import sys
from pathlib import Path

import pytest

# 确保项目根目录在 sys.path，便于测试内直接以顶层包名导入
ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from shared.models.models import Candle  # noqa: E402


def build_candles(closes, *, start_ts: int = 0, step: int = 60, spread: float = 1.0, volume: float = 1.0):
    """收盘价序列 -> K 线：open 取前一根收盘，high/low 在实体外扩 spread。"""
    candles = []
    prev = closes[0]
    for i, close in enumerate(closes):
        open_ = prev
        candles.append(
            Candle(
                timestamp=start_ts + i * step,
                open=float(open_),
                high=float(max(open_, close) + spread),
                low=float(min(open_, close) - spread),
                close=float(close),
                volume=float(volume),
            )
        )
        prev = close
    return candles


@pytest.fixture
def make_candles():
    return build_candles
