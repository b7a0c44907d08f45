from __future__ import annotations

import numpy as np
import pytest

from algo.factors import connors_rsi, percent_rank, rsi, streaks
from shared.errors import InsufficientData


def test_streaks_reset_on_direction_change():
    out = streaks([1, 2, 3, 3, 2, 1, 2])
    assert list(out) == [0, 1, 2, 0, -1, -2, 1]


def test_percent_rank_counts_strictly_less():
    # 涨跌幅：+1%, +1.98%, -0.97%, +1.96%（当前）
    rank = percent_rank([100, 101, 103, 102, 104], rank_period=3)
    assert rank == pytest.approx(2 / 3 * 100)


def test_percent_rank_insufficient():
    with pytest.raises(InsufficientData):
        percent_rank([100, 101, 102], rank_period=3)


def test_connors_rsi_bounds():
    rng = np.random.default_rng(11)
    closes = 100 + np.cumsum(rng.normal(0, 1, 250))
    for end in range(102, 251, 7):
        value = connors_rsi(closes[:end])
        assert 0.0 <= value <= 100.0


def test_connors_rsi_requires_rank_period_plus_two():
    closes = list(np.linspace(100, 120, 101))
    with pytest.raises(InsufficientData):
        connors_rsi(closes, rank_period=100)
    assert 0.0 <= connors_rsi(closes + [121.0], rank_period=100) <= 100.0


def test_connors_rsi_is_mean_of_components():
    closes = [10, 11, 12, 11, 12, 13, 14, 13, 14]
    value = connors_rsi(closes, rsi_period=3, streak_period=2, rank_period=5)

    expected = (
        rsi(closes, 3)[-1]
        + rsi(np.abs(streaks(closes)), 2)[-1]
        + percent_rank(closes, 5)
    ) / 3
    assert value == pytest.approx(expected)
