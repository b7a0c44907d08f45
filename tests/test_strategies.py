from __future__ import annotations

import pytest

from algo.factors import connors_rsi
from algo.strategy import MarketSnapshot, NoSignal, Signal, build_detector
from algo.strategy.ema_cross import EmaCrossDetector
from algo.strategy.impulse_pullback import ImpulsePullbackDetector
from algo.strategy.multi_timeframe import MultiTimeframeDetector
from algo.strategy.rsi_cross import RsiCrossDetector
from shared.config.schema import StrategyConfig
from shared.errors import InsufficientData
from shared.models.models import Candle, Side


def _snap(candles, higher=None) -> MarketSnapshot:
    return MarketSnapshot(symbol="BTCUSDT", candles=candles, higher_candles=higher)


# ---------------------------------------------------------------------------
# EMA cross
# ---------------------------------------------------------------------------
def test_ema9_21_cross_with_trend_filter_goes_long(make_candles):
    res = EmaCrossDetector().detect(_snap(make_candles([100.0] * 30 + [101.0])))
    assert isinstance(res, Signal)
    assert res.side is Side.LONG
    assert res.reason == "ema9_21_cross"
    assert res.metadata["ema_fast"] > res.metadata["ema_slow"]
    assert res.metadata["slow_slope_pct"] > 0


def test_ema_cross_down_goes_short(make_candles):
    res = EmaCrossDetector().detect(_snap(make_candles([100.0] * 30 + [99.0])))
    assert isinstance(res, Signal)
    assert res.side is Side.SHORT


def test_ema_no_cross(make_candles):
    res = EmaCrossDetector().detect(_snap(make_candles([100.0] * 31)))
    assert res == NoSignal("no_cross")


def test_ema_cross_rejected_by_falling_slow_ema(make_candles):
    closes = [100.0] * 24 + [99.0, 98.0, 97.0, 96.0, 95.0, 94.0, 110.0]
    res = EmaCrossDetector().detect(_snap(make_candles(closes)))
    assert res == NoSignal("trend_reject")

    res = EmaCrossDetector(trend_filter=False).detect(_snap(make_candles(closes)))
    assert isinstance(res, Signal) and res.side is Side.LONG


def test_ema_cross_rsi_band_filter(make_candles):
    det = EmaCrossDetector(rsi_filter=True)
    assert det.detect(_snap(make_candles([100.0] * 30 + [101.0]))) == NoSignal("rsi_overbought")
    assert det.detect(_snap(make_candles([100.0] * 30 + [99.0]))) == NoSignal("rsi_oversold")


def test_ema_cross_insufficient_and_invalid_params(make_candles):
    with pytest.raises(InsufficientData):
        EmaCrossDetector().detect(_snap(make_candles([100.0] * 10)))
    with pytest.raises(ValueError):
        EmaCrossDetector(fast=21, slow=9)


# ---------------------------------------------------------------------------
# RSI threshold cross
# ---------------------------------------------------------------------------
def test_rsi_cross_long_and_short(make_candles):
    det = RsiCrossDetector(period=2, min_rsi=30, max_rsi=70)
    long_res = det.detect(_snap(make_candles([10.0, 9.0, 8.0, 9.0])))
    assert isinstance(long_res, Signal) and long_res.side is Side.LONG
    assert long_res.metadata["rsi_prev"] == pytest.approx(0.0)
    assert long_res.metadata["rsi"] == pytest.approx(50.0)

    short_res = det.detect(_snap(make_candles([10.0, 11.0, 12.0, 11.0])))
    assert isinstance(short_res, Signal) and short_res.side is Side.SHORT

    assert det.detect(_snap(make_candles([10.0, 11.0, 12.0, 13.0]))) == NoSignal("no_rsi_cross")


def test_rsi_cross_on_connors_rsi(make_candles):
    # 连跌 11 根后大涨：价格 RSI 0 -> 正，streak RSI 100 -> 下降，涨幅百分位 0 -> 100
    closes = [120.0 - i for i in range(12)] + [115.0]
    prev = connors_rsi(closes[:-1], rsi_period=3, streak_period=2, rank_period=5)
    curr = connors_rsi(closes, rsi_period=3, streak_period=2, rank_period=5)
    assert prev == pytest.approx(100.0 / 3.0)
    assert curr > prev

    det = RsiCrossDetector(
        period=3, min_rsi=(prev + curr) / 2, max_rsi=99.0, source="connors", streak_period=2, rank_period=5
    )
    assert det.min_candles == 8
    res = det.detect(_snap(make_candles(closes)))
    assert isinstance(res, Signal) and res.side is Side.LONG
    assert res.reason == "connors_cross_up"
    assert res.metadata["rsi"] == pytest.approx(curr)
    assert res.metadata["rsi_prev"] == pytest.approx(prev)

    with pytest.raises(InsufficientData):
        det.detect(_snap(make_candles(closes[:7])))
    with pytest.raises(ValueError):
        RsiCrossDetector(source="stoch")


# ---------------------------------------------------------------------------
# Impulse / pullback / breakout
# ---------------------------------------------------------------------------
def _k(i: int, close: float, high: float, low: float, volume: float = 1.0) -> Candle:
    return Candle(timestamp=i * 60, open=close, high=high, low=low, close=close, volume=volume)


def _impulse_long(latest_close: float = 111.0, latest_volume: float = 2.0, pullback_lows=(107.5, 106.0, 107.5)):
    pullback = [_k(6 + i, low + 0.5, low + 0.7, low) for i, low in enumerate(pullback_lows)]
    return [
        _k(0, 100.0, 100.5, 99.5),
        _k(1, 102.0, 102.5, 101.5),
        _k(2, 104.0, 104.5, 103.5),
        _k(3, 106.0, 106.5, 105.5),
        _k(4, 108.0, 108.5, 107.5),
        _k(5, 109.5, 110.0, 109.0),
        *pullback,
        _k(9, latest_close, latest_close + 0.5, 108.0, latest_volume),
    ]


def _mirror(candles: list[Candle], axis: float = 200.0) -> list[Candle]:
    return [
        Candle(
            timestamp=c.timestamp,
            open=axis - c.open,
            high=axis - c.low,
            low=axis - c.high,
            close=axis - c.close,
            volume=c.volume,
        )
        for c in candles
    ]


def test_impulse_pullback_breakout_long():
    res = ImpulsePullbackDetector(lookback=10).detect(_snap(_impulse_long()))
    assert isinstance(res, Signal)
    assert res.side is Side.LONG
    assert res.metadata["extreme"] == pytest.approx(110.0)
    assert res.metadata["retrace_pct"] == pytest.approx(40.0)


def test_impulse_pullback_breakout_short_mirror():
    res = ImpulsePullbackDetector(lookback=10).detect(_snap(_mirror(_impulse_long())))
    assert isinstance(res, Signal)
    assert res.side is Side.SHORT
    assert res.metadata["extreme"] == pytest.approx(90.0)


def test_impulse_pullback_partial_matches_are_no_signal():
    det = ImpulsePullbackDetector(lookback=10)
    assert det.detect(_snap(_impulse_long(latest_volume=1.0))) == NoSignal("no_impulse")
    assert det.detect(_snap(_impulse_long(latest_close=109.9))) == NoSignal("no_breakout")
    shallow = _impulse_long(pullback_lows=(109.0, 108.8, 109.0))
    assert det.detect(_snap(shallow)) == NoSignal("pullback_out_of_band")

    strict_volume = ImpulsePullbackDetector(lookback=10, vol_multiplier=1.0, breakout_vol_multiplier=3.0)
    assert strict_volume.detect(_snap(_impulse_long())) == NoSignal("breakout_volume_low")


# ---------------------------------------------------------------------------
# Multi-timeframe confirmation
# ---------------------------------------------------------------------------
def test_multi_timeframe_scores_components(make_candles):
    working = make_candles([100.0] * 30 + [101.0])
    higher = make_candles([100.0 + i for i in range(60)])
    det = MultiTimeframeDetector()

    res = det.detect(_snap(working, higher))
    assert isinstance(res, Signal)
    assert res.side is Side.LONG
    assert res.metadata["score"] == 2
    assert res.metadata["higher_tf"] is True
    assert res.metadata["working_tf"] is False
    assert res.metadata["body"] is True
    assert res.confidence == pytest.approx(2 / 3)

    # 缺少高周期只剩实体方向 1 分
    assert det.detect(_snap(working)) == NoSignal("mtf_score_1")


def test_multi_timeframe_passes_base_no_signal(make_candles):
    res = MultiTimeframeDetector().detect(_snap(make_candles([100.0] * 31)))
    assert res == NoSignal("no_cross")


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
def test_build_detector_from_config_and_dict():
    det = build_detector(StrategyConfig(type="ema_cross", params={"fast": 5, "slow": 10}))
    assert isinstance(det, EmaCrossDetector)
    assert (det.fast, det.slow) == (5, 10)

    det = build_detector({"type": "rsi_cross", "period": 5, "unused": 1})
    assert isinstance(det, RsiCrossDetector)
    assert det.period == 5

    det = build_detector({"type": "multi_timeframe", "base": {"type": "rsi_cross"}, "min_score": 3})
    assert isinstance(det, MultiTimeframeDetector)
    assert isinstance(det.base, RsiCrossDetector)
    assert det.min_score == 3


def test_build_detector_unknown_type():
    with pytest.raises(ValueError):
        build_detector({"type": "does_not_exist"})
