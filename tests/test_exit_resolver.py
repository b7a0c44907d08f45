from __future__ import annotations

import pytest

from engine.exit_resolver import ExitResolver, check_candle, resolve_exit
from shared.models.models import Candle, Position, PositionStatus, Side


def _pos(side: Side, tp: float, sl: float, opened_at: int = 100) -> Position:
    return Position(
        symbol="BTCUSDT",
        side=side,
        entry_price=100.0,
        size=1.0,
        take_profit=tp,
        stop_loss=sl,
        opened_at=opened_at,
        notional=100.0,
        reserved_margin=20.0,
        commission_open=0.09,
    )


def _bar(ts: int, high: float, low: float) -> Candle:
    return Candle(timestamp=ts, open=100.0, high=high, low=low, close=100.0)


def test_long_take_profit_at_level():
    decision = resolve_exit(_pos(Side.LONG, 110.0, 95.0), [_bar(100, 101.0, 99.0), _bar(160, 112.0, 99.0)])
    assert decision is not None
    assert decision.reason is PositionStatus.TP
    assert decision.exit_price == pytest.approx(110.0)
    assert decision.closed_at == 160


def test_long_stop_loss():
    decision = resolve_exit(_pos(Side.LONG, 110.0, 95.0), [_bar(160, 105.0, 94.0)])
    assert decision.reason is PositionStatus.SL
    assert decision.exit_price == pytest.approx(95.0)


def test_tie_prefers_take_profit():
    assert check_candle(Side.LONG, 110.0, 95.0, _bar(0, 112.0, 90.0)).reason is PositionStatus.TP
    assert check_candle(Side.SHORT, 90.0, 105.0, _bar(0, 110.0, 88.0)).reason is PositionStatus.TP


def test_short_mirror():
    pos = _pos(Side.SHORT, 90.0, 105.0)
    tp = resolve_exit(pos, [_bar(160, 101.0, 88.0)])
    assert tp.reason is PositionStatus.TP and tp.exit_price == pytest.approx(90.0)
    sl = resolve_exit(pos, [_bar(160, 106.0, 95.0)])
    assert sl.reason is PositionStatus.SL and sl.exit_price == pytest.approx(105.0)


def test_candles_before_open_are_ignored_and_order_is_chronological():
    pos = _pos(Side.LONG, 110.0, 95.0, opened_at=200)
    candles = [
        _bar(320, 112.0, 99.0),  # TP
        _bar(50, 130.0, 80.0),   # 开仓前
        _bar(260, 105.0, 94.0),  # SL，时间上更早
    ]
    decision = resolve_exit(pos, candles)
    assert decision.reason is PositionStatus.SL
    assert decision.closed_at == 260


def test_unresolved_reports_monitor_price_only():
    pos = _pos(Side.LONG, 110.0, 95.0)
    evaluation = ExitResolver().evaluate(pos, [_bar(50, 120.0, 80.0), _bar(160, 105.0, 97.0)], last_price=104.5)
    assert not evaluation.is_closed
    assert evaluation.decision is None
    assert evaluation.last_price == pytest.approx(104.5)
    assert evaluation.candles_scanned == 1
    assert pos.status is PositionStatus.OPEN
