from __future__ import annotations

import pytest
import requests

from market.client import BinanceMarketClient, InMemoryMarketClient, klines_to_frame
from market.clock import FixedClock
from shared.errors import DataUnavailable
from shared.models.models import CANDLE_COLUMNS, candles_to_frame, frame_to_candles


def _kline(i: int) -> list:
    open_ms = i * 60_000
    return [open_ms, "100", str(101 + i), "99", str(100 + i), "5.5", open_ms + 59_999, "0", 1, "0", "0", "0"]


class _Resp:
    def __init__(self, payload, status: int = 200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"status {self.status}")

    def json(self):
        return self.payload


class _FakeSession:
    def __init__(self, n: int = 10, price_payload=None, error: Exception | None = None):
        self.rows = [_kline(i) for i in range(n)]
        self.price_payload = price_payload if price_payload is not None else {"symbol": "BTCUSDT", "price": "123.45"}
        self.error = error
        self.calls: list[dict] = []

    def get(self, url, params=None, timeout=None):
        self.calls.append({"url": url, **(params or {})})
        if self.error is not None:
            raise self.error
        if url.endswith("/api/v3/ticker/price"):
            return _Resp(self.price_payload)
        rows = self.rows
        if "endTime" in params:
            rows = [r for r in rows if r[0] <= params["endTime"]]
        return _Resp(rows[-params["limit"]:])


def test_klines_to_frame_converts_ms_to_seconds():
    df = klines_to_frame([_kline(2)])
    assert df.loc[0, "timestamp"] == 120
    assert df.loc[0, "close"] == pytest.approx(102.0)
    assert klines_to_frame([]).empty


def test_fetch_candles_single_page():
    session = _FakeSession()
    client = BinanceMarketClient(session=session)
    candles = client.fetch_candles("BTCUSDT", 3, "1m")
    assert [c.timestamp for c in candles] == [420, 480, 540]
    assert candles[-1].high == pytest.approx(110.0)
    assert session.calls[0]["interval"] == "1m"
    assert len(session.calls) == 1


def test_fetch_history_paginates_backwards():
    session = _FakeSession()
    client = BinanceMarketClient(session=session, max_page_size=2)
    candles = client.fetch_history("BTCUSDT", 5, "1m")
    assert [c.timestamp for c in candles] == [300, 360, 420, 480, 540]
    assert len(session.calls) == 3
    assert session.calls[1]["endTime"] == 8 * 60_000 - 1


def test_fetch_history_stops_when_exhausted():
    client = BinanceMarketClient(session=_FakeSession(n=3), max_page_size=2)
    candles = client.fetch_history("BTCUSDT", 10, "1m")
    assert [c.timestamp for c in candles] == [0, 60, 120]


def test_network_errors_become_data_unavailable():
    client = BinanceMarketClient(session=_FakeSession(error=requests.ConnectionError("down")))
    with pytest.raises(DataUnavailable):
        client.fetch_candles("BTCUSDT", 3, "1m")
    with pytest.raises(DataUnavailable):
        client.fetch_last_price("BTCUSDT")


def test_last_price_parsing():
    assert BinanceMarketClient(session=_FakeSession()).fetch_last_price("BTCUSDT") == pytest.approx(123.45)
    with pytest.raises(DataUnavailable):
        BinanceMarketClient(session=_FakeSession(price_payload={"code": -1121})).fetch_last_price("XXX")


def test_in_memory_client_respects_clock(make_candles):
    clock = FixedClock(120)
    client = InMemoryMarketClient({("BTCUSDT", "1m"): make_candles([1.0, 2.0, 3.0, 4.0])}, clock=clock)
    assert [c.close for c in client.fetch_candles("BTCUSDT", 10, "1m")] == [1.0, 2.0, 3.0]
    assert client.fetch_last_price("BTCUSDT") == pytest.approx(3.0)
    clock.advance(60)
    assert client.fetch_candles("BTCUSDT", 2, "1m")[-1].close == 4.0
    with pytest.raises(DataUnavailable):
        client.fetch_last_price("ETHUSDT")


def test_in_memory_client_failing_symbol():
    client = InMemoryMarketClient(fail_symbols=["BADUSDT"])
    with pytest.raises(DataUnavailable):
        client.fetch_candles("BADUSDT", 10, "1m")
    assert client.fetch_candles("BTCUSDT", 10, "1m") == []


def test_candles_to_frame_matches_kline_layout():
    candles = frame_to_candles(klines_to_frame([_kline(i) for i in range(3)]))
    frame = candles_to_frame(candles)
    assert list(frame.columns) == CANDLE_COLUMNS
    assert list(frame["timestamp"]) == [0, 60, 120]
    assert list(frame["close"]) == [100.0, 101.0, 102.0]
    assert frame_to_candles(frame) == candles
    assert candles_to_frame([]).empty
