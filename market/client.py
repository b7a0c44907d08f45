"""行情客户端（Binance REST / 内存回放）。

核心只依赖 `MarketDataClient` 抽象：K 线按时间升序返回，失败统一抛 `DataUnavailable`。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable, Mapping, Sequence

import pandas as pd
import requests

from market.clock import Clock
from shared.errors import DataUnavailable
from shared.models.models import CANDLE_COLUMNS, Candle, frame_to_candles
from shared.utils.logging import setup_logger


class MarketDataClient(ABC):
    """行情客户端抽象基类。"""

    @abstractmethod
    def fetch_candles(self, symbol: str, count: int, period: str) -> list[Candle]:
        """拉取最近 count 根 K 线（升序）。

        Raises
        ------
        DataUnavailable
            网络/交易所错误。
        """
        raise NotImplementedError

    @abstractmethod
    def fetch_last_price(self, symbol: str) -> float:
        """拉取最新成交价。"""
        raise NotImplementedError

    def fetch_history(self, symbol: str, count: int, period: str) -> list[Candle]:
        """拉取较长的历史窗口（默认等价 fetch_candles，子类可分页）。"""
        return self.fetch_candles(symbol, count, period)


def klines_to_frame(rows: Sequence[Sequence[Any]]) -> pd.DataFrame:
    """Binance kline 数组 -> 标准 K 线 DataFrame（timestamp 为开盘时间，秒）。"""
    if not rows:
        return pd.DataFrame(columns=CANDLE_COLUMNS)
    df = pd.DataFrame([list(r[:6]) for r in rows], columns=CANDLE_COLUMNS)
    df["timestamp"] = (df["timestamp"].astype("int64") // 1000).astype("int64")
    for col in ("open", "high", "low", "close", "volume"):
        df[col] = df[col].astype(float)
    return df


class BinanceMarketClient(MarketDataClient):
    """Binance 现货 REST 行情。"""

    def __init__(
        self,
        base_url: str = "https://api.binance.com",
        timeout_secs: float = 10.0,
        max_page_size: int = 1000,
        session: requests.Session | None = None,
        logger=None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_secs = float(timeout_secs)
        self.max_page_size = int(max_page_size)
        self.session = session or requests.Session()
        self.logger = logger or setup_logger("market-binance")

    def _get(self, path: str, params: Mapping[str, Any]) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.get(url, params=dict(params), timeout=self.timeout_secs)
            resp.raise_for_status()
            return resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise DataUnavailable(f"GET {path} {dict(params)} failed: {exc}") from exc

    def _klines(self, symbol: str, period: str, limit: int, end_ms: int | None = None) -> pd.DataFrame:
        params: dict[str, Any] = {"symbol": symbol, "interval": period, "limit": limit}
        if end_ms is not None:
            params["endTime"] = end_ms
        data = self._get("/api/v3/klines", params)
        try:
            return klines_to_frame(data)
        except (TypeError, ValueError, IndexError) as exc:
            raise DataUnavailable(f"Malformed klines for {symbol}: {exc}") from exc

    def fetch_candles(self, symbol: str, count: int, period: str) -> list[Candle]:
        if count > self.max_page_size:
            return self.fetch_history(symbol, count, period)
        return frame_to_candles(self._klines(symbol, period, count))

    def fetch_history(self, symbol: str, count: int, period: str) -> list[Candle]:
        """按 endTime 向前翻页，直到凑够 count 根或没有更多数据。"""
        frames: list[pd.DataFrame] = []
        remaining = int(count)
        end_ms: int | None = None
        while remaining > 0:
            limit = min(remaining, self.max_page_size)
            df = self._klines(symbol, period, limit, end_ms=end_ms)
            if df.empty:
                break
            frames.append(df)
            remaining -= len(df)
            end_ms = int(df["timestamp"].min()) * 1000 - 1
            if len(df) < limit:
                break
        if not frames:
            return []
        merged = pd.concat(frames, ignore_index=True)
        candles = frame_to_candles(merged)
        self.logger.debug("Fetched %d candles for %s %s", len(candles), symbol, period)
        return candles[-count:]

    def fetch_last_price(self, symbol: str) -> float:
        data = self._get("/api/v3/ticker/price", {"symbol": symbol})
        try:
            return float(data["price"])
        except (KeyError, TypeError, ValueError) as exc:
            raise DataUnavailable(f"Malformed ticker for {symbol}: {data}") from exc


class InMemoryMarketClient(MarketDataClient):
    """内存行情源，便于离线回放与测试。

    给定 clock 时只暴露 ``timestamp <= clock.now()`` 的 K 线，模拟逐步推进的行情。
    """

    def __init__(
        self,
        candles: Mapping[tuple[str, str], Iterable[Candle]] | None = None,
        *,
        last_prices: Mapping[str, float] | None = None,
        clock: Clock | None = None,
        fail_symbols: Iterable[str] | None = None,
    ):
        self._candles: dict[tuple[str, str], list[Candle]] = {
            key: sorted(values, key=lambda c: c.timestamp) for key, values in (candles or {}).items()
        }
        self.last_prices = dict(last_prices or {})
        self.clock = clock
        self.fail_symbols = set(fail_symbols or [])

    def set_candles(self, symbol: str, period: str, candles: Iterable[Candle]) -> None:
        self._candles[(symbol, period)] = sorted(candles, key=lambda c: c.timestamp)

    def _visible(self, symbol: str, period: str) -> list[Candle]:
        if symbol in self.fail_symbols:
            raise DataUnavailable(f"no market data for {symbol}")
        candles = self._candles.get((symbol, period), [])
        if self.clock is not None:
            now = self.clock.now()
            candles = [c for c in candles if c.timestamp <= now]
        return candles

    def fetch_candles(self, symbol: str, count: int, period: str) -> list[Candle]:
        return self._visible(symbol, period)[-count:]

    def fetch_last_price(self, symbol: str) -> float:
        if symbol in self.fail_symbols:
            raise DataUnavailable(f"no market data for {symbol}")
        if symbol in self.last_prices:
            return float(self.last_prices[symbol])
        for (sym, period), _ in self._candles.items():
            if sym == symbol:
                visible = self._visible(sym, period)
                if visible:
                    return visible[-1].close
        raise DataUnavailable(f"no last price for {symbol}")
