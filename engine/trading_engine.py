"""纸面/干跑交易引擎（PaperTradingEngine）。

目标是“一眼能看懂”：配置 → 行情源 → 检测/定仓/账本/离场 → 周期总结。

单个品种的失败（数据不足、拉取失败、风控拒绝）只影响该品种本轮，不会中断其它品种。
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Mapping

from algo.sizing.atr_risk import AtrRiskSizer
from algo.sizing.base import TpSlParams
from algo.strategy.base import SignalDetector
from algo.strategy.registry import build_detector
from broker.paper_ledger import PaperLedger
from engine.base_engine import BaseEngine, EngineResult
from engine.exit_resolver import ExitResolver
from engine.signal_pipeline import PreparedSymbol, SignalPipeline, SymbolOutcome
from market.client import BinanceMarketClient, MarketDataClient
from market.clock import Clock, SystemClock
from shared.config.schema import MainConfig
from shared.errors import TradingError
from shared.models.models import TradeEvent, TradeEventKind
from shared.utils.logging import setup_logger
from shared.utils.trade_logger import TradeEventSink


def build_market_client(cfg: MainConfig) -> MarketDataClient:
    ex = cfg.exchange
    return BinanceMarketClient(
        base_url=ex.base_url,
        timeout_secs=ex.timeout_secs,
        max_page_size=ex.max_page_size,
    )


class PaperTradingEngine(BaseEngine):
    """按轮询周期驱动全部品种。

    Parameters
    ----------
    cfg:
        应用总配置。
    market_client:
        行情源；None 时按 exchange 配置构建 Binance REST 客户端。
    detector:
        信号检测器；None 时按 strategy 配置构建。
    tp_sl_overrides:
        每个品种的 TP/SL 参数（通常来自扫参结果）。
    sleep:
        周期间的等待函数，测试中可替换。
    """

    def __init__(
        self,
        cfg: MainConfig,
        market_client: MarketDataClient | None = None,
        detector: SignalDetector | None = None,
        ledger: PaperLedger | None = None,
        sizer: AtrRiskSizer | None = None,
        clock: Clock | None = None,
        sink: TradeEventSink | None = None,
        tp_sl_overrides: Mapping[str, TpSlParams] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.cfg = cfg
        self.clock = clock or SystemClock()
        self.sink = sink
        self.market_client = market_client or build_market_client(cfg)
        self.detector = detector or build_detector(cfg.strategy)
        self.ledger = ledger or PaperLedger(
            cfg.initial_balance,
            cfg.risk,
            universe=cfg.symbols,
            sink=sink,
            clock=self.clock,
        )
        self.sizer = sizer or AtrRiskSizer(cfg.risk)
        self.pipeline = SignalPipeline(
            cfg=cfg,
            market_client=self.market_client,
            detector=self.detector,
            ledger=self.ledger,
            sizer=self.sizer,
            resolver=ExitResolver(),
            sink=sink,
            clock=self.clock,
            tp_sl_overrides=tp_sl_overrides,
        )
        self._sleep = sleep
        self.cycles = 0
        self.logger = setup_logger("engine")

    @property
    def tp_sl_overrides(self) -> dict[str, TpSlParams]:
        return self.pipeline.tp_sl_overrides

    def set_tp_sl(self, symbol: str, params: TpSlParams) -> None:
        self.pipeline.tp_sl_overrides[symbol] = params

    # ------------------------------------------------------------------
    # 周期
    # ------------------------------------------------------------------
    def run_cycle(self) -> dict[str, Any]:
        """跑一个周期并返回该周期的汇总。"""
        self.cycles += 1
        outcomes: list[SymbolOutcome] = []
        errors: dict[str, str] = {}

        for symbol, prepared in self._prepare_all():
            if isinstance(prepared, BaseException):
                errors[symbol] = self._record_error(symbol, prepared)
                continue
            try:
                outcomes.append(self.pipeline.process(prepared))
            except Exception as exc:
                errors[symbol] = self._record_error(symbol, exc)

        state = self.ledger.account_state()
        summary = {
            "cycle": self.cycles,
            "opened": [o.symbol for o in outcomes if o.opened is not None],
            "closed": [o.symbol for o in outcomes if o.closed_trade is not None],
            "actions": {o.symbol: o.action for o in outcomes},
            "errors": errors,
            "balance": state.balance,
            "total_pnl": state.total_pnl,
            "total_closed": state.total_closed,
            "win_rate": state.win_rate,
            "open_positions": self.ledger.open_count,
        }
        self.logger.info(
            "Cycle %d | balance=%.2f total_pnl=%.2f closed=%d win_rate=%.2f%% open=%d errors=%d",
            self.cycles,
            state.balance,
            state.total_pnl,
            state.total_closed,
            state.win_rate * 100,
            summary["open_positions"],
            len(errors),
        )
        return summary

    def _prepare_all(self) -> list[tuple[str, PreparedSymbol | BaseException]]:
        """拉行情 + 检测；max_workers > 1 时并发，结果按品种配置顺序返回。"""
        symbols = list(self.cfg.symbols)

        def _safe(symbol: str) -> PreparedSymbol | BaseException:
            try:
                return self.pipeline.prepare(symbol)
            except Exception as exc:
                return exc

        if self.cfg.max_workers > 1 and len(symbols) > 1:
            with ThreadPoolExecutor(max_workers=self.cfg.max_workers) as pool:
                results = list(pool.map(_safe, symbols))
        else:
            results = [_safe(s) for s in symbols]
        return list(zip(symbols, results))

    def _record_error(self, symbol: str, exc: BaseException) -> str:
        if isinstance(exc, TradingError):
            self.logger.warning("Skip %s this cycle: %s: %s", symbol, type(exc).__name__, exc)
        else:
            self.logger.error("Unexpected error on %s", symbol, exc_info=exc)
        if self.sink is not None:
            self.sink.emit(
                TradeEvent(
                    kind=TradeEventKind.ERROR,
                    symbol=symbol,
                    ts=self.clock.now(),
                    payload={"error": type(exc).__name__, "message": str(exc)},
                )
            )
        return f"{type(exc).__name__}: {exc}"

    # ------------------------------------------------------------------
    # 主循环
    # ------------------------------------------------------------------
    def run(self, max_cycles: int | None = None) -> EngineResult:
        """循环执行 run_cycle；max_cycles=None 时直到 KeyboardInterrupt。"""
        self.logger.info(
            "Paper trading start: symbols=%s timeframe=%s mode=%s balance=%.2f",
            ",".join(self.cfg.symbols),
            self.cfg.timeframe,
            self.cfg.mode,
            self.ledger.balance,
        )
        last: dict[str, Any] = {}
        try:
            while max_cycles is None or self.cycles < max_cycles:
                last = self.run_cycle()
                if max_cycles is not None and self.cycles >= max_cycles:
                    break
                self._sleep(self.cfg.poll_interval_secs)
        except KeyboardInterrupt:
            self.logger.info("Interrupted by user, stopping after %d cycles", self.cycles)
        return EngineResult(summary=self._build_summary(), artifacts={"last_cycle": last})

    def _build_summary(self) -> dict[str, Any]:
        state = self.ledger.account_state()
        return {
            "cycles": self.cycles,
            "balance": state.balance,
            "total_pnl": state.total_pnl,
            "total_closed": state.total_closed,
            "win_count": state.win_count,
            "win_rate": state.win_rate,
            "per_symbol_totals": state.per_symbol_totals,
            "per_symbol_wins": state.per_symbol_wins,
            "open_positions": sorted(self.ledger.positions),
            "reserved_margin": self.ledger.reserved_margin_total(),
        }
