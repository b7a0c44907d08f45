"""单品种处理管线（Exit → Detect → Sizing → Ledger）。

每个周期每个品种分两段：
1. `prepare`：拉行情 + 跑检测（无共享状态，可并发）；
2. `process`：先评估已有持仓的离场，再在空仓时考虑开仓（所有账本变更都在这里，串行）。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from algo.factors.atr import atr
from algo.sizing.atr_risk import AtrRiskSizer
from algo.sizing.base import TpSlParams
from algo.strategy.base import MarketSnapshot, NoSignal, SignalDetector, SignalResult
from broker.paper_ledger import PaperLedger
from engine.exit_resolver import ExitResolver
from market.client import MarketDataClient
from market.clock import Clock, SystemClock
from shared.config.schema import MainConfig
from shared.errors import InsufficientData
from shared.models.models import ClosedTrade, Position, TradeEvent, TradeEventKind
from shared.utils.logging import setup_logger
from shared.utils.trade_logger import TradeEventSink
from utils.pnl import raw_pnl


@dataclass(frozen=True)
class PreparedSymbol:
    """prepare 阶段产物；detect_error 非空表示本轮不考虑开仓（离场评估照常）。"""

    symbol: str
    snapshot: MarketSnapshot
    signal: SignalResult | None = None
    detect_error: InsufficientData | None = None


@dataclass(frozen=True)
class SymbolOutcome:
    """单品种单周期结果。

    action 取值：holding / opened / no_signal / rejected / skipped / signal（dry-run）。
    """

    symbol: str
    action: str
    reason: str | None = None
    closed_trade: ClosedTrade | None = None
    opened: Position | None = None


class SignalPipeline:
    def __init__(
        self,
        *,
        cfg: MainConfig,
        market_client: MarketDataClient,
        detector: SignalDetector,
        ledger: PaperLedger,
        sizer: AtrRiskSizer,
        resolver: ExitResolver | None = None,
        sink: TradeEventSink | None = None,
        clock: Clock | None = None,
        tp_sl_overrides: Mapping[str, TpSlParams] | None = None,
    ):
        self.cfg = cfg
        self.client = market_client
        self.detector = detector
        self.ledger = ledger
        self.sizer = sizer
        self.resolver = resolver or ExitResolver()
        self.sink = sink
        self.clock = clock or SystemClock()
        self.tp_sl_overrides: dict[str, TpSlParams] = dict(tp_sl_overrides or {})
        # symbol -> 最近一次开仓所用信号 bar 的 timestamp
        self._entry_bars: dict[str, int] = {}
        self.logger = setup_logger("signal-pipeline")

    # ------------------------------------------------------------------
    # prepare（可并发）
    # ------------------------------------------------------------------
    def prepare(self, symbol: str) -> PreparedSymbol:
        """拉取 K 线并跑检测。

        Raises
        ------
        DataUnavailable
            行情拉取失败（整个品种本轮跳过）。
        """
        cfg = self.cfg
        candles = self.client.fetch_candles(symbol, cfg.candle_count, cfg.timeframe)
        higher = None
        if cfg.higher_timeframe:
            higher = self.client.fetch_candles(symbol, cfg.candle_count, cfg.higher_timeframe)
        snapshot = MarketSnapshot(symbol=symbol, candles=candles, higher_candles=higher)
        try:
            result = self.detector.detect(snapshot)
        except InsufficientData as exc:
            return PreparedSymbol(symbol=symbol, snapshot=snapshot, detect_error=exc)
        return PreparedSymbol(symbol=symbol, snapshot=snapshot, signal=result)

    # ------------------------------------------------------------------
    # process（串行）
    # ------------------------------------------------------------------
    def process(self, prepared: PreparedSymbol) -> SymbolOutcome:
        """先离场后开仓。"""
        symbol = prepared.symbol
        closed: ClosedTrade | None = None

        position = self.ledger.get_position(symbol)
        if position is not None:
            closed = self._evaluate_exit(position, prepared.snapshot)
            if closed is None:
                return SymbolOutcome(symbol=symbol, action="holding")

        outcome = self._consider_entry(prepared)
        if closed is not None:
            return SymbolOutcome(
                symbol=symbol,
                action=outcome.action,
                reason=outcome.reason,
                closed_trade=closed,
                opened=outcome.opened,
            )
        return outcome

    def _evaluate_exit(self, position: Position, snapshot: MarketSnapshot) -> ClosedTrade | None:
        decision = self.resolver.evaluate(position, snapshot.candles).decision
        if decision is not None:
            trade = self.ledger.close(
                position.symbol, decision.exit_price, decision.reason, closed_at=decision.closed_at
            )
            if trade is not None:
                self.logger.info(
                    "Closed %s %s via %s at %.6g net_pnl=%.6g",
                    trade.symbol,
                    trade.side.value,
                    trade.reason.value,
                    trade.exit_price,
                    trade.net_pnl,
                )
            return trade

        last_price = self.client.fetch_last_price(position.symbol)
        self._emit(
            TradeEventKind.MONITOR,
            position.symbol,
            side=position.side.value,
            entry_price=position.entry_price,
            last_price=last_price,
            take_profit=position.take_profit,
            stop_loss=position.stop_loss,
            unrealized_pnl=raw_pnl(position.side, position.entry_price, last_price, position.size),
        )
        return None

    def _consider_entry(self, prepared: PreparedSymbol) -> SymbolOutcome:
        symbol = prepared.symbol
        if prepared.detect_error is not None:
            self.logger.debug("Skip entry for %s: %s", symbol, prepared.detect_error)
            return SymbolOutcome(symbol=symbol, action="skipped", reason=str(prepared.detect_error))

        result = prepared.signal
        if result is None or isinstance(result, NoSignal):
            reason = result.reason if isinstance(result, NoSignal) else None
            return SymbolOutcome(symbol=symbol, action="no_signal", reason=reason)

        candles = prepared.snapshot.candles
        signal_bar = candles[-1].timestamp
        if signal_bar <= self._entry_bars.get(symbol, -1):
            return SymbolOutcome(symbol=symbol, action="no_signal", reason="signal_bar_already_traded")

        try:
            atr_value = atr(candles, self.cfg.risk.atr_period).latest
        except InsufficientData as exc:
            return SymbolOutcome(symbol=symbol, action="skipped", reason=str(exc))
        price = candles[-1].close

        if self.cfg.mode == "dry-run":
            self.logger.info(
                "[dry-run] %s signal %s price=%.6g atr=%.6g reason=%s",
                symbol,
                result.side.value,
                price,
                atr_value,
                result.reason,
            )
            return SymbolOutcome(symbol=symbol, action="signal", reason=result.reason)

        ledger = self.ledger
        decision = self.sizer.size(
            symbol=symbol,
            side=result.side,
            balance=ledger.balance,
            price=price,
            atr=atr_value,
            open_exposure=ledger.open_exposure(),
            open_positions=ledger.open_count,
            tp_sl=self.tp_sl_overrides.get(symbol),
        )
        if not decision.accepted:
            self.logger.warning("Sizing rejected %s %s: %s", symbol, result.side.value, decision.reason)
            self._emit(
                TradeEventKind.REJECT,
                symbol,
                reason=decision.reason,
                side=result.side.value,
                price=price,
                atr=atr_value,
            )
            return SymbolOutcome(symbol=symbol, action="rejected", reason=decision.reason)

        # 入场 bar 的高低点发生在开仓之前，不参与离场判定
        position = ledger.open(
            symbol,
            decision.side,
            decision.price,
            decision.size,
            decision.take_profit,
            decision.stop_loss,
            decision.required_margin,
            decision.commission_open,
            opened_at=max(self.clock.now(), signal_bar + 1),
        )
        if position is None:
            return SymbolOutcome(symbol=symbol, action="rejected", reason="ledger_rejected")
        self._entry_bars[symbol] = signal_bar
        self.logger.info(
            "Opened %s %s size=%.6g entry=%.6g tp=%.6g sl=%.6g (%s)",
            symbol,
            position.side.value,
            position.size,
            position.entry_price,
            position.take_profit,
            position.stop_loss,
            result.reason,
        )
        return SymbolOutcome(symbol=symbol, action="opened", reason=result.reason, opened=position)

    def _emit(self, kind: TradeEventKind, symbol: str, **payload) -> None:
        if self.sink is None:
            return
        self.sink.emit(TradeEvent(kind=kind, symbol=symbol, ts=self.clock.now(), payload=payload))
