"""TP/SL 优化引擎（OptimizationEngine）。

目标：统一为 Engine 风格的入口（`run() -> EngineResult`），把“扫参”当作纸面交易前的研究引擎：
每个品种拉一段历史 K 线，网格搜索 TP/SL，挑出最优参数交给 `PaperTradingEngine`。
"""

from __future__ import annotations

from typing import Any, Iterable

import pandas as pd

from algo.sizing.base import TpSlParams
from algo.strategy.base import SignalDetector
from algo.strategy.registry import build_detector
from engine.base_engine import BaseEngine, EngineResult
from engine.trading_engine import build_market_client
from market.client import MarketDataClient
from shared.config.schema import MainConfig
from shared.errors import TradingError
from shared.models.models import candles_to_frame
from shared.utils.logging import setup_logger
from utils.param_search import SweepResult, grid_search, results_frame


def pick_best(
    results: list[SweepResult],
    default: TpSlParams,
) -> tuple[TpSlParams, bool]:
    """取排名第一的参数；无结果、净利润 <= 0 或胜率 <= 0 时退回默认值。

    Returns
    -------
    (params, fallback)
        fallback=True 表示使用了默认值。
    """
    if not results:
        return default, True
    best = results[0]
    if best.net_profit <= 0 or best.win_rate <= 0:
        return default, True
    return best.params, False


class OptimizationEngine(BaseEngine):
    """对 cfg.symbols 逐个做 TP/SL 网格搜索。

    Parameters
    ----------
    cfg:
        应用总配置（使用 optimizer / risk / timeframe 段）。
    market_client:
        行情源；None 时按 exchange 配置构建。
    detector:
        信号检测器；None 时按 strategy 配置构建。
    symbols:
        覆盖 cfg.symbols。
    """

    def __init__(
        self,
        cfg: MainConfig,
        market_client: MarketDataClient | None = None,
        detector: SignalDetector | None = None,
        symbols: Iterable[str] | None = None,
    ):
        self.cfg = cfg
        self.market_client = market_client or build_market_client(cfg)
        self.detector = detector or build_detector(cfg.strategy)
        self.symbols = list(symbols) if symbols is not None else list(cfg.symbols)
        self.best_params: dict[str, TpSlParams] = {}
        self.logger = setup_logger("optimize")

    @property
    def default_params(self) -> TpSlParams:
        opt = self.cfg.optimizer
        return TpSlParams(tp=opt.default_tp, sl=opt.default_sl, mode=opt.mode)

    def run(self) -> EngineResult:
        opt = self.cfg.optimizer
        initial_balance = float(opt.initial_balance or self.cfg.initial_balance)
        frames: list[pd.DataFrame] = []
        per_symbol: dict[str, dict[str, Any]] = {}
        history: dict[str, pd.DataFrame] = {}

        for symbol in self.symbols:
            try:
                candles = self.market_client.fetch_history(symbol, opt.history_candles, self.cfg.timeframe)
            except TradingError as exc:
                self.logger.warning("Optimize %s skipped (%s), using defaults", symbol, exc)
                self.best_params[symbol] = self.default_params
                per_symbol[symbol] = {"fallback": True, "error": str(exc)}
                continue

            history[symbol] = candles_to_frame(candles)
            self.logger.info("Sweep start: symbol=%s candles=%d grid=%dx%d mode=%s",
                             symbol, len(candles), len(opt.tp_values), len(opt.sl_values), opt.mode)
            results = grid_search(
                candles,
                self.detector,
                opt.tp_values,
                opt.sl_values,
                opt.mode,
                risk_cfg=self.cfg.risk,
                initial_balance=initial_balance,
                warmup=opt.warmup,
                symbol=symbol,
            )
            params, fallback = pick_best(results, self.default_params)
            self.best_params[symbol] = params
            best = results[0] if results else None
            per_symbol[symbol] = {
                "tp": params.tp,
                "sl": params.sl,
                "mode": params.mode,
                "fallback": fallback,
                "best_net_profit": best.net_profit if best else 0.0,
                "best_win_rate": best.win_rate if best else 0.0,
                "trades": best.result.trades if best else 0,
            }
            if fallback:
                self.logger.info("Optimize %s: no profitable combo, fallback to tp=%s sl=%s",
                                 symbol, params.tp, params.sl)
            else:
                self.logger.info("Optimize %s: best tp=%s sl=%s net_profit=%.4f win_rate=%.2f%%",
                                 symbol, params.tp, params.sl, best.net_profit, best.win_rate * 100)
            frames.append(results_frame(results[: opt.top_n]))

        table = pd.concat(frames, ignore_index=True) if frames else results_frame([])
        return EngineResult(
            summary={"best_params": dict(self.best_params), "symbols": per_symbol, "results": table},
            artifacts={"top_n": opt.top_n, "history": history},
        )
