"""纸面交易统一命令行入口。

该模块提供单一入口 `main.py`，通过子命令驱动不同任务：

- `runner`：纸面/干跑主循环。按周期拉行情、检测信号、开平仓。
- `optimize`：TP/SL 网格搜索。为每个品种挑选最优止盈止损参数。
- `test`：运行 pytest。
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import Any

from algo.strategy.registry import build_detector
from engine.optimization_engine import OptimizationEngine
from engine.trading_engine import PaperTradingEngine, build_market_client
from shared.config.config_loader import load_config
from shared.config.schema import MainConfig
from shared.utils.logging import set_level, setup_logger
from shared.utils.trade_logger import CompositeEventSink, LoggingEventSink, TradeLogger


@dataclass
class CliArgs:
    """命令行参数结构。

    config: 配置文件路径
    task: 要运行的任务类型 (runner/optimize/test)
    """
    config: str
    task: str
    max_cycles: int | None = None  # 跑多少个周期后退出；None 表示一直跑
    optimize_first: bool = False   # runner 启动前先跑一次扫参


def build_parser() -> argparse.ArgumentParser:
    """构建 CLI 参数解析器。"""
    parser = argparse.ArgumentParser(prog="zenith-paper", description="纸面交易统一入口")

    def _add_config_arg(p: argparse.ArgumentParser, *, default: Any) -> None:
        p.add_argument(
            "--config",
            default=default,
            help="配置文件路径 (默认: config/config.yml)",
        )

    # 允许 `python main.py --config ... runner`（全局）与 `python main.py runner --config ...`（子命令）
    _add_config_arg(parser, default="config/config.yml")

    sub = parser.add_subparsers(dest="task")

    p_runner = sub.add_parser("runner", help="纸面/干跑主循环")
    _add_config_arg(p_runner, default=argparse.SUPPRESS)
    p_runner.add_argument(
        "--max-cycles",
        type=int,
        default=None,
        help="跑多少个周期后退出（用于 dry-run/测试）",
    )
    p_runner.add_argument(
        "--optimize-first",
        action="store_true",
        help="启动前先对每个品种做 TP/SL 扫参",
    )

    p_opt = sub.add_parser("optimize", help="TP/SL 网格搜索")
    _add_config_arg(p_opt, default=argparse.SUPPRESS)

    p_test = sub.add_parser("test", help="运行 pytest")
    _add_config_arg(p_test, default=argparse.SUPPRESS)

    return parser


def parse_args(argv: list[str] | None = None) -> CliArgs:
    """解析命令行参数。

    Parameters
    ----------
    argv:
        传入的参数列表；为 None 时读取 sys.argv。

    Returns
    -------
    CliArgs
        解析后的参数对象。
    """
    parser = build_parser()
    ns = parser.parse_args(argv)
    return CliArgs(
        config=str(getattr(ns, "config", "config/config.yml")),
        task=ns.task or "runner",
        max_cycles=getattr(ns, "max_cycles", None),
        optimize_first=bool(getattr(ns, "optimize_first", False)),
    )


def _build_sink(cfg: MainConfig) -> tuple[CompositeEventSink, TradeLogger | None]:
    trade_logger = TradeLogger(cfg.logging.trades_dir) if cfg.logging.trades_dir else None
    sinks: list[Any] = [LoggingEventSink()]
    if trade_logger is not None:
        sinks.append(trade_logger)
    return CompositeEventSink(sinks), trade_logger


def run_optimize(cfg: MainConfig, *, market_client=None, detector=None) -> dict[str, Any]:
    logger = setup_logger("optimize")
    result = OptimizationEngine(cfg, market_client=market_client, detector=detector).run()
    table = result.summary["results"]
    if not table.empty:
        logger.info("Top results:\n%s", table.to_string(index=False))
    return result.summary


def run_runner(cfg: MainConfig, *, max_cycles: int | None, optimize_first: bool) -> dict[str, Any]:
    market_client = build_market_client(cfg)
    detector = build_detector(cfg.strategy)
    overrides = {}
    if optimize_first or cfg.optimizer.enabled:
        overrides = run_optimize(cfg, market_client=market_client, detector=detector)["best_params"]

    sink, trade_logger = _build_sink(cfg)
    try:
        engine = PaperTradingEngine(
            cfg,
            market_client=market_client,
            detector=detector,
            sink=sink,
            tp_sl_overrides=overrides,
        )
        return engine.run(max_cycles=max_cycles).summary
    finally:
        if trade_logger is not None:
            trade_logger.close()


def main(argv: list[str] | None = None) -> Any:
    """程序主入口。

    Returns
    -------
    Any
        对应子命令的返回结果（通常为 summary dict）。
    """
    args = parse_args(argv)

    if args.task == "test":
        import pytest

        return pytest.main(["-q"])

    # 配置错误在启动阶段直接抛出（FileNotFoundError / ConfigError）
    cfg = load_config(args.config)
    set_level(cfg.logging.level)

    if args.task == "runner":
        return run_runner(cfg, max_cycles=args.max_cycles, optimize_first=args.optimize_first)

    if args.task == "optimize":
        return run_optimize(cfg)

    raise ValueError(f"Unknown task: {args.task}")


if __name__ == "__main__":
    main()
