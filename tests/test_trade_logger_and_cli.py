from __future__ import annotations

import csv
import logging
from pathlib import Path

import pytest

from broker.paper_ledger import PaperLedger
from main import parse_args
from shared.models.models import TradeEvent, TradeEventKind
from shared.utils.logging import set_level, setup_logger
from shared.utils.trade_logger import CompositeEventSink, LoggingEventSink, MemoryEventSink, TradeLogger


def _close_event(ts: int = 1_700_000_000) -> TradeEvent:
    return TradeEvent(
        kind=TradeEventKind.CLOSE,
        symbol="BTCUSDT",
        ts=ts,
        payload={"side": "long", "entry_price": 100.0, "exit_price": 106.0, "size": 5.0,
                 "reason": "TP", "net_pnl": 29.073, "balance": 1029.073},
    )


def test_trade_logger_writes_only_close_events(tmp_path: Path):
    logger = TradeLogger(tmp_path)
    logger.emit(TradeEvent(kind=TradeEventKind.OPEN, symbol="BTCUSDT", ts=1_700_000_000))
    logger.emit(_close_event())
    logger.close()

    files = list(tmp_path.glob("trades_*.csv"))
    assert [f.name for f in files] == ["trades_2023-11-14.csv"]
    with files[0].open(encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert rows[0][:3] == ["ts", "symbol", "side"]
    assert len(rows) == 2
    assert rows[1][1] == "BTCUSDT"
    assert rows[1][6] == "TP"


def test_composite_sink_fans_out(caplog):
    memory = MemoryEventSink()
    sink = CompositeEventSink([memory, LoggingEventSink(logging.getLogger("test-trade-events"))])
    with caplog.at_level(logging.WARNING, logger="test-trade-events"):
        sink.emit(TradeEvent(kind=TradeEventKind.REJECT, symbol="ETHUSDT", ts=0, payload={"reason": "x"}))
    assert len(memory.events) == 1
    assert "[REJECT] ETHUSDT reason=x" in caplog.text


def test_cli_parse_args():
    args = parse_args(["runner", "--max-cycles", "3", "--optimize-first"])
    assert args.task == "runner"
    assert args.max_cycles == 3
    assert args.optimize_first is True
    assert args.config == "config/config.yml"

    args = parse_args(["--config", "other.yml", "optimize"])
    assert args.task == "optimize"
    assert args.config == "other.yml"

    assert parse_args([]).task == "runner"


def test_components_bind_named_loggers():
    ledger = PaperLedger(1000.0)
    assert ledger.logger.name == "paper-ledger"
    assert setup_logger("paper-ledger") is ledger.logger
    assert len(ledger.logger.handlers) == 1

    try:
        set_level("DEBUG")
        assert ledger.logger.level == logging.DEBUG
        assert setup_logger("late-component").level == logging.DEBUG
    finally:
        set_level("INFO")
    assert ledger.logger.level == logging.INFO

    with pytest.raises(ValueError):
        set_level("NOPE")
