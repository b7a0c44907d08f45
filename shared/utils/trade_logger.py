"""交易事件 sink：日志输出 / 平仓记录 CSV（日切）/ 内存收集。"""

from __future__ import annotations

import csv
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional, Protocol, TextIO

from shared.models.models import TradeEvent, TradeEventKind
from shared.utils.logging import setup_logger


class TradeEventSink(Protocol):
    """结构化事件出口。"""

    def emit(self, event: TradeEvent) -> None: ...


class LoggingEventSink:
    """把事件写入 logger（开平仓 INFO，拒单/错误 WARNING）。"""

    def __init__(self, logger=None):
        self.logger = logger or setup_logger("trade-events")

    def emit(self, event: TradeEvent) -> None:
        payload = " ".join(f"{k}={_fmt(v)}" for k, v in event.payload.items())
        if event.kind in {TradeEventKind.REJECT, TradeEventKind.ERROR}:
            self.logger.warning("[%s] %s %s", event.kind.value.upper(), event.symbol, payload)
        else:
            self.logger.info("[%s] %s %s", event.kind.value.upper(), event.symbol, payload)


class MemoryEventSink:
    """内存收集事件，便于测试与回放。"""

    def __init__(self):
        self.events: list[TradeEvent] = []

    def emit(self, event: TradeEvent) -> None:
        self.events.append(event)

    def of_kind(self, kind: TradeEventKind) -> list[TradeEvent]:
        return [e for e in self.events if e.kind is kind]


class CompositeEventSink:
    def __init__(self, sinks: Iterable[TradeEventSink]):
        self.sinks = list(sinks)

    def emit(self, event: TradeEvent) -> None:
        for sink in self.sinks:
            sink.emit(event)


_CSV_FIELDS = [
    "ts",
    "symbol",
    "side",
    "entry_price",
    "exit_price",
    "size",
    "reason",
    "net_pnl",
    "balance_after",
]


class TradeLogger:
    """按日切 CSV 记录平仓事件。

    Parameters
    ----------
    base_dir:
        输出目录。
    """

    def __init__(self, base_dir: str | Path = "data/trades"):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.current_date: date | None = None
        self.file: Optional[TextIO] = None
        self.writer: Any = None

    def _ensure_file(self, day: date):
        if self.current_date == day and self.file:
            return

        if self.file:
            self.file.close()

        self.current_date = day
        file_path = self.base_dir / f"trades_{day}.csv"
        new_file = not file_path.exists()
        self.file = file_path.open("a", newline="", encoding="utf-8")
        self.writer = csv.writer(self.file)
        if new_file:
            self.writer.writerow(_CSV_FIELDS)

    def emit(self, event: TradeEvent) -> None:
        """只记录 CLOSE 事件。"""
        if event.kind is not TradeEventKind.CLOSE:
            return
        ts = datetime.fromtimestamp(event.ts, tz=timezone.utc)
        self._ensure_file(ts.date())
        if self.writer is None or self.file is None:
            raise RuntimeError("TradeLogger not initialized")

        p = event.payload
        self.writer.writerow(
            [
                ts.strftime("%Y-%m-%d %H:%M:%S"),
                event.symbol,
                p.get("side", ""),
                _fmt(p.get("entry_price")),
                _fmt(p.get("exit_price")),
                _fmt(p.get("size")),
                p.get("reason", ""),
                _fmt(p.get("net_pnl")),
                _fmt(p.get("balance")),
            ]
        )
        self.file.flush()

    def close(self):
        """关闭当前文件句柄。"""
        if self.file:
            self.file.close()
            self.file = None
            self.writer = None


def _fmt(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        return f"{value:.6g}"
    return str(value)
