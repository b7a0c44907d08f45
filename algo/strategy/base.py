"""信号检测抽象：输入单品种行情快照，输出分类结果（不下单）。"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Sequence

from shared.errors import InsufficientData
from shared.models.models import Candle, Side


@dataclass(frozen=True)
class MarketSnapshot:
    """单品种快照：工作周期 K 线 + 可选高周期 K 线。"""
    symbol: str
    candles: Sequence[Candle]
    higher_candles: Sequence[Candle] | None = None

    @property
    def closes(self) -> list[float]:
        return [c.close for c in self.candles]


@dataclass(frozen=True)
class Signal:
    side: Side
    confidence: float = 1.0
    reason: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class NoSignal:
    reason: str | None = None


SignalResult = Signal | NoSignal


class SignalDetector(ABC):
    """检测策略基类。

    子类只做分类；数据不足时抛 `InsufficientData`，由上层当作“本轮跳过”。
    """

    name: str = "base"

    @property
    @abstractmethod
    def min_candles(self) -> int:
        """可检测所需的最少 K 线数量。"""

    @abstractmethod
    def detect(self, snapshot: MarketSnapshot) -> SignalResult:
        """返回 `Signal` 或 `NoSignal`。"""

    def _require(self, candles: Sequence[Candle]) -> None:
        if len(candles) < self.min_candles:
            raise InsufficientData(
                f"{self.name} requires {self.min_candles} candles, got {len(candles)}"
            )
