"""时钟抽象（开/平仓时间戳，unix 秒）。"""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> int: ...


class SystemClock:
    def now(self) -> int:
        return int(time.time())


class FixedClock:
    """可手动推进的时钟，便于测试与回放。"""

    def __init__(self, ts: int = 0):
        self.ts = int(ts)

    def now(self) -> int:
        return self.ts

    def set(self, ts: int) -> None:
        self.ts = int(ts)

    def advance(self, secs: int) -> None:
        self.ts += int(secs)
