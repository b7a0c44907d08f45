from algo.strategy.base import MarketSnapshot, NoSignal, Signal, SignalDetector, SignalResult
from algo.strategy.registry import build_detector

__all__ = [
    "MarketSnapshot",
    "NoSignal",
    "Signal",
    "SignalDetector",
    "SignalResult",
    "build_detector",
]
