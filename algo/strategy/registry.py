"""检测器注册表：字符串 -> SignalDetector 实现。

engine 只负责 orchestration，检测器实例必须由配置驱动构建。
"""

from __future__ import annotations

import inspect
from typing import Any, Mapping

from algo.strategy.base import SignalDetector
from algo.strategy.ema_cross import EmaCrossDetector
from algo.strategy.impulse_pullback import ImpulsePullbackDetector
from algo.strategy.multi_timeframe import MultiTimeframeDetector
from algo.strategy.rsi_cross import RsiCrossDetector
from shared.config.schema import StrategyConfig

_REGISTRY: dict[str, type[SignalDetector]] = {}


def register_detector(name: str, cls: type[SignalDetector]) -> None:
    _REGISTRY[name] = cls


def get_detector_cls(name: str) -> type[SignalDetector]:
    if name not in _REGISTRY:
        raise ValueError(f"Unknown strategy: {name}")
    return _REGISTRY[name]


def _filter_init_kwargs(cls: type, params: Mapping[str, Any]) -> dict[str, Any]:
    """过滤出 __init__ 支持的参数，避免配置里多字段导致报错。"""
    try:
        sig = inspect.signature(cls.__init__)
    except (TypeError, ValueError):
        return dict(params)

    if any(p.kind == inspect.Parameter.VAR_KEYWORD for p in sig.parameters.values()):
        return dict(params)

    allowed = {name for name in sig.parameters.keys() if name != "self"}
    return {k: v for k, v in params.items() if k in allowed}


def build_detector(cfg: StrategyConfig | Mapping[str, Any] | None) -> SignalDetector:
    """从配置构建检测器实例。

    支持：
    - StrategyConfig（来自 shared.config.schema）
    - dict（含 type + 参数字段，或 type + params）
    """
    if cfg is None:
        return EmaCrossDetector()

    if isinstance(cfg, StrategyConfig):
        name = str(cfg.type or "ema_cross")
        params = dict(cfg.params or {})
    elif isinstance(cfg, Mapping):
        name = str(cfg.get("type") or "ema_cross")
        params = dict(cfg.get("params") or {})
        params.update({k: v for k, v in cfg.items() if k not in {"type", "params"}})
    else:
        raise ValueError("strategy cfg must be StrategyConfig or dict")

    cls = get_detector_cls(name)
    kwargs = _filter_init_kwargs(cls, params)
    try:
        return cls(**kwargs)  # type: ignore[call-arg]
    except TypeError as exc:
        raise ValueError(f"Invalid params for strategy '{name}': {params}") from exc


# 默认注册
register_detector("ema_cross", EmaCrossDetector)
register_detector("rsi_cross", RsiCrossDetector)
register_detector("impulse_pullback", ImpulsePullbackDetector)
register_detector("multi_timeframe", MultiTimeframeDetector)
