"""错误分类（per-instrument 可恢复错误 vs 启动期致命错误）。

- 可恢复：`InsufficientData` / `DataUnavailable` / `InsufficientBalance` /
  `ExposureExceeded` / `PositionLimitReached`。engine 按品种捕获、记日志、跳过本轮。
- 致命：`ConfigError`，只在启动阶段抛出。
"""

from __future__ import annotations


class TradingError(Exception):
    """所有可恢复交易错误的基类。"""


class InsufficientData(TradingError):
    """数据不足，指标/信号无法计算。"""


class DataUnavailable(TradingError):
    """行情拉取失败（网络/交易所错误）。"""


class InsufficientBalance(TradingError):
    """余额不足以覆盖保证金 + 开仓手续费。"""


class ExposureExceeded(TradingError):
    """组合层面敞口超限。"""


class PositionLimitReached(TradingError):
    """并发持仓数已达上限。"""


class ConfigError(ValueError):
    """配置缺失或非法（启动期致命）。"""
