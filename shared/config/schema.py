"""配置架构定义（Pydantic Schema）。

目标：
- 让配置成为“强类型 + 带默认值”的边界协议，默认值只在加载时应用一次；
- 启动阶段尽早失败，避免 typo/类型错误在纸面交易或长回放中“隐蔽爆炸”；
- 业务代码里不出现 `cfg.get(...)` 与属性存在性判断。
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ExchangeConfig(BaseModel):
    """交易所（行情源）配置。"""
    name: str = "binance"
    base_url: str = "https://api.binance.com"
    timeout_secs: float = 10.0
    max_page_size: int = Field(default=1000, gt=0)

    model_config = ConfigDict(extra="forbid")


class RiskConfig(BaseModel):
    """风控与仓位参数（核心只读）。

    - risk_per_trade：单笔风险占余额比例
    - leverage：杠杆，保证金 = 名义 / leverage
    - max_exposure_usd：所有持仓保证金（或名义）之和上限
    - max_notional_per_trade：单笔名义上限
    - min_stop_pct：止损距离下限（价格比例），防止 ATR≈0 时仓位爆炸
    - commission_rate：单边手续费率
    - tp_multiplier / sl_multiplier：ATR 倍数
    - exposure_mode：敞口按 margin 还是 notional 统计
    """
    risk_per_trade: float = Field(default=0.01, gt=0, le=1)
    leverage: float = Field(default=5.0, gt=0)
    max_concurrent_positions: int = Field(default=5, ge=1)
    max_exposure_usd: float = Field(default=1000.0, gt=0)
    max_notional_per_trade: float = Field(default=1000.0, gt=0)
    min_stop_pct: float = Field(default=0.002, ge=0)
    commission_rate: float = Field(default=0.0009, ge=0)
    tp_multiplier: float = Field(default=3.0, gt=0)
    sl_multiplier: float = Field(default=1.5, gt=0)
    exposure_mode: Literal["margin", "notional"] = "margin"
    atr_period: int = Field(default=14, gt=0)

    model_config = ConfigDict(extra="forbid")


class StrategyConfig(BaseModel):
    """信号策略配置（type + params）。

    说明：
    - 策略参数不允许“散落在顶层”：必须进入 `params`；
    - `strategy:` 下的扁平字段会被自动挪到 `params`，从而实现：
      - 用户写起来方便
      - schema 又能做到严格（forbid extra keys）
    """
    type: str = "ema_cross"
    params: Dict[str, Any] = Field(default_factory=dict)
    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="before")
    @classmethod
    def _pack_flat_params(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if "params" in data and isinstance(data.get("params"), dict) and set(data.keys()) <= {"type", "params"}:
            return data
        strat_type = data.get("type", "ema_cross")
        params = {k: v for k, v in data.items() if k not in {"type", "params"}}
        existing = data.get("params")
        if isinstance(existing, dict):
            params = {**params, **existing}
        return {"type": strat_type, "params": params}


class OptimizerConfig(BaseModel):
    """TP/SL 扫参配置（grid）。

    mode=atr 时 tp/sl 是 ATR 倍数；mode=pct 时是价格百分比。
    """
    enabled: bool = False
    mode: Literal["atr", "pct"] = "atr"
    tp_values: List[float] = Field(default_factory=lambda: [1.0, 1.5, 2.0, 2.5, 3.0])
    sl_values: List[float] = Field(default_factory=lambda: [0.5, 1.0, 1.5, 2.0])
    history_candles: int = Field(default=1000, gt=0)
    warmup: int = Field(default=50, ge=1)
    default_tp: float = Field(default=3.0, gt=0)
    default_sl: float = Field(default=1.5, gt=0)
    initial_balance: Optional[float] = None
    top_n: int = Field(default=5, ge=1)
    model_config = ConfigDict(extra="forbid")


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    trades_dir: Optional[str] = "data/trades"
    model_config = ConfigDict(extra="forbid")


class MainConfig(BaseModel):
    """应用总配置。"""
    symbols: List[str] = Field(min_length=1)
    timeframe: str = "15m"
    higher_timeframe: Optional[str] = "1h"
    candle_count: int = Field(default=200, gt=1)
    initial_balance: float = Field(default=1000.0, gt=0)
    poll_interval_secs: float = Field(default=60.0, ge=0)
    mode: Literal["paper", "dry-run"] = "paper"
    max_workers: int = Field(default=1, ge=1)

    # 子模块配置
    exchange: ExchangeConfig = Field(default_factory=ExchangeConfig)
    risk: RiskConfig = Field(default_factory=RiskConfig)
    strategy: StrategyConfig = Field(default_factory=StrategyConfig)
    optimizer: OptimizerConfig = Field(default_factory=OptimizerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        # 兼容单品种写法：symbol: BTCUSDT
        if "symbol" in data and "symbols" not in data:
            data["symbols"] = [data.pop("symbol")]
        mode = data.get("mode")
        if isinstance(mode, str):
            data["mode"] = mode.replace("_", "-").lower()
        return data
